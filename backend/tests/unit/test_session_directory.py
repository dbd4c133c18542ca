"""
Unit tests for SQLite chat session directory.
"""

import pytest
import pytest_asyncio

from marketplace.core.exceptions import BusinessLogicError
from marketplace.infrastructure.local.listing_repository import SqliteListingRepository
from marketplace.infrastructure.local.message_stream import SqliteMessageStream
from marketplace.infrastructure.local.session_directory import SqliteSessionDirectory
from marketplace.models.listing import ListingCategory, ListingCreate, ListingLocation


@pytest.fixture
def directory(session_factory):
    return SqliteSessionDirectory(session_factory=session_factory)


@pytest_asyncio.fixture
async def listing(session_factory, seller_id):
    repo = SqliteListingRepository(session_factory=session_factory)
    return await repo.create(
        seller_id,
        ListingCreate(
            name="Meja Belajar",
            price=350_000,
            image_urls=["http://test/storage/listings/meja.webp"],
            location=ListingLocation(province="DIY", city="Sleman", latitude=-7.71, longitude=110.35),
            category=ListingCategory(primary="Rumah Tangga", secondary="Furnitur"),
        ),
    )


@pytest.mark.asyncio
async def test_find_or_create_creates_once(directory, listing, buyer_id, seller_id):
    first = await directory.find_or_create_session(listing.id, buyer_id, seller_id)
    second = await directory.find_or_create_session(listing.id, buyer_id, seller_id)

    assert first.id == second.id
    assert first.buyer_id == buyer_id
    assert first.seller_id == seller_id
    assert first.listing_name == "Meja Belajar"
    assert first.listing_image_url == "http://test/storage/listings/meja.webp"


@pytest.mark.asyncio
async def test_lost_create_race_rereads_existing(directory, listing, buyer_id, seller_id, monkeypatch):
    existing = await directory.find_or_create_session(listing.id, buyer_id, seller_id)

    # First lookup misses, as if a concurrent request inserted in between
    real_find = directory._find
    calls = []

    async def racing_find(listing_id, buyer):
        calls.append(listing_id)
        if len(calls) == 1:
            return None
        return await real_find(listing_id, buyer)

    monkeypatch.setattr(directory, "_find", racing_find)

    resolved = await directory.find_or_create_session(listing.id, buyer_id, seller_id)

    assert resolved.id == existing.id
    assert len(calls) == 2
    assert len(await directory.list_sessions_for_user(seller_id)) == 1


@pytest.mark.asyncio
async def test_different_buyers_get_different_sessions(directory, listing, seller_id):
    a = await directory.find_or_create_session(listing.id, "buyer_a", seller_id)
    b = await directory.find_or_create_session(listing.id, "buyer_b", seller_id)

    assert a.id != b.id


@pytest.mark.asyncio
async def test_seller_cannot_chat_with_self(directory, listing, seller_id):
    with pytest.raises(BusinessLogicError):
        await directory.find_or_create_session(listing.id, seller_id, seller_id)


@pytest.mark.asyncio
async def test_get_session(directory, listing, buyer_id, seller_id):
    created = await directory.find_or_create_session(listing.id, buyer_id, seller_id)

    fetched = await directory.get_session(created.id)

    assert fetched == created
    assert await directory.get_session(9999) is None


@pytest.mark.asyncio
async def test_list_sessions_most_recent_message_first(
    directory, session_factory, hub, listing, seller_id
):
    stream = SqliteMessageStream(hub, session_factory=session_factory)
    quiet = await directory.find_or_create_session(listing.id, "buyer_quiet", seller_id)
    older = await directory.find_or_create_session(listing.id, "buyer_old", seller_id)
    newer = await directory.find_or_create_session(listing.id, "buyer_new", seller_id)

    await stream.append(older.id, "buyer_old", "Halo kak")
    await stream.append(newer.id, "buyer_new", "Bisa nego?")

    sessions = await directory.list_sessions_for_user(seller_id)

    assert [s.id for s in sessions] == [newer.id, older.id, quiet.id]
    assert sessions[0].last_message == "Bisa nego?"
    assert sessions[2].last_message is None


@pytest.mark.asyncio
async def test_list_sessions_only_for_participant(directory, listing, seller_id):
    await directory.find_or_create_session(listing.id, "buyer_a", seller_id)
    await directory.find_or_create_session(listing.id, "buyer_b", seller_id)

    assert [s.buyer_id for s in await directory.list_sessions_for_user("buyer_a")] == ["buyer_a"]
    assert await directory.list_sessions_for_user("stranger") == []
