"""
SQLite implementation of Listing repository.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select

from marketplace.core.exceptions import NotFoundError
from marketplace.infrastructure.local.database import ListingORM, get_session_factory, row_to_dict
from marketplace.interfaces.listing_repository import IListingRepository
from marketplace.models.listing import Listing, ListingCreate, ListingUpdate, listing_from_record


class SqliteListingRepository(IListingRepository):
    """SQLite implementation of listing repository."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or get_session_factory()

    def _orm_to_model(self, orm: ListingORM) -> Listing:
        """Convert ORM object to Pydantic model."""
        return listing_from_record(row_to_dict(orm))

    async def get(self, listing_id: int) -> Optional[Listing]:
        async with self._session_factory() as session:
            result = await session.execute(select(ListingORM).where(ListingORM.id == listing_id))
            orm = result.scalar_one_or_none()
            return self._orm_to_model(orm) if orm else None

    async def list(self, limit: Optional[int] = 200, offset: int = 0) -> list[Listing]:
        query = select(ListingORM).order_by(ListingORM.created_at.desc(), ListingORM.id.desc())
        if limit is not None:
            query = query.limit(limit)
        if offset:
            query = query.offset(offset)
        async with self._session_factory() as session:
            result = await session.execute(query)
            return [self._orm_to_model(orm) for orm in result.scalars().all()]

    async def list_by_seller(self, seller_id: str) -> list[Listing]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ListingORM)
                .where(ListingORM.seller_id == seller_id)
                .order_by(ListingORM.created_at.desc(), ListingORM.id.desc())
            )
            return [self._orm_to_model(orm) for orm in result.scalars().all()]

    async def create(self, seller_id: str, data: ListingCreate) -> Listing:
        async with self._session_factory() as session:
            orm = ListingORM(
                seller_id=seller_id,
                name=data.name,
                price=data.price,
                description=data.description,
                image_urls=data.image_urls,
                location=data.location.model_dump(),
                category=data.category.model_dump(),
                contact_info=data.contact_info.model_dump(),
            )
            session.add(orm)
            await session.commit()
            await session.refresh(orm)
            return self._orm_to_model(orm)

    async def update(self, listing_id: int, update: ListingUpdate) -> Listing:
        async with self._session_factory() as session:
            result = await session.execute(select(ListingORM).where(ListingORM.id == listing_id))
            orm = result.scalar_one_or_none()
            if not orm:
                raise NotFoundError(f"Listing {listing_id} not found")

            # Nested models dump to plain dicts for the JSON columns
            for field, value in update.model_dump(exclude_unset=True, exclude_none=True).items():
                setattr(orm, field, value)

            await session.commit()
            await session.refresh(orm)
            return self._orm_to_model(orm)

    async def delete(self, listing_id: int) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(select(ListingORM).where(ListingORM.id == listing_id))
            orm = result.scalar_one_or_none()
            if not orm:
                return False
            await session.delete(orm)
            await session.commit()
            return True
