"""
SQLite implementation of the profile store.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select

from marketplace.core.exceptions import DuplicateError, NotFoundError
from marketplace.infrastructure.local.database import ProfileORM, get_session_factory, row_to_dict
from marketplace.interfaces.profile_store import IProfileStore
from marketplace.models.profile import Profile, ProfileCreate, ProfileUpdate, profile_from_record


class SqliteProfileStore(IProfileStore):
    """SQLite implementation of profile store."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or get_session_factory()

    def _orm_to_model(self, orm: ProfileORM) -> Profile:
        """Convert ORM object to Pydantic model."""
        return profile_from_record(row_to_dict(orm))

    async def _get_orm(self, session, user_id: str) -> ProfileORM:
        result = await session.execute(select(ProfileORM).where(ProfileORM.id == user_id))
        orm = result.scalar_one_or_none()
        if not orm:
            raise NotFoundError(f"Profile {user_id} not found")
        return orm

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        async with self._session_factory() as session:
            result = await session.execute(select(ProfileORM).where(ProfileORM.id == user_id))
            orm = result.scalar_one_or_none()
            return self._orm_to_model(orm) if orm else None

    async def create_profile(self, data: ProfileCreate) -> Profile:
        async with self._session_factory() as session:
            result = await session.execute(select(ProfileORM.id).where(ProfileORM.id == data.id))
            if result.scalar_one_or_none():
                raise DuplicateError(f"Profile {data.id} already exists")

            orm = ProfileORM(
                id=data.id,
                name=data.name,
                email=data.email,
                role=data.role.value,
                avatar_url=data.avatar_url,
                wishlist=[],
            )
            session.add(orm)
            await session.commit()
            await session.refresh(orm)
            return self._orm_to_model(orm)

    async def update_profile(self, user_id: str, update: ProfileUpdate) -> Profile:
        async with self._session_factory() as session:
            orm = await self._get_orm(session, user_id)
            for field, value in update.model_dump(exclude_unset=True, exclude_none=True).items():
                setattr(orm, field, value)
            await session.commit()
            await session.refresh(orm)
            return self._orm_to_model(orm)

    async def toggle_wishlist(self, user_id: str, listing_id: int) -> Profile:
        async with self._session_factory() as session:
            orm = await self._get_orm(session, user_id)
            wishlist = list(orm.wishlist or [])
            if listing_id in wishlist:
                wishlist.remove(listing_id)
            else:
                wishlist.append(listing_id)
            # Reassign so the JSON column is marked dirty
            orm.wishlist = wishlist
            await session.commit()
            await session.refresh(orm)
            return self._orm_to_model(orm)

    async def list_profiles(self, limit: int = 100, offset: int = 0) -> list[Profile]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProfileORM).order_by(ProfileORM.created_at.asc()).limit(limit).offset(offset)
            )
            return [self._orm_to_model(orm) for orm in result.scalars().all()]
