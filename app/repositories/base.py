"""
Base repository.

Shared lookups and writes for the sweeper's tables. Repositories never
commit: the caller owns the transaction, so a deposit state change and
its side effects land together or not at all.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Model-bound repository over one AsyncSession.

    Subclasses fix the model:

        class UserRepository(BaseRepository[User]):
            def __init__(self, session: AsyncSession):
                super().__init__(User, session)
    """

    def __init__(self, model: type[ModelType], session: AsyncSession) -> None:
        self.model = model
        self.session = session

    async def get_by(self, **filters: Any) -> ModelType | None:
        """
        Fetch the row matching unique-column filters.

        Args:
            **filters: Column equality filters

        Returns:
            Row or None
        """
        stmt = select(self.model).filter_by(**filters)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, **data: Any) -> ModelType:
        """
        Insert a row and flush it.

        Unique violations surface here as IntegrityError, which callers use
        to detect a concurrent insert of the same key.
        """
        entity = self.model(**data)
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def update(self, id: int, **data: Any) -> ModelType | None:
        """
        Set columns on a row by primary key.

        Args:
            id: Primary key
            **data: Column values

        Returns:
            Updated row, or None if it does not exist
        """
        entity = await self.session.get(self.model, id)
        if entity is None:
            return None

        for key, value in data.items():
            setattr(entity, key, value)

        await self.session.flush()
        await self.session.refresh(entity)
        return entity
