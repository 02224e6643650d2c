"""
Base repository.

Generic CRUD operations for all repositories.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mlm_engine.models.base import Base

# Generic type for model
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository with generic CRUD operations.

    Type Parameters:
        ModelType: SQLAlchemy model class

    Example:
        class MemberRepository(BaseRepository[Member]):
            def __init__(self, session: AsyncSession):
                super().__init__(Member, session)
    """

    def __init__(
        self, model: type[ModelType], session: AsyncSession
    ) -> None:
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def get_by_id(
        self, id: int, for_update: bool = False
    ) -> ModelType | None:
        """
        Get entity by ID.

        Args:
            id: Entity ID
            for_update: Lock the row (SELECT ... FOR UPDATE)

        Returns:
            Entity or None if not found
        """
        if for_update:
            stmt = select(self.model).where(self.model.id == id).with_for_update()
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        return await self.session.get(self.model, id)

    async def get_by(
        self, for_update: bool = False, **filters: Any
    ) -> ModelType | None:
        """
        Get single entity by filters.

        Args:
            for_update: Lock the row
            **filters: Column filters

        Returns:
            First matching entity or None
        """
        stmt = select(self.model).filter_by(**filters)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, **data: Any) -> ModelType:
        """
        Create new entity.

        Args:
            **data: Entity data

        Returns:
            Created entity
        """
        entity = self.model(**data)
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def update(
        self, id: int, for_update: bool = False, **data: Any
    ) -> ModelType | None:
        """
        Update entity by ID.

        Args:
            id: Entity ID
            for_update: Use SELECT FOR UPDATE to lock row
            **data: Updated data

        Returns:
            Updated entity or None if not found
        """
        entity = await self.get_by_id(id, for_update=for_update)
        if not entity:
            return None

        for key, value in data.items():
            setattr(entity, key, value)

        await self.session.flush()
        return entity
