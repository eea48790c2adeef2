"""
Base Repository

Generic repository pattern implementation for async SQLAlchemy CRUD operations.
"""

import uuid
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Generic repository providing common CRUD operations.

    All methods expect an externally managed session (injected via
    FastAPI dependency or opened by a background job).

    Usage:
        class DocumentRepository(BaseRepository[DocumentRecord]):
            def __init__(self):
                super().__init__(DocumentRecord)
    """

    def __init__(self, model: type[ModelType]):
        self.model = model

    async def create(self, session: AsyncSession, obj_in: Any) -> ModelType:
        """
        Create a new record.

        Args:
            session: Active database session.
            obj_in: Pydantic schema or dict with entity data.

        Returns:
            The created entity with database-generated fields populated.
        """
        data = obj_in.model_dump() if hasattr(obj_in, "model_dump") else obj_in
        db_obj = self.model(**data)
        session.add(db_obj)
        await session.commit()
        await session.refresh(db_obj)
        return db_obj

    async def get_by_id(
        self, session: AsyncSession, id: uuid.UUID
    ) -> ModelType | None:
        """Get a record by primary key. Returns None if not found."""
        result = await session.execute(
            select(self.model).where(self.model.id == id)  # type: ignore[attr-defined]
        )
        return result.scalars().first()

    async def delete(self, session: AsyncSession, db_obj: ModelType) -> None:
        """Hard delete a record (dependent rows follow the FK cascade)."""
        await session.delete(db_obj)
        await session.commit()
