"""
Generic async repository over a single SQLAlchemy model.
"""

from typing import Any, Dict, Generic, List, Optional, Type, TypeVar
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mern_auth.core.database import Base

logger = structlog.get_logger()

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    def __init__(self, model: Type[ModelType]):
        self.model = model

    @property
    def _name(self) -> str:
        return self.model.__name__

    async def _finish(self, db: AsyncSession, commit: bool, refresh: Optional[ModelType] = None) -> None:
        """Commit (refreshing ``refresh``) or just flush; roll back on failure when committing."""
        try:
            if commit:
                await db.commit()
                if refresh is not None:
                    await db.refresh(refresh)
            else:
                await db.flush()
        except Exception as e:
            if commit:
                await db.rollback()
            logger.error("Database write failed", model=self._name, error=str(e))
            raise

    async def get(self, db: AsyncSession, id: UUID) -> Optional[ModelType]:
        result = await db.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def get_multi(
        self,
        db: AsyncSession,
        *,
        skip: int = 0,
        limit: int = 100,
        order_by: Optional[str] = None,
    ) -> List[ModelType]:
        """
        Page through records

        Args:
            db: Database session
            skip: Records to skip
            limit: Maximum records returned
            order_by: Column name, ``-`` prefix for descending; newest first when omitted
        """
        column_name = (order_by or "-created_at").lstrip("-")
        column = getattr(self.model, column_name, None)

        query = select(self.model)
        if column is not None:
            descending = order_by is None or order_by.startswith("-")
            query = query.order_by(column.desc() if descending else column)

        result = await db.execute(query.offset(skip).limit(limit))
        return list(result.scalars().all())

    async def create(self, db: AsyncSession, *, obj_in: Dict[str, Any], commit: bool = True) -> ModelType:
        db_obj = self.model(**obj_in)
        db.add(db_obj)
        await self._finish(db, commit, refresh=db_obj)
        logger.info("Record created", model=self._name, id=str(db_obj.id))
        return db_obj

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: ModelType,
        obj_in: Dict[str, Any],
        commit: bool = True
    ) -> ModelType:
        for field, value in obj_in.items():
            if hasattr(db_obj, field):
                setattr(db_obj, field, value)
        await self._finish(db, commit, refresh=db_obj)
        logger.info("Record updated", model=self._name, id=str(db_obj.id), fields=sorted(obj_in))
        return db_obj

    async def delete(self, db: AsyncSession, *, id: UUID, commit: bool = True) -> Optional[ModelType]:
        """Delete by id; returns the removed record, or None when there was nothing to delete."""
        db_obj = await self.get(db, id=id)
        if db_obj is None:
            return None

        await db.delete(db_obj)
        await self._finish(db, commit)
        logger.info("Record deleted", model=self._name, id=str(id))
        return db_obj
