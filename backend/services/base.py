"""Base CRUD service with soft-delete aware queries.

All store services inherit from this. Provides standard
create/read/update/delete with automatic soft-delete filtering
and pagination. Services only flush; the caller owns the transaction.
"""

from typing import Any, Generic, Optional, Sequence, Type, TypeVar
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFoundError
from db.base import BaseModel

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseService(Generic[ModelType]):
    """Generic CRUD service for any soft-deletable model.

    Usage:
        class CopyRecordService(BaseService[CopyRecord]):
            def __init__(self, db: AsyncSession):
                super().__init__(CopyRecord, db)
    """

    label = "Record"

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    # ─── Read ──────────────────────────────────────────────

    async def get_by_id(
        self,
        id: str,
        include_deleted: bool = False,
    ) -> Optional[ModelType]:
        """Get a single record by ID."""
        query = select(self.model).where(self.model.id == id)
        if not include_deleted:
            query = query.where(self.model.is_deleted == False)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_or_404(self, id: str) -> ModelType:
        """Get a record by ID or raise NotFoundError."""
        instance = await self.get_by_id(id)
        if instance is None:
            raise NotFoundError(f"{self.label} {id} not found")
        return instance

    async def list(
        self,
        offset: int = 0,
        limit: int = 50,
        order_by: str = "created_at",
        order_desc: bool = True,
        include_deleted: bool = False,
        filters: dict[str, Any] = None,
    ) -> tuple[Sequence[ModelType], int]:
        """List records with pagination, filtering, and sorting.

        Returns:
            Tuple of (items, total_count)
        """
        query = select(self.model)
        count_query = select(func.count()).select_from(self.model)

        # Soft delete filter
        if not include_deleted:
            query = query.where(self.model.is_deleted == False)
            count_query = count_query.where(self.model.is_deleted == False)

        # Additional filters
        if filters:
            for field, value in filters.items():
                if value is None or not hasattr(self.model, field):
                    continue
                col = getattr(self.model, field)
                if isinstance(value, list):
                    query = query.where(col.in_(value))
                    count_query = count_query.where(col.in_(value))
                else:
                    query = query.where(col == value)
                    count_query = count_query.where(col == value)

        # Sorting
        if hasattr(self.model, order_by):
            col = getattr(self.model, order_by)
            query = query.order_by(col.desc() if order_desc else col.asc())

        # Pagination
        query = query.offset(offset).limit(limit)

        result = await self.db.execute(query)
        items = result.scalars().all()

        count_result = await self.db.execute(count_query)
        total = count_result.scalar() or 0

        return items, total

    # ─── Create ────────────────────────────────────────────

    async def create(self, data: dict[str, Any]) -> ModelType:
        """Create a new record.

        Args:
            data: Dict of field values

        Returns:
            Created model instance
        """
        if "id" not in data:
            data["id"] = str(uuid4())

        instance = self.model(**data)
        self.db.add(instance)
        await self.db.flush()
        await self.db.refresh(instance)
        return instance

    # ─── Update ────────────────────────────────────────────

    async def update(self, id: str, data: dict[str, Any]) -> ModelType:
        """Update a record by ID.

        Args:
            id: Record UUID
            data: Dict of fields to update (None values are skipped)

        Returns:
            Updated model instance

        Raises:
            NotFoundError: no live record with this ID
        """
        instance = await self.get_or_404(id)
        for key, value in data.items():
            if value is not None and hasattr(instance, key):
                setattr(instance, key, value)

        await self.db.flush()
        await self.db.refresh(instance)
        return instance

    # ─── Delete ────────────────────────────────────────────

    async def soft_delete(self, id: str) -> bool:
        """Soft-delete a record (set is_deleted=True).

        Returns:
            True if deleted, False if not found
        """
        instance = await self.get_by_id(id)
        if not instance:
            return False

        instance.soft_delete()
        await self.db.flush()
        return True
