"""Base model class for all SQLAlchemy models."""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from core.utils import utc_now


class Base(DeclarativeBase):
    """Base model class with common fields for all models."""

    pass


class SoftDeleteMixin:
    """Mixin that adds soft delete capability to any model.

    Adds `deleted_at` and `is_deleted` columns. When an entity is
    "deleted", `deleted_at` is set to the current timestamp and
    `is_deleted` is flipped to True. The row remains in the DB and
    can be restored later.

    Usage in queries:
        # Get only non-deleted records (default for most queries)
        query.where(Model.is_deleted == False)

        # Get including deleted (admin / audit)
        query  # no filter
    """

    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True, default=None, index=True
    )
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, default=False, index=True
    )

    def soft_delete(self) -> None:
        """Mark this record as deleted."""
        self.is_deleted = True
        self.deleted_at = utc_now()

    def restore(self) -> None:
        """Restore a soft-deleted record."""
        self.is_deleted = False
        self.deleted_at = None


class TimestampedModel(Base):
    """Abstract base with a UUID primary key and creation/update timestamps.

    Used directly by append-only tables (flow logs, events) that must never
    be soft-deleted.
    """

    __abstract__ = True

    id: Mapped[str] = mapped_column(primary_key=True, default=lambda: str(uuid4()))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now
    )


class BaseModel(SoftDeleteMixin, TimestampedModel):
    """Abstract base model with common timestamp fields and soft delete.

    Most domain models inherit from this. Provides:
    - id: UUID primary key
    - created_at / updated_at: automatic timestamps
    - is_deleted / deleted_at: soft delete support
    """

    __abstract__ = True
