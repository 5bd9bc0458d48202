"""Copy (CC) record model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class CopyRecord(BaseModel):
    """Read-tracked copy of an instance sent to a non-approving observer."""

    __tablename__ = "flow_copy_records"

    flow_instance_id: Mapped[str] = mapped_column(
        ForeignKey("flow_instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    task_id: Mapped[Optional[str]] = mapped_column(nullable=True)
    node_id: Mapped[Optional[str]] = mapped_column(nullable=True)
    user_id: Mapped[str] = mapped_column(nullable=False, index=True)
    user_name: Mapped[str] = mapped_column(nullable=False, default="")
    is_read: Mapped[bool] = mapped_column(default=False, index=True)
    read_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
