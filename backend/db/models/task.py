"""Approval task model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import TaskStatus
from db.base import BaseModel


class Task(BaseModel):
    """One approver's unit of work at an approval node.

    Attributes:
        id: Unique identifier (UUID string)
        task_no: Human-readable serial number (``TK...``)
        flow_instance_id: Owning instance
        node_id / node_name: Approval node the task belongs to
        status: PENDING, COMPLETED, CANCELLED, TRANSFERRED or COUNTERSIGNED
        assignee_id / assignee_name / assignee_dept_id: Who must act
        due_at: When the task becomes overdue (naive UTC)
        result: APPROVED, REJECTED, TRANSFERRED or COUNTERSIGNED
        comment: Comment left by the approver
        form_data: Form data submitted with the approval
        source_task_id: Task this one was transferred or countersigned from
        completed_at / duration_seconds: Timing
    """

    __tablename__ = "flow_tasks"

    task_no: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    flow_instance_id: Mapped[str] = mapped_column(
        ForeignKey("flow_instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    node_id: Mapped[str] = mapped_column(nullable=False, index=True)
    node_name: Mapped[str] = mapped_column(nullable=False, default="")
    status: Mapped[str] = mapped_column(default=TaskStatus.PENDING.value, index=True)
    assignee_id: Mapped[str] = mapped_column(nullable=False, index=True)
    assignee_name: Mapped[str] = mapped_column(nullable=False, default="")
    assignee_dept_id: Mapped[Optional[str]] = mapped_column(nullable=True)
    due_at: Mapped[Optional[datetime]] = mapped_column(nullable=True, index=True)
    result: Mapped[Optional[str]] = mapped_column(nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(nullable=True)
    form_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    source_task_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("flow_tasks.id", ondelete="SET NULL"),
        nullable=True,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    duration_seconds: Mapped[Optional[int]] = mapped_column(nullable=True)

    # Relationships
    flow_instance: Mapped["FlowInstance"] = relationship(
        "FlowInstance", back_populates="tasks", lazy="noload"
    )
