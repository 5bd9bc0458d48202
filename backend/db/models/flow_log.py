"""Append-only flow audit log model."""

from typing import Optional

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from db.base import TimestampedModel


class FlowLog(TimestampedModel):
    """Audit entry for one action on an instance or task.

    Rows are inserted once and never updated or deleted.

    Attributes:
        flow_instance_id: Instance the action applies to
        task_id: Task the action applies to, if any
        node_id / node_name: Node the action happened at
        action: START, APPROVE, REJECT, TRANSFER, COUNTERSIGN, CANCEL,
            TERMINATE, AUTO or URGE
        from_status / to_status: Status before and after the action
        operator_id / operator_name: Who acted (the system actor for the worker)
        comment: Free-form comment
        seq: Position within the instance's log, 1-based; breaks created_at ties
    """

    __tablename__ = "flow_logs"

    flow_instance_id: Mapped[str] = mapped_column(
        ForeignKey("flow_instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    task_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    node_id: Mapped[Optional[str]] = mapped_column(nullable=True)
    node_name: Mapped[Optional[str]] = mapped_column(nullable=True)
    action: Mapped[str] = mapped_column(nullable=False, index=True)
    from_status: Mapped[Optional[str]] = mapped_column(nullable=True)
    to_status: Mapped[Optional[str]] = mapped_column(nullable=True)
    operator_id: Mapped[Optional[str]] = mapped_column(nullable=True)
    operator_name: Mapped[Optional[str]] = mapped_column(nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(nullable=True)
    seq: Mapped[int] = mapped_column(nullable=False, default=0)
