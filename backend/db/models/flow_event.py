"""Lifecycle event records consumed by the business callback dispatcher."""

from typing import Optional

from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column

from db.base import TimestampedModel


class FlowEvent(TimestampedModel):
    """Structured lifecycle event (flow_started, task_approved, ...).

    Written in the same transaction as the state change it describes.
    Delivery to external systems is handled elsewhere.
    """

    __tablename__ = "flow_events"

    event_type: Mapped[str] = mapped_column(nullable=False, index=True)
    flow_instance_id: Mapped[str] = mapped_column(nullable=False, index=True)
    task_id: Mapped[Optional[str]] = mapped_column(nullable=True)
    payload: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
