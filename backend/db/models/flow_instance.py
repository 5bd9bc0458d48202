"""Flow instance and parallel-branch bookkeeping models."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import InstanceStatus
from db.base import BaseModel


class FlowInstance(BaseModel):
    """One running (or finished) execution of a flow definition.

    Attributes:
        id: Unique identifier (UUID string)
        instance_no: Human-readable serial number (``WF...``)
        flow_definition_id: Definition version, fixed at start
        title: Display title
        business_key: Optional key of the business object being approved
        status: RUNNING, COMPLETED, REJECTED, CANCELLED or TERMINATED
        current_node_ids: Currently active node ids
        initiator_id / initiator_name / initiator_dept_id: Who started it
        form_data: Snapshot of the submitted form
        result_remark: Why the instance ended (rejection comment, stuck node, ...)
        started_at / ended_at / duration_seconds: Timing
    """

    __tablename__ = "flow_instances"

    instance_no: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    flow_definition_id: Mapped[str] = mapped_column(
        ForeignKey("flow_definitions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(nullable=False, default="")
    business_key: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    status: Mapped[str] = mapped_column(
        default=InstanceStatus.RUNNING.value, index=True
    )
    current_node_ids: Mapped[list] = mapped_column(JSON, default=list)
    initiator_id: Mapped[str] = mapped_column(nullable=False, index=True)
    initiator_name: Mapped[str] = mapped_column(nullable=False, default="")
    initiator_dept_id: Mapped[Optional[str]] = mapped_column(nullable=True)
    form_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    result_remark: Mapped[Optional[str]] = mapped_column(nullable=True)
    started_at: Mapped[datetime] = mapped_column(nullable=False)
    ended_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    duration_seconds: Mapped[Optional[int]] = mapped_column(nullable=True)

    # Relationships
    flow_definition: Mapped["FlowDefinition"] = relationship(
        "FlowDefinition", lazy="noload"
    )
    tasks: Mapped[list["Task"]] = relationship(
        "Task",
        back_populates="flow_instance",
        cascade="all, delete-orphan",
        lazy="noload",
    )


class ParallelBranchState(BaseModel):
    """Branch counters written when a PARALLEL node fans out.

    Keyed by ``(instance_id, node_id)``.
    """

    __tablename__ = "flow_parallel_branches"
    __table_args__ = (
        UniqueConstraint("instance_id", "node_id", name="uq_parallel_branch_node"),
    )

    instance_id: Mapped[str] = mapped_column(
        ForeignKey("flow_instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    node_id: Mapped[str] = mapped_column(nullable=False)
    total: Mapped[int] = mapped_column(default=0)
    completed: Mapped[int] = mapped_column(default=0)
