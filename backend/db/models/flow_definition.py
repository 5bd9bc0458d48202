"""Flow definition and per-node configuration models."""

from typing import Optional

from sqlalchemy import JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import ApprovalMode, EmptyAssigneeAction, FlowStatus
from db.base import BaseModel


class FlowDefinition(BaseModel):
    """Versioned approval-flow template.

    Attributes:
        id: Unique identifier (UUID string)
        code: Stable business key shared by every version
        version: Monotonic version number per code
        name: Display name
        description: Free-form description
        status: DRAFT, PUBLISHED or DISABLED
        is_main: Whether this row is the main version of its code
        graph: JSON ``{"nodes": [...], "edges": [...]}``
        form_schema: JSON list of form field descriptors
        category_id: Category the definition is filed under, if any
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "flow_definitions"

    code: Mapped[str] = mapped_column(nullable=False, index=True)
    version: Mapped[int] = mapped_column(default=1)
    name: Mapped[str] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(nullable=False, default="")
    status: Mapped[str] = mapped_column(default=FlowStatus.DRAFT.value, index=True)
    is_main: Mapped[bool] = mapped_column(default=True, index=True)
    graph: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    form_schema: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    category_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("flow_categories.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Relationships
    node_configs: Mapped[list["NodeConfig"]] = relationship(
        "NodeConfig",
        back_populates="flow_definition",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def config_for(self, node_id: str) -> Optional["NodeConfig"]:
        for config in self.node_configs:
            if config.node_id == node_id and not config.is_deleted:
                return config
        return None


class NodeConfig(BaseModel):
    """Behaviour attached to one node of a flow definition.

    Attributes:
        flow_definition_id: Owning definition
        node_id: Node id inside the definition's graph
        node_kind: Kind of the node (APPROVAL, CONDITION, ...)
        node_name: Display name copied onto tasks and logs
        approval_mode: OR_SIGN or AND_SIGN
        assignee_type: Approver-selection strategy
        assignee_config: ``role_ids``, ``user_ids``, ``dept_id``, ``field_name``
        empty_assignee_action: SKIP, TO_ADMIN or ERROR
        condition_expr: Optional condition expression for the node
        time_limit_hours: Hours before a task at this node is overdue
        timeout_action: AUTO_PASS, AUTO_REJECT or REMIND
        cc_config: ``enable``, ``type``, ``user_ids``, ``role_ids``
    """

    __tablename__ = "flow_node_configs"
    __table_args__ = (
        UniqueConstraint("flow_definition_id", "node_id", name="uq_node_config_node"),
    )

    flow_definition_id: Mapped[str] = mapped_column(
        ForeignKey("flow_definitions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    node_id: Mapped[str] = mapped_column(nullable=False)
    node_kind: Mapped[str] = mapped_column(nullable=False)
    node_name: Mapped[str] = mapped_column(nullable=False, default="")
    approval_mode: Mapped[str] = mapped_column(default=ApprovalMode.OR_SIGN.value)
    assignee_type: Mapped[Optional[str]] = mapped_column(nullable=True)
    assignee_config: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    empty_assignee_action: Mapped[str] = mapped_column(
        default=EmptyAssigneeAction.ERROR.value
    )
    condition_expr: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    time_limit_hours: Mapped[Optional[float]] = mapped_column(nullable=True)
    timeout_action: Mapped[Optional[str]] = mapped_column(nullable=True)
    cc_config: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Relationships
    flow_definition: Mapped["FlowDefinition"] = relationship(
        "FlowDefinition", back_populates="node_configs", lazy="noload"
    )
