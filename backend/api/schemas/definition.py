"""Flow definition schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.constants import (
    ApprovalMode,
    AssigneeType,
    EmptyAssigneeAction,
    NodeKind,
    TimeoutAction,
)


class FlowGraphSchema(BaseModel):
    """Designer graph: nodes plus directed edges."""

    nodes: List[Dict[str, Any]] = Field(default_factory=list, description="Graph nodes")
    edges: List[Dict[str, Any]] = Field(default_factory=list, description="Graph edges, in branch-priority order")


class FlowDefinitionCreate(BaseModel):
    """Request to create a flow definition."""

    code: str = Field(min_length=1, max_length=64, description="Stable business code")
    name: str = Field(min_length=1, description="Display name")
    description: Optional[str] = Field(default="", description="Description")
    graph: Optional[FlowGraphSchema] = Field(default=None, description="Flow graph")
    form_schema: Optional[List[Dict[str, Any]]] = Field(default=None, description="Form field descriptors")
    category_id: Optional[str] = Field(default=None, description="Category to file the definition under")


class FlowDefinitionUpdate(BaseModel):
    """Request to update a draft flow definition."""

    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    graph: Optional[FlowGraphSchema] = None
    form_schema: Optional[List[Dict[str, Any]]] = None
    category_id: Optional[str] = None


class SetCategoryRequest(BaseModel):
    """Move a definition to another category, or to none with ``null``."""

    category_id: Optional[str] = None


class NodeConfigSchema(BaseModel):
    """Configuration of one node."""

    node_id: str = Field(min_length=1, description="Node id in the graph")
    node_kind: NodeKind = Field(default=NodeKind.APPROVAL)
    node_name: str = Field(default="")
    approval_mode: ApprovalMode = Field(default=ApprovalMode.OR_SIGN)
    assignee_type: Optional[AssigneeType] = None
    assignee_config: Optional[Dict[str, Any]] = Field(
        default=None, description="role_ids, user_ids, dept_id or field_name"
    )
    empty_assignee_action: EmptyAssigneeAction = Field(default=EmptyAssigneeAction.ERROR)
    condition_expr: Optional[Dict[str, Any]] = None
    time_limit_hours: Optional[float] = Field(default=None, gt=0)
    timeout_action: Optional[TimeoutAction] = None
    cc_config: Optional[Dict[str, Any]] = Field(
        default=None, description="enable, type, user_ids, role_ids"
    )

    class Config:
        from_attributes = True


class SaveNodeConfigsRequest(BaseModel):
    """Replace all node configs of a definition."""

    configs: List[NodeConfigSchema]


class FlowDefinitionResponse(BaseModel):
    """Flow definition information response."""

    id: str
    code: str
    version: int
    name: str
    description: str
    status: str
    is_main: bool
    graph: Optional[Dict[str, Any]] = None
    form_schema: Optional[List[Dict[str, Any]]] = None
    category_id: Optional[str] = None
    node_configs: List[NodeConfigSchema] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class FlowDefinitionListResponse(BaseModel):
    items: List[FlowDefinitionResponse]
    total: int
    page: int
    per_page: int
