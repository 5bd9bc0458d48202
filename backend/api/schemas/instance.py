"""Flow instance schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from api.schemas.task import TaskResponse


class StartFlowRequest(BaseModel):
    """Request to start a flow instance."""

    flow_definition_id: str = Field(description="Published flow definition to run")
    title: Optional[str] = Field(default=None, description="Instance title (defaults to the definition name)")
    business_key: Optional[str] = Field(default=None, description="Key of the business object being approved")
    form_data: Dict[str, Any] = Field(default_factory=dict, description="Submitted form data")


class CancelFlowRequest(BaseModel):
    comment: Optional[str] = None


class TerminateFlowRequest(BaseModel):
    reason: Optional[str] = None


class FlowInstanceResponse(BaseModel):
    """Flow instance information response."""

    id: str
    instance_no: str
    flow_definition_id: str
    title: str
    business_key: Optional[str] = None
    status: str
    current_node_ids: List[str] = Field(default_factory=list)
    initiator_id: str
    initiator_name: str
    form_data: Optional[Dict[str, Any]] = None
    result_remark: Optional[str] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None

    class Config:
        from_attributes = True


class FlowInstanceListResponse(BaseModel):
    items: List[FlowInstanceResponse]
    total: int
    page: int
    per_page: int


class NodeProgressResponse(BaseModel):
    node_id: str
    node_kind: str
    node_name: str
    status: str
    tasks: List[TaskResponse] = Field(default_factory=list)


class FlowProgressResponse(BaseModel):
    """Per-node progress of an instance, in graph order."""

    instance: FlowInstanceResponse
    nodes: List[NodeProgressResponse]
