"""Approval task schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ApproveTaskRequest(BaseModel):
    comment: Optional[str] = Field(default=None, description="Approval comment")
    form_data: Optional[Dict[str, Any]] = Field(default=None, description="Form data submitted with the approval")


class RejectTaskRequest(BaseModel):
    comment: Optional[str] = Field(default=None, description="Rejection reason")


class TransferTaskRequest(BaseModel):
    target_user_id: str = Field(min_length=1, description="User who takes over the task")
    comment: Optional[str] = None


class CountersignTaskRequest(BaseModel):
    user_ids: List[str] = Field(min_length=1, description="Users added as approvers at this node")
    comment: Optional[str] = None


class UrgeTaskRequest(BaseModel):
    comment: Optional[str] = None


class TaskResponse(BaseModel):
    """Approval task information response."""

    id: str
    task_no: str
    flow_instance_id: str
    node_id: str
    node_name: str
    status: str
    assignee_id: str
    assignee_name: str
    due_at: Optional[datetime] = None
    result: Optional[str] = None
    comment: Optional[str] = None
    source_task_id: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None

    class Config:
        from_attributes = True


class TaskListResponse(BaseModel):
    items: List[TaskResponse]
    total: int
    page: int
    per_page: int


class FlowLogResponse(BaseModel):
    """One entry of an instance's history."""

    id: str
    flow_instance_id: str
    task_id: Optional[str] = None
    node_id: Optional[str] = None
    node_name: Optional[str] = None
    action: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    operator_id: Optional[str] = None
    operator_name: Optional[str] = None
    comment: Optional[str] = None
    seq: int
    created_at: datetime

    class Config:
        from_attributes = True
