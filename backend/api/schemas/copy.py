"""Copy (CC) record schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class CopyRecordResponse(BaseModel):
    id: str
    flow_instance_id: str
    task_id: Optional[str] = None
    node_id: Optional[str] = None
    user_id: str
    user_name: str
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CopyRecordListResponse(BaseModel):
    items: List[CopyRecordResponse]
    total: int
    page: int
    per_page: int
