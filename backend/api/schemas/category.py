"""Flow category schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from core.constants import CategoryStatus


class FlowCategoryCreate(BaseModel):
    """Request to create a flow category."""

    code: str = Field(min_length=1, max_length=50, description="Category code, unique among live categories")
    name: str = Field(min_length=1, max_length=100, description="Display name")
    parent_id: Optional[str] = Field(default=None, description="Parent category; omit for a root")
    icon: Optional[str] = Field(default=None, max_length=100)
    color: Optional[str] = Field(default=None, max_length=20)
    sort: int = Field(default=0, ge=0, description="Ascending display order among siblings")
    status: CategoryStatus = Field(default=CategoryStatus.ENABLED)
    remark: Optional[str] = Field(default=None, max_length=500)


class FlowCategoryUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    code: Optional[str] = Field(default=None, min_length=1, max_length=50)
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    parent_id: Optional[str] = Field(default=None, description="Move under another category")
    icon: Optional[str] = Field(default=None, max_length=100)
    color: Optional[str] = Field(default=None, max_length=20)
    sort: Optional[int] = Field(default=None, ge=0)
    status: Optional[CategoryStatus] = None
    remark: Optional[str] = Field(default=None, max_length=500)


class BatchDeleteCategoriesRequest(BaseModel):
    ids: List[str] = Field(min_length=1, description="Categories to delete")


class FlowCategoryResponse(BaseModel):
    id: str
    code: str
    name: str
    parent_id: Optional[str] = None
    level: int
    icon: Optional[str] = None
    color: Optional[str] = None
    sort: int
    status: str
    remark: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class FlowCategoryTreeNode(FlowCategoryResponse):
    """A category with its children, recursively."""

    children: List["FlowCategoryTreeNode"] = Field(default_factory=list)


class FlowCategoryOption(BaseModel):
    """Slim tree node for pickers."""

    id: str
    name: str
    level: int
    color: Optional[str] = None
    children: List["FlowCategoryOption"] = Field(default_factory=list)
