"""Flow category model: a tree used to group flow definitions."""

from typing import Optional

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import CategoryStatus
from db.base import BaseModel


class FlowCategory(BaseModel):
    """Node of the category tree.

    Attributes:
        id: Unique identifier (UUID string)
        code: Business code, unique among live categories
        name: Display name
        parent_id: Parent category, None for a root
        level: Depth in the tree, 0 for a root
        icon / color: Presentation hints for the designer
        sort: Ascending display order among siblings
        status: ENABLED or DISABLED
        remark: Free-form note
    """

    __tablename__ = "flow_categories"

    code: Mapped[str] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(nullable=False)
    parent_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("flow_categories.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    level: Mapped[int] = mapped_column(default=0)
    icon: Mapped[Optional[str]] = mapped_column(nullable=True)
    color: Mapped[Optional[str]] = mapped_column(nullable=True)
    sort: Mapped[int] = mapped_column(default=0)
    status: Mapped[str] = mapped_column(default=CategoryStatus.ENABLED.value, index=True)
    remark: Mapped[Optional[str]] = mapped_column(nullable=True)
