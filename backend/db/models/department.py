"""Department model for the identity directory."""

from typing import Optional

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class Department(BaseModel):
    """Organisational unit with an optional leader.

    Attributes:
        id: Unique identifier (UUID string)
        name: Department name
        parent_id: Optional parent department
        leader_id: User who leads the department (approver for DEPT_LEADER nodes)
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "departments"

    name: Mapped[str] = mapped_column(nullable=False, index=True)
    parent_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
    )
    leader_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)

    # Relationships
    members: Mapped[list["User"]] = relationship(
        "User",
        foreign_keys="User.dept_id",
        back_populates="department",
        lazy="noload",
    )
