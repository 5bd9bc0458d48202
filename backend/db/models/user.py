"""User model for the identity directory."""

from typing import Optional

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class User(BaseModel):
    """A person who can start flows, approve tasks or receive copies.

    Attributes:
        id: Unique identifier (UUID string)
        username: Login name (unique)
        name: Display name used on tasks and logs
        dept_id: Department the user belongs to
        is_active: Disabled users are never resolved as assignees
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(nullable=False)
    dept_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(default=True, index=True)

    # Relationships
    department: Mapped[Optional["Department"]] = relationship(
        "Department",
        foreign_keys=[dept_id],
        back_populates="members",
        lazy="selectin",
    )
    roles: Mapped[list["Role"]] = relationship(
        "Role",
        secondary="user_roles",
        back_populates="users",
        lazy="selectin",
    )
