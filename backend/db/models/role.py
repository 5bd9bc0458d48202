"""Role model and user_roles association table."""

from sqlalchemy import ForeignKey, Table, Column
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, BaseModel

# Association table for many-to-many relationship between User and Role
user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class Role(BaseModel):
    """Role used to select approvers and copy recipients.

    Attributes:
        id: Unique identifier (UUID string)
        name: Role name
        slug: Stable key (``admin`` is the empty-assignee fallback role)
        description: Role description
    """

    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(nullable=False, index=True)
    slug: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)
    description: Mapped[str] = mapped_column(nullable=False, default="")

    # Relationships
    users: Mapped[list["User"]] = relationship(
        "User",
        secondary=user_roles,
        back_populates="roles",
        lazy="selectin",
    )
