"""Identity directory lookups used to resolve approvers and copy recipients.

Only active, non-deleted users are ever returned.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from db.models.department import Department
from db.models.role import Role, user_roles
from db.models.user import User


@dataclass(frozen=True)
class Identity:
    """A resolved person, as copied onto tasks and copy records."""

    id: str
    name: str
    dept_id: Optional[str] = None
    dept_name: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        return cls(
            id=user.id,
            name=user.name,
            dept_id=user.dept_id,
            dept_name=user.department.name if user.department else None,
        )


class DirectoryService:
    """Read-only queries over users, roles and departments."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _active_users(self):
        return select(User).where(User.is_deleted == False, User.is_active == True)

    async def by_ids(self, user_ids: Iterable[str]) -> list[Identity]:
        """Active users with the given ids, in the order the ids were given."""
        ids = [str(user_id) for user_id in user_ids if user_id not in (None, "")]
        if not ids:
            return []
        result = await self.db.execute(self._active_users().where(User.id.in_(ids)))
        found = {user.id: user for user in result.scalars().all()}
        ordered: list[Identity] = []
        for user_id in dict.fromkeys(ids):
            if user_id in found:
                ordered.append(Identity.from_user(found[user_id]))
        return ordered

    async def get(self, user_id: str) -> Optional[Identity]:
        identities = await self.by_ids([user_id])
        return identities[0] if identities else None

    async def by_roles(self, role_refs: Iterable[str]) -> list[Identity]:
        """Active users holding any of the roles, matched by role id or slug."""
        refs = [str(ref) for ref in role_refs if ref not in (None, "")]
        if not refs:
            return []
        query = (
            self._active_users()
            .join(user_roles, user_roles.c.user_id == User.id)
            .join(Role, Role.id == user_roles.c.role_id)
            .where(
                Role.is_deleted == False,
                or_(Role.id.in_(refs), Role.slug.in_(refs)),
            )
            .order_by(User.created_at.asc())
            .distinct()
        )
        result = await self.db.execute(query)
        return [Identity.from_user(user) for user in result.scalars().all()]

    async def dept_leader(self, dept_id: Optional[str]) -> Optional[Identity]:
        """The configured leader of a department, if both exist and the leader is active."""
        if not dept_id:
            return None
        result = await self.db.execute(
            select(Department).where(
                Department.id == dept_id, Department.is_deleted == False
            )
        )
        dept = result.scalar_one_or_none()
        if dept is None or not dept.leader_id:
            return None
        return await self.get(dept.leader_id)

    async def user_dept(self, user_id: str) -> Optional[str]:
        """Department id of a (non-deleted) user."""
        result = await self.db.execute(
            select(User.dept_id).where(User.id == user_id, User.is_deleted == False)
        )
        return result.scalar_one_or_none()

    async def find_admin(self) -> Optional[Identity]:
        """First active user holding the fallback admin role."""
        admins = await self.by_roles([get_settings().ADMIN_ROLE_SLUG])
        return admins[0] if admins else None
