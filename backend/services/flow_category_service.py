"""Flow category service: the tree that groups flow definitions.

Codes are unique among live categories. A category that still has live
children or live definitions cannot be removed.
"""

import logging
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import CategoryStatus
from core.exceptions import NotFoundError, PreconditionError, ValidationError
from db.models.flow_category import FlowCategory
from db.models.flow_definition import FlowDefinition
from services.base import BaseService

logger = logging.getLogger(__name__)


class FlowCategoryService(BaseService[FlowCategory]):
    """Create, edit, arrange and remove flow categories."""

    label = "Flow category"

    def __init__(self, db: AsyncSession):
        super().__init__(FlowCategory, db)

    # ─── Create / update ──────────────────────────────────

    async def create_category(
        self,
        code: str,
        name: str,
        parent_id: Optional[str] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
        sort: int = 0,
        status: CategoryStatus = CategoryStatus.ENABLED,
        remark: Optional[str] = None,
    ) -> FlowCategory:
        """Create a category; its level is one below its parent's."""
        await self._require_unique_code(code)

        level = 0
        if parent_id:
            parent = await self.get_by_id(parent_id)
            if parent is None:
                raise NotFoundError(f"Parent category {parent_id} not found")
            level = parent.level + 1

        category = await self.create({
            "code": code,
            "name": name,
            "parent_id": parent_id,
            "level": level,
            "icon": icon,
            "color": color,
            "sort": sort,
            "status": CategoryStatus(status).value,
            "remark": remark,
        })
        logger.info(f"Created flow category {code}")
        return category

    async def update_category(self, category_id: str, data: dict[str, Any]) -> FlowCategory:
        """Apply the non-None fields of ``data``.

        Moving a category under a new parent re-levels its whole subtree.
        A category cannot be moved under itself or one of its descendants.
        """
        category = await self.get_or_404(category_id)
        data = {key: value for key, value in data.items() if value is not None}

        code = data.get("code")
        if code and code != category.code:
            await self._require_unique_code(code, exclude_id=category.id)

        if "status" in data:
            data["status"] = CategoryStatus(data["status"]).value

        if "parent_id" in data and data["parent_id"] != category.parent_id:
            await self._move(category, data.pop("parent_id"))

        for key, value in data.items():
            if hasattr(category, key):
                setattr(category, key, value)
        await self.db.flush()
        return category

    async def update_status(self, category_id: str, status: CategoryStatus) -> FlowCategory:
        category = await self.get_or_404(category_id)
        category.status = CategoryStatus(status).value
        await self.db.flush()
        return category

    async def _move(self, category: FlowCategory, parent_id: str) -> None:
        categories = await self._live_categories()
        by_parent = _group_by_parent(categories)

        parent = next((c for c in categories if c.id == parent_id), None)
        if parent is None:
            raise NotFoundError(f"Parent category {parent_id} not found")
        subtree = {c.id for c in _walk(by_parent, category.id)} | {category.id}
        if parent.id in subtree:
            raise ValidationError("A category cannot be moved under itself or its descendants")

        category.parent_id = parent.id
        category.level = parent.level + 1
        for child in _walk(by_parent, category.id):
            child.level = next(c.level for c in categories if c.id == child.parent_id) + 1

    # ─── Delete ───────────────────────────────────────────

    async def remove(self, category_id: str) -> None:
        """Soft-delete a category with no live definitions and no live children."""
        category = await self.get_or_404(category_id)
        await self._require_no_definitions([category.id])

        children = await self.db.execute(
            select(func.count())
            .select_from(FlowCategory)
            .where(FlowCategory.parent_id == category.id, FlowCategory.is_deleted == False)
        )
        if (children.scalar() or 0) > 0:
            raise PreconditionError(f"Category {category.code} still has child categories")

        await self.soft_delete(category.id)
        logger.info(f"Removed flow category {category.code}")

    async def batch_remove(self, category_ids: Iterable[str]) -> int:
        """Soft-delete several categories at once. Unknown ids are ignored.

        Refused as a whole when any of them holds live definitions or has a
        live child outside the batch.
        """
        ids = list(dict.fromkeys(category_ids))
        if not ids:
            return 0
        await self._require_no_definitions(ids)

        result = await self.db.execute(
            select(FlowCategory).where(FlowCategory.id.in_(ids), FlowCategory.is_deleted == False)
        )
        categories = list(result.scalars().all())
        found = {c.id for c in categories}

        orphaned = await self.db.execute(
            select(func.count())
            .select_from(FlowCategory)
            .where(
                FlowCategory.parent_id.in_(found),
                FlowCategory.id.not_in(found),
                FlowCategory.is_deleted == False,
            )
        )
        if (orphaned.scalar() or 0) > 0:
            raise PreconditionError("Selected categories still have child categories")

        for category in categories:
            category.soft_delete()
        await self.db.flush()
        logger.info(f"Removed {len(categories)} flow categories")
        return len(categories)

    # ─── Queries ──────────────────────────────────────────

    async def tree(
        self,
        code: Optional[str] = None,
        name: Optional[str] = None,
        status: Optional[CategoryStatus] = None,
    ) -> list[dict]:
        """Live categories as a tree ordered by ``sort``.

        ``code`` and ``name`` are substring filters. A matching category whose
        parent was filtered out is shown as a root.
        """
        query = select(FlowCategory).where(FlowCategory.is_deleted == False)
        if code:
            query = query.where(FlowCategory.code.contains(code))
        if name:
            query = query.where(FlowCategory.name.contains(name))
        if status:
            query = query.where(FlowCategory.status == CategoryStatus(status).value)
        result = await self.db.execute(
            query.order_by(FlowCategory.sort.asc(), FlowCategory.created_at.desc())
        )
        return build_tree(list(result.scalars().all()))

    async def select_options(self) -> list[dict]:
        """Every live category as a tree, for pickers."""
        return build_tree(await self._live_categories())

    async def require_live(self, category_id: Optional[str]) -> None:
        """Raise NotFoundError unless ``category_id`` is None or a live category."""
        if category_id is not None:
            await self.get_or_404(category_id)

    # ─── Helpers ──────────────────────────────────────────

    async def _live_categories(self) -> list[FlowCategory]:
        result = await self.db.execute(
            select(FlowCategory)
            .where(FlowCategory.is_deleted == False)
            .order_by(FlowCategory.sort.asc(), FlowCategory.created_at.desc())
        )
        return list(result.scalars().all())

    async def _require_unique_code(self, code: str, exclude_id: Optional[str] = None) -> None:
        query = (
            select(func.count())
            .select_from(FlowCategory)
            .where(FlowCategory.code == code, FlowCategory.is_deleted == False)
        )
        if exclude_id:
            query = query.where(FlowCategory.id != exclude_id)
        existing = await self.db.execute(query)
        if (existing.scalar() or 0) > 0:
            raise ValidationError(f"Flow category code '{code}' already exists")

    async def _require_no_definitions(self, category_ids: Sequence[str]) -> None:
        result = await self.db.execute(
            select(func.count())
            .select_from(FlowDefinition)
            .where(
                FlowDefinition.category_id.in_(category_ids),
                FlowDefinition.is_deleted == False,
            )
        )
        count = result.scalar() or 0
        if count > 0:
            raise PreconditionError(f"{count} flow definition(s) are filed under the category")


def _group_by_parent(categories: Sequence[FlowCategory]) -> dict[Optional[str], list[FlowCategory]]:
    grouped: dict[Optional[str], list[FlowCategory]] = {}
    for category in categories:
        grouped.setdefault(category.parent_id, []).append(category)
    return grouped


def _walk(by_parent: dict, parent_id: str):
    """Descendants of ``parent_id``, parents before children."""
    for child in by_parent.get(parent_id, []):
        yield child
        yield from _walk(by_parent, child.id)


def build_tree(categories: Sequence[FlowCategory]) -> list[dict]:
    """Nest ``categories`` as ``{"category": ..., "children": [...]}`` keeping input order."""
    present = {c.id for c in categories}
    by_parent: dict[Optional[str], list[FlowCategory]] = {}
    for category in categories:
        parent = category.parent_id if category.parent_id in present else None
        by_parent.setdefault(parent, []).append(category)

    def nest(parent_id: Optional[str]) -> list[dict]:
        return [
            {"category": category, "children": nest(category.id)}
            for category in by_parent.get(parent_id, [])
        ]

    return nest(None)
