"""Flow definition service: versioned templates and their lifecycle.

    DRAFT ──publish──▶ PUBLISHED ──disable──▶ DISABLED
      ▲                    │                      │
      └── create_new_version ◀────────────────────┘

Published graphs and node configs are frozen; changing them means creating
a new version, which becomes the main version of its code.
"""

import logging
from typing import Any, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import FlowStatus, InstanceStatus, NodeKind
from core.exceptions import PreconditionError, ValidationError
from db.models.flow_definition import FlowDefinition, NodeConfig
from db.models.flow_instance import FlowInstance
from services.base import BaseService
from services.flow_category_service import FlowCategoryService
from workflow.graph import FlowGraph

logger = logging.getLogger(__name__)

NODE_CONFIG_FIELDS = (
    "node_kind",
    "node_name",
    "approval_mode",
    "assignee_type",
    "assignee_config",
    "empty_assignee_action",
    "condition_expr",
    "time_limit_hours",
    "timeout_action",
    "cc_config",
)


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


class FlowDefinitionService(BaseService[FlowDefinition]):
    """Create, edit, publish and version flow definitions."""

    label = "Flow definition"

    def __init__(self, db: AsyncSession):
        super().__init__(FlowDefinition, db)

    async def create_definition(
        self,
        code: str,
        name: str,
        graph: Optional[dict] = None,
        form_schema: Optional[list] = None,
        description: str = "",
        category_id: Optional[str] = None,
    ) -> FlowDefinition:
        """Create version 1 of a new code as a DRAFT main version."""
        await FlowCategoryService(self.db).require_live(category_id)
        existing = await self.db.execute(
            select(func.count())
            .select_from(FlowDefinition)
            .where(FlowDefinition.code == code, FlowDefinition.is_deleted == False)
        )
        if (existing.scalar() or 0) > 0:
            raise ValidationError(f"Flow definition code '{code}' already exists")

        return await self.create({
            "code": code,
            "name": name,
            "description": description,
            "graph": graph or {"nodes": [], "edges": []},
            "form_schema": form_schema or [],
            "category_id": category_id,
            "version": 1,
            "status": FlowStatus.DRAFT.value,
            "is_main": True,
        })

    async def update_definition(
        self,
        definition_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        graph: Optional[dict] = None,
        form_schema: Optional[list] = None,
        category_id: Optional[str] = None,
    ) -> FlowDefinition:
        """Edit a DRAFT definition. Published and disabled rows are frozen."""
        definition = await self.get_or_404(definition_id)
        _require_draft(definition)
        await FlowCategoryService(self.db).require_live(category_id)
        return await self.update(definition_id, {
            "name": name,
            "description": description,
            "graph": graph,
            "form_schema": form_schema,
            "category_id": category_id,
        })

    async def save_node_configs(
        self, definition_id: str, configs: Sequence[dict]
    ) -> list[NodeConfig]:
        """Replace every node config of a DRAFT definition."""
        definition = await self.get_or_404(definition_id)
        _require_draft(definition)

        seen = set()
        for config in configs:
            node_id = config.get("node_id")
            if not node_id:
                raise ValidationError("Every node config needs a node_id")
            if node_id in seen:
                raise ValidationError(f"Duplicate node config for '{node_id}'")
            seen.add(node_id)

        definition.node_configs.clear()
        await self.db.flush()

        for config in configs:
            definition.node_configs.append(_build_node_config(config))
        await self.db.flush()
        await self.db.refresh(definition)
        return list(definition.node_configs)

    async def publish(self, definition_id: str) -> FlowDefinition:
        """Freeze a definition and make it startable. The graph must validate."""
        definition = await self.get_or_404(definition_id)
        if definition.status == FlowStatus.PUBLISHED.value:
            raise PreconditionError("Flow definition is already published")

        graph = FlowGraph.from_dict(definition.graph)
        for node in graph.nodes.values():
            if node.kind is NodeKind.START and not graph.successors(node.id):
                raise ValidationError("START node has no outgoing edge")

        definition.status = FlowStatus.PUBLISHED.value
        await self.db.flush()
        logger.info(f"Published flow definition {definition.code} v{definition.version}")
        return definition

    async def disable(self, definition_id: str) -> FlowDefinition:
        definition = await self.get_or_404(definition_id)
        if definition.status != FlowStatus.PUBLISHED.value:
            raise PreconditionError("Only a published definition can be disabled")
        definition.status = FlowStatus.DISABLED.value
        await self.db.flush()
        return definition

    async def create_new_version(self, definition_id: str) -> FlowDefinition:
        """Copy a published or disabled definition into a new DRAFT main version."""
        source = await self.get_or_404(definition_id)
        if source.status == FlowStatus.DRAFT.value:
            raise PreconditionError("A draft can be edited directly")

        result = await self.db.execute(
            select(func.max(FlowDefinition.version)).where(FlowDefinition.code == source.code)
        )
        next_version = (result.scalar() or 0) + 1

        await self.db.execute(
            update(FlowDefinition)
            .where(FlowDefinition.code == source.code)
            .values(is_main=False)
            .execution_options(synchronize_session="fetch")
        )

        copy = FlowDefinition(
            code=source.code,
            name=source.name,
            description=source.description,
            graph=source.graph,
            form_schema=source.form_schema,
            category_id=source.category_id,
            version=next_version,
            status=FlowStatus.DRAFT.value,
            is_main=True,
        )
        for config in source.node_configs:
            if config.is_deleted:
                continue
            copy.node_configs.append(
                _build_node_config(
                    {"node_id": config.node_id, **{f: getattr(config, f) for f in NODE_CONFIG_FIELDS}}
                )
            )
        self.db.add(copy)
        await self.db.flush()
        await self.db.refresh(copy)
        logger.info(f"Created flow definition {copy.code} v{copy.version}")
        return copy

    async def remove(self, definition_id: str) -> None:
        """Soft-delete a definition that is neither published nor in use."""
        definition = await self.get_or_404(definition_id)
        if definition.status == FlowStatus.PUBLISHED.value:
            raise PreconditionError("Disable the definition before deleting it")

        running = await self.db.execute(
            select(func.count())
            .select_from(FlowInstance)
            .where(
                FlowInstance.flow_definition_id == definition_id,
                FlowInstance.status == InstanceStatus.RUNNING.value,
                FlowInstance.is_deleted == False,
            )
        )
        if (running.scalar() or 0) > 0:
            raise PreconditionError("Definition still has running instances")

        await self.soft_delete(definition_id)

    async def set_category(self, definition_id: str, category_id: Optional[str]) -> FlowDefinition:
        """File a definition under a category, or under none. Allowed in any status."""
        definition = await self.get_or_404(definition_id)
        await FlowCategoryService(self.db).require_live(category_id)
        definition.category_id = category_id
        await self.db.flush()
        return definition

    async def list_available(self, category_id: Optional[str] = None) -> list[FlowDefinition]:
        """Latest published version of every code, optionally within one category."""
        published = select(
            FlowDefinition.code.label("code"),
            func.max(FlowDefinition.version).label("version"),
        ).where(
            FlowDefinition.status == FlowStatus.PUBLISHED.value,
            FlowDefinition.is_deleted == False,
        )
        if category_id:
            published = published.where(FlowDefinition.category_id == category_id)
        latest = published.group_by(FlowDefinition.code).subquery()
        result = await self.db.execute(
            select(FlowDefinition)
            .join(
                latest,
                (FlowDefinition.code == latest.c.code)
                & (FlowDefinition.version == latest.c.version),
            )
            .where(FlowDefinition.is_deleted == False)
            .order_by(FlowDefinition.code.asc())
        )
        return list(result.scalars().all())


def _require_draft(definition: FlowDefinition) -> None:
    # instances of published or disabled rows may still be running
    if definition.status != FlowStatus.DRAFT.value:
        raise PreconditionError(
            f"Flow definition {definition.code} v{definition.version} is {definition.status}; create a new version to change it"
        )


def _build_node_config(data: dict) -> NodeConfig:
    values = {"node_id": data["node_id"]}
    for field in NODE_CONFIG_FIELDS:
        if data.get(field) is not None:
            values[field] = _enum_value(data[field])
    values.setdefault("node_kind", NodeKind.APPROVAL.value)
    return NodeConfig(**values)
