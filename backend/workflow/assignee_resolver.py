"""Approver resolution and the empty-assignee policy.

Strategies (``NodeConfig.assignee_type``):

    ROLE              active users holding any of ``assignee_config.role_ids``
    DEPT_LEADER       leader of ``assignee_config.dept_id`` (or the initiator's department)
    SPECIFIC_USER     active users among ``assignee_config.user_ids``
    INITIATOR_LEADER  leader of the initiator's own department
    FORM_FIELD        user ids read from ``form_data[assignee_config.field_name]``

An empty result is not an error: the engine hands it to
``handle_empty_assignee`` which applies the node's SKIP / TO_ADMIN / ERROR
policy.
"""

from datetime import datetime
from typing import Any, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import (
    AssigneeType,
    EmptyAssigneeAction,
    FlowEventType,
    FlowLogAction,
    InstanceStatus,
)
from core.utils import seconds_between, utc_now
from db.models.flow_definition import NodeConfig
from db.models.flow_instance import FlowInstance
from services.directory_service import DirectoryService, Identity
from workflow.actor import Actor
from workflow.audit import record_event, write_flow_log
from workflow.condition_evaluator import resolve_field
from workflow.task_factory import create_pending_task

logger = structlog.get_logger(__name__)


def _as_list(value: Any) -> list:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


class AssigneeResolver:
    """Turns a node's assignee strategy into concrete identities."""

    def __init__(self, db: AsyncSession, directory: Optional[DirectoryService] = None):
        self.db = db
        self.directory = directory or DirectoryService(db)

    async def resolve(
        self,
        node_config: Optional[NodeConfig],
        initiator_id: str,
        initiator_dept_id: Optional[str],
        form_data: Optional[dict],
    ) -> list[Identity]:
        if node_config is None or not node_config.assignee_type:
            return []
        config = node_config.assignee_config or {}

        try:
            strategy = AssigneeType(node_config.assignee_type)
        except ValueError:
            logger.warning(
                "Unknown assignee type",
                node_id=node_config.node_id,
                assignee_type=node_config.assignee_type,
            )
            return []

        if strategy is AssigneeType.ROLE:
            return await self.directory.by_roles(_as_list(config.get("role_ids")))

        if strategy is AssigneeType.SPECIFIC_USER:
            return await self.directory.by_ids(_as_list(config.get("user_ids")))

        if strategy is AssigneeType.DEPT_LEADER:
            dept_id = config.get("dept_id") or initiator_dept_id
            leader = await self.directory.dept_leader(dept_id)
            return [leader] if leader else []

        if strategy is AssigneeType.INITIATOR_LEADER:
            dept_id = await self.directory.user_dept(initiator_id) or initiator_dept_id
            leader = await self.directory.dept_leader(dept_id)
            return [leader] if leader else []

        # FORM_FIELD
        field_name = config.get("field_name")
        if not field_name:
            return []
        value = resolve_field(form_data or {}, field_name)
        return await self.directory.by_ids(_as_list(value))

    async def resolve_copy_recipients(self, cc_config: Optional[dict]) -> list[Identity]:
        """Recipients for a node's CC configuration (specific users or roles)."""
        if not cc_config or not cc_config.get("enable"):
            return []
        if cc_config.get("type") == AssigneeType.SPECIFIC_USER.value:
            return await self.directory.by_ids(_as_list(cc_config.get("user_ids")))
        return await self.directory.by_roles(_as_list(cc_config.get("role_ids")))

    async def handle_empty_assignee(
        self,
        instance: FlowInstance,
        node_id: str,
        node_name: str,
        node_config: Optional[NodeConfig],
        due_at: Optional[datetime] = None,
    ) -> EmptyAssigneeAction:
        """Apply the node's empty-assignee policy.

        Returns the policy actually applied: ``SKIP`` means the caller must
        advance past the node, ``TO_ADMIN`` means an admin task now exists,
        ``ERROR`` means the instance has been terminated. ``TO_ADMIN`` falls
        back to ``ERROR`` when no admin can be found.
        """
        action = EmptyAssigneeAction(
            (node_config.empty_assignee_action if node_config else None)
            or EmptyAssigneeAction.ERROR.value
        )
        logger.warning(
            "No assignee resolved",
            instance_id=instance.id,
            node_id=node_id,
            policy=action.value,
        )
        system = Actor.system()

        if action is EmptyAssigneeAction.SKIP:
            await write_flow_log(
                self.db,
                instance.id,
                FlowLogAction.AUTO,
                actor=system,
                node_id=node_id,
                node_name=node_name,
                comment="No assignee resolved, node skipped",
            )
            return EmptyAssigneeAction.SKIP

        if action is EmptyAssigneeAction.TO_ADMIN:
            admin = await self.directory.find_admin()
            if admin is not None:
                await create_pending_task(
                    self.db, instance.id, node_id, node_name, admin, due_at=due_at
                )
                await write_flow_log(
                    self.db,
                    instance.id,
                    FlowLogAction.AUTO,
                    actor=system,
                    node_id=node_id,
                    node_name=node_name,
                    comment=f"No assignee resolved, assigned to administrator {admin.name}",
                )
                return EmptyAssigneeAction.TO_ADMIN
            logger.warning("No administrator available", instance_id=instance.id, node_id=node_id)

        await self.terminate_for_missing_assignee(instance, node_id, node_name)
        return EmptyAssigneeAction.ERROR

    async def terminate_for_missing_assignee(
        self, instance: FlowInstance, node_id: str, node_name: str
    ) -> None:
        now = utc_now()
        instance.status = InstanceStatus.TERMINATED.value
        instance.ended_at = now
        instance.duration_seconds = seconds_between(instance.started_at, now)
        instance.current_node_ids = []
        instance.result_remark = f"No assignee found for node '{node_name or node_id}'"
        await self.db.flush()

        await write_flow_log(
            self.db,
            instance.id,
            FlowLogAction.TERMINATE,
            actor=Actor.system(),
            node_id=node_id,
            node_name=node_name,
            from_status=InstanceStatus.RUNNING,
            to_status=InstanceStatus.TERMINATED,
            comment="No assignee resolved, flow terminated",
        )
        await record_event(
            self.db,
            FlowEventType.FLOW_TERMINATED,
            instance.id,
            node_id=node_id,
            reason=instance.result_remark,
        )
