"""Flow instance service: start, cancel, terminate and inspect executions."""

import logging
from typing import Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import (
    FlowEventType,
    FlowLogAction,
    FlowStatus,
    InstanceStatus,
    NodeKind,
    NodeProgress,
    TaskStatus,
)
from core.exceptions import (
    AuthorizationError,
    NotFoundError,
    PreconditionError,
)
from core.logging_config import bind_flow_context
from core.utils import generate_serial_no, seconds_between, utc_now
from db.models.flow_definition import FlowDefinition
from db.models.flow_instance import FlowInstance
from db.models.task import Task
from services.base import BaseService
from services.directory_service import DirectoryService
from workflow.actor import Actor
from workflow.audit import record_event, write_flow_log
from workflow.engine import FlowEngine
from workflow.graph import FlowGraph

logger = logging.getLogger(__name__)

INSTANCE_NO_PREFIX = "WF"


class FlowInstanceService(BaseService[FlowInstance]):
    """Running executions of flow definitions."""

    label = "Flow instance"

    def __init__(self, db: AsyncSession, engine: Optional[FlowEngine] = None):
        super().__init__(FlowInstance, db)
        self.engine = engine or FlowEngine(db)
        self.directory = DirectoryService(db)

    # ─── Lifecycle ────────────────────────────────────────

    async def start(
        self,
        definition_id: str,
        initiator: Actor,
        form_data: Optional[dict] = None,
        title: Optional[str] = None,
        business_key: Optional[str] = None,
    ) -> FlowInstance:
        """Create an instance of a published definition and run its START node.

        The instance, its START log and everything the engine does for the
        first step are written in the caller's transaction.
        """
        result = await self.db.execute(
            select(FlowDefinition).where(
                FlowDefinition.id == definition_id, FlowDefinition.is_deleted == False
            )
        )
        definition = result.scalar_one_or_none()
        if definition is None:
            raise NotFoundError(f"Flow definition {definition_id} not found")
        if definition.status != FlowStatus.PUBLISHED.value:
            raise PreconditionError(f"Flow definition {definition.code} is not published")
        FlowGraph.from_dict(definition.graph)

        form_data = dict(form_data or {})
        now = utc_now()
        instance = FlowInstance(
            instance_no=generate_serial_no(INSTANCE_NO_PREFIX, now),
            flow_definition_id=definition.id,
            title=title or definition.name,
            business_key=business_key,
            status=InstanceStatus.RUNNING.value,
            current_node_ids=[],
            initiator_id=initiator.id,
            initiator_name=initiator.name,
            initiator_dept_id=await self.directory.user_dept(initiator.id),
            form_data=form_data,
            started_at=now,
        )
        self.db.add(instance)
        await self.db.flush()
        bind_flow_context(instance_id=instance.id)

        await write_flow_log(
            self.db,
            instance.id,
            FlowLogAction.START,
            actor=initiator,
            to_status=InstanceStatus.RUNNING,
            comment=f"Started {definition.name}",
        )
        await record_event(
            self.db,
            FlowEventType.FLOW_STARTED,
            instance.id,
            definition_code=definition.code,
            definition_version=definition.version,
            business_key=business_key,
            initiator_id=initiator.id,
        )
        logger.info(f"Started flow instance {instance.instance_no} of {definition.code} v{definition.version}")

        await self.engine.start_flow(instance.id, form_data, initiator)
        return instance

    async def cancel(self, instance_id: str, actor: Actor, comment: Optional[str] = None) -> FlowInstance:
        """Withdraw an instance. Only its initiator may, and only before anyone approved."""
        instance = await self.get_or_404(instance_id)
        if instance.initiator_id != actor.id:
            raise AuthorizationError("Only the initiator can cancel a flow")
        if instance.status != InstanceStatus.RUNNING.value:
            raise PreconditionError(f"Flow instance {instance.instance_no} is {instance.status}")

        completed = await self.db.execute(
            select(func.count())
            .select_from(Task)
            .where(
                Task.flow_instance_id == instance.id,
                Task.status == TaskStatus.COMPLETED.value,
            )
        )
        if (completed.scalar() or 0) > 0:
            raise PreconditionError("The flow has already been processed and cannot be cancelled")

        await self._end(instance, InstanceStatus.CANCELLED, comment or "Cancelled by initiator")
        await write_flow_log(
            self.db,
            instance.id,
            FlowLogAction.CANCEL,
            actor=actor,
            from_status=InstanceStatus.RUNNING,
            to_status=InstanceStatus.CANCELLED,
            comment=comment,
        )
        await record_event(
            self.db, FlowEventType.FLOW_CANCELLED, instance.id,
            business_key=instance.business_key, operator_id=actor.id,
        )
        return instance

    async def terminate(self, instance_id: str, operator: Actor, reason: Optional[str] = None) -> FlowInstance:
        """Force-stop a running instance."""
        instance = await self.get_or_404(instance_id)
        if instance.status != InstanceStatus.RUNNING.value:
            raise PreconditionError(f"Flow instance {instance.instance_no} is {instance.status}")

        await self._end(instance, InstanceStatus.TERMINATED, reason or "Terminated")
        await write_flow_log(
            self.db,
            instance.id,
            FlowLogAction.TERMINATE,
            actor=operator,
            from_status=InstanceStatus.RUNNING,
            to_status=InstanceStatus.TERMINATED,
            comment=reason,
        )
        await record_event(
            self.db, FlowEventType.FLOW_TERMINATED, instance.id,
            business_key=instance.business_key, operator_id=operator.id, reason=reason,
        )
        return instance

    async def _end(self, instance: FlowInstance, status: InstanceStatus, remark: str) -> None:
        """Compare-and-set RUNNING -> ``status`` and cancel every pending task."""
        now = utc_now()
        outcome = await self.db.execute(
            update(FlowInstance)
            .where(
                FlowInstance.id == instance.id,
                FlowInstance.status == InstanceStatus.RUNNING.value,
            )
            .values(
                status=status.value,
                ended_at=now,
                duration_seconds=seconds_between(instance.started_at, now),
                current_node_ids=[],
                result_remark=remark,
            )
            .execution_options(synchronize_session="fetch")
        )
        if outcome.rowcount == 0:
            raise PreconditionError(f"Flow instance {instance.instance_no} is no longer running")

        await self.db.execute(
            update(Task)
            .where(
                Task.flow_instance_id == instance.id,
                Task.status == TaskStatus.PENDING.value,
            )
            .values(status=TaskStatus.CANCELLED.value, completed_at=now)
            .execution_options(synchronize_session="fetch")
        )

    # ─── Queries ──────────────────────────────────────────

    async def list_instances(
        self,
        status: Optional[InstanceStatus] = None,
        initiator_id: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[Sequence[FlowInstance], int]:
        return await self.list(
            offset=offset,
            limit=limit,
            order_by="started_at",
            filters={
                "status": status.value if status else None,
                "initiator_id": initiator_id,
            },
        )

    async def progress(self, instance_id: str) -> dict:
        """Per-node status of an instance, in graph order.

        A node is RUNNING while active, COMPLETED once it is no longer active
        and one of its tasks was completed, and PENDING otherwise. START is
        COMPLETED as soon as the instance exists.
        """
        instance = await self.get_or_404(instance_id)
        result = await self.db.execute(
            select(FlowDefinition).where(FlowDefinition.id == instance.flow_definition_id)
        )
        definition = result.scalar_one()
        graph = FlowGraph.from_dict(definition.graph)

        result = await self.db.execute(
            select(Task)
            .where(Task.flow_instance_id == instance.id, Task.is_deleted == False)
            .order_by(Task.created_at.asc())
        )
        tasks_by_node: dict[str, list[Task]] = {}
        for task in result.scalars().all():
            tasks_by_node.setdefault(task.node_id, []).append(task)

        active = set(instance.current_node_ids or [])
        nodes = []
        for node in graph.topological_order():
            node_tasks = tasks_by_node.get(node.id, [])
            if node.id in active:
                status = NodeProgress.RUNNING
            elif node.kind is NodeKind.START:
                status = NodeProgress.COMPLETED
            elif node.kind is NodeKind.END:
                done = instance.status == InstanceStatus.COMPLETED.value
                status = NodeProgress.COMPLETED if done else NodeProgress.PENDING
            elif any(t.status == TaskStatus.COMPLETED.value for t in node_tasks):
                status = NodeProgress.COMPLETED
            else:
                status = NodeProgress.PENDING
            config = definition.config_for(node.id)
            nodes.append({
                "node_id": node.id,
                "node_kind": node.kind.value,
                "node_name": (config.node_name if config and config.node_name else None) or node.label or node.id,
                "status": status.value,
                "tasks": node_tasks,
            })

        return {"instance": instance, "nodes": nodes}
