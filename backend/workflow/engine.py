"""Flow Engine: graph interpreter for approval-flow instances.

The engine owns no transaction. Every entry point runs inside the caller's
session; a failure propagates and the caller rolls back, leaving the
instance exactly as it was before the step.

Entry points:

    start_flow(instance_id, form_data, actor)
        Run the START node: every successor is executed in declared order.

    advance_flow(instance_id, completed_node_id, result, actor)
        Called after a task at ``completed_node_id`` was resolved. REJECTED is
        a no-op (rejection is finished by the task manager). For AND_SIGN
        nodes the flow only moves on once no PENDING task remains there.
"""

from typing import Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import ApprovalMode, InstanceStatus, TaskResult, TaskStatus
from core.exceptions import NotFoundError
from db.models.flow_definition import FlowDefinition
from db.models.flow_instance import FlowInstance
from db.models.task import Task
from workflow.actor import Actor
from workflow.assignee_resolver import AssigneeResolver
from workflow.condition_evaluator import ConditionEvaluator
from workflow.graph import FlowGraph, GraphNode
from workflow.nodes import NodeContext, handler_for

logger = structlog.get_logger(__name__)


class FlowEngine:
    """Walks a definition's graph on behalf of one instance at a time."""

    def __init__(
        self,
        db: AsyncSession,
        resolver: Optional[AssigneeResolver] = None,
        evaluator: Optional[ConditionEvaluator] = None,
    ):
        self.db = db
        self.resolver = resolver or AssigneeResolver(db)
        self.evaluator = evaluator or ConditionEvaluator()

    # ─── Loading ──────────────────────────────────────────

    async def _load(self, instance_id: str) -> tuple[FlowInstance, FlowDefinition, FlowGraph]:
        result = await self.db.execute(
            select(FlowInstance).where(
                FlowInstance.id == instance_id, FlowInstance.is_deleted == False
            )
        )
        instance = result.scalar_one_or_none()
        if instance is None:
            raise NotFoundError(f"Flow instance {instance_id} not found")

        result = await self.db.execute(
            select(FlowDefinition)
            .where(FlowDefinition.id == instance.flow_definition_id)
            .execution_options(populate_existing=True)
        )
        definition = result.scalar_one_or_none()
        if definition is None:
            raise NotFoundError(f"Flow definition {instance.flow_definition_id} not found")

        return instance, definition, FlowGraph.from_dict(definition.graph)

    def _context(
        self,
        instance: FlowInstance,
        definition: FlowDefinition,
        graph: FlowGraph,
        form_data: Optional[dict],
        actor: Actor,
    ) -> NodeContext:
        return NodeContext(
            db=self.db,
            engine=self,
            instance=instance,
            definition=definition,
            graph=graph,
            form_data=form_data if form_data is not None else (instance.form_data or {}),
            actor=actor,
        )

    # ─── Entry points ─────────────────────────────────────

    async def start_flow(self, instance_id: str, form_data: Optional[dict], actor: Actor) -> FlowInstance:
        """Execute the START node of a freshly created instance."""
        instance, definition, graph = await self._load(instance_id)
        ctx = self._context(instance, definition, graph, form_data, actor)

        logger.info("Starting flow", instance_id=instance.id, definition_id=definition.id)
        await self.execute_nodes(ctx, [graph.start_node])
        return instance

    async def advance_flow(
        self,
        instance_id: str,
        completed_node_id: str,
        result: TaskResult,
        actor: Actor,
    ) -> Optional[FlowInstance]:
        """Move the instance past ``completed_node_id`` if the node is satisfied."""
        if TaskResult(result) is TaskResult.REJECTED:
            return None

        instance, definition, graph = await self._load(instance_id)
        if instance.status != InstanceStatus.RUNNING.value:
            logger.info(
                "Instance not running, advance ignored",
                instance_id=instance.id,
                status=instance.status,
            )
            return instance
        if completed_node_id not in (instance.current_node_ids or []):
            logger.info(
                "Node no longer active, advance ignored",
                instance_id=instance.id,
                node_id=completed_node_id,
            )
            return instance

        config = definition.config_for(completed_node_id)
        if config is not None and config.approval_mode == ApprovalMode.AND_SIGN.value:
            pending = await self.pending_task_count(instance.id, completed_node_id)
            if pending > 0:
                logger.info(
                    "AND_SIGN node still waiting",
                    instance_id=instance.id,
                    node_id=completed_node_id,
                    pending=pending,
                )
                return instance

        instance.current_node_ids = [
            node_id for node_id in (instance.current_node_ids or []) if node_id != completed_node_id
        ]
        await self.db.flush()

        successors = graph.successors(completed_node_id)
        if not successors:
            logger.warning(
                "Node has no successor", instance_id=instance.id, node_id=completed_node_id
            )
            return instance

        ctx = self._context(instance, definition, graph, None, actor)
        await self.execute_nodes(ctx, successors)
        return instance

    # ─── Execution ────────────────────────────────────────

    async def execute_nodes(self, ctx: NodeContext, nodes: list[GraphNode]) -> None:
        """Execute nodes sequentially, stopping once the instance has ended."""
        for node in nodes:
            if ctx.instance.status != InstanceStatus.RUNNING.value:
                logger.info(
                    "Instance ended, remaining nodes skipped",
                    instance_id=ctx.instance.id,
                    node_id=node.id,
                )
                return
            logger.debug(
                "Executing node", instance_id=ctx.instance.id, node_id=node.id, kind=node.kind.value
            )
            await handler_for(node.kind).execute(ctx, node)

    async def pending_task_count(self, instance_id: str, node_id: str) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(Task)
            .where(
                Task.flow_instance_id == instance_id,
                Task.node_id == node_id,
                Task.status == TaskStatus.PENDING.value,
                Task.is_deleted == False,
            )
        )
        return result.scalar() or 0
