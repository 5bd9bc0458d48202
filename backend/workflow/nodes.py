"""Node handlers, one per node kind.

Each handler implements ``execute(ctx, node)``. Handlers are registered in
``NODE_HANDLERS`` keyed by ``NodeKind``; the engine looks a handler up by the
kind the graph declared for the node and never branches on kind itself.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import (
    EmptyAssigneeAction,
    FlowEventType,
    InstanceStatus,
    NodeKind,
)
from core.exceptions import ValidationError
from core.utils import seconds_between, utc_now
from db.models.copy_record import CopyRecord
from db.models.flow_definition import FlowDefinition, NodeConfig
from db.models.flow_instance import FlowInstance, ParallelBranchState
from workflow.actor import Actor
from workflow.audit import record_event
from workflow.graph import FlowGraph, GraphEdge, GraphNode
from workflow.task_factory import create_pending_task

if TYPE_CHECKING:
    from workflow.engine import FlowEngine

logger = structlog.get_logger(__name__)


@dataclass
class NodeContext:
    """Everything a handler needs while walking one instance's graph."""

    db: AsyncSession
    engine: "FlowEngine"
    instance: FlowInstance
    definition: FlowDefinition
    graph: FlowGraph
    form_data: dict
    actor: Actor

    def config_for(self, node_id: str) -> Optional[NodeConfig]:
        return self.definition.config_for(node_id)

    def node_name(self, node: GraphNode) -> str:
        config = self.config_for(node.id)
        return (config.node_name if config and config.node_name else None) or node.label or node.id

    async def activate(self, node_id: str) -> None:
        current = list(self.instance.current_node_ids or [])
        if node_id not in current:
            current.append(node_id)
        self.instance.current_node_ids = current
        await self.db.flush()


class NodeHandler:
    """Behaviour of one node kind."""

    kind: NodeKind

    async def execute(self, ctx: NodeContext, node: GraphNode) -> None:
        raise NotImplementedError


NODE_HANDLERS: dict[NodeKind, NodeHandler] = {}


def register_handler(cls):
    """Class decorator adding a handler instance to the registry."""
    NODE_HANDLERS[cls.kind] = cls()
    return cls


def handler_for(kind: NodeKind) -> NodeHandler:
    try:
        return NODE_HANDLERS[kind]
    except KeyError:
        raise ValidationError(f"No handler registered for node kind {kind}")


# ─── Handlers ─────────────────────────────────────────────────


@register_handler
class StartNodeHandler(NodeHandler):
    kind = NodeKind.START

    async def execute(self, ctx: NodeContext, node: GraphNode) -> None:
        successors = ctx.graph.successors(node.id)
        if not successors:
            raise ValidationError("START node has no outgoing edge")
        await ctx.engine.execute_nodes(ctx, successors)


@register_handler
class EndNodeHandler(NodeHandler):
    kind = NodeKind.END

    async def execute(self, ctx: NodeContext, node: GraphNode) -> None:
        instance = ctx.instance
        now = utc_now()
        instance.status = InstanceStatus.COMPLETED.value
        instance.ended_at = now
        instance.duration_seconds = seconds_between(instance.started_at, now)
        instance.current_node_ids = []
        await ctx.db.flush()

        await record_event(
            ctx.db,
            FlowEventType.FLOW_COMPLETED,
            instance.id,
            business_key=instance.business_key,
            duration_seconds=instance.duration_seconds,
        )
        logger.info("Flow completed", instance_id=instance.id, node_id=node.id)


@register_handler
class ApprovalNodeHandler(NodeHandler):
    """Resolve approvers, create one PENDING task each, fan out CC records."""

    kind = NodeKind.APPROVAL

    async def execute(self, ctx: NodeContext, node: GraphNode) -> None:
        instance = ctx.instance
        config = ctx.config_for(node.id)
        node_name = ctx.node_name(node)
        resolver = ctx.engine.resolver

        due_at = None
        if config is not None and config.time_limit_hours:
            due_at = utc_now() + timedelta(hours=config.time_limit_hours)

        assignees = await resolver.resolve(
            config, instance.initiator_id, instance.initiator_dept_id, ctx.form_data
        )

        if not assignees:
            applied = await resolver.handle_empty_assignee(
                instance, node.id, node_name, config, due_at=due_at
            )
            if applied is EmptyAssigneeAction.SKIP:
                await ctx.engine.execute_nodes(ctx, ctx.graph.successors(node.id))
            elif applied is EmptyAssigneeAction.TO_ADMIN:
                await ctx.activate(node.id)
            return

        tasks = []
        for assignee in assignees:
            tasks.append(
                await create_pending_task(
                    ctx.db, instance.id, node.id, node_name, assignee, due_at=due_at
                )
            )
        await ctx.activate(node.id)
        logger.info(
            "Approval tasks created",
            instance_id=instance.id,
            node_id=node.id,
            count=len(tasks),
        )

        if config is not None and config.cc_config:
            recipients = await resolver.resolve_copy_recipients(config.cc_config)
            for recipient in recipients:
                ctx.db.add(
                    CopyRecord(
                        flow_instance_id=instance.id,
                        task_id=tasks[-1].id,
                        node_id=node.id,
                        user_id=recipient.id,
                        user_name=recipient.name,
                    )
                )
            if recipients:
                await ctx.db.flush()
                logger.info(
                    "Copy records created",
                    instance_id=instance.id,
                    node_id=node.id,
                    count=len(recipients),
                )


@register_handler
class ConditionNodeHandler(NodeHandler):
    """Follow the first outgoing edge whose condition holds.

    An edge without a condition is the fallback; the first such edge wins
    only when no conditional edge matches. When nothing matches the
    instance stays parked on this node.
    """

    kind = NodeKind.CONDITION

    def _condition_of(self, ctx: NodeContext, edge: GraphEdge) -> Optional[dict]:
        if edge.condition:
            return edge.condition
        target_config = ctx.config_for(edge.target)
        if target_config is not None and target_config.condition_expr:
            return target_config.condition_expr
        return None

    async def execute(self, ctx: NodeContext, node: GraphNode) -> None:
        evaluator = ctx.engine.evaluator
        matched: Optional[GraphEdge] = None
        fallback: Optional[GraphEdge] = None

        for edge in ctx.graph.outgoing_edges(node.id):
            condition = self._condition_of(ctx, edge)
            if not condition:
                if fallback is None:
                    fallback = edge
                continue
            if evaluator.evaluate(condition, ctx.form_data):
                matched = edge
                break

        chosen = matched or fallback
        if chosen is None:
            logger.warning(
                "No condition branch matched, flow stalled",
                instance_id=ctx.instance.id,
                node_id=node.id,
            )
            await ctx.activate(node.id)
            return

        logger.info(
            "Condition branch selected",
            instance_id=ctx.instance.id,
            node_id=node.id,
            edge_id=chosen.id,
            target=chosen.target,
            default=matched is None,
        )
        await ctx.engine.execute_nodes(ctx, [ctx.graph.node(chosen.target)])


@register_handler
class ParallelNodeHandler(NodeHandler):
    kind = NodeKind.PARALLEL

    async def execute(self, ctx: NodeContext, node: GraphNode) -> None:
        successors = ctx.graph.successors(node.id)

        result = await ctx.db.execute(
            select(ParallelBranchState).where(
                ParallelBranchState.instance_id == ctx.instance.id,
                ParallelBranchState.node_id == node.id,
            )
        )
        state = result.scalar_one_or_none()
        if state is None:
            state = ParallelBranchState(instance_id=ctx.instance.id, node_id=node.id)
            ctx.db.add(state)
        state.total = len(successors)
        state.completed = 0
        await ctx.db.flush()

        await ctx.engine.execute_nodes(ctx, successors)


@register_handler
class JoinNodeHandler(NodeHandler):
    """Advance straight to the successor; branch counters are not consulted."""

    kind = NodeKind.JOIN

    async def execute(self, ctx: NodeContext, node: GraphNode) -> None:
        await ctx.engine.execute_nodes(ctx, ctx.graph.successors(node.id))
