"""Task Manager: lifecycle operations on approval tasks.

Every operation re-reads the task and its instance inside the caller's
transaction, checks the actor and the expected status, and then writes with
a compare-and-set UPDATE (``WHERE status = 'PENDING'``). When the UPDATE
matches no row another actor got there first and ``PreconditionError`` is
raised; the caller rolls the whole transaction back.

The ``auto_*`` and ``remind`` operations are the system paths used by the
timeout worker.
"""

from typing import Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import (
    FlowEventType,
    FlowLogAction,
    InstanceStatus,
    TaskResult,
    TaskStatus,
)
from core.exceptions import (
    AuthorizationError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from core.logging_config import bind_flow_context
from core.utils import seconds_between, utc_now
from db.models.flow_instance import FlowInstance
from db.models.task import Task
from services.directory_service import DirectoryService
from workflow.actor import Actor
from workflow.audit import record_event, write_flow_log
from workflow.engine import FlowEngine
from workflow.task_factory import create_pending_task

logger = structlog.get_logger(__name__)


class TaskManager:
    """Approve / reject / transfer / countersign / urge approval tasks."""

    def __init__(
        self,
        db: AsyncSession,
        engine: Optional[FlowEngine] = None,
        directory: Optional[DirectoryService] = None,
    ):
        self.db = db
        self.directory = directory or DirectoryService(db)
        self.engine = engine or FlowEngine(db)

    # ─── Guards ───────────────────────────────────────────

    async def _load(self, task_id: str) -> tuple[Task, FlowInstance]:
        result = await self.db.execute(
            select(Task).where(Task.id == task_id, Task.is_deleted == False)
        )
        task = result.scalar_one_or_none()
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")

        result = await self.db.execute(
            select(FlowInstance).where(FlowInstance.id == task.flow_instance_id)
        )
        instance = result.scalar_one_or_none()
        if instance is None:
            raise NotFoundError(f"Flow instance {task.flow_instance_id} not found")

        bind_flow_context(instance_id=instance.id, task_id=task.id)
        return task, instance

    @staticmethod
    def _require_pending(task: Task, instance: FlowInstance) -> None:
        if task.status != TaskStatus.PENDING.value:
            raise PreconditionError(f"Task {task.task_no} is already {task.status}")
        if instance.status != InstanceStatus.RUNNING.value:
            raise PreconditionError(f"Flow instance {instance.instance_no} is {instance.status}")
        if task.node_id not in (instance.current_node_ids or []):
            raise PreconditionError(f"Node '{task.node_name or task.node_id}' has already been passed")

    async def _load_for_assignee(self, task_id: str, actor: Actor) -> tuple[Task, FlowInstance]:
        task, instance = await self._load(task_id)
        if task.assignee_id != actor.id:
            raise AuthorizationError("Only the task's assignee can act on it")
        self._require_pending(task, instance)
        return task, instance

    async def _resolve_task(
        self,
        task: Task,
        status: TaskStatus,
        result: TaskResult,
        comment: Optional[str] = None,
        form_data: Optional[dict] = None,
    ) -> None:
        """Compare-and-set a PENDING task into its resolved state."""
        now = utc_now()
        values = dict(
            status=status.value,
            result=result.value,
            comment=comment,
            completed_at=now,
            duration_seconds=seconds_between(task.created_at, now),
        )
        if form_data is not None:
            values["form_data"] = form_data

        outcome = await self.db.execute(
            update(Task)
            .where(Task.id == task.id, Task.status == TaskStatus.PENDING.value)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        if outcome.rowcount == 0:
            raise PreconditionError(f"Task {task.task_no} was resolved concurrently")

    # ─── Operations ───────────────────────────────────────

    async def approve(
        self,
        task_id: str,
        actor: Actor,
        comment: Optional[str] = None,
        form_data: Optional[dict] = None,
    ) -> Task:
        """Approve a task and advance the flow."""
        task, instance = await self._load_for_assignee(task_id, actor)
        return await self._approve(task, instance, actor, comment, form_data)

    async def _approve(
        self,
        task: Task,
        instance: FlowInstance,
        actor: Actor,
        comment: Optional[str],
        form_data: Optional[dict],
    ) -> Task:
        await self._resolve_task(
            task, TaskStatus.COMPLETED, TaskResult.APPROVED, comment, form_data
        )
        await write_flow_log(
            self.db,
            instance.id,
            FlowLogAction.APPROVE,
            actor=actor,
            task_id=task.id,
            node_id=task.node_id,
            node_name=task.node_name,
            from_status=TaskStatus.PENDING,
            to_status=TaskStatus.COMPLETED,
            comment=comment,
        )
        await record_event(
            self.db,
            FlowEventType.TASK_APPROVED,
            instance.id,
            task_id=task.id,
            node_id=task.node_id,
            operator_id=actor.id,
        )
        logger.info("Task approved", task_id=task.id, operator_id=actor.id)

        await self.engine.advance_flow(instance.id, task.node_id, TaskResult.APPROVED, actor)
        return task

    async def reject(self, task_id: str, actor: Actor, comment: Optional[str] = None) -> Task:
        """Reject a task: cancel its siblings and end the instance as REJECTED."""
        task, instance = await self._load_for_assignee(task_id, actor)
        await self._resolve_task(task, TaskStatus.COMPLETED, TaskResult.REJECTED, comment)

        await self.db.execute(
            update(Task)
            .where(
                Task.flow_instance_id == instance.id,
                Task.node_id == task.node_id,
                Task.status == TaskStatus.PENDING.value,
                Task.id != task.id,
            )
            .values(status=TaskStatus.CANCELLED.value)
            .execution_options(synchronize_session="fetch")
        )

        now = utc_now()
        outcome = await self.db.execute(
            update(FlowInstance)
            .where(
                FlowInstance.id == instance.id,
                FlowInstance.status == InstanceStatus.RUNNING.value,
            )
            .values(
                status=InstanceStatus.REJECTED.value,
                ended_at=now,
                duration_seconds=seconds_between(instance.started_at, now),
                current_node_ids=[],
                result_remark=comment or "Rejected",
            )
            .execution_options(synchronize_session="fetch")
        )
        if outcome.rowcount == 0:
            raise PreconditionError(f"Flow instance {instance.instance_no} is no longer running")

        await write_flow_log(
            self.db,
            instance.id,
            FlowLogAction.REJECT,
            actor=actor,
            task_id=task.id,
            node_id=task.node_id,
            node_name=task.node_name,
            from_status=InstanceStatus.RUNNING,
            to_status=InstanceStatus.REJECTED,
            comment=comment,
        )
        await record_event(
            self.db, FlowEventType.TASK_REJECTED, instance.id, task_id=task.id,
            node_id=task.node_id, operator_id=actor.id,
        )
        await record_event(
            self.db, FlowEventType.FLOW_REJECTED, instance.id, task_id=task.id,
            business_key=instance.business_key, reason=comment,
        )
        logger.info("Task rejected, flow ended", task_id=task.id, operator_id=actor.id)
        return task

    async def transfer(
        self,
        task_id: str,
        actor: Actor,
        target_user_id: str,
        comment: Optional[str] = None,
    ) -> Task:
        """Hand a task over to another user. Returns the new PENDING task."""
        task, instance = await self._load_for_assignee(task_id, actor)
        if target_user_id == actor.id:
            raise ValidationError("Cannot transfer a task to yourself")
        target = await self.directory.get(target_user_id)
        if target is None:
            raise NotFoundError(f"User {target_user_id} not found or inactive")

        await self._resolve_task(task, TaskStatus.TRANSFERRED, TaskResult.TRANSFERRED, comment)
        new_task = await create_pending_task(
            self.db,
            instance.id,
            task.node_id,
            task.node_name,
            target,
            due_at=task.due_at,
            source_task_id=task.id,
        )

        await write_flow_log(
            self.db,
            instance.id,
            FlowLogAction.TRANSFER,
            actor=actor,
            task_id=task.id,
            node_id=task.node_id,
            node_name=task.node_name,
            from_status=TaskStatus.PENDING,
            to_status=TaskStatus.TRANSFERRED,
            comment=f"Transferred to {target.name}: {comment or ''}".rstrip(": "),
        )
        await record_event(
            self.db, FlowEventType.TASK_TRANSFERRED, instance.id, task_id=task.id,
            node_id=task.node_id, operator_id=actor.id, target_user_id=target.id,
        )
        return new_task

    async def countersign(
        self,
        task_id: str,
        actor: Actor,
        user_ids: list[str],
        comment: Optional[str] = None,
    ) -> list[Task]:
        """Add approvers at the task's node. Returns the new PENDING tasks."""
        task, instance = await self._load_for_assignee(task_id, actor)
        unique_ids = list(dict.fromkeys(user_ids or []))
        if not unique_ids:
            raise ValidationError("At least one user is required to countersign")
        users = await self.directory.by_ids(unique_ids)
        if len(users) != len(unique_ids):
            missing = sorted(set(unique_ids) - {user.id for user in users})
            raise ValidationError(f"Users not found or inactive: {', '.join(missing)}")

        await self._resolve_task(
            task, TaskStatus.COUNTERSIGNED, TaskResult.COUNTERSIGNED, comment
        )
        new_tasks = []
        for user in users:
            new_tasks.append(
                await create_pending_task(
                    self.db,
                    instance.id,
                    task.node_id,
                    task.node_name,
                    user,
                    due_at=task.due_at,
                    source_task_id=task.id,
                )
            )

        names = ", ".join(user.name for user in users)
        await write_flow_log(
            self.db,
            instance.id,
            FlowLogAction.COUNTERSIGN,
            actor=actor,
            task_id=task.id,
            node_id=task.node_id,
            node_name=task.node_name,
            from_status=TaskStatus.PENDING,
            to_status=TaskStatus.COUNTERSIGNED,
            comment=f"Countersigned to {names}: {comment or ''}".rstrip(": "),
        )
        return new_tasks

    async def urge(self, task_id: str, actor: Actor, comment: Optional[str] = None) -> None:
        """Nudge the assignee. Only the instance's initiator may urge."""
        task, instance = await self._load(task_id)
        if instance.initiator_id != actor.id:
            raise AuthorizationError("Only the initiator can urge a task")
        self._require_pending(task, instance)

        await write_flow_log(
            self.db,
            instance.id,
            FlowLogAction.URGE,
            actor=actor,
            task_id=task.id,
            node_id=task.node_id,
            node_name=task.node_name,
            from_status=task.status,
            to_status=task.status,
            comment=comment,
        )
        await record_event(
            self.db, FlowEventType.TASK_URGED, instance.id, task_id=task.id,
            assignee_id=task.assignee_id, operator_id=actor.id,
        )

    # ─── System paths ─────────────────────────────────────

    async def auto_approve(self, task_id: str) -> Task:
        """Approve an overdue task on behalf of the system actor."""
        system = Actor.system()
        task, instance = await self._load(task_id)
        self._require_pending(task, instance)

        comment = "Approved automatically after timeout"
        await self._approve(task, instance, system, comment, None)
        await write_flow_log(
            self.db,
            instance.id,
            FlowLogAction.AUTO,
            actor=system,
            task_id=task.id,
            node_id=task.node_id,
            node_name=task.node_name,
            to_status=TaskStatus.COMPLETED,
            comment=comment,
        )
        return task

    async def auto_reject(self, task_id: str) -> Task:
        """Mark an overdue task rejected. Siblings and the instance are left alone."""
        system = Actor.system()
        task, instance = await self._load(task_id)
        self._require_pending(task, instance)

        comment = "Rejected automatically after timeout"
        await self._resolve_task(task, TaskStatus.COMPLETED, TaskResult.REJECTED, comment)
        await write_flow_log(
            self.db,
            instance.id,
            FlowLogAction.AUTO,
            actor=system,
            task_id=task.id,
            node_id=task.node_id,
            node_name=task.node_name,
            from_status=TaskStatus.PENDING,
            to_status=TaskStatus.COMPLETED,
            comment=comment,
        )
        await record_event(
            self.db, FlowEventType.TASK_REJECTED, instance.id, task_id=task.id,
            node_id=task.node_id, operator_id=system.id,
        )
        return task

    async def remind(self, task_id: str) -> None:
        """Record a reminder for a task that is (nearly) overdue."""
        system = Actor.system()
        task, instance = await self._load(task_id)
        self._require_pending(task, instance)

        await write_flow_log(
            self.db,
            instance.id,
            FlowLogAction.URGE,
            actor=system,
            task_id=task.id,
            node_id=task.node_id,
            node_name=task.node_name,
            from_status=task.status,
            to_status=task.status,
            comment="Task is about to time out, please handle it",
        )
        await record_event(
            self.db, FlowEventType.TASK_URGED, instance.id, task_id=task.id,
            assignee_id=task.assignee_id, operator_id=system.id,
        )
