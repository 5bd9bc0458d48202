"""Overdue-task detection and escalation.

The scheduler half (``scan_timeout_tasks``) runs on a fixed cadence and only
enqueues jobs. The worker half (``process_timeout_job``) re-reads the task
when the job is delivered and turns stale jobs into no-ops, so delivering
the same job twice never resolves a task twice.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol

import structlog
from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from core.constants import (
    RESOLVED_TASK_STATUSES,
    InstanceStatus,
    TaskStatus,
    TimeoutAction,
)
from core.exceptions import NotFoundError, PreconditionError, ValidationError
from core.utils import utc_now
from db.models.flow_definition import NodeConfig
from db.models.flow_instance import FlowInstance
from db.models.task import Task
from workflow.task_manager import TaskManager

logger = structlog.get_logger(__name__)

TIMEOUT_JOB_NAME = "worker.tasks.timeouts.process_timeout_task"


class Queue(Protocol):
    def enqueue(self, name: str, payload: dict, delay: float = 0, attempts: int = 1, backoff: float = 0):
        ...


@dataclass
class ScheduledEscalation:
    task_id: str
    action: TimeoutAction
    overdue: bool


async def scan_timeout_tasks(
    db: AsyncSession,
    queue: Queue,
    now: Optional[datetime] = None,
) -> list[ScheduledEscalation]:
    """Enqueue escalation jobs for overdue tasks and reminders for tasks due soon.

    Tasks whose node has no time limit configured are ignored.
    """
    settings = get_settings()
    now = now or utc_now()
    horizon = now + timedelta(minutes=settings.TIMEOUT_REMIND_LOOKAHEAD_MINUTES)

    result = await db.execute(
        select(Task, NodeConfig)
        .join(FlowInstance, FlowInstance.id == Task.flow_instance_id)
        .outerjoin(
            NodeConfig,
            and_(
                NodeConfig.flow_definition_id == FlowInstance.flow_definition_id,
                NodeConfig.node_id == Task.node_id,
                NodeConfig.is_deleted == False,
            ),
        )
        .where(
            Task.status == TaskStatus.PENDING.value,
            Task.is_deleted == False,
            Task.due_at.isnot(None),
            Task.due_at <= horizon,
            FlowInstance.status == InstanceStatus.RUNNING.value,
        )
        .order_by(Task.due_at.asc())
    )

    scheduled: list[ScheduledEscalation] = []
    for task, config in result.all():
        if config is None or not config.time_limit_hours:
            continue
        overdue = now >= task.due_at
        if overdue:
            action = TimeoutAction(config.timeout_action or TimeoutAction.REMIND.value)
        else:
            action = TimeoutAction.REMIND

        queue.enqueue(
            TIMEOUT_JOB_NAME,
            {"task_id": task.id, "action": action.value},
            delay=settings.TIMEOUT_JOB_DELAY_SECONDS,
            attempts=settings.TIMEOUT_JOB_ATTEMPTS,
            backoff=settings.TIMEOUT_JOB_BACKOFF_SECONDS,
        )
        scheduled.append(ScheduledEscalation(task_id=task.id, action=action, overdue=overdue))

    logger.info("Timeout scan finished", checked_before=horizon.isoformat(), enqueued=len(scheduled))
    return scheduled


async def process_timeout_job(
    db: AsyncSession,
    task_id: str,
    action: TimeoutAction,
    now: Optional[datetime] = None,
    task_manager: Optional[TaskManager] = None,
) -> bool:
    """Apply a timeout action. Returns False when the job was a no-op.

    Escalations (AUTO_PASS / AUTO_REJECT) only fire once the task is actually
    overdue; reminders fire for any PENDING task that still has a due time.
    """
    action = TimeoutAction(action)
    now = now or utc_now()

    result = await db.execute(select(Task).where(Task.id == task_id, Task.is_deleted == False))
    task = result.scalar_one_or_none()
    if task is None:
        logger.warning("Timeout job for unknown task", task_id=task_id)
        return False
    if task.status != TaskStatus.PENDING.value:
        logger.info("Task already resolved, timeout job skipped", task_id=task_id, status=task.status)
        return False
    if task.due_at is None:
        logger.info("Task has no due time, timeout job skipped", task_id=task_id)
        return False
    if action is not TimeoutAction.REMIND and now < task.due_at:
        logger.info("Task not yet due, timeout job skipped", task_id=task_id, due_at=task.due_at.isoformat())
        return False

    manager = task_manager or TaskManager(db)
    try:
        if action is TimeoutAction.AUTO_PASS:
            await manager.auto_approve(task_id)
        elif action is TimeoutAction.AUTO_REJECT:
            await manager.auto_reject(task_id)
        else:
            await manager.remind(task_id)
    except (PreconditionError, NotFoundError) as exc:
        # Lost a race with a human approver or a cancellation
        logger.info("Timeout job skipped", task_id=task_id, action=action.value, reason=exc.message)
        return False

    logger.info("Timeout action applied", task_id=task_id, action=action.value)
    return True


async def clear_resolved_due_times(db: AsyncSession) -> int:
    """Drop due times from tasks that no longer need escalation."""
    result = await db.execute(
        update(Task)
        .where(
            Task.status.in_([status.value for status in RESOLVED_TASK_STATUSES]),
            Task.due_at.isnot(None),
        )
        .values(due_at=None)
        .execution_options(synchronize_session=False)
    )
    logger.info("Cleared due times on resolved tasks", count=result.rowcount)
    return result.rowcount


async def set_task_timeout(db: AsyncSession, task_id: str, hours: float, now: Optional[datetime] = None) -> Task:
    """Give a PENDING task a due time ``hours`` from now."""
    if hours <= 0:
        raise ValidationError("Time limit must be positive")
    task = await _pending_task(db, task_id)
    task.due_at = (now or utc_now()) + timedelta(hours=hours)
    await db.flush()
    return task


async def cancel_task_timeout(db: AsyncSession, task_id: str) -> Task:
    task = await _pending_task(db, task_id)
    task.due_at = None
    await db.flush()
    return task


async def _pending_task(db: AsyncSession, task_id: str) -> Task:
    result = await db.execute(select(Task).where(Task.id == task_id, Task.is_deleted == False))
    task = result.scalar_one_or_none()
    if task is None:
        raise NotFoundError(f"Task {task_id} not found")
    if task.status != TaskStatus.PENDING.value:
        raise PreconditionError(f"Task {task.task_no} is already {task.status}")
    return task
