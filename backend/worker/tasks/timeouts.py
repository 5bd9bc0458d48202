"""Celery tasks for task timeouts.

- ``scan_timeout_tasks``: beat-driven scan that enqueues escalation jobs
- ``process_timeout_task``: applies AUTO_PASS / AUTO_REJECT / REMIND to one task
- ``cleanup_due_times``: nightly sweep of due times on resolved tasks

Each task runs its async body on a fresh event loop with a worker session
that commits on success and rolls back on failure.
"""

import asyncio
import logging
from typing import Optional

from core.logging_config import bind_flow_context, clear_flow_context
from worker.celery_app import celery_app
from worker.queue import RetryPolicy

logger = logging.getLogger(__name__)


def _run(coro):
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(
    name="worker.tasks.timeouts.scan_timeout_tasks",
    bind=True,
    max_retries=2,
    default_retry_delay=15,
)
def scan_timeout_tasks(self):
    """Find overdue and nearly-due tasks and enqueue jobs for them."""
    try:
        scheduled = _run(_scan())
        logger.info(f"[timeout-scan] Enqueued {len(scheduled)} job(s)")
        return {"enqueued": len(scheduled)}
    except Exception as exc:
        logger.error(f"[timeout-scan] Scan failed: {exc}", exc_info=True)
        raise self.retry(exc=exc)


async def _scan():
    from db.worker_session import worker_session
    from worker.queue import JobQueue
    from workflow.timeouts import scan_timeout_tasks as scan

    async with worker_session() as session:
        return await scan(session, JobQueue())


@celery_app.task(
    name="worker.tasks.timeouts.process_timeout_task",
    bind=True,
    max_retries=None,
)
def process_timeout_task(self, task_id: str, action: str, retry_policy: Optional[dict] = None):
    """Apply one timeout action. Stale jobs are silent no-ops."""
    policy = RetryPolicy.from_dict(retry_policy)
    bind_flow_context(task_id=task_id, job_id=self.request.id)
    try:
        applied = _run(_process(task_id, action))
        return {"task_id": task_id, "action": action, "applied": applied}
    except Exception as exc:
        retries = self.request.retries
        if not policy.can_retry(retries):
            logger.error(
                f"[timeout-job] {action} for task {task_id} failed after {retries + 1} attempt(s): {exc}",
                exc_info=True,
            )
            raise
        countdown = policy.delay_for(retries)
        logger.warning(f"[timeout-job] {action} for task {task_id} failed, retrying in {countdown}s: {exc}")
        raise self.retry(exc=exc, countdown=countdown)
    finally:
        clear_flow_context()


async def _process(task_id: str, action: str) -> bool:
    from db.worker_session import worker_session
    from workflow.timeouts import process_timeout_job

    async with worker_session() as session:
        return await process_timeout_job(session, task_id, action)


@celery_app.task(name="worker.tasks.timeouts.cleanup_due_times")
def cleanup_due_times():
    """Clear due times on tasks that are no longer PENDING. Runs daily at 2 AM."""
    try:
        cleared = _run(_cleanup())
        logger.info(f"[timeout-cleanup] Cleared {cleared} due time(s)")
        return {"cleared": cleared}
    except Exception as exc:
        logger.error(f"[timeout-cleanup] Cleanup failed: {exc}", exc_info=True)
        return {"status": "error", "error": str(exc)}


async def _cleanup() -> int:
    from db.worker_session import worker_session
    from workflow.timeouts import clear_resolved_due_times

    async with worker_session() as session:
        return await clear_resolved_due_times(session)
