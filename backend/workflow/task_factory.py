"""Creation of PENDING approval tasks."""

from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import TaskStatus
from core.utils import generate_serial_no
from db.models.task import Task
from services.directory_service import Identity

TASK_NO_PREFIX = "TK"


async def create_pending_task(
    db: AsyncSession,
    instance_id: str,
    node_id: str,
    node_name: str,
    assignee: Identity,
    due_at: Optional[datetime] = None,
    source_task_id: Optional[str] = None,
) -> Task:
    task = Task(
        task_no=generate_serial_no(TASK_NO_PREFIX),
        flow_instance_id=instance_id,
        node_id=node_id,
        node_name=node_name,
        status=TaskStatus.PENDING.value,
        assignee_id=assignee.id,
        assignee_name=assignee.name,
        assignee_dept_id=assignee.dept_id,
        due_at=due_at,
        source_task_id=source_task_id,
    )
    db.add(task)
    await db.flush()
    return task
