"""Read-side queries over approval tasks and the flow log."""

from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import TaskResult, TaskStatus
from db.models.flow_log import FlowLog
from db.models.task import Task
from services.base import BaseService


class TaskQueryService(BaseService[Task]):
    label = "Task"

    def __init__(self, db: AsyncSession):
        super().__init__(Task, db)

    async def pending_for(
        self, assignee_id: str, offset: int = 0, limit: int = 20
    ) -> tuple[Sequence[Task], int]:
        """Tasks waiting on an assignee, newest first."""
        return await self.list(
            offset=offset,
            limit=limit,
            filters={"assignee_id": assignee_id, "status": TaskStatus.PENDING.value},
        )

    async def completed_by(
        self,
        assignee_id: str,
        result: Optional[TaskResult] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[Sequence[Task], int]:
        """Tasks an assignee has approved or rejected, most recently completed first."""
        return await self.list(
            offset=offset,
            limit=limit,
            order_by="completed_at",
            filters={
                "assignee_id": assignee_id,
                "status": TaskStatus.COMPLETED.value,
                "result": result.value if result else None,
            },
        )

    async def history(self, instance_id: str) -> list[FlowLog]:
        """Flow log of an instance in the order it was written."""
        result = await self.db.execute(
            select(FlowLog)
            .where(FlowLog.flow_instance_id == instance_id)
            .order_by(FlowLog.seq.asc(), FlowLog.created_at.asc())
        )
        return list(result.scalars().all())
