"""Approval task endpoints: inboxes and the approver actions."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.common import MessageResponse, PaginationParams
from api.schemas.task import (
    ApproveTaskRequest,
    CountersignTaskRequest,
    RejectTaskRequest,
    TaskListResponse,
    TaskResponse,
    TransferTaskRequest,
    UrgeTaskRequest,
)
from app.dependencies import get_actor, get_db
from core.constants import TaskResult
from core.utils import calculate_offset
from services.task_query_service import TaskQueryService
from workflow.actor import Actor
from workflow.task_manager import TaskManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tasks"])


def _to_list(tasks, total: int, pagination: PaginationParams) -> TaskListResponse:
    return TaskListResponse(
        items=[TaskResponse.model_validate(t) for t in tasks],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


# ─── Inboxes ──────────────────────────────────────────────


@router.get("/pending", response_model=TaskListResponse)
async def list_pending(
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> TaskListResponse:
    """
    Tasks waiting on the caller.
    """
    tasks, total = await TaskQueryService(db).pending_for(
        actor.id,
        offset=calculate_offset(pagination.page, pagination.per_page),
        limit=pagination.per_page,
    )
    return _to_list(tasks, total, pagination)


@router.get("/completed", response_model=TaskListResponse)
async def list_completed(
    pagination: PaginationParams = Depends(),
    result: Optional[TaskResult] = Query(default=None),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> TaskListResponse:
    """
    Tasks the caller has approved or rejected.
    """
    tasks, total = await TaskQueryService(db).completed_by(
        actor.id,
        result=result,
        offset=calculate_offset(pagination.page, pagination.per_page),
        limit=pagination.per_page,
    )
    return _to_list(tasks, total, pagination)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: str,
    db: AsyncSession = Depends(get_db),
) -> TaskResponse:
    return TaskResponse.model_validate(await TaskQueryService(db).get_or_404(task_id))


# ─── Actions ──────────────────────────────────────────────


@router.post("/{task_id}/approve", response_model=TaskResponse)
async def approve_task(
    task_id: str,
    request: ApproveTaskRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> TaskResponse:
    """
    Approve a task and advance the flow.
    """
    task = await TaskManager(db).approve(
        task_id, actor, comment=request.comment, form_data=request.form_data
    )
    return TaskResponse.model_validate(task)


@router.post("/{task_id}/reject", response_model=TaskResponse)
async def reject_task(
    task_id: str,
    request: RejectTaskRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> TaskResponse:
    """
    Reject a task. The whole flow ends REJECTED.
    """
    task = await TaskManager(db).reject(task_id, actor, comment=request.comment)
    return TaskResponse.model_validate(task)


@router.post("/{task_id}/transfer", response_model=TaskResponse)
async def transfer_task(
    task_id: str,
    request: TransferTaskRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> TaskResponse:
    """
    Hand the task to another user; returns the new task.
    """
    task = await TaskManager(db).transfer(
        task_id, actor, request.target_user_id, comment=request.comment
    )
    return TaskResponse.model_validate(task)


@router.post("/{task_id}/countersign", response_model=List[TaskResponse])
async def countersign_task(
    task_id: str,
    request: CountersignTaskRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> List[TaskResponse]:
    """
    Add approvers at the task's node; returns the new tasks.
    """
    tasks = await TaskManager(db).countersign(
        task_id, actor, request.user_ids, comment=request.comment
    )
    return [TaskResponse.model_validate(t) for t in tasks]


@router.post("/{task_id}/urge", response_model=MessageResponse)
async def urge_task(
    task_id: str,
    request: UrgeTaskRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await TaskManager(db).urge(task_id, actor, comment=request.comment)
    return MessageResponse(message="Assignee has been reminded")
