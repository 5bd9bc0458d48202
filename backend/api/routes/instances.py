"""Flow instance endpoints: start, cancel, terminate, progress and history."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.common import PaginationParams
from api.schemas.instance import (
    CancelFlowRequest,
    FlowInstanceListResponse,
    FlowInstanceResponse,
    FlowProgressResponse,
    StartFlowRequest,
    TerminateFlowRequest,
)
from api.schemas.task import FlowLogResponse
from app.dependencies import get_actor, get_db
from core.constants import InstanceStatus
from core.utils import calculate_offset
from services.flow_instance_service import FlowInstanceService
from services.task_query_service import TaskQueryService
from workflow.actor import Actor

logger = logging.getLogger(__name__)

router = APIRouter(tags=["flow-instances"])


@router.post("/", response_model=FlowInstanceResponse, status_code=status.HTTP_201_CREATED)
async def start_flow(
    request: StartFlowRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> FlowInstanceResponse:
    """
    Start a flow instance from a published definition.

    The first approval tasks are created before this returns.
    """
    svc = FlowInstanceService(db)
    instance = await svc.start(
        request.flow_definition_id,
        actor,
        form_data=request.form_data,
        title=request.title,
        business_key=request.business_key,
    )
    return FlowInstanceResponse.model_validate(instance)


@router.get("/", response_model=FlowInstanceListResponse)
async def list_instances(
    pagination: PaginationParams = Depends(),
    instance_status: Optional[InstanceStatus] = Query(default=None, alias="status"),
    initiator_id: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> FlowInstanceListResponse:
    svc = FlowInstanceService(db)
    instances, total = await svc.list_instances(
        status=instance_status,
        initiator_id=initiator_id,
        offset=calculate_offset(pagination.page, pagination.per_page),
        limit=pagination.per_page,
    )
    return FlowInstanceListResponse(
        items=[FlowInstanceResponse.model_validate(i) for i in instances],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.get("/{instance_id}", response_model=FlowInstanceResponse)
async def get_instance(
    instance_id: str,
    db: AsyncSession = Depends(get_db),
) -> FlowInstanceResponse:
    svc = FlowInstanceService(db)
    return FlowInstanceResponse.model_validate(await svc.get_or_404(instance_id))


@router.get("/{instance_id}/progress", response_model=FlowProgressResponse)
async def get_progress(
    instance_id: str,
    db: AsyncSession = Depends(get_db),
) -> FlowProgressResponse:
    """
    Per-node progress of an instance, in graph order.
    """
    svc = FlowInstanceService(db)
    return FlowProgressResponse.model_validate(await svc.progress(instance_id))


@router.get("/{instance_id}/history", response_model=List[FlowLogResponse])
async def get_history(
    instance_id: str,
    db: AsyncSession = Depends(get_db),
) -> List[FlowLogResponse]:
    await FlowInstanceService(db).get_or_404(instance_id)
    logs = await TaskQueryService(db).history(instance_id)
    return [FlowLogResponse.model_validate(log) for log in logs]


@router.post("/{instance_id}/cancel", response_model=FlowInstanceResponse)
async def cancel_flow(
    instance_id: str,
    request: CancelFlowRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> FlowInstanceResponse:
    """
    Withdraw a flow. Initiator only, and only before any task was completed.
    """
    svc = FlowInstanceService(db)
    instance = await svc.cancel(instance_id, actor, comment=request.comment)
    return FlowInstanceResponse.model_validate(instance)


@router.post("/{instance_id}/terminate", response_model=FlowInstanceResponse)
async def terminate_flow(
    instance_id: str,
    request: TerminateFlowRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> FlowInstanceResponse:
    svc = FlowInstanceService(db)
    instance = await svc.terminate(instance_id, actor, reason=request.reason)
    logger.warning(f"Flow instance {instance.instance_no} terminated by {actor.id}")
    return FlowInstanceResponse.model_validate(instance)
