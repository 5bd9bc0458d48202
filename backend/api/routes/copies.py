"""Copy (CC) inbox endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.common import CountResponse, PaginationParams
from api.schemas.copy import CopyRecordListResponse, CopyRecordResponse
from app.dependencies import get_actor, get_db
from core.utils import calculate_offset
from services.copy_record_service import CopyRecordService
from workflow.actor import Actor

router = APIRouter(tags=["copies"])


@router.get("/", response_model=CopyRecordListResponse)
async def list_copies(
    pagination: PaginationParams = Depends(),
    is_read: Optional[bool] = Query(default=None),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> CopyRecordListResponse:
    records, total = await CopyRecordService(db).list_for_user(
        actor.id,
        is_read=is_read,
        offset=calculate_offset(pagination.page, pagination.per_page),
        limit=pagination.per_page,
    )
    return CopyRecordListResponse(
        items=[CopyRecordResponse.model_validate(r) for r in records],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.get("/unread-count", response_model=CountResponse)
async def unread_count(
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> CountResponse:
    return CountResponse(count=await CopyRecordService(db).unread_count(actor.id))


@router.post("/read-all", response_model=CountResponse)
async def mark_all_read(
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> CountResponse:
    """
    Mark every unread copy of the caller as read; returns how many changed.
    """
    return CountResponse(count=await CopyRecordService(db).mark_all_read(actor.id))


@router.post("/{record_id}/read", response_model=CopyRecordResponse)
async def mark_read(
    record_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> CopyRecordResponse:
    record = await CopyRecordService(db).mark_read(record_id, actor.id)
    return CopyRecordResponse.model_validate(record)
