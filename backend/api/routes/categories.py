"""Flow category endpoints: the tree that groups flow definitions."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.category import (
    BatchDeleteCategoriesRequest,
    FlowCategoryCreate,
    FlowCategoryOption,
    FlowCategoryResponse,
    FlowCategoryTreeNode,
    FlowCategoryUpdate,
)
from api.schemas.common import CountResponse, MessageResponse
from app.dependencies import get_actor, get_db
from core.constants import CategoryStatus
from services.flow_category_service import FlowCategoryService
from workflow.actor import Actor

logger = logging.getLogger(__name__)

router = APIRouter(tags=["flow-categories"])


def _tree_node(node: dict) -> FlowCategoryTreeNode:
    base = FlowCategoryResponse.model_validate(node["category"])
    return FlowCategoryTreeNode(
        **base.model_dump(),
        children=[_tree_node(child) for child in node["children"]],
    )


def _option(node: dict) -> FlowCategoryOption:
    category = node["category"]
    return FlowCategoryOption(
        id=category.id,
        name=category.name,
        level=category.level,
        color=category.color,
        children=[_option(child) for child in node["children"]],
    )


@router.get("/", response_model=List[FlowCategoryTreeNode])
async def list_categories(
    code: Optional[str] = Query(default=None, description="Substring of the code"),
    name: Optional[str] = Query(default=None, description="Substring of the name"),
    category_status: Optional[CategoryStatus] = Query(default=None, alias="status"),
    db: AsyncSession = Depends(get_db),
) -> List[FlowCategoryTreeNode]:
    """
    Category tree. Not paginated.
    """
    svc = FlowCategoryService(db)
    tree = await svc.tree(code=code, name=name, status=category_status)
    return [_tree_node(node) for node in tree]


@router.get("/options", response_model=List[FlowCategoryOption])
async def category_options(
    db: AsyncSession = Depends(get_db),
) -> List[FlowCategoryOption]:
    svc = FlowCategoryService(db)
    return [_option(node) for node in await svc.select_options()]


@router.post("/", response_model=FlowCategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    request: FlowCategoryCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> FlowCategoryResponse:
    svc = FlowCategoryService(db)
    category = await svc.create_category(**request.model_dump())
    logger.info(f"Flow category {category.code} created by {actor.id}")
    return FlowCategoryResponse.model_validate(category)


@router.post("/batch-delete", response_model=CountResponse)
async def batch_delete_categories(
    request: BatchDeleteCategoriesRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> CountResponse:
    svc = FlowCategoryService(db)
    return CountResponse(count=await svc.batch_remove(request.ids))


@router.get("/{category_id}", response_model=FlowCategoryResponse)
async def get_category(
    category_id: str,
    db: AsyncSession = Depends(get_db),
) -> FlowCategoryResponse:
    svc = FlowCategoryService(db)
    return FlowCategoryResponse.model_validate(await svc.get_or_404(category_id))


@router.put("/{category_id}", response_model=FlowCategoryResponse)
async def update_category(
    category_id: str,
    request: FlowCategoryUpdate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> FlowCategoryResponse:
    svc = FlowCategoryService(db)
    category = await svc.update_category(category_id, request.model_dump(exclude_unset=True))
    return FlowCategoryResponse.model_validate(category)


@router.put("/{category_id}/status/{new_status}", response_model=FlowCategoryResponse)
async def update_category_status(
    category_id: str,
    new_status: CategoryStatus,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> FlowCategoryResponse:
    svc = FlowCategoryService(db)
    return FlowCategoryResponse.model_validate(await svc.update_status(category_id, new_status))


@router.delete("/{category_id}", response_model=MessageResponse)
async def delete_category(
    category_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """
    Delete a category that holds no definitions and no child categories.
    """
    svc = FlowCategoryService(db)
    await svc.remove(category_id)
    return MessageResponse(message="Flow category deleted")
