"""Flow definition endpoints: design, node configs, publish lifecycle, versions."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.common import MessageResponse, PaginationParams
from api.schemas.definition import (
    FlowDefinitionCreate,
    FlowDefinitionListResponse,
    FlowDefinitionResponse,
    FlowDefinitionUpdate,
    NodeConfigSchema,
    SaveNodeConfigsRequest,
    SetCategoryRequest,
)
from app.dependencies import get_actor, get_db
from core.constants import FlowStatus
from core.utils import calculate_offset
from services.flow_definition_service import FlowDefinitionService
from workflow.actor import Actor

logger = logging.getLogger(__name__)

router = APIRouter(tags=["flow-definitions"])


def _to_response(definition) -> FlowDefinitionResponse:
    return FlowDefinitionResponse.model_validate(definition)


@router.get("/", response_model=FlowDefinitionListResponse)
async def list_definitions(
    pagination: PaginationParams = Depends(),
    code: Optional[str] = Query(default=None),
    definition_status: Optional[FlowStatus] = Query(default=None, alias="status"),
    category_id: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> FlowDefinitionListResponse:
    """
    List flow definitions (every version), newest first.
    """
    svc = FlowDefinitionService(db)
    definitions, total = await svc.list(
        offset=calculate_offset(pagination.page, pagination.per_page),
        limit=pagination.per_page,
        filters={
            "code": code,
            "status": definition_status.value if definition_status else None,
            "category_id": category_id,
        },
    )
    return FlowDefinitionListResponse(
        items=[_to_response(d) for d in definitions],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.get("/available", response_model=List[FlowDefinitionResponse])
async def list_available_definitions(
    category_id: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> List[FlowDefinitionResponse]:
    """
    Latest published version of every flow; what users can start.
    """
    svc = FlowDefinitionService(db)
    return [_to_response(d) for d in await svc.list_available(category_id=category_id)]


@router.post("/", response_model=FlowDefinitionResponse, status_code=status.HTTP_201_CREATED)
async def create_definition(
    request: FlowDefinitionCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> FlowDefinitionResponse:
    svc = FlowDefinitionService(db)
    definition = await svc.create_definition(
        code=request.code,
        name=request.name,
        description=request.description or "",
        graph=request.graph.model_dump() if request.graph else None,
        form_schema=request.form_schema,
        category_id=request.category_id,
    )
    logger.info(f"Flow definition {definition.code} created by {actor.id}")
    return _to_response(definition)


@router.get("/{definition_id}", response_model=FlowDefinitionResponse)
async def get_definition(
    definition_id: str,
    db: AsyncSession = Depends(get_db),
) -> FlowDefinitionResponse:
    svc = FlowDefinitionService(db)
    return _to_response(await svc.get_or_404(definition_id))


@router.put("/{definition_id}", response_model=FlowDefinitionResponse)
async def update_definition(
    definition_id: str,
    request: FlowDefinitionUpdate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> FlowDefinitionResponse:
    """
    Edit a draft definition. Published and disabled ones need a new version.
    """
    svc = FlowDefinitionService(db)
    definition = await svc.update_definition(
        definition_id,
        name=request.name,
        description=request.description,
        graph=request.graph.model_dump() if request.graph else None,
        form_schema=request.form_schema,
        category_id=request.category_id,
    )
    return _to_response(definition)


@router.put("/{definition_id}/category", response_model=FlowDefinitionResponse)
async def set_definition_category(
    definition_id: str,
    request: SetCategoryRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> FlowDefinitionResponse:
    """
    Refile a definition under another category. Allowed in any status.
    """
    svc = FlowDefinitionService(db)
    return _to_response(await svc.set_category(definition_id, request.category_id))


@router.put("/{definition_id}/node-configs", response_model=List[NodeConfigSchema])
async def save_node_configs(
    definition_id: str,
    request: SaveNodeConfigsRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> List[NodeConfigSchema]:
    """
    Replace all node configs of a definition.
    """
    svc = FlowDefinitionService(db)
    configs = await svc.save_node_configs(
        definition_id, [c.model_dump(mode="json") for c in request.configs]
    )
    return [NodeConfigSchema.model_validate(c) for c in configs]


@router.post("/{definition_id}/publish", response_model=FlowDefinitionResponse)
async def publish_definition(
    definition_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> FlowDefinitionResponse:
    svc = FlowDefinitionService(db)
    definition = await svc.publish(definition_id)
    logger.info(f"Flow definition {definition.code} v{definition.version} published by {actor.id}")
    return _to_response(definition)


@router.post("/{definition_id}/disable", response_model=FlowDefinitionResponse)
async def disable_definition(
    definition_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> FlowDefinitionResponse:
    svc = FlowDefinitionService(db)
    return _to_response(await svc.disable(definition_id))


@router.post(
    "/{definition_id}/versions",
    response_model=FlowDefinitionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_new_version(
    definition_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> FlowDefinitionResponse:
    """
    Copy a published or disabled definition into a new draft version.
    """
    svc = FlowDefinitionService(db)
    return _to_response(await svc.create_new_version(definition_id))


@router.delete("/{definition_id}", response_model=MessageResponse)
async def delete_definition(
    definition_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    svc = FlowDefinitionService(db)
    await svc.remove(definition_id)
    return MessageResponse(message="Flow definition deleted")
