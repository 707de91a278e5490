"""Sponsor hierarchy API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path

from sponsor_chain.api.dependencies import ActorId, Workflow
from sponsor_chain.api.schemas import (
    ChainUpdate,
    ErrorResponse,
    HierarchyResponse,
    SlotUpdate,
)

router = APIRouter(prefix="/agents", tags=["hierarchy"])


@router.get(
    "/{agent_id}/hierarchy",
    response_model=HierarchyResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_hierarchy(
    workflow: Workflow,
    agent_id: Annotated[str, Path()],
) -> HierarchyResponse:
    """Get an agent's sponsor chain and whether it is editable."""
    view = await workflow.get_hierarchy(agent_id)
    return HierarchyResponse.from_view(view)


@router.post(
    "/{agent_id}/hierarchy/slots",
    response_model=HierarchyResponse,
    responses={
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        423: {"model": ErrorResponse},
    },
)
async def set_hierarchy_slot(
    workflow: Workflow,
    actor_id: ActorId,
    agent_id: Annotated[str, Path()],
    payload: SlotUpdate,
) -> HierarchyResponse:
    """Write one slot. Cadre slots are locked until the fee is paid."""
    view = await workflow.set_slot(
        agent_id,
        payload.slot,
        payload.target_agent_id,
        actor_id=payload.actor_id or actor_id,
    )
    return HierarchyResponse.from_view(view)


@router.put(
    "/{agent_id}/hierarchy",
    response_model=HierarchyResponse,
    responses={
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        423: {"model": ErrorResponse},
    },
)
async def update_hierarchy(
    workflow: Workflow,
    actor_id: ActorId,
    agent_id: Annotated[str, Path()],
    payload: ChainUpdate,
) -> HierarchyResponse:
    """Write several slots atomically."""
    view = await workflow.update_chain(
        agent_id,
        payload.slots,
        actor_id=payload.actor_id or actor_id,
    )
    return HierarchyResponse.from_view(view)
