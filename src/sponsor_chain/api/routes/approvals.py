"""Fee approval API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from sponsor_chain.api.dependencies import ActorId, Workflow
from sponsor_chain.api.schemas import (
    ApprovalListItemResponse,
    ApprovalListResponse,
    ApprovalResponse,
    ApprovalRevise,
    ApprovalSubmit,
    ApproveRequest,
    CadreResponse,
    ErrorResponse,
    FormDataResponse,
    MarkPaidRequest,
    RejectRequest,
)
from sponsor_chain.calculators import DEFAULT_PURPOSES
from sponsor_chain.services import ApprovalFilter, ApprovalPage

router = APIRouter(prefix="/agent-approvals", tags=["agent-approvals"])


def _page_response(page: ApprovalPage) -> ApprovalListResponse:
    return ApprovalListResponse(
        items=[ApprovalListItemResponse.from_item(item) for item in page.items],
        total=page.total,
        page=page.page,
        page_size=page.page_size,
    )


# ============================================================================
# Queries
# ============================================================================


@router.get(
    "",
    response_model=ApprovalListResponse,
    responses={422: {"model": ErrorResponse}},
)
async def list_approvals(
    workflow: Workflow,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=200)] = 20,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    agent_id: str | None = None,
    purpose: str | None = None,
    branch_id: str | None = None,
    search: str | None = None,
) -> ApprovalListResponse:
    """List approvals with optional filters and free-text search."""
    approval_filter = ApprovalFilter(
        status=status_filter.lower() if status_filter else None,
        agent_id=agent_id,
        purpose=purpose,
        branch_id=branch_id,
        search=search,
        page=page,
        page_size=page_size,
    )
    return _page_response(await workflow.list_approvals(approval_filter))


@router.get("/pending", response_model=ApprovalListResponse)
async def list_pending_approvals(
    workflow: Workflow,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=200)] = 20,
    agent_id: str | None = None,
    branch_id: str | None = None,
    search: str | None = None,
) -> ApprovalListResponse:
    """Approvals waiting for a decision."""
    approval_filter = ApprovalFilter(
        agent_id=agent_id,
        branch_id=branch_id,
        search=search,
        page=page,
        page_size=page_size,
    )
    return _page_response(await workflow.list_pending_approvals(approval_filter))


@router.get("/form-data", response_model=FormDataResponse)
async def approval_form_data(workflow: Workflow) -> FormDataResponse:
    """Cadre levels, default purposes and fee tiers for the approval form."""
    engine = workflow.fee_engine
    return FormDataResponse(
        cadres=[
            CadreResponse(code=lvl.code, label=lvl.label, rank=lvl.rank)
            for lvl in engine.catalog
        ],
        entry_cadre_code=engine.catalog.entry_code,
        purposes=list(DEFAULT_PURPOSES),
        reduced_fee=engine.schedule.reduced,
        standard_fee=engine.schedule.standard,
    )


@router.get(
    "/{approval_id}",
    response_model=ApprovalResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_approval(
    workflow: Workflow,
    approval_id: Annotated[UUID, Path()],
) -> ApprovalResponse:
    """Get a specific approval by ID."""
    approval = await workflow.get_approval(approval_id)
    return ApprovalResponse.model_validate(approval)


# ============================================================================
# Submission and revision
# ============================================================================


@router.post(
    "",
    response_model=ApprovalResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def submit_approval(
    workflow: Workflow,
    payload: ApprovalSubmit,
) -> ApprovalResponse:
    """Submit a fee approval. Any client-supplied amount is discarded."""
    approval = await workflow.submit(
        agent_id=payload.agent_id,
        purpose=payload.purpose,
        branch_id=payload.branch_id,
        account_id=payload.account_id,
        joining_level=payload.joining_level,
        promotion_level=payload.promotion_level,
        billing_category_id=payload.billing_category_id,
        notes=payload.notes,
        strict_purpose=payload.strict_purpose,
    )
    return ApprovalResponse.model_validate(approval)


@router.put(
    "/{approval_id}",
    response_model=ApprovalResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def revise_approval(
    workflow: Workflow,
    approval_id: Annotated[UUID, Path()],
    payload: ApprovalRevise,
) -> ApprovalResponse:
    """Revise a pending approval; the amount is recomputed."""
    approval = await workflow.revise(
        approval_id,
        purpose=payload.purpose,
        branch_id=payload.branch_id,
        account_id=payload.account_id,
        joining_level=payload.joining_level,
        promotion_level=payload.promotion_level,
        billing_category_id=payload.billing_category_id,
        notes=payload.notes,
        strict_purpose=payload.strict_purpose,
    )
    return ApprovalResponse.model_validate(approval)


# ============================================================================
# State transitions
# ============================================================================


@router.post(
    "/{approval_id}/approve",
    response_model=ApprovalResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def approve_approval(
    workflow: Workflow,
    approval_id: Annotated[UUID, Path()],
    payload: ApproveRequest,
) -> ApprovalResponse:
    """pending → approved."""
    approval = await workflow.approve(approval_id, payload.approver_id)
    return ApprovalResponse.model_validate(approval)


@router.post(
    "/{approval_id}/mark-paid",
    response_model=ApprovalResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def mark_paid(
    workflow: Workflow,
    actor_id: ActorId,
    approval_id: Annotated[UUID, Path()],
    payload: MarkPaidRequest | None = None,
) -> ApprovalResponse:
    """approved → paid. Unlocks the agent's sponsor chain."""
    actor = payload.actor_id if payload and payload.actor_id else actor_id
    approval = await workflow.mark_paid(approval_id, actor_id=actor)
    return ApprovalResponse.model_validate(approval)


@router.post(
    "/{approval_id}/reject",
    response_model=ApprovalResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def reject_approval(
    workflow: Workflow,
    actor_id: ActorId,
    approval_id: Annotated[UUID, Path()],
    payload: RejectRequest,
) -> ApprovalResponse:
    """pending → rejected."""
    approval = await workflow.reject(approval_id, payload.reason, actor_id=actor_id)
    return ApprovalResponse.model_validate(approval)
