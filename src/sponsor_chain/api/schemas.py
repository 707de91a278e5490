"""Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from sponsor_chain.services import ApprovalListItem, HierarchyView


class RequestBase(BaseModel):
    """Base for request bodies; numeric ids from the back-office become strings."""

    model_config = ConfigDict(coerce_numbers_to_str=True, str_strip_whitespace=True)


# ============================================================================
# Approval schemas
# ============================================================================


class ApprovalFields(RequestBase):
    """Editable approval fields shared by submit and revise."""

    purpose: str = Field(min_length=1)
    branch_id: str = Field(min_length=1)
    account_id: str = Field(min_length=1)
    joining_level: str | None = None
    promotion_level: str | None = None
    billing_category_id: str | None = None
    notes: str | None = None
    amount: Decimal | None = Field(
        default=None,
        description="Ignored. The amount is always computed from purpose and level.",
    )
    strict_purpose: bool = Field(
        default=False,
        description="Reject unknown purposes instead of charging the standard fee.",
    )


class ApprovalSubmit(ApprovalFields):
    """Schema for submitting a new fee approval."""

    agent_id: str = Field(min_length=1)


class ApprovalRevise(ApprovalFields):
    """Schema for revising a pending fee approval."""


class ApproveRequest(RequestBase):
    """Schema for approving a request."""

    approver_id: str = Field(min_length=1)


class RejectRequest(RequestBase):
    """Schema for rejecting a request."""

    reason: str = Field(min_length=1)


class MarkPaidRequest(RequestBase):
    """Schema for marking a request paid."""

    actor_id: str | None = None


class ApprovalResponse(BaseModel):
    """Schema for approval response."""

    model_config = ConfigDict(from_attributes=True)

    approval_id: UUID
    agent_id: str
    billing_category_id: str | None = None
    purpose: str
    joining_level: str | None = None
    promotion_level: str | None = None
    amount: Decimal
    branch_id: str
    account_id: str
    approved_by: str | None = None
    notes: str | None = None
    status: str
    approved_at: datetime | None = None
    paid_at: datetime | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class ApprovalListItemResponse(ApprovalResponse):
    """Approval row with agent display data."""

    agent_code: str | None = None
    agent_name: str | None = None

    @classmethod
    def from_item(cls, item: ApprovalListItem) -> "ApprovalListItemResponse":
        base = ApprovalResponse.model_validate(item.approval).model_dump()
        return cls(
            **base,
            agent_code=item.agent.code if item.agent else None,
            agent_name=item.agent.display_name if item.agent else None,
        )


class ApprovalListResponse(BaseModel):
    """Schema for listing approvals."""

    items: list[ApprovalListItemResponse]
    total: int
    page: int
    page_size: int


class CadreResponse(BaseModel):
    code: str
    label: str
    rank: int


class FormDataResponse(BaseModel):
    """Lookup data for the approval form."""

    cadres: list[CadreResponse]
    entry_cadre_code: str
    purposes: list[str]
    reduced_fee: Decimal
    standard_fee: Decimal


# ============================================================================
# Hierarchy schemas
# ============================================================================


class SlotUpdate(RequestBase):
    """Schema for writing one hierarchy slot."""

    slot: str = Field(min_length=1)
    target_agent_id: str | None = None
    actor_id: str | None = None


class ChainUpdate(RequestBase):
    """Schema for writing several hierarchy slots at once."""

    slots: dict[str, str | None]
    actor_id: str | None = None


class HierarchyResponse(BaseModel):
    """Schema for an agent's sponsor chain."""

    agent_id: str
    slots: dict[str, str | None]
    chain_unlocked: bool
    unlocked_at: datetime | None = None
    latest_status: str | None = None
    editable_slots: list[str]

    @classmethod
    def from_view(cls, view: HierarchyView) -> "HierarchyResponse":
        return cls(
            agent_id=view.agent_id,
            slots={slot.value: target for slot, target in view.slots.items()},
            chain_unlocked=view.chain_unlocked,
            unlocked_at=view.unlocked_at,
            latest_status=view.latest_status,
            editable_slots=[slot.value for slot in view.editable_slots],
        )


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
