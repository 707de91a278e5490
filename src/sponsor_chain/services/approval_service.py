"""Fee approval records: creation, revision, transitions and queries."""

from __future__ import annotations

import logging
from collections.abc import Collection
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import ColumnElement, String, cast, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from sponsor_chain.calculators import FeePurpose, FeeRuleEngine
from sponsor_chain.errors import InvalidStateTransition, NotFound, ValidationError
from sponsor_chain.models import AgentApproval
from sponsor_chain.models.base import utcnow
from sponsor_chain.services.audit import record_audit
from sponsor_chain.services.state_machine import ApprovalStateMachine, ApprovalStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApprovalDraft:
    """Caller-editable fields of an approval request.

    Amount is not a field: it is always computed from purpose and level.
    """

    agent_id: str
    purpose: str
    branch_id: str
    account_id: str
    joining_level: str | None = None
    promotion_level: str | None = None
    billing_category_id: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ApprovalFilter:
    """Listing filter for approval requests."""

    status: str | None = None
    agent_id: str | None = None
    purpose: str | None = None
    branch_id: str | None = None
    search: str | None = None
    page: int = 1
    page_size: int = 20

    def __post_init__(self) -> None:
        """Validate paging and status."""
        if self.page < 1:
            raise ValidationError("page must be at least 1", field="page")
        if not 1 <= self.page_size <= 200:
            raise ValidationError("page_size must be between 1 and 200", field="page_size")
        if self.status is not None and self.status not in {s.value for s in ApprovalStatus}:
            raise ValidationError(f"Unknown status '{self.status}'", field="status")


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class ApprovalService:
    """Store-level operations on approval requests.

    Operations:
    - create: validate levels, compute amount, insert as pending
    - revise: edit a pending request, recomputing the amount
    - transition: move through the state machine, stamping audit fields
    - query: filtered, paginated listing

    Does not commit; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession, fee_engine: FeeRuleEngine):
        self.session = session
        self.fee_engine = fee_engine

    async def require(self, approval_id: UUID, for_update: bool = False) -> AgentApproval:
        """Load an approval or raise NotFound."""
        query = select(AgentApproval).where(AgentApproval.approval_id == approval_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        approval = result.scalar_one_or_none()
        if approval is None:
            raise NotFound("approval_request", approval_id)
        return approval

    def normalize_levels(
        self,
        purpose: str,
        joining_level: str | None,
        promotion_level: str | None,
    ) -> tuple[str | None, str | None]:
        """Check the level fields against the purpose.

        Joining Fee needs a joining level, Promotion Fee a promotion level,
        and any other purpose neither. Levels must be catalog codes.
        """
        joining_level = _blank_to_none(joining_level)
        promotion_level = _blank_to_none(promotion_level)
        kind = FeePurpose.parse(purpose)
        catalog = self.fee_engine.catalog

        if kind is FeePurpose.JOINING_FEE:
            if joining_level is None:
                raise ValidationError("Joining Fee requires a joining level", field="joining_level")
            if promotion_level is not None:
                raise ValidationError(
                    "promotion_level must be empty for a Joining Fee",
                    field="promotion_level",
                )
            if not catalog.is_valid(joining_level):
                raise ValidationError(
                    f"Unknown cadre '{joining_level}'",
                    field="joining_level",
                    allowed=",".join(catalog.codes()),
                )
        elif kind is FeePurpose.PROMOTION_FEE:
            if promotion_level is None:
                raise ValidationError(
                    "Promotion Fee requires a promotion level", field="promotion_level"
                )
            if joining_level is not None:
                raise ValidationError(
                    "joining_level must be empty for a Promotion Fee",
                    field="joining_level",
                )
            if not catalog.is_valid(promotion_level):
                raise ValidationError(
                    f"Unknown cadre '{promotion_level}'",
                    field="promotion_level",
                    allowed=",".join(catalog.codes()),
                )
        elif joining_level is not None or promotion_level is not None:
            raise ValidationError(
                f"Levels are only allowed for Joining Fee or Promotion Fee, not '{purpose}'",
                field="joining_level" if joining_level is not None else "promotion_level",
            )

        return joining_level, promotion_level

    async def create(self, draft: ApprovalDraft, strict_purpose: bool = False) -> AgentApproval:
        """Insert a new pending request with a computed amount."""
        purpose = _require_text(draft.purpose, "purpose")
        joining_level, promotion_level = self.normalize_levels(
            purpose, draft.joining_level, draft.promotion_level
        )
        amount = self.fee_engine.compute_amount(
            purpose, joining_level, promotion_level, strict=strict_purpose
        )

        approval = AgentApproval(
            agent_id=draft.agent_id,
            billing_category_id=_blank_to_none(draft.billing_category_id),
            purpose=purpose,
            joining_level=joining_level,
            promotion_level=promotion_level,
            amount=amount,
            branch_id=draft.branch_id,
            account_id=draft.account_id,
            notes=draft.notes,
            status=ApprovalStatus.PENDING.value,
        )
        self.session.add(approval)
        await self.session.flush()

        await record_audit(
            self.session,
            entity_type="approval_request",
            entity_id=approval.approval_id,
            agent_id=approval.agent_id,
            action="submitted",
            after=snapshot(approval),
        )
        logger.info(
            "Approval %s submitted for agent %s: %s, amount %s",
            approval.approval_id,
            approval.agent_id,
            approval.purpose,
            approval.amount,
        )
        return approval

    async def revise(
        self,
        approval: AgentApproval,
        draft: ApprovalDraft,
        strict_purpose: bool = False,
    ) -> AgentApproval:
        """Edit a pending request; the amount is recomputed."""
        if not ApprovalStateMachine.can_revise(approval.status):
            raise InvalidStateTransition(
                approval.status,
                approval.status,
                "only pending requests can be revised",
            )
        if draft.agent_id != approval.agent_id:
            raise ValidationError(
                "A request cannot be moved to another agent", field="agent_id"
            )

        purpose = _require_text(draft.purpose, "purpose")
        joining_level, promotion_level = self.normalize_levels(
            purpose, draft.joining_level, draft.promotion_level
        )
        amount = self.fee_engine.compute_amount(
            purpose, joining_level, promotion_level, strict=strict_purpose
        )

        before = snapshot(approval)
        approval.purpose = purpose
        approval.joining_level = joining_level
        approval.promotion_level = promotion_level
        approval.amount = amount
        approval.billing_category_id = _blank_to_none(draft.billing_category_id)
        approval.branch_id = draft.branch_id
        approval.account_id = draft.account_id
        approval.notes = draft.notes
        approval.updated_at = utcnow()
        await self.session.flush()

        await record_audit(
            self.session,
            entity_type="approval_request",
            entity_id=approval.approval_id,
            agent_id=approval.agent_id,
            action="revised",
            before=before,
            after=snapshot(approval),
        )
        return approval

    async def transition(
        self,
        approval: AgentApproval,
        to_status: ApprovalStatus,
        actor_id: str | None = None,
        reason: str | None = None,
    ) -> AgentApproval:
        """Move an approval to ``to_status``.

        Handles side effects of transitions:
        - approved: records approver and approved_at
        - paid: records paid_at
        - rejected: requires a reason, records rejected_at

        Raises InvalidStateTransition (record untouched) if not allowed.
        """
        from_status = approval.status
        ApprovalStateMachine.validate_transition(from_status, to_status)

        now = utcnow()
        if to_status == ApprovalStatus.APPROVED:
            if not actor_id:
                raise ValidationError("approve requires an approver", field="approver_id")
            approval.approved_by = actor_id
            approval.approved_at = now

        elif to_status == ApprovalStatus.PAID:
            approval.paid_at = now

        elif to_status == ApprovalStatus.REJECTED:
            reason = _blank_to_none(reason)
            if reason is None:
                raise ValidationError("reject requires a reason", field="reason")
            approval.rejection_reason = reason
            approval.rejected_at = now

        approval.status = to_status.value
        approval.updated_at = now
        await self.session.flush()

        await record_audit(
            self.session,
            entity_type="approval_request",
            entity_id=approval.approval_id,
            agent_id=approval.agent_id,
            action=f"status_change:{from_status}:{to_status.value}",
            actor_id=actor_id,
            after={"reason": reason} if reason else None,
        )
        logger.info(
            "Approval %s of agent %s: %s -> %s",
            approval.approval_id,
            approval.agent_id,
            from_status,
            to_status.value,
        )
        return approval

    async def agent_ids(self, approval_filter: ApprovalFilter) -> list[str]:
        """Distinct agents among the structurally filtered approvals."""
        result = await self.session.execute(
            select(AgentApproval.agent_id)
            .where(*_structured_conditions(approval_filter))
            .distinct()
            .order_by(AgentApproval.agent_id)
        )
        return list(result.scalars().all())

    async def query(
        self,
        approval_filter: ApprovalFilter,
        matching_agent_ids: Collection[str] = (),
    ) -> tuple[list[AgentApproval], int]:
        """Filtered page of approvals, newest first.

        ``search`` is matched in the store against request id, agent id,
        purpose, status and amount. Approvals of ``matching_agent_ids``
        (agents whose directory name or code matched) are included too.
        """
        conditions = _structured_conditions(approval_filter)
        if approval_filter.search:
            conditions.append(_search_condition(approval_filter.search, matching_agent_ids))
        query = select(AgentApproval).where(*conditions)

        count_query = select(func.count()).select_from(query.subquery())
        total = await self.session.scalar(count_query) or 0

        offset = (approval_filter.page - 1) * approval_filter.page_size
        query = (
            query.order_by(AgentApproval.created_at.desc(), AgentApproval.approval_id.desc())
            .offset(offset)
            .limit(approval_filter.page_size)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all()), total


def _structured_conditions(approval_filter: ApprovalFilter) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = []
    if approval_filter.status:
        conditions.append(AgentApproval.status == approval_filter.status)
    if approval_filter.agent_id:
        conditions.append(AgentApproval.agent_id == approval_filter.agent_id)
    if approval_filter.purpose:
        conditions.append(AgentApproval.purpose == approval_filter.purpose)
    if approval_filter.branch_id:
        conditions.append(AgentApproval.branch_id == approval_filter.branch_id)
    return conditions


def _search_condition(search: str, matching_agent_ids: Collection[str]) -> ColumnElement[bool]:
    """Case-insensitive substring match over the searchable columns."""
    needle = search.strip().lower()
    escaped = needle.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{escaped}%"
    # UUIDs render with hyphens on PostgreSQL and as bare hex on SQLite
    id_pattern = f"%{escaped.replace('-', '')}%"
    conditions = [
        func.replace(cast(AgentApproval.approval_id, String), "-", "").ilike(
            id_pattern, escape="\\"
        ),
        AgentApproval.agent_id.ilike(pattern, escape="\\"),
        AgentApproval.purpose.ilike(pattern, escape="\\"),
        AgentApproval.status.ilike(pattern, escape="\\"),
        cast(AgentApproval.amount, String).ilike(pattern, escape="\\"),
    ]
    if matching_agent_ids:
        conditions.append(AgentApproval.agent_id.in_(sorted(matching_agent_ids)))
    return or_(*conditions)


def snapshot(approval: AgentApproval) -> dict[str, Any]:
    """Audit-friendly view of an approval."""
    return {
        "purpose": approval.purpose,
        "joining_level": approval.joining_level,
        "promotion_level": approval.promotion_level,
        "amount": str(approval.amount),
        "billing_category_id": approval.billing_category_id,
        "branch_id": approval.branch_id,
        "account_id": approval.account_id,
        "status": approval.status,
    }


def _require_text(value: str | None, field: str) -> str:
    text = _blank_to_none(value)
    if text is None:
        raise ValidationError(f"{field} is required", field=field)
    return text
