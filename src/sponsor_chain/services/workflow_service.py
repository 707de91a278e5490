"""Workflow service - orchestrates fee approvals and sponsor-chain edits.

Every write runs as one unit of work for the owning agent:

1. hold the agent's in-process lock
2. open a transaction and take the agent's advisory lock (PostgreSQL)
3. read-modify-write the approval / hierarchy rows
4. commit

Transient store failures are retried around the whole unit with bounded
backoff; workflow errors are never retried.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from typing import TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sponsor_chain.calculators import FeeRuleEngine
from sponsor_chain.database import acquire_agent_xact_lock, with_store_retry
from sponsor_chain.directory import AgentSummary, Directory
from sponsor_chain.errors import NotFound, ValidationError
from sponsor_chain.models import GATED_SLOTS, SLOT_ORDER, AgentApproval, AgentHierarchy, HierarchySlot
from sponsor_chain.services.approval_service import ApprovalDraft, ApprovalFilter, ApprovalService
from sponsor_chain.services.chain_gate import ChainGate, GateResult
from sponsor_chain.services.hierarchy_service import HierarchyService, check_not_self
from sponsor_chain.services.locking_service import AgentLockManager
from sponsor_chain.services.state_machine import ApprovalStateMachine, ApprovalStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Directory lookups allowed in flight while decorating a listing
SUMMARY_CONCURRENCY = 8


def parse_slot(value: HierarchySlot | str) -> HierarchySlot:
    """Accept a slot enum or its name in any case."""
    if isinstance(value, HierarchySlot):
        return value
    try:
        return HierarchySlot(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Unknown hierarchy slot '{value}'",
            field="slot",
            allowed=",".join(s.value for s in SLOT_ORDER),
        ) from None


@dataclass(frozen=True)
class HierarchyView:
    """Read model of an agent's chain plus its gate state."""

    agent_id: str
    slots: dict[HierarchySlot, str | None]
    chain_unlocked: bool
    unlocked_at: datetime | None
    latest_status: str | None

    @property
    def editable_slots(self) -> list[HierarchySlot]:
        if self.chain_unlocked:
            return list(SLOT_ORDER)
        return [HierarchySlot.INTRODUCER]

    def get(self, slot: HierarchySlot | str) -> str | None:
        return self.slots[parse_slot(slot)]


@dataclass(frozen=True)
class ApprovalListItem:
    approval: AgentApproval
    agent: AgentSummary | None


@dataclass(frozen=True)
class ApprovalPage:
    items: list[ApprovalListItem]
    total: int
    page: int
    page_size: int


class WorkflowService:
    """Public operations of the sponsor-chain subsystem.

    Operations:
    - submit / revise: create or edit a pending fee approval
    - approve / mark_paid / reject: explicit state transitions
    - get_hierarchy / set_slot / update_chain: gated chain edits
    - list_approvals / list_pending_approvals: display queries

    Holds no state of its own beyond the lock registry.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        directory: Directory,
        fee_engine: FeeRuleEngine,
        locks: AgentLockManager | None = None,
        retry_attempts: int | None = None,
        retry_base_delay: float | None = None,
        summary_concurrency: int = SUMMARY_CONCURRENCY,
    ):
        self.session_factory = session_factory
        self.directory = directory
        self.fee_engine = fee_engine
        self.locks = locks or AgentLockManager()
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay
        self.summary_concurrency = max(1, summary_concurrency)

    # ------------------------------------------------------------------
    # Approval workflow
    # ------------------------------------------------------------------

    async def submit(
        self,
        agent_id: str,
        purpose: str,
        branch_id: str,
        account_id: str,
        joining_level: str | None = None,
        promotion_level: str | None = None,
        billing_category_id: str | None = None,
        notes: str | None = None,
        strict_purpose: bool = False,
    ) -> AgentApproval:
        """Create a pending fee approval. Not idempotent: each call inserts."""
        draft = ApprovalDraft(
            agent_id=agent_id,
            purpose=purpose,
            branch_id=branch_id,
            account_id=account_id,
            joining_level=joining_level,
            promotion_level=promotion_level,
            billing_category_id=billing_category_id,
            notes=notes,
        )
        await self._validate_references(draft)

        async def op(session: AsyncSession) -> AgentApproval:
            return await self._approvals(session).create(draft, strict_purpose=strict_purpose)

        return await self._run(agent_id, op)

    async def revise(
        self,
        approval_id: UUID,
        purpose: str,
        branch_id: str,
        account_id: str,
        joining_level: str | None = None,
        promotion_level: str | None = None,
        billing_category_id: str | None = None,
        notes: str | None = None,
        strict_purpose: bool = False,
    ) -> AgentApproval:
        """Edit a pending approval; the amount is recomputed."""
        agent_id = await self._agent_of(approval_id)
        draft = ApprovalDraft(
            agent_id=agent_id,
            purpose=purpose,
            branch_id=branch_id,
            account_id=account_id,
            joining_level=joining_level,
            promotion_level=promotion_level,
            billing_category_id=billing_category_id,
            notes=notes,
        )
        await self._validate_references(draft)

        async def op(session: AsyncSession) -> AgentApproval:
            service = self._approvals(session)
            approval = await service.require(approval_id, for_update=True)
            return await service.revise(approval, draft, strict_purpose=strict_purpose)

        return await self._run(agent_id, op)

    async def approve(self, approval_id: UUID, approver_id: str) -> AgentApproval:
        """pending → approved, recording the approver."""
        if not approver_id or not str(approver_id).strip():
            raise ValidationError("approver_id is required", field="approver_id")
        approver_id = str(approver_id).strip()
        if not await self.directory.agents.exists(approver_id):
            raise NotFound("agent", approver_id)

        agent_id = await self._agent_of(approval_id)

        async def op(session: AsyncSession) -> AgentApproval:
            service = self._approvals(session)
            approval = await service.require(approval_id, for_update=True)
            return await service.transition(approval, ApprovalStatus.APPROVED, actor_id=approver_id)

        return await self._run(agent_id, op)

    async def mark_paid(self, approval_id: UUID, actor_id: str | None = None) -> AgentApproval:
        """approved → paid. The only transition that opens the chain gate."""
        agent_id = await self._agent_of(approval_id)

        async def op(session: AsyncSession) -> AgentApproval:
            service = self._approvals(session)
            approval = await service.require(approval_id, for_update=True)
            approval = await service.transition(approval, ApprovalStatus.PAID, actor_id=actor_id)

            if ApprovalStateMachine.opens_gate(approval.status):
                hierarchies = HierarchyService(session)
                hierarchy = await hierarchies.get_or_create(agent_id, for_update=True)
                await hierarchies.mark_unlocked(hierarchy, at=approval.paid_at)
            return approval

        return await self._run(agent_id, op)

    async def reject(
        self,
        approval_id: UUID,
        reason: str,
        actor_id: str | None = None,
    ) -> AgentApproval:
        """pending → rejected. Never re-locks an already opened chain."""
        agent_id = await self._agent_of(approval_id)

        async def op(session: AsyncSession) -> AgentApproval:
            service = self._approvals(session)
            approval = await service.require(approval_id, for_update=True)
            return await service.transition(
                approval, ApprovalStatus.REJECTED, actor_id=actor_id, reason=reason
            )

        return await self._run(agent_id, op)

    async def get_approval(self, approval_id: UUID) -> AgentApproval:
        async with self.session_factory() as session:
            return await self._approvals(session).require(approval_id)

    async def list_approvals(self, approval_filter: ApprovalFilter) -> ApprovalPage:
        """Filtered, paginated approvals with agent display data.

        Free-text ``search`` matches agent name/code, request id, purpose,
        status and amount. Name and code live in the directory, so the
        distinct candidate agents are looked up first and the matching ids
        are handed to the store query, which pages in SQL.
        """
        async with self.session_factory() as session:
            service = self._approvals(session)
            summaries: dict[str, AgentSummary | None] = {}
            matching: list[str] = []
            if approval_filter.search:
                summaries = await self._summaries(await service.agent_ids(approval_filter))
                needle = approval_filter.search.strip().lower()
                matching = [
                    agent_id
                    for agent_id, summary in summaries.items()
                    if summary is not None and _agent_matches(summary, needle)
                ]
            rows, total = await service.query(approval_filter, matching_agent_ids=matching)

        items = await self._with_summaries(rows, summaries)
        return ApprovalPage(items, total, approval_filter.page, approval_filter.page_size)

    async def list_pending_approvals(
        self,
        approval_filter: ApprovalFilter | None = None,
    ) -> ApprovalPage:
        """Approvals waiting for a decision."""
        approval_filter = approval_filter or ApprovalFilter()
        return await self.list_approvals(
            replace(approval_filter, status=ApprovalStatus.PENDING.value)
        )

    # ------------------------------------------------------------------
    # Hierarchy
    # ------------------------------------------------------------------

    async def get_hierarchy(self, agent_id: str) -> HierarchyView:
        """Read an agent's chain. Always allowed."""
        await self._require_agent(agent_id)

        async def op(session: AsyncSession) -> HierarchyView:
            hierarchy = await HierarchyService(session).get_or_create(agent_id)
            gate = await ChainGate(session).evaluate(agent_id, hierarchy)
            return _view(hierarchy, gate)

        return await self._run(agent_id, op)

    async def set_slot(
        self,
        agent_id: str,
        slot: HierarchySlot | str,
        target_agent_id: str | None,
        actor_id: str | None = None,
    ) -> HierarchyView:
        """Write one slot of an agent's chain.

        Introducer is always writable; cadre slots need the gate open.
        Self-sponsorship is rejected before the gate is consulted, duplicate
        targets after it.
        """
        slot = parse_slot(slot)
        target_agent_id = _blank_to_none(target_agent_id)
        await self._require_agent(agent_id)
        check_not_self(agent_id, slot, target_agent_id)

        async def op(session: AsyncSession) -> HierarchyView:
            hierarchies = HierarchyService(session)
            hierarchy = await hierarchies.get_or_create(agent_id, for_update=True)
            gate = await ChainGate(session).check(agent_id, slot, hierarchy)
            if target_agent_id is not None:
                await self._require_agent(target_agent_id)
            await hierarchies.assign(hierarchy, slot, target_agent_id, actor_id=actor_id)
            return _view(hierarchy, gate)

        return await self._run(agent_id, op)

    async def update_chain(
        self,
        agent_id: str,
        changes: Mapping[HierarchySlot | str, str | None],
        actor_id: str | None = None,
    ) -> HierarchyView:
        """Write several slots at once, atomically.

        Cadre slots whose value does not change are not gated, so a form
        resubmitting the whole chain works before payment as long as only
        the introducer differs.
        """
        parsed: dict[HierarchySlot, str | None] = {}
        for raw_slot, target in changes.items():
            slot = parse_slot(raw_slot)
            if slot in parsed:
                raise ValidationError(
                    f"Slot '{slot.value}' is given more than once",
                    field="slots",
                    slot=slot.value,
                )
            parsed[slot] = _blank_to_none(target)

        await self._require_agent(agent_id)
        for slot, target in parsed.items():
            check_not_self(agent_id, slot, target)

        targets = {t for t in parsed.values() if t is not None}
        for target in targets:
            await self._require_agent(target)

        async def op(session: AsyncSession) -> HierarchyView:
            hierarchies = HierarchyService(session)
            hierarchy = await hierarchies.get_or_create(agent_id, for_update=True)
            gate_service = ChainGate(session)
            gate = await gate_service.evaluate(agent_id, hierarchy)
            for slot in GATED_SLOTS:
                if slot in parsed and parsed[slot] != hierarchy.get_slot(slot):
                    gate = await gate_service.check(agent_id, slot, hierarchy)
            await hierarchies.assign_many(hierarchy, parsed, actor_id=actor_id)
            return _view(hierarchy, gate)

        return await self._run(agent_id, op)

    async def gate_status(self, agent_id: str) -> GateResult:
        await self._require_agent(agent_id)
        async with self.session_factory() as session:
            hierarchy = await HierarchyService(session).get(agent_id)
            return await ChainGate(session).evaluate(agent_id, hierarchy)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _approvals(self, session: AsyncSession) -> ApprovalService:
        return ApprovalService(session, self.fee_engine)

    async def _run(self, agent_id: str, op: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run ``op`` as one serialized, retried unit of work for the agent."""

        async def attempt() -> T:
            async with self.locks.hold(agent_id):
                async with self.session_factory() as session:
                    async with session.begin():
                        await acquire_agent_xact_lock(session, agent_id)
                        return await op(session)

        return await with_store_retry(
            attempt,
            attempts=self.retry_attempts,
            base_delay=self.retry_base_delay,
        )

    async def _agent_of(self, approval_id: UUID) -> str:
        async with self.session_factory() as session:
            approval = await self._approvals(session).require(approval_id)
            return approval.agent_id

    async def _require_agent(self, agent_id: str) -> None:
        if not await self.directory.agents.exists(agent_id):
            raise NotFound("agent", agent_id)

    async def _validate_references(self, draft: ApprovalDraft) -> None:
        """Check every external id the request points at."""
        await self._require_agent(draft.agent_id)
        if not await self.directory.branches.exists(draft.branch_id):
            raise NotFound("branch", draft.branch_id)
        if not await self.directory.accounts.exists(draft.account_id):
            raise NotFound("account", draft.account_id)

        category_id = _blank_to_none(draft.billing_category_id)
        if category_id is None:
            return
        category = await self.directory.billing_categories.get(category_id)
        if category is None:
            raise NotFound("billing_category", category_id)
        purpose = (draft.purpose or "").strip()
        if category.purposes and purpose not in category.purposes:
            raise ValidationError(
                f"Purpose '{purpose}' is not offered by billing category '{category.name}'",
                field="purpose",
                allowed=",".join(category.purposes),
            )

    async def _summaries(self, agent_ids: Iterable[str]) -> dict[str, AgentSummary | None]:
        """Directory summaries, at most ``summary_concurrency`` lookups in flight."""
        limit = asyncio.Semaphore(self.summary_concurrency)

        async def lookup(agent_id: str) -> AgentSummary | None:
            async with limit:
                return await self.directory.agents.summary(agent_id)

        ids = sorted(set(agent_ids))
        results = await asyncio.gather(*(lookup(agent_id) for agent_id in ids))
        return dict(zip(ids, results))

    async def _with_summaries(
        self,
        rows: list[AgentApproval],
        known: Mapping[str, AgentSummary | None] | None = None,
    ) -> list[ApprovalListItem]:
        known = known or {}
        missing = {row.agent_id for row in rows if row.agent_id not in known}
        by_id = {**known, **await self._summaries(missing)}
        return [ApprovalListItem(row, by_id.get(row.agent_id)) for row in rows]


def _view(hierarchy: AgentHierarchy, gate: GateResult) -> HierarchyView:
    return HierarchyView(
        agent_id=hierarchy.agent_id,
        slots=hierarchy.slots(),
        chain_unlocked=gate.is_open or hierarchy.registration_fee_paid,
        unlocked_at=hierarchy.unlocked_at or gate.unlocked_at,
        latest_status=gate.latest_status,
    )


def _agent_matches(agent: AgentSummary, needle: str) -> bool:
    return any(needle in value.lower() for value in (agent.display_name, agent.code) if value)


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None
