"""Chain gate: decides whether an agent's cadre slots may be written.

The gate opens the first time any fee approval of the agent reaches
``paid`` and stays open from then on. Later rejections or new pending
requests never re-lock it. The hierarchy row persists the opening as
``registration_fee_paid``; the approval table is consulted as a fallback
for agents whose hierarchy row predates the flag.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sponsor_chain.errors import ChainLocked
from sponsor_chain.models import AgentApproval, AgentHierarchy, HierarchySlot
from sponsor_chain.services.state_machine import ApprovalStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateResult:
    """Result of a chain gate evaluation."""

    outcome: str  # open, locked
    agent_id: str
    latest_status: str | None = None
    unlocked_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.outcome == "open"


class ChainGate:
    """Evaluates the payment gate for hierarchy writes."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def evaluate(
        self,
        agent_id: str,
        hierarchy: AgentHierarchy | None = None,
    ) -> GateResult:
        """Evaluate the gate for an agent without raising."""
        latest_status = await self._latest_status(agent_id)

        if hierarchy is not None and hierarchy.registration_fee_paid:
            return GateResult("open", agent_id, latest_status, hierarchy.unlocked_at)

        paid = await self._first_paid(agent_id)
        if paid is not None:
            return GateResult("open", agent_id, latest_status, paid.paid_at)

        return GateResult("locked", agent_id, latest_status)

    async def check(
        self,
        agent_id: str,
        slot: HierarchySlot,
        hierarchy: AgentHierarchy | None = None,
    ) -> GateResult:
        """Raise ChainLocked if ``slot`` may not be written yet."""
        result = await self.evaluate(agent_id, hierarchy)
        if slot.is_gated and not result.is_open:
            logger.warning(
                "Chain locked for agent %s: slot %s rejected (latest approval: %s)",
                agent_id,
                slot.value,
                result.latest_status or "none",
            )
            raise ChainLocked(agent_id, slot.value, result.latest_status)
        return result

    async def _latest_status(self, agent_id: str) -> str | None:
        result = await self.session.execute(
            select(AgentApproval.status)
            .where(AgentApproval.agent_id == agent_id)
            .order_by(AgentApproval.created_at.desc(), AgentApproval.approval_id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _first_paid(self, agent_id: str) -> AgentApproval | None:
        result = await self.session.execute(
            select(AgentApproval)
            .where(
                AgentApproval.agent_id == agent_id,
                AgentApproval.status == ApprovalStatus.PAID.value,
            )
            .order_by(AgentApproval.paid_at, AgentApproval.approval_id)
            .limit(1)
        )
        return result.scalar_one_or_none()
