"""Sponsor hierarchy records and the distinct-sponsor rule."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sponsor_chain.errors import InvalidReference
from sponsor_chain.models import SLOT_ORDER, AgentHierarchy, HierarchySlot
from sponsor_chain.models.base import utcnow
from sponsor_chain.services.audit import record_audit

logger = logging.getLogger(__name__)


def check_not_self(agent_id: str, slot: HierarchySlot, target_agent_id: str | None) -> None:
    """An agent may not sponsor itself."""
    if target_agent_id is not None and target_agent_id == agent_id:
        raise InvalidReference(
            agent_id, slot.value, target_agent_id, "an agent cannot sponsor itself"
        )


def check_assignment(
    slots: Mapping[HierarchySlot, str | None],
    agent_id: str,
    slot: HierarchySlot,
    target_agent_id: str | None,
) -> None:
    """Validate putting ``target_agent_id`` into ``slot``.

    The target must not be the owner and must not already occupy a
    different slot. Re-assigning the same value to the same slot is fine;
    clearing a slot (None) always passes.
    """
    if target_agent_id is None:
        return
    check_not_self(agent_id, slot, target_agent_id)
    for other, holder in slots.items():
        if other is not slot and holder == target_agent_id:
            raise InvalidReference(
                agent_id,
                slot.value,
                target_agent_id,
                f"already assigned to slot '{other.value}'",
                conflicting_slot=other.value,
            )


def check_chain(agent_id: str, slots: Mapping[HierarchySlot, str | None]) -> None:
    """Validate a complete chain: no self-reference, no repeated sponsor."""
    seen: dict[str, HierarchySlot] = {}
    for slot in SLOT_ORDER:
        target = slots.get(slot)
        if target is None:
            continue
        check_not_self(agent_id, slot, target)
        if target in seen:
            raise InvalidReference(
                agent_id,
                slot.value,
                target,
                f"already assigned to slot '{seen[target].value}'",
                conflicting_slot=seen[target].value,
            )
        seen[target] = slot


class HierarchyService:
    """Store-level operations on hierarchy records.

    Gate checks are the caller's job (see ChainGate); this service only
    enforces the distinct-sponsor rule and persists. Does not commit.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, agent_id: str, for_update: bool = False) -> AgentHierarchy | None:
        query = select(AgentHierarchy).where(AgentHierarchy.agent_id == agent_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_or_create(self, agent_id: str, for_update: bool = False) -> AgentHierarchy:
        """Load the agent's hierarchy, creating an empty one if missing."""
        hierarchy = await self.get(agent_id, for_update=for_update)
        if hierarchy is None:
            hierarchy = AgentHierarchy(agent_id=agent_id, registration_fee_paid=False)
            self.session.add(hierarchy)
            await self.session.flush()
            logger.debug("Created empty hierarchy for agent %s", agent_id)
        return hierarchy

    async def assign(
        self,
        hierarchy: AgentHierarchy,
        slot: HierarchySlot,
        target_agent_id: str | None,
        actor_id: str | None = None,
    ) -> AgentHierarchy:
        """Set one slot after checking the distinct-sponsor rule."""
        check_assignment(hierarchy.slots(), hierarchy.agent_id, slot, target_agent_id)

        before = hierarchy.get_slot(slot)
        hierarchy.assign(slot, target_agent_id)
        hierarchy.updated_at = utcnow()
        await self.session.flush()

        await record_audit(
            self.session,
            entity_type="hierarchy",
            entity_id=hierarchy.agent_id,
            agent_id=hierarchy.agent_id,
            action=f"slot_set:{slot.value}",
            actor_id=actor_id,
            before={slot.value: before},
            after={slot.value: target_agent_id},
        )
        logger.info(
            "Hierarchy of agent %s: %s %s -> %s",
            hierarchy.agent_id,
            slot.value,
            before,
            target_agent_id,
        )
        return hierarchy

    async def assign_many(
        self,
        hierarchy: AgentHierarchy,
        changes: Mapping[HierarchySlot, str | None],
        actor_id: str | None = None,
    ) -> AgentHierarchy:
        """Apply several slot changes at once; all or nothing."""
        proposed = hierarchy.slots()
        proposed.update(changes)
        check_chain(hierarchy.agent_id, proposed)

        before: dict[str, Any] = {}
        after: dict[str, Any] = {}
        for slot, target in changes.items():
            if hierarchy.get_slot(slot) == target:
                continue
            before[slot.value] = hierarchy.get_slot(slot)
            after[slot.value] = target
            hierarchy.assign(slot, target)

        if not after:
            return hierarchy

        hierarchy.updated_at = utcnow()
        await self.session.flush()
        await record_audit(
            self.session,
            entity_type="hierarchy",
            entity_id=hierarchy.agent_id,
            agent_id=hierarchy.agent_id,
            action="chain_updated",
            actor_id=actor_id,
            before=before,
            after=after,
        )
        logger.info(
            "Hierarchy of agent %s updated: %s", hierarchy.agent_id, sorted(after)
        )
        return hierarchy

    async def mark_unlocked(
        self,
        hierarchy: AgentHierarchy,
        at: datetime | None = None,
    ) -> bool:
        """Open the gate on this record. Returns False if it already was."""
        if hierarchy.registration_fee_paid:
            return False
        hierarchy.registration_fee_paid = True
        hierarchy.unlocked_at = at or utcnow()
        hierarchy.updated_at = utcnow()
        await self.session.flush()

        await record_audit(
            self.session,
            entity_type="hierarchy",
            entity_id=hierarchy.agent_id,
            agent_id=hierarchy.agent_id,
            action="chain_unlocked",
        )
        logger.info("Hierarchy of agent %s unlocked", hierarchy.agent_id)
        return True
