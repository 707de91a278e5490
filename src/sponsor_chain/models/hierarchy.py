"""Sponsor hierarchy model."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from sponsor_chain.models.base import Base, TimestampMixin


class HierarchySlot(str, Enum):
    """The nine sponsor positions, introducer first then by cadre."""

    INTRODUCER = "introducer"
    PM = "pm"
    SPM = "spm"
    DO = "do"
    SDO = "sdo"
    MD = "md"
    SMD = "smd"
    RMD = "rmd"
    CMD = "cmd"

    @property
    def is_gated(self) -> bool:
        """Whether writes to this slot wait for the fee to be paid."""
        return self is not HierarchySlot.INTRODUCER

    @property
    def cadre_code(self) -> str | None:
        """Cadre code this slot names, None for the introducer."""
        return None if self is HierarchySlot.INTRODUCER else self.value.upper()


SLOT_ORDER: tuple[HierarchySlot, ...] = tuple(HierarchySlot)
GATED_SLOTS: tuple[HierarchySlot, ...] = tuple(s for s in HierarchySlot if s.is_gated)


class AgentHierarchy(Base, TimestampMixin):
    """Sponsor chain of one agent: introducer plus eight cadre slots."""

    __tablename__ = "agent_hierarchy"

    agent_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    introducer: Mapped[str | None] = mapped_column(String(64), nullable=True)
    pm: Mapped[str | None] = mapped_column(String(64), nullable=True)
    spm: Mapped[str | None] = mapped_column(String(64), nullable=True)
    do: Mapped[str | None] = mapped_column(String(64), nullable=True)
    sdo: Mapped[str | None] = mapped_column(String(64), nullable=True)
    md: Mapped[str | None] = mapped_column(String(64), nullable=True)
    smd: Mapped[str | None] = mapped_column(String(64), nullable=True)
    rmd: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cmd: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Sticky gate: set on the first paid approval, never cleared
    registration_fee_paid: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    unlocked_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def get_slot(self, slot: HierarchySlot) -> str | None:
        return getattr(self, slot.value)

    def assign(self, slot: HierarchySlot, target_agent_id: str | None) -> None:
        setattr(self, slot.value, target_agent_id)

    def slots(self) -> dict[HierarchySlot, str | None]:
        """All slots in display order."""
        return {slot: self.get_slot(slot) for slot in SLOT_ORDER}

    def find_slot_of(self, target_agent_id: str) -> HierarchySlot | None:
        """Slot currently holding the given agent, if any."""
        for slot in SLOT_ORDER:
            if self.get_slot(slot) == target_agent_id:
                return slot
        return None
