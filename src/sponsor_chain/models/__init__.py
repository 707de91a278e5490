"""ORM models."""

from sponsor_chain.models.approval import AgentApproval
from sponsor_chain.models.audit import AuditEvent
from sponsor_chain.models.base import Base, TimestampMixin
from sponsor_chain.models.hierarchy import (
    GATED_SLOTS,
    SLOT_ORDER,
    AgentHierarchy,
    HierarchySlot,
)

__all__ = [
    "AgentApproval",
    "AgentHierarchy",
    "AuditEvent",
    "Base",
    "GATED_SLOTS",
    "HierarchySlot",
    "SLOT_ORDER",
    "TimestampMixin",
]
