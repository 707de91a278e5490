"""Sponsor chain services."""

from sponsor_chain.services.approval_service import ApprovalDraft, ApprovalFilter, ApprovalService
from sponsor_chain.services.chain_gate import ChainGate, GateResult
from sponsor_chain.services.hierarchy_service import HierarchyService
from sponsor_chain.services.locking_service import AgentLockManager
from sponsor_chain.services.state_machine import ApprovalStateMachine, ApprovalStatus
from sponsor_chain.services.workflow_service import (
    ApprovalListItem,
    ApprovalPage,
    HierarchyView,
    WorkflowService,
)

__all__ = [
    "AgentLockManager",
    "ApprovalDraft",
    "ApprovalFilter",
    "ApprovalListItem",
    "ApprovalPage",
    "ApprovalService",
    "ApprovalStateMachine",
    "ApprovalStatus",
    "ChainGate",
    "GateResult",
    "HierarchyService",
    "HierarchyView",
    "WorkflowService",
]
