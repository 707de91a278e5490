"""Approval request state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from sponsor_chain.errors import InvalidStateTransition


class ApprovalStatus(str, Enum):
    """Approval request status values."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


class ApprovalStateMachine:
    """State machine for fee approval status transitions.

    Allowed transitions:
    - pending → approved
    - pending → rejected
    - approved → paid
    """

    # Define valid transitions: {from_status: [allowed_to_statuses]}
    VALID_TRANSITIONS: dict[str, list[str]] = {
        ApprovalStatus.PENDING: [ApprovalStatus.APPROVED, ApprovalStatus.REJECTED],
        ApprovalStatus.APPROVED: [ApprovalStatus.PAID],
        ApprovalStatus.REJECTED: [],  # Terminal state
        ApprovalStatus.PAID: [],  # Terminal state
    }

    # Statuses where purpose/level/branch/account may still be revised
    REVISABLE = {ApprovalStatus.PENDING}

    TERMINAL = {ApprovalStatus.REJECTED, ApprovalStatus.PAID}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidStateTransition if invalid."""
        if not cls.can_transition(from_status, to_status):
            reason = None
            if from_status in cls.TERMINAL:
                reason = f"'{from_status}' is terminal"
            raise InvalidStateTransition(_value(from_status), _value(to_status), reason)

    @classmethod
    def can_revise(cls, status: str) -> bool:
        """Check if the request fields can still be edited."""
        return status in cls.REVISABLE

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in cls.TERMINAL

    @classmethod
    def opens_gate(cls, to_status: str) -> bool:
        """Only reaching 'paid' unlocks the sponsor chain."""
        return to_status == ApprovalStatus.PAID

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])


def _value(status: str) -> str:
    return status.value if isinstance(status, ApprovalStatus) else str(status)
