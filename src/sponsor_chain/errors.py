"""Typed errors raised by the sponsor chain workflow.

Every error carries a machine-readable ``code`` and a ``context`` dict so the
API layer can render it without parsing messages.

    ChainError (base)
    +-- ValidationError         malformed input
    +-- NotFound                agent/branch/account/category/request missing
    +-- InvalidStateTransition  approval transition from a non-source state
    +-- ChainLocked             non-introducer slot written before payment
    +-- InvalidReference        self-sponsorship or duplicate slot target
    +-- DirectoryUnavailable    back-office directory unreachable or failing
"""

from __future__ import annotations

from typing import Any


class ChainError(Exception):
    """Base class for all caller-facing workflow errors."""

    code: str = "CHAIN_ERROR"

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Render as an error payload."""
        return {
            "detail": self.message,
            "code": self.code,
            "context": {k: _jsonable(v) for k, v in self.context.items()},
        }


class ValidationError(ChainError):
    """Input is malformed or inconsistent with the fee rules."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, **context: Any):
        self.field = field
        if field is not None:
            context["field"] = field
        super().__init__(message, **context)


class NotFound(ChainError):
    """A referenced entity does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"{entity_type} '{entity_id}' not found",
            entity_type=entity_type,
            entity_id=entity_id,
        )


class InvalidStateTransition(ChainError):
    """Raised when an invalid approval state transition is attempted."""

    code = "INVALID_STATE_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, from_status=from_status, to_status=to_status)


class ChainLocked(ChainError):
    """A cadre slot was written before the agent's fee was paid."""

    code = "CHAIN_LOCKED"

    def __init__(self, agent_id: str, slot: str, latest_status: str | None = None):
        self.agent_id = agent_id
        self.slot = slot
        self.latest_status = latest_status
        super().__init__(
            f"Hierarchy of agent '{agent_id}' is locked: slot '{slot}' "
            "is editable only after a fee approval is paid",
            agent_id=agent_id,
            slot=slot,
            latest_status=latest_status,
        )


class InvalidReference(ChainError):
    """A slot target violates the distinct-sponsor rule."""

    code = "INVALID_REFERENCE"

    def __init__(
        self,
        agent_id: str,
        slot: str,
        target_agent_id: str,
        reason: str,
        conflicting_slot: str | None = None,
    ):
        self.agent_id = agent_id
        self.slot = slot
        self.target_agent_id = target_agent_id
        self.reason = reason
        self.conflicting_slot = conflicting_slot
        super().__init__(
            f"Cannot set slot '{slot}' of agent '{agent_id}' to "
            f"'{target_agent_id}': {reason}",
            agent_id=agent_id,
            slot=slot,
            target_agent_id=target_agent_id,
            conflicting_slot=conflicting_slot,
        )


class DirectoryUnavailable(ChainError):
    """The agent directory could not answer a lookup."""

    code = "DIRECTORY_UNAVAILABLE"

    def __init__(self, resource: str, entity_id: Any, reason: str):
        self.resource = resource
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Directory lookup of {resource} '{entity_id}' failed: {reason}",
            resource=resource,
            entity_id=entity_id,
        )


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)
