"""Audit event recording."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sponsor_chain.models import AuditEvent


async def record_audit(
    session: AsyncSession,
    *,
    entity_type: str,
    entity_id: Any,
    agent_id: str,
    action: str,
    actor_id: str | None = None,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
) -> AuditEvent:
    """Append an audit event to the current transaction."""
    event = AuditEvent(
        entity_type=entity_type,
        entity_id=str(entity_id),
        agent_id=agent_id,
        action=action,
        actor_id=actor_id,
        before_json=before,
        after_json=after,
    )
    session.add(event)
    return event


async def list_audit_events(session: AsyncSession, agent_id: str) -> list[AuditEvent]:
    """All audit events for an agent, oldest first."""
    result = await session.execute(
        select(AuditEvent)
        .where(AuditEvent.agent_id == agent_id)
        .order_by(AuditEvent.created_at, AuditEvent.audit_event_id)
    )
    return list(result.scalars().all())
