"""Audit trail helper shared by the services."""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from equity_engine.models import AuditEvent


def record_audit(
    session: AsyncSession,
    entity_type: str,
    entity_id: Any,
    action: str,
    actor_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> AuditEvent:
    """Stage an audit row in the caller's unit of work."""
    event = AuditEvent(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor_id=actor_id,
        details_json=details,
    )
    session.add(event)
    return event
