"""Audit log writer.

Every mutating operation records who did what to which entity. Writers are
called inside the caller's unit of work, so an audit row commits or rolls
back together with the change it describes.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from tutor_payroll.models import AuditLog

logger = logging.getLogger(__name__)

UNSERIALIZABLE_META = {"note": "meta_unserializable"}


@dataclass(frozen=True)
class AuditContext:
    """Request metadata attached to audit entries."""

    ip: str | None = None
    user_agent: str | None = None
    correlation_id: str = field(default_factory=lambda: str(uuid4()))


@dataclass(frozen=True)
class AuditEntry:
    """One audit record before persistence."""

    action: str
    entity_type: str
    entity_id: str | UUID | None
    actor_user_id: UUID | None = None
    actor_role: str | None = None
    meta: dict[str, Any] | None = None
    ip: str | None = None
    user_agent: str | None = None
    correlation_id: str | None = None

    @classmethod
    def build(
        cls,
        action: str,
        entity_type: str,
        entity_id: str | UUID | None,
        actor_user_id: UUID | None,
        context: AuditContext | None = None,
        meta: dict[str, Any] | None = None,
        actor_role: str | None = None,
    ) -> AuditEntry:
        context = context or AuditContext()
        if actor_role is None:
            actor_role = "ADMIN" if actor_user_id is not None else "SYSTEM"
        return cls(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_user_id=actor_user_id,
            actor_role=actor_role,
            meta=meta,
            ip=context.ip,
            user_agent=context.user_agent,
            correlation_id=context.correlation_id,
        )


class AuditLogWriter(Protocol):
    """Sink for audit entries, called inside the caller's transaction."""

    async def write(self, session: AsyncSession, entry: AuditEntry) -> None: ...


def safe_audit_meta(meta: Any) -> dict[str, Any] | None:
    """Round-trip meta through JSON so it can be stored as-is."""
    if meta is None:
        return None
    try:
        return json.loads(json.dumps(meta))
    except (TypeError, ValueError):
        logger.warning("Audit meta is not JSON serializable; storing placeholder")
        return dict(UNSERIALIZABLE_META)


class DatabaseAuditLogWriter:
    """Default writer: appends an audit_log row to the current session."""

    async def write(self, session: AsyncSession, entry: AuditEntry) -> None:
        row = AuditLog(
            actor_user_id=entry.actor_user_id,
            actor_role=entry.actor_role,
            action=entry.action,
            entity_type=entry.entity_type,
            entity_id=str(entry.entity_id) if entry.entity_id is not None else None,
            meta_json=safe_audit_meta(entry.meta),
            ip=entry.ip,
            user_agent=entry.user_agent,
            correlation_id=entry.correlation_id,
        )
        session.add(row)
        logger.debug("Audit %s %s:%s", entry.action, entry.entity_type, entry.entity_id)
