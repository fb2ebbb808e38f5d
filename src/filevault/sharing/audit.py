"""Share audit events.

Records share create, update, delete, access, download and denial so the
owner-facing history and the observability pipeline can tell the terminal
outcomes apart.

Security invariant:
  Plaintext tokens must NEVER appear in audit event data.
  Only token prefixes (first 8 chars) are included for correlation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

from ..observability.logging import get_logger

# ── Constants ─────────────────────────────────────────────────────────

SHARE_CREATED = 'share.created'
SHARE_UPDATED = 'share.updated'
SHARE_DELETED = 'share.deleted'
SHARE_ACCESSED = 'share.accessed'
SHARE_DOWNLOADED = 'share.downloaded'
SHARE_DENIED = 'share.denied'


# ── Audit event model ───────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ShareAuditEvent:
    """Structured audit event for share operations.

    Attributes:
        event_type: One of the ``SHARE_*`` constants.
        share_id: Share id, when the share was resolved.
        token_prefix: First 8 chars of the token (for correlation only).
        path: The storage path involved.
        actor_user_id: Who performed the action ('' for anonymous access).
        detail: Outcome or denial code.
        timestamp: When the event occurred.
    """

    event_type: str
    share_id: str | None = None
    token_prefix: str = '<redacted>'
    path: str = ''
    actor_user_id: str = ''
    detail: str = ''
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        """Serialize to a dict safe for JSON logging."""
        return {
            'event_type': self.event_type,
            'share_id': self.share_id,
            'token_prefix': self.token_prefix,
            'path': self.path,
            'actor_user_id': self.actor_user_id,
            'detail': self.detail,
            'timestamp': self.timestamp.isoformat(),
        }


# ── Emitters ─────────────────────────────────────────────────────────


class ShareAuditEmitter(Protocol):
    """Abstract audit event sink."""

    async def emit(self, event: ShareAuditEvent) -> None: ...


class InMemoryShareAuditEmitter:
    """Test audit emitter that stores events in memory."""

    def __init__(self) -> None:
        self.events: list[ShareAuditEvent] = []

    async def emit(self, event: ShareAuditEvent) -> None:
        self.events.append(event)

    def find(
        self,
        event_type: str | None = None,
        share_id: str | None = None,
    ) -> list[ShareAuditEvent]:
        """Filter events by type and/or share."""
        result = self.events
        if event_type:
            result = [e for e in result if e.event_type == event_type]
        if share_id:
            result = [e for e in result if e.share_id == share_id]
        return result


class LoggingShareAuditEmitter:
    """Write audit events to the structured log."""

    def __init__(self, logger_name: str = 'filevault.audit') -> None:
        self._logger = get_logger(logger_name)

    async def emit(self, event: ShareAuditEvent) -> None:
        self._logger.info('share_audit', **event.to_dict())
