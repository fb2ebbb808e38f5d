"""Share token redaction for logs and audit records.

A share token is a bearer credential: anyone holding it can read the share.
Log lines and audit events keep only a short prefix, enough to correlate
entries for one link.
"""

from __future__ import annotations

from typing import Any

TOKEN_PREFIX_LENGTH = 8  # Characters to keep for correlation.

# Event-dict keys that carry a full share token.
TOKEN_FIELDS = frozenset({"token", "share_token"})


def redact_token(token: str | None) -> str:
    """Safely truncate a token to a prefix for logging.

    Returns ``<prefix>...`` or ``<redacted>`` for missing/short tokens.
    """
    if not token or len(token) < TOKEN_PREFIX_LENGTH:
        return "<redacted>"
    return f"{token[:TOKEN_PREFIX_LENGTH]}..."


def redact_token_fields(
    logger: Any, method_name: str, event_dict: dict[str, Any],
) -> dict[str, Any]:
    """structlog processor: cut every token field down to its prefix."""
    for key in TOKEN_FIELDS.intersection(event_dict):
        value = event_dict[key]
        event_dict[key] = redact_token(value if isinstance(value, str) else None)
    return event_dict
