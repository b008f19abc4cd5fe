"""Canonical ID and timestamp factories.

All timestamps are ``datetime`` with ``tzinfo=timezone.utc``. Instruction
ledger timestamps are integer epoch milliseconds derived from them.
"""

from __future__ import annotations

import hashlib
import json
import uuid
from datetime import datetime, timezone
from typing import Any


def new_id() -> str:
    """Generate a new UUID v4 string."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def to_epoch_ms(ts: datetime) -> int:
    """Convert an aware datetime to integer epoch milliseconds."""
    return int(ts.timestamp() * 1000)


def zulu_to_epoch_ms(value: str | None) -> int | None:
    """Parse an ISO-8601 ``...Z`` string into epoch milliseconds.

    Empty or missing values map to ``None``.
    """
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return to_epoch_ms(parsed)


def to_zulu(ts: datetime) -> str:
    """Render an aware datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def payload_hash(payload: dict[str, Any], *, length: int = 16) -> str:
    """Deterministic hash of a JSON-serializable dict."""
    raw = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(raw.encode()).hexdigest()[:length]
