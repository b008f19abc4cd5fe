"""Append-only event store for application streams.

Design invariants
-----------------
1.  ``append()`` is **idempotent** on ``event.event_id``: appending
    the same event twice is a silent no-op.
2.  ``read()`` / ``load()`` return events in **append order**.
3.  ``save()`` appends a batch for one aggregate, all or nothing.  When
    ``expected_version`` is given, the stream must hold exactly that many
    events or :class:`ConcurrencyError` is raised and nothing is written.
    ``None`` disables the check (last writer wins).
4.  The store is **append-only**; events can never be deleted or
    modified.  ``clear()`` exists only for testing.

This module provides:

*  ``IEventStore``: the protocol.
*  ``InMemoryEventStore``: list-backed implementation for tests and
   local development.
*  ``JsonFileEventStore``: append-to-JSONL-file implementation for
   durable local persistence.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import AsyncIterator, Sequence
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from datacap_pipeline.core.errors import ConcurrencyError
from datacap_pipeline.domain.events import ALL_DOMAIN_EVENTS, DomainEvent
from datacap_pipeline.domain.models import ApplicationInstruction

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# JSON helpers (datetime / enum / nested dataclass safe)
# ---------------------------------------------------------------------------

class _EventEncoder(json.JSONEncoder):
    """Handles datetime and Enum serialization."""

    def default(self, o: Any) -> Any:
        if isinstance(o, datetime):
            return o.isoformat()
        if isinstance(o, Enum):
            return o.value
        return super().default(o)


def event_to_dict(event: DomainEvent) -> dict[str, Any]:
    """Serialize a frozen event dataclass to a JSON-safe dict."""
    d = dataclasses.asdict(event)
    d["__event_type__"] = type(event).__qualname__
    return d


def event_from_dict(
    d: dict[str, Any],
    registry: dict[str, type[DomainEvent]],
) -> DomainEvent | None:
    """Deserialize a dict back into a DomainEvent subclass.

    Returns ``None`` if the event type is unrecognized (forward compat).
    """
    d = dict(d)
    type_name = d.pop("__event_type__", None)
    if type_name is None or type_name not in registry:
        return None
    cls = registry[type_name]

    field_types = {f.name: f.type for f in dataclasses.fields(cls)}
    restored: dict[str, Any] = {}
    for k, v in d.items():
        if k not in field_types:
            continue
        ft = str(field_types[k])
        if "datetime" in ft and isinstance(v, str):
            restored[k] = datetime.fromisoformat(v)
        elif "ApplicationInstruction" in ft:
            restored[k] = tuple(ApplicationInstruction.from_dict(i) for i in v or ())
        elif ft.startswith("tuple") and isinstance(v, list):
            restored[k] = tuple(v)
        else:
            restored[k] = v
    return cls(**restored)


def _build_registry() -> dict[str, type[DomainEvent]]:
    """Build name → class lookup from all known event types."""
    return {cls.__qualname__: cls for cls in ALL_DOMAIN_EVENTS}


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class IEventStore(Protocol):
    """Append-only event log, partitioned by aggregate id."""

    async def append(self, event: DomainEvent) -> None:
        """Persist an event.  Idempotent on ``event.event_id``."""
        ...

    async def save(
        self,
        aggregate_id: str,
        events: Sequence[DomainEvent],
        expected_version: int | None = None,
    ) -> None:
        """Append *events* to one stream, optionally version-checked."""
        ...

    async def load(self, aggregate_id: str) -> list[DomainEvent]:
        """Return the ordered stream of one aggregate."""
        ...

    async def read(
        self,
        event_type: type[DomainEvent] | None = None,
        aggregate_id: str | None = None,
        after_sequence: int | None = None,
        limit: int = 10_000,
    ) -> list[DomainEvent]:
        """Read events in append order, with optional filters."""
        ...

    def replay(
        self,
        event_type: type[DomainEvent] | None = None,
        from_timestamp: datetime | None = None,
    ) -> AsyncIterator[DomainEvent]:
        """Yield events lazily."""
        ...


def _matches(
    event: DomainEvent,
    event_type: type[DomainEvent] | None,
    aggregate_id: str | None,
) -> bool:
    if event_type is not None and type(event) is not event_type:
        return False
    if aggregate_id is not None and event.aggregate_id != aggregate_id:
        return False
    return True


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryEventStore:
    """List-backed event store.  No persistence across restarts."""

    def __init__(self) -> None:
        self._events: list[DomainEvent] = []
        self._seen_ids: set[str] = set()
        self._stream_lengths: dict[str, int] = {}

    async def append(self, event: DomainEvent) -> None:
        """Append *event*.  No-op if ``event_id`` already stored."""
        if event.event_id in self._seen_ids:
            return
        self._seen_ids.add(event.event_id)
        self._events.append(event)
        self._stream_lengths[event.aggregate_id] = (
            self._stream_lengths.get(event.aggregate_id, 0) + 1
        )

    async def save(
        self,
        aggregate_id: str,
        events: Sequence[DomainEvent],
        expected_version: int | None = None,
    ) -> None:
        actual = self._stream_lengths.get(aggregate_id, 0)
        if expected_version is not None and actual != expected_version:
            raise ConcurrencyError(aggregate_id, expected_version, actual)
        for event in events:
            await self.append(event)

    async def load(self, aggregate_id: str) -> list[DomainEvent]:
        return [e for e in self._events if e.aggregate_id == aggregate_id]

    async def read(
        self,
        event_type: type[DomainEvent] | None = None,
        aggregate_id: str | None = None,
        after_sequence: int | None = None,
        limit: int = 10_000,
    ) -> list[DomainEvent]:
        """Read events in append order with optional filters."""
        start = after_sequence if after_sequence is not None else 0
        out: list[DomainEvent] = []
        for event in self._events[start:]:
            if not _matches(event, event_type, aggregate_id):
                continue
            out.append(event)
            if len(out) >= limit:
                break
        return out

    async def replay(
        self,
        event_type: type[DomainEvent] | None = None,
        from_timestamp: datetime | None = None,
    ) -> AsyncIterator[DomainEvent]:
        """Yield stored events lazily."""
        for event in self._events:
            if not _matches(event, event_type, None):
                continue
            if from_timestamp is not None and event.timestamp < from_timestamp:
                continue
            yield event

    # -- Testing helpers ---------------------------------------------------

    def clear(self) -> None:
        """Remove all events.  Testing only."""
        self._events.clear()
        self._seen_ids.clear()
        self._stream_lengths.clear()

    def __len__(self) -> int:
        return len(self._events)


# ---------------------------------------------------------------------------
# JSON-Lines file implementation
# ---------------------------------------------------------------------------

class JsonFileEventStore:
    """Append-only JSONL file store.  Durable across restarts.

    Each line is a JSON object with an ``__event_type__`` discriminator.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._seen_ids: set[str] = set()
        self._stream_lengths: dict[str, int] = {}
        self._registry: dict[str, type[DomainEvent]] = _build_registry()

        if self._path.exists():
            self._load_index()

    def _load_index(self) -> None:
        """Scan the existing file to populate dedup ids and stream lengths."""
        with self._path.open() as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    d = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Skipping corrupt event line in %s", self._path)
                    continue
                eid = d.get("event_id")
                if eid and eid not in self._seen_ids:
                    self._seen_ids.add(eid)
                    agg = d.get("aggregate_id", "")
                    self._stream_lengths[agg] = self._stream_lengths.get(agg, 0) + 1

    async def append(self, event: DomainEvent) -> None:
        self._write([event])

    async def save(
        self,
        aggregate_id: str,
        events: Sequence[DomainEvent],
        expected_version: int | None = None,
    ) -> None:
        actual = self._stream_lengths.get(aggregate_id, 0)
        if expected_version is not None and actual != expected_version:
            raise ConcurrencyError(aggregate_id, expected_version, actual)
        self._write(events)

    def _write(self, events: Sequence[DomainEvent]) -> None:
        """Serialize the batch, write it in one append, then index it.

        Nothing is written or indexed when any event fails to serialize.
        """
        fresh: list[DomainEvent] = []
        batch_ids: set[str] = set()
        for event in events:
            if event.event_id in self._seen_ids or event.event_id in batch_ids:
                continue
            batch_ids.add(event.event_id)
            fresh.append(event)
        if not fresh:
            return

        lines = [json.dumps(event_to_dict(e), cls=_EventEncoder) + "\n" for e in fresh]
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a") as f:
            f.write("".join(lines))

        for event in fresh:
            self._seen_ids.add(event.event_id)
            self._stream_lengths[event.aggregate_id] = (
                self._stream_lengths.get(event.aggregate_id, 0) + 1
            )

    async def load(self, aggregate_id: str) -> list[DomainEvent]:
        return [e for e in self._iter_events() if e.aggregate_id == aggregate_id]

    def _iter_events(self):
        if not self._path.exists():
            return
        with self._path.open() as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    d = json.loads(line)
                except json.JSONDecodeError:
                    continue
                event = event_from_dict(d, self._registry)
                if event is not None:
                    yield event

    async def read(
        self,
        event_type: type[DomainEvent] | None = None,
        aggregate_id: str | None = None,
        after_sequence: int | None = None,
        limit: int = 10_000,
    ) -> list[DomainEvent]:
        out: list[DomainEvent] = []
        for seq, event in enumerate(self._iter_events()):
            if after_sequence is not None and seq < after_sequence:
                continue
            if not _matches(event, event_type, aggregate_id):
                continue
            out.append(event)
            if len(out) >= limit:
                break
        return out

    async def replay(
        self,
        event_type: type[DomainEvent] | None = None,
        from_timestamp: datetime | None = None,
    ) -> AsyncIterator[DomainEvent]:
        for event in self._iter_events():
            if not _matches(event, event_type, None):
                continue
            if from_timestamp is not None and event.timestamp < from_timestamp:
                continue
            yield event

    def __len__(self) -> int:
        return len(self._seen_ids)
