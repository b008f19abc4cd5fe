"""Event-sourcing kernel shared by aggregates.

Contract
--------
*  ``record(event)`` applies *event* to the in-memory state and queues it
   as pending (write-through).  Commands call it only after their guard
   passed and their payload is computed.
*  ``replay(events)`` folds persisted events through the same apply
   handlers and queues nothing.
*  Application is idempotent on ``event_id``: an event already applied is
   skipped, so duplicated deliveries and repeated replays converge.
*  Apply handlers are looked up by event class name
   (``_apply_<ClassName>``).  They must only touch the aggregate's own
   fields; resolvers and collaborators belong in commands.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from datacap_pipeline.core.ids import new_id
from datacap_pipeline.domain.events import DomainEvent

logger = logging.getLogger(__name__)


class AggregateRoot:
    """Base class holding version, pending events and apply dispatch."""

    def __init__(self, guid: str | None = None) -> None:
        self.guid: str = guid or new_id()
        self.version: int = 0
        self._pending: list[DomainEvent] = []
        self._applied_ids: set[str] = set()

    # ------------------------------------------------------------------
    # Recording and replay
    # ------------------------------------------------------------------

    def record(self, event: DomainEvent) -> None:
        """Apply a freshly produced event and queue it for persistence."""
        if self._apply(event):
            self._pending.append(event)

    def replay(self, events: Iterable[DomainEvent]) -> None:
        """Rebuild state from a persisted, ordered event sequence."""
        for event in events:
            self._apply(event)

    @classmethod
    def load_from_history(
        cls, guid: str, events: Iterable[DomainEvent], **kwargs
    ):
        aggregate = cls(guid, **kwargs)
        aggregate.replay(events)
        return aggregate

    def _apply(self, event: DomainEvent) -> bool:
        if event.event_id in self._applied_ids:
            logger.debug(
                "%s %s: skipping already applied %s",
                type(self).__name__, self.guid[:8], event.event_name,
            )
            return False
        handler = getattr(self, f"_apply_{event.event_name}", None)
        if handler is None:
            raise TypeError(
                f"{type(self).__name__} has no handler for {event.event_name}"
            )
        handler(event)
        self._applied_ids.add(event.event_id)
        self.version += 1
        return True

    # ------------------------------------------------------------------
    # Pending events
    # ------------------------------------------------------------------

    @property
    def pending_events(self) -> list[DomainEvent]:
        return list(self._pending)

    @property
    def persisted_version(self) -> int:
        """Version the backing stream had when this instance was loaded."""
        return self.version - len(self._pending)

    def mark_committed(self) -> None:
        self._pending.clear()
