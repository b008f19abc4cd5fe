"""Loads and saves application aggregates through an event store."""

from __future__ import annotations

import logging

from datacap_pipeline.core.config import Settings
from datacap_pipeline.domain.application import DatacapAllocator
from datacap_pipeline.infrastructure.event_store import IEventStore, JsonFileEventStore
from datacap_pipeline.infrastructure.locks import AggregateLocks
from datacap_pipeline.resolvers.allocation_path import AllocationPathResolver

logger = logging.getLogger(__name__)


class ApplicationRepository:
    """Event-sourced repository for :class:`DatacapAllocator`.

    Args:
        event_store: Backing append-only log.
        path_resolver: Injected into every loaded aggregate.
        optimistic_concurrency: When ``True``, ``save`` passes the
            aggregate's loaded version as ``expected_version`` so a
            concurrent writer causes :class:`ConcurrencyError`.  When
            ``False`` saves are last-writer-wins.
        locks: Per-application locks shared by every service that writes
            through this repository.
    """

    def __init__(
        self,
        event_store: IEventStore,
        path_resolver: AllocationPathResolver,
        optimistic_concurrency: bool = False,
        locks: AggregateLocks | None = None,
    ) -> None:
        self._store = event_store
        self._path_resolver = path_resolver
        self._optimistic = optimistic_concurrency
        self.locks = locks if locks is not None else AggregateLocks()

    @classmethod
    def from_settings(
        cls, settings: Settings, event_store: IEventStore | None = None
    ) -> ApplicationRepository:
        """Build a repository wired from the event store and registry sections."""
        store = event_store if event_store is not None else JsonFileEventStore(
            settings.event_store.path
        )
        return cls(
            store,
            AllocationPathResolver.from_config(settings.registry),
            optimistic_concurrency=settings.event_store.optimistic_concurrency,
        )

    @property
    def event_store(self) -> IEventStore:
        return self._store

    @property
    def optimistic_concurrency(self) -> bool:
        return self._optimistic

    @property
    def path_resolver(self) -> AllocationPathResolver:
        return self._path_resolver

    def new(self, guid: str | None = None) -> DatacapAllocator:
        return DatacapAllocator(guid, path_resolver=self._path_resolver)

    async def get_by_id(self, guid: str) -> DatacapAllocator | None:
        events = await self._store.load(guid)
        if not events:
            return None
        return DatacapAllocator.load_from_history(
            guid, events, path_resolver=self._path_resolver
        )

    async def save(self, aggregate: DatacapAllocator) -> int:
        """Persist pending events. Returns the number written."""
        pending = aggregate.pending_events
        if not pending:
            return 0
        expected = aggregate.persisted_version if self._optimistic else None
        await self._store.save(aggregate.guid, pending, expected_version=expected)
        aggregate.mark_committed()
        logger.debug(
            "Saved %d event(s) for application %s (version %d)",
            len(pending), aggregate.guid[:8], aggregate.version,
        )
        return len(pending)
