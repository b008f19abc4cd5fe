"""Publishes audit-cycle changes to the allocator registry.

Every call fetches the allocator file, changes its latest audit cycle
(or appends a new one) and publishes the whole file as one registry change.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Protocol, Union

from datacap_pipeline.core.enums import PENDING_AUDIT_OUTCOMES, AuditOutcome
from datacap_pipeline.core.errors import (
    AuditOutcomeNotAllowedError,
    NoAuditFoundError,
    PendingAuditFoundError,
)
from datacap_pipeline.core.ids import new_id, to_zulu, utc_now
from datacap_pipeline.domain.documents import (
    AllocatorFile,
    AuditChange,
    AuditCycle,
    AuditHistory,
)
from datacap_pipeline.infrastructure.allocator_registry import IAllocatorRegistry

logger = logging.getLogger(__name__)

ChangeOrFactory = Union[AuditChange, Callable[[AllocatorFile], AuditChange]]


class IRefreshAuditPublisher(Protocol):
    async def new_audit(self, json_hash: str) -> AuditHistory: ...

    async def update_audit(
        self,
        json_hash: str,
        change: ChangeOrFactory,
        allowed_outcomes: Iterable[AuditOutcome] | None = None,
    ) -> AuditHistory: ...


class RefreshAuditPublisher:
    """Registry-backed audit publisher.

    Args:
        registry: Allocator registry holding the JSON files.
        clock: Source of "now" for audit start stamps.
    """

    def __init__(
        self,
        registry: IAllocatorRegistry,
        clock: Callable = utc_now,
    ) -> None:
        self._registry = registry
        self._clock = clock

    async def new_audit(self, json_hash: str) -> AuditHistory:
        """Open a new PENDING audit cycle after the latest finished one."""
        allocator = await self._registry.fetch_allocator(json_hash)
        last = self._last_audit(allocator, json_hash)
        if last.outcome in {o.value for o in PENDING_AUDIT_OUTCOMES}:
            raise PendingAuditFoundError(
                f"Pending audit found for {json_hash} (outcome {last.outcome})"
            )

        audit = AuditCycle(
            started=to_zulu(self._clock()),
            ended="",
            dc_allocated="",
            outcome=AuditOutcome.PENDING.value,
            datacap_amount="",
        )
        allocator.audits.append(audit)
        return await self._publish(
            json_hash, allocator, AuditChange.model_validate(audit.model_dump())
        )

    async def update_audit(
        self,
        json_hash: str,
        change: ChangeOrFactory,
        allowed_outcomes: Iterable[AuditOutcome] | None = None,
    ) -> AuditHistory:
        """Merge *change* into the latest audit cycle and publish.

        *change* may be a callable computing the change from the fetched
        file. When *allowed_outcomes* is given, the latest outcome must be
        one of them or nothing is published.
        """
        allocator = await self._registry.fetch_allocator(json_hash)
        last = self._last_audit(allocator, json_hash)

        if allowed_outcomes is not None:
            allowed = tuple(AuditOutcome(o).value for o in allowed_outcomes)
            if last.outcome not in allowed:
                logger.warning(
                    "Audit update for %s refused: outcome %s not in %s",
                    json_hash, last.outcome, allowed,
                )
                raise AuditOutcomeNotAllowedError(last.outcome, allowed)

        resolved = change(allocator) if callable(change) else change
        allocator.audits[-1] = last.model_copy(update=resolved.changes())
        return await self._publish(json_hash, allocator, resolved)

    # ------------------------------------------------------------------

    @staticmethod
    def _last_audit(allocator: AllocatorFile, json_hash: str) -> AuditCycle:
        if not allocator.audits:
            raise NoAuditFoundError(f"No audit found for {json_hash}")
        return allocator.audits[-1]

    async def _publish(
        self,
        json_hash: str,
        allocator: AllocatorFile,
        change: AuditChange,
    ) -> AuditHistory:
        cycle = len(allocator.audits)
        branch_name = f"refresh-audit-{json_hash}-{cycle}-{new_id()[:8]}"
        title = f"Refresh Audit {allocator.application_number} - {cycle}"
        published = await self._registry.publish(json_hash, allocator, branch_name, title)
        logger.info("Audit %d for %s published as %s", cycle, json_hash, published.pr_url)
        return AuditHistory(audit_change=change, **published.model_dump())
