"""Audit-cycle transitions for DataCap refreshes."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from datacap_pipeline.core.enums import AuditOutcome
from datacap_pipeline.core.ids import to_zulu, utc_now
from datacap_pipeline.domain.documents import AllocatorFile, AuditChange, AuditHistory
from datacap_pipeline.resolvers.audit_outcome import AuditOutcomeResolver
from datacap_pipeline.services.refresh_audit_publisher import IRefreshAuditPublisher

logger = logging.getLogger(__name__)


class RefreshAuditService:
    """Moves the latest audit cycle through PENDING -> APPROVED -> finished.

    Rejection is only possible while the audit is PENDING. Finishing
    stamps the allocation time and classifies the outcome by comparing the
    last two cycles' amounts.
    """

    def __init__(
        self,
        publisher: IRefreshAuditPublisher,
        resolver: AuditOutcomeResolver | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._publisher = publisher
        self._resolver = resolver or AuditOutcomeResolver()
        self._clock = clock

    async def start_audit(self, json_hash: str) -> AuditHistory:
        return await self._publisher.new_audit(json_hash)

    async def approve_audit(self, json_hash: str, datacap_amount: float) -> AuditHistory:
        change = AuditChange(
            ended=to_zulu(self._clock()),
            outcome=AuditOutcome.APPROVED.value,
            datacap_amount=datacap_amount,
        )
        return await self._publisher.update_audit(
            json_hash, change, [AuditOutcome.PENDING]
        )

    async def reject_audit(self, json_hash: str) -> AuditHistory:
        change = AuditChange(
            ended=to_zulu(self._clock()),
            outcome=AuditOutcome.REJECTED.value,
        )
        return await self._publisher.update_audit(
            json_hash, change, [AuditOutcome.PENDING]
        )

    async def finish_audit(
        self,
        json_hash: str,
        new_datacap_amount: float | None = None,
        allocated_at: datetime | None = None,
    ) -> AuditHistory:
        """Close an approved audit.

        ``new_datacap_amount`` overrides the approved amount, e.g. when the
        amount actually signed on chain differs from the approved one.
        """
        allocated = to_zulu(allocated_at or self._clock())

        def _finish(allocator: AllocatorFile) -> AuditChange:
            audits = allocator.audits
            previous = audits[-2] if len(audits) > 1 else None
            current = audits[-1] if audits else None
            amount = new_datacap_amount if new_datacap_amount is not None else current
            outcome = self._resolver.resolve(previous, amount)
            logger.info("Audit for %s finished with outcome %s", json_hash, outcome.value)
            return AuditChange(
                dc_allocated=allocated,
                outcome=outcome.value,
                datacap_amount=new_datacap_amount,
            )

        return await self._publisher.update_audit(
            json_hash, _finish, [AuditOutcome.APPROVED]
        )
