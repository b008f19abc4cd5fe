"""Recurring DataCap refresh: issue records, audit cycles and the aggregate.

A refresh is tracked three ways at once: as an issue record in the
document store, as the latest audit cycle in the allocator registry, and
(for the requesting application) as the IN_REFRESH phase of the
aggregate. The methods here keep the three in step. Each returns a
:class:`CommandResult`; on failure nothing is written to the issue store
or the event store.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from datacap_pipeline.core.enums import RefreshStatus
from datacap_pipeline.core.errors import (
    ApplicationError,
    ApplicationNotFoundError,
    IssueNotFoundError,
)
from datacap_pipeline.domain.datacap import bytes_to_pib
from datacap_pipeline.domain.documents import (
    AuditChange,
    AuditHistory,
    IssueDetails,
    MetaAllocatorPhase,
    RkhPhase,
)
from datacap_pipeline.infrastructure.allocator_registry import IAllocatorRegistry
from datacap_pipeline.infrastructure.issue_store import IIssueDetailsRepository
from datacap_pipeline.infrastructure.locks import AggregateLocks
from datacap_pipeline.infrastructure.repository import ApplicationRepository
from datacap_pipeline.observability.logger import command_context
from datacap_pipeline.services.reconciliation import (
    UpsertStrategyKey,
    UpsertStrategyResolver,
)
from datacap_pipeline.services.refresh_audit import RefreshAuditService
from datacap_pipeline.services.results import CommandResult

logger = logging.getLogger(__name__)


# Fields owned by the upstream issue tracker; everything else is workflow state.
_SYNCED_FIELDS = (
    "title",
    "creator",
    "assignees",
    "labels",
    "state",
    "created_at",
    "updated_at",
    "closed_at",
    "json_number",
    "msig_address",
    "metapathway_type",
    "ma_address",
    "actor_id",
)


def _merge_audit(current: AuditChange | None, change: AuditChange) -> AuditChange:
    base = current.changes() if current is not None else {}
    return AuditChange(**{**base, **change.changes()})


class RefreshWorkflow:
    """Orchestrates one allocator's refresh from request to allocation."""

    def __init__(
        self,
        applications: ApplicationRepository,
        issues: IIssueDetailsRepository,
        registry: IAllocatorRegistry,
        audits: RefreshAuditService,
        strategy: UpsertStrategyResolver | None = None,
        locks: AggregateLocks | None = None,
    ) -> None:
        self._applications = applications
        self._issues = issues
        self._registry = registry
        self._audits = audits
        self._strategy = strategy or UpsertStrategyResolver(issues)
        self._locks = locks if locks is not None else applications.locks

    # ------------------------------------------------------------------
    # Application side
    # ------------------------------------------------------------------

    async def request_refresh(self, application_id: str, json_hash: str) -> CommandResult:
        """Open a refresh for a DC_ALLOCATED application.

        The aggregate moves to IN_REFRESH, a new audit cycle is published
        and the application goes back to governance review. The events
        are saved only once the audit is published.
        """
        async def _run() -> AuditHistory:
            async with self._locks.hold(application_id):
                aggregate = await self._applications.get_by_id(application_id)
                if aggregate is None:
                    raise ApplicationNotFoundError(application_id)
                aggregate.request_datacap_refresh()
                audit = await self._audits.start_audit(json_hash)
                aggregate.start_refresh_review()
                await self._applications.save(aggregate)
                return audit

        return await self._run("request_refresh", application_id, _run)

    # ------------------------------------------------------------------
    # Issue side
    # ------------------------------------------------------------------

    async def upsert_issue(self, issue: IssueDetails) -> CommandResult:
        """Store a synced refresh issue, opening an audit when it starts a refresh."""
        async def _run() -> UpsertStrategyKey:
            if not issue.json_number:
                raise IssueNotFoundError(
                    f"Issue {issue.github_issue_number} carries no allocator JSON hash"
                )
            allocator = await self._registry.fetch_allocator(issue.json_number)
            extended = issue.model_copy(
                update={
                    "msig_address": (
                        allocator.pathway_addresses.msig
                        if allocator.pathway_addresses
                        else None
                    ),
                    "ma_address": allocator.ma_address,
                    "metapathway_type": allocator.metapathway_type,
                    "actor_id": allocator.allocator_id,
                }
            )
            key = await self._strategy.resolve(extended, allocator.audits)
            stored = await self._issues.find_by("github_issue_id", issue.github_issue_id)
            if stored is not None:
                extended = stored.model_copy(
                    update={f: getattr(extended, f) for f in _SYNCED_FIELDS}
                )
            if key is UpsertStrategyKey.SAVE_WITH_NEW_AUDIT:
                audit = await self._audits.start_audit(extended.json_number)
                extended = extended.model_copy(
                    update={
                        "refresh_status": RefreshStatus.PENDING,
                        "current_audit": audit.audit_change,
                        "audit_history": [*extended.audit_history, audit],
                    }
                )
            await self._issues.save(extended)
            return key

        return await self._run("upsert_issue", issue.github_issue_number, _run)

    async def approve_refresh(self, github_issue_number: int, datacap_amount: float) -> CommandResult:
        async def _run() -> IssueDetails:
            issue = await self._pending_issue(github_issue_number)
            audit = await self._audits.approve_audit(issue.json_number, datacap_amount)
            return await self._save(
                issue,
                audit,
                refresh_status=RefreshStatus.APPROVED,
                current_audit=_merge_audit(issue.current_audit, audit.audit_change),
            )

        return await self._run("approve_refresh", github_issue_number, _run)

    async def reject_refresh(self, github_issue_number: int) -> CommandResult:
        async def _run() -> IssueDetails:
            issue = await self._pending_issue(github_issue_number)
            audit = await self._audits.reject_audit(issue.json_number)
            return await self._save(
                issue,
                audit,
                refresh_status=RefreshStatus.REJECTED,
                current_audit=_merge_audit(issue.current_audit, audit.audit_change),
            )

        return await self._run("reject_refresh", github_issue_number, _run)

    async def sign_refresh_by_rkh(
        self,
        issue: IssueDetails,
        message_id: int,
        approvals: list[str],
        datacap: bytes | str | int,
    ) -> CommandResult:
        """Record a proposed RKH allowance that has not reached quorum yet."""
        async def _run() -> IssueDetails:
            try:
                data_cap = bytes_to_pib(datacap)
            except (TypeError, ValueError):
                logger.warning(
                    "Issue %d: unreadable allowance %r, storing 0",
                    issue.github_issue_number, datacap,
                )
                data_cap = 0.0
            signed = issue.model_copy(
                update={
                    "data_cap": data_cap,
                    "refresh_status": RefreshStatus.SIGNED_BY_RKH,
                    "rkh_phase": RkhPhase(message_id=message_id, approvals=list(approvals)),
                }
            )
            await self._issues.save(signed)
            return signed

        return await self._run("sign_refresh_by_rkh", issue.github_issue_number, _run)

    async def approve_refresh_by_rkh(
        self,
        issue: IssueDetails,
        transaction_cid: str,
        allocated_at: datetime,
    ) -> CommandResult:
        """Finish the audit with the amount actually signed by the RKH."""
        async def _run() -> IssueDetails:
            audit = await self._audits.finish_audit(
                issue.json_number,
                new_datacap_amount=issue.data_cap,
                allocated_at=allocated_at,
            )
            return await self._save(
                issue,
                audit,
                refresh_status=RefreshStatus.DC_ALLOCATED,
                transaction_cid=transaction_cid,
            )

        return await self._run("approve_refresh_by_rkh", issue.github_issue_number, _run)

    async def approve_refresh_by_ma(
        self,
        issue: IssueDetails,
        block_number: int,
        tx_hash: str,
    ) -> CommandResult:
        async def _run() -> IssueDetails:
            audit = await self._audits.finish_audit(issue.json_number)
            return await self._save(
                issue,
                audit,
                refresh_status=RefreshStatus.DC_ALLOCATED,
                transaction_cid=tx_hash,
                block_number=block_number,
                meta_allocator=MetaAllocatorPhase(block_number=block_number),
                current_audit=_merge_audit(issue.current_audit, audit.audit_change),
            )

        return await self._run("approve_refresh_by_ma", issue.github_issue_number, _run)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _pending_issue(self, github_issue_number: int) -> IssueDetails:
        issue = await self._issues.find_pending_by(github_issue_number=github_issue_number)
        if issue is None:
            raise IssueNotFoundError(
                "Cannot change audit refresh because it is not in the correct "
                f"status. GithubIssueNumber: {github_issue_number}"
            )
        return issue

    async def _save(self, issue: IssueDetails, audit: AuditHistory, **changes) -> IssueDetails:
        updated = issue.model_copy(
            update={**changes, "audit_history": [*issue.audit_history, audit]}
        )
        await self._issues.save(updated)
        return updated

    async def _run(
        self,
        command: str,
        subject: str | int,
        action: Callable[[], Awaitable[object]],
    ) -> CommandResult:
        with command_context(f"refresh.{command}", subject=str(subject)):
            try:
                data = await action()
            except Exception as exc:
                if isinstance(exc, ApplicationError):
                    logger.warning("Refresh %s rejected for %s: %s", command, subject, exc)
                else:
                    logger.error("Refresh %s failed for %s", command, subject, exc_info=True)
                return CommandResult.failed(exc)
            logger.info("Refresh %s completed for %s", command, subject)
        return CommandResult.ok(data)
