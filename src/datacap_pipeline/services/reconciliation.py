"""Chooses how a synced refresh issue is written back.

A refresh issue observed upstream is either the one currently tracked for
its allocator (refresh its data), the start of a new refresh (open a new
audit cycle), or a conflict with a refresh still in flight.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from datacap_pipeline.core.enums import (
    FINISHED_REFRESH_STATUSES,
    PENDING_AUDIT_OUTCOMES,
    PENDING_REFRESH_STATUSES,
)
from datacap_pipeline.core.errors import (
    IssueRefreshFinishedError,
    PendingAuditError,
    UnresolvableStrategyError,
)
from datacap_pipeline.domain.documents import AuditCycle, IssueDetails
from datacap_pipeline.infrastructure.issue_store import IIssueDetailsRepository

logger = logging.getLogger(__name__)


class UpsertStrategyKey(str, Enum):
    SAVE_WITH_NEW_AUDIT = "save-with-new-audit"
    SAVE_WITHOUT_GITHUB_UPDATE = "save-without-github-update"


@dataclass(frozen=True)
class AuditState:
    current_audit_pending: bool
    issue_exists: bool
    issue_finished: bool
    allocator_has_pending_refresh: bool
    same_issue: bool


class UpsertStrategyResolver:
    """Decision table over the stored issue records and the registry audits."""

    def __init__(self, issues: IIssueDetailsRepository) -> None:
        self._issues = issues

    async def resolve(
        self, issue: IssueDetails, audits: list[AuditCycle]
    ) -> UpsertStrategyKey:
        by_issue_id = await self._issues.find_by("github_issue_id", issue.github_issue_id)
        latest = await self._issues.find_latest_by("json_number", issue.json_number)
        state = self.analyze(by_issue_id, latest, audits)
        logger.debug("Upsert state for issue %d: %s", issue.github_issue_number, state)

        if state.issue_finished:
            raise IssueRefreshFinishedError(issue.github_issue_number)

        if state.same_issue:
            key = (
                UpsertStrategyKey.SAVE_WITHOUT_GITHUB_UPDATE
                if state.current_audit_pending
                else UpsertStrategyKey.SAVE_WITH_NEW_AUDIT
            )
        elif state.allocator_has_pending_refresh:
            raise PendingAuditError(issue.json_number)
        elif state.current_audit_pending:
            if not state.issue_exists:
                raise PendingAuditError(issue.json_number)
            raise UnresolvableStrategyError(issue.json_number)
        else:
            key = UpsertStrategyKey.SAVE_WITH_NEW_AUDIT

        logger.info("Issue %d: upsert strategy %s", issue.github_issue_number, key.value)
        return key

    @staticmethod
    def analyze(
        by_issue_id: IssueDetails | None,
        latest: IssueDetails | None,
        audits: list[AuditCycle],
    ) -> AuditState:
        current = audits[-1] if audits else None
        pending_outcomes = {o.value for o in PENDING_AUDIT_OUTCOMES}
        return AuditState(
            current_audit_pending=current is not None and current.outcome in pending_outcomes,
            issue_exists=by_issue_id is not None,
            issue_finished=(
                by_issue_id is not None
                and by_issue_id.refresh_status in FINISHED_REFRESH_STATUSES
            ),
            allocator_has_pending_refresh=(
                latest is not None and latest.refresh_status in PENDING_REFRESH_STATUSES
            ),
            same_issue=(
                by_issue_id is not None
                and latest is not None
                and by_issue_id.github_issue_id == latest.github_issue_id
            ),
        )
