"""Document store for refresh issue records."""

from __future__ import annotations

from typing import Any, Protocol

from datacap_pipeline.core.enums import PENDING_REFRESH_STATUSES
from datacap_pipeline.domain.documents import IssueDetails


class IIssueDetailsRepository(Protocol):
    async def save(self, issue: IssueDetails) -> None: ...

    async def find_by(self, key: str, value: Any) -> IssueDetails | None: ...

    async def find_latest_by(self, key: str, value: Any) -> IssueDetails | None: ...

    async def find_pending_by(self, **filters: Any) -> IssueDetails | None: ...


class InMemoryIssueDetailsRepository:
    """Upserts by ``github_issue_id``; "latest" is the most recently inserted.

    Records are stored as copies so callers cannot mutate stored state.
    """

    def __init__(self) -> None:
        self._issues: dict[int, IssueDetails] = {}
        self._order: list[int] = []

    async def save(self, issue: IssueDetails) -> None:
        if issue.github_issue_id not in self._issues:
            self._order.append(issue.github_issue_id)
        self._issues[issue.github_issue_id] = issue.model_copy(deep=True)

    async def find_by(self, key: str, value: Any) -> IssueDetails | None:
        for issue_id in self._order:
            issue = self._issues[issue_id]
            if getattr(issue, key) == value:
                return issue.model_copy(deep=True)
        return None

    async def find_latest_by(self, key: str, value: Any) -> IssueDetails | None:
        matches = [
            self._issues[i] for i in self._order if getattr(self._issues[i], key) == value
        ]
        if not matches:
            return None
        return matches[-1].model_copy(deep=True)

    async def find_pending_by(self, **filters: Any) -> IssueDetails | None:
        for issue_id in self._order:
            issue = self._issues[issue_id]
            if issue.refresh_status not in PENDING_REFRESH_STATUSES:
                continue
            if all(getattr(issue, k) == v for k, v in filters.items()):
                return issue.model_copy(deep=True)
        return None

    def __len__(self) -> int:
        return len(self._issues)
