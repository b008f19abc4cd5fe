"""Command handling for allocator applications.

Every command runs as load -> call aggregate -> save under the
application's lock. Failures never escape: they come back as a
:class:`CommandResult` carrying the raised error, and nothing is saved.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from collections.abc import Callable
from typing import Any

from datacap_pipeline.core.errors import (
    ApplicationError,
    ApplicationExistsError,
    ApplicationNotFoundError,
)
from datacap_pipeline.domain.application import (
    ApplicationParams,
    DatacapAllocator,
    GovernanceReviewApproval,
    GovernanceReviewRejection,
)
from datacap_pipeline.domain.documents import AllocatorFile
from datacap_pipeline.infrastructure.locks import AggregateLocks
from datacap_pipeline.infrastructure.repository import ApplicationRepository
from datacap_pipeline.observability.logger import command_context
from datacap_pipeline.services.results import CommandResult

logger = logging.getLogger(__name__)

_HANDLE_SEPARATORS = re.compile(r"[\s,]+")


def normalize_github_handles(raw: str | list[str] | tuple[str, ...] | None) -> tuple[str, ...]:
    """Split a free-form handle list on commas and whitespace.

    Leading ``@`` is dropped and handles are lower-cased.
    """
    if not raw:
        return ()
    parts = raw if isinstance(raw, (list, tuple)) else _HANDLE_SEPARATORS.split(raw)
    handles = (p.strip().lstrip("@").strip().lower() for p in parts)
    return tuple(h for h in handles if h)


class ApplicationCommandService:
    """Entry point for every application command.

    Args:
        repository: Event-sourced application repository.
        locks: Per-application locks. Defaults to the repository's
            shared instance.
    """

    def __init__(
        self,
        repository: ApplicationRepository,
        locks: AggregateLocks | None = None,
    ) -> None:
        self._repository = repository
        self._locks = locks if locks is not None else repository.locks

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create(
        self,
        params: ApplicationParams,
        multisig: dict[str, Any] | None = None,
        pull_request: dict[str, Any] | None = None,
    ) -> CommandResult:
        """Create an application, optionally attaching multisig and PR data."""
        guid = params.application_id
        try:
            async with self._locks.hold(guid):
                if await self._repository.get_by_id(guid) is not None:
                    raise ApplicationExistsError(guid)
                aggregate = DatacapAllocator.create(
                    dataclasses.replace(
                        params,
                        other_github_handles=normalize_github_handles(
                            params.other_github_handles
                        ),
                    ),
                    path_resolver=self._repository.path_resolver,
                )
                if multisig:
                    aggregate.set_allocator_multisig(**multisig)
                if pull_request:
                    aggregate.set_application_pull_request(**pull_request)
                written = await self._repository.save(aggregate)
        except Exception as exc:
            return self._failed("create", guid, exc)

        logger.info("Application %s created (%d events)", guid[:8], written)
        return CommandResult.ok({"guid": guid})

    # ------------------------------------------------------------------
    # Lifecycle commands
    # ------------------------------------------------------------------

    async def edit(self, guid: str, file: AllocatorFile | dict[str, Any]) -> CommandResult:
        return await self._execute(guid, "edit", lambda a: a.edit(file))

    async def set_allocator_multisig(
        self,
        guid: str,
        allocator_actor_id: str,
        multisig_address: str,
        multisig_threshold: int,
        multisig_signers: list[str],
    ) -> CommandResult:
        return await self._execute(
            guid,
            "set_allocator_multisig",
            lambda a: a.set_allocator_multisig(
                allocator_actor_id, multisig_address, multisig_threshold, multisig_signers
            ),
        )

    async def set_application_pull_request(
        self,
        guid: str,
        pr_number: int,
        pr_url: str,
        comment_id: int,
        refresh: bool = False,
    ) -> CommandResult:
        return await self._execute(
            guid,
            "set_application_pull_request",
            lambda a: a.set_application_pull_request(pr_number, pr_url, comment_id, refresh),
        )

    async def approve_kyc(self, guid: str, data: dict[str, Any]) -> CommandResult:
        return await self._execute(guid, "approve_kyc", lambda a: a.approve_kyc(data))

    async def reject_kyc(self, guid: str, data: dict[str, Any]) -> CommandResult:
        return await self._execute(guid, "reject_kyc", lambda a: a.reject_kyc(data))

    async def revoke_kyc(self, guid: str) -> CommandResult:
        return await self._execute(guid, "revoke_kyc", lambda a: a.revoke_kyc())

    async def approve_governance_review(
        self, guid: str, details: GovernanceReviewApproval
    ) -> CommandResult:
        return await self._execute(
            guid, "approve_governance_review", lambda a: a.approve_governance_review(details)
        )

    async def reject_governance_review(
        self, guid: str, details: GovernanceReviewRejection
    ) -> CommandResult:
        return await self._execute(
            guid, "reject_governance_review", lambda a: a.reject_governance_review(details)
        )

    async def update_rkh_approvals(
        self, guid: str, message_id: int, approvals: list[str]
    ) -> CommandResult:
        return await self._execute(
            guid,
            "update_rkh_approvals",
            lambda a: a.update_rkh_approvals(message_id, approvals),
        )

    async def complete_rkh_approval(self, guid: str) -> CommandResult:
        return await self._execute(
            guid, "complete_rkh_approval", lambda a: a.complete_rkh_approval()
        )

    async def complete_meta_allocator_approval(
        self, guid: str, block_number: int, tx_hash: str
    ) -> CommandResult:
        return await self._execute(
            guid,
            "complete_meta_allocator_approval",
            lambda a: a.complete_meta_allocator_approval(block_number, tx_hash),
        )

    async def update_datacap_allocation(self, guid: str, datacap: float) -> CommandResult:
        return await self._execute(
            guid, "update_datacap_allocation", lambda a: a.update_datacap_allocation(datacap)
        )

    async def request_datacap_refresh(self, guid: str) -> CommandResult:
        return await self._execute(
            guid, "request_datacap_refresh", lambda a: a.request_datacap_refresh()
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _execute(
        self,
        guid: str,
        command: str,
        action: Callable[[DatacapAllocator], None],
    ) -> CommandResult:
        with command_context(command, application_id=guid):
            try:
                async with self._locks.hold(guid):
                    aggregate = await self._repository.get_by_id(guid)
                    if aggregate is None:
                        raise ApplicationNotFoundError(guid)
                    action(aggregate)
                    written = await self._repository.save(aggregate)
            except Exception as exc:
                return self._failed(command, guid, exc)

            logger.info(
                "Command %s on application %s: %d event(s), status %s",
                command, guid[:8], written,
                aggregate.application_status.value if aggregate.application_status else None,
            )
        return CommandResult.ok(
            {
                "guid": guid,
                "events": written,
                "status": aggregate.application_status,
                "version": aggregate.version,
            }
        )

    @staticmethod
    def _failed(command: str, guid: str, exc: Exception) -> CommandResult:
        if isinstance(exc, ApplicationError):
            logger.warning(
                "Command %s rejected for application %s: %s", command, guid[:8], exc
            )
        else:
            logger.error(
                "Command %s failed for application %s", command, guid[:8], exc_info=True
            )
        return CommandResult.failed(exc)
