"""Tests for the repository and the command service.

Covers:
- ApplicationRepository load/save and optimistic concurrency.
- ApplicationCommandService envelopes, creation, and per-application locking.
"""

from __future__ import annotations

import asyncio
import gc

import pytest

from conftest import allocator_file, approval, finished_audit, make_params

from datacap_pipeline.core.config import EventStoreConfig, Settings
from datacap_pipeline.core.enums import ApplicationStatus, InstructionStatus
from datacap_pipeline.core.errors import (
    ApplicationExistsError,
    ApplicationNotFoundError,
    ConcurrencyError,
    InvalidPhaseError,
)
from datacap_pipeline.domain.application import DatacapAllocator, GovernanceReviewRejection
from datacap_pipeline.infrastructure.event_store import InMemoryEventStore, JsonFileEventStore
from datacap_pipeline.infrastructure.locks import AggregateLocks
from datacap_pipeline.infrastructure.repository import ApplicationRepository
from datacap_pipeline.services.application_commands import (
    ApplicationCommandService,
    normalize_github_handles,
)
from datacap_pipeline.services.results import CommandResult

S = ApplicationStatus


@pytest.fixture
def service(repository) -> ApplicationCommandService:
    return ApplicationCommandService(repository)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------

class TestApplicationRepository:
    @pytest.mark.asyncio
    async def test_missing_application_is_none(self, repository):
        assert await repository.get_by_id("nope") is None

    @pytest.mark.asyncio
    async def test_save_then_load(self, repository, path_resolver):
        app = DatacapAllocator.create(make_params(), path_resolver=path_resolver)
        app.approve_kyc({})

        written = await repository.save(app)
        loaded = await repository.get_by_id(app.guid)

        assert written == 3
        assert app.pending_events == []
        assert loaded.snapshot() == app.snapshot()
        assert loaded.path_resolver is path_resolver

    @pytest.mark.asyncio
    async def test_nothing_pending_writes_nothing(self, repository, event_store):
        assert await repository.save(repository.new("x")) == 0
        assert len(event_store) == 0

    @pytest.mark.asyncio
    async def test_optimistic_concurrency_rejects_stale_writer(
        self, event_store, path_resolver
    ):
        repo = ApplicationRepository(event_store, path_resolver, optimistic_concurrency=True)
        await repo.save(DatacapAllocator.create(make_params(), path_resolver=path_resolver))

        first = await repo.get_by_id("app-1")
        second = await repo.get_by_id("app-1")
        first.approve_kyc({})
        await repo.save(first)
        second.reject_kyc({})

        with pytest.raises(ConcurrencyError):
            await repo.save(second)
        assert (await repo.get_by_id("app-1")).application_status is S.GOVERNANCE_REVIEW_PHASE

    @pytest.mark.asyncio
    async def test_from_settings_honours_optimistic_concurrency(self):
        settings = Settings(event_store=EventStoreConfig(optimistic_concurrency=True))
        repo = ApplicationRepository.from_settings(settings, event_store=InMemoryEventStore())
        await repo.save(DatacapAllocator.create(make_params(), path_resolver=repo.path_resolver))

        first = await repo.get_by_id("app-1")
        second = await repo.get_by_id("app-1")
        first.approve_kyc({})
        await repo.save(first)
        second.reject_kyc({})

        assert repo.optimistic_concurrency is True
        with pytest.raises(ConcurrencyError):
            await repo.save(second)

    def test_from_settings_defaults(self, tmp_path):
        path = tmp_path / "events.jsonl"
        settings = Settings(event_store=EventStoreConfig(path=str(path)))

        repo = ApplicationRepository.from_settings(settings)

        assert repo.optimistic_concurrency is False
        assert isinstance(repo.event_store, JsonFileEventStore)
        assert repo.path_resolver.resolve("RKH").address == settings.registry.rkh_address


# ---------------------------------------------------------------------------
# Command service
# ---------------------------------------------------------------------------

class TestCreate:
    @pytest.mark.asyncio
    async def test_create(self, service, repository):
        result = await service.create(
            make_params(other_github_handles="@Bob, alice\n carol"),
            multisig={
                "allocator_actor_id": "f0123",
                "multisig_address": "f2msig",
                "multisig_threshold": 2,
                "multisig_signers": ["f1a", "f1b"],
            },
            pull_request={"pr_number": 5, "pr_url": "https://x/pull/5", "comment_id": 9},
        )

        assert result.success
        assert result.data == {"guid": "app-1"}
        app = await repository.get_by_id("app-1")
        assert app.application_status is S.KYC_PHASE
        assert app.applicant_other_github_handles == ["bob", "alice", "carol"]
        assert app.allocator_actor_id == "f0123"
        assert app.application_pull_request["pr_number"] == 5

    @pytest.mark.asyncio
    async def test_duplicate_create_fails(self, service):
        await service.create(make_params())

        result = await service.create(make_params())

        assert not result.success
        assert isinstance(result.error, ApplicationExistsError)


class TestCommandEnvelope:
    @pytest.mark.asyncio
    async def test_full_rkh_lifecycle(self, service, repository):
        await service.create(make_params())

        assert (await service.approve_kyc("app-1", {"id": "k"})).success
        assert (await service.approve_governance_review("app-1", approval(datacap=10))).success
        assert (await service.update_rkh_approvals("app-1", 1, ["f1a"])).success
        result = await service.complete_rkh_approval("app-1")

        assert result.success
        assert result.data["status"] is S.DC_ALLOCATED
        app = await repository.get_by_id("app-1")
        assert app.current_instruction.status == InstructionStatus.GRANTED.value

    @pytest.mark.asyncio
    async def test_invalid_phase_becomes_failure(self, service, event_store):
        await service.create(make_params())
        before = len(event_store)

        result = await service.revoke_kyc("app-1")

        assert not result.success
        assert isinstance(result.error, InvalidPhaseError)
        assert result.error_code == "5308"
        assert result.status_code == 400
        assert len(event_store) == before

    @pytest.mark.asyncio
    async def test_unknown_application(self, service):
        result = await service.approve_kyc("missing", {})

        assert not result.success
        assert isinstance(result.error, ApplicationNotFoundError)
        assert result.status_code == 500

    @pytest.mark.asyncio
    async def test_redelivered_approvals_after_allocation_fail_cleanly(self, service):
        await service.create(make_params())
        await service.approve_kyc("app-1", {})
        await service.approve_governance_review("app-1", approval())
        await service.update_rkh_approvals("app-1", 1, ["f1a", "f1b"])

        result = await service.update_rkh_approvals("app-1", 1, ["f1a", "f1b"])

        assert not result.success
        assert isinstance(result.error, InvalidPhaseError)

    @pytest.mark.asyncio
    async def test_threshold_then_datacap_update_grants(self, service, repository):
        await service.create(make_params())
        await service.approve_kyc("app-1", {})
        await service.approve_governance_review("app-1", approval())
        await service.update_rkh_approvals("app-1", 1, ["f1a", "f1b"])

        assert (await service.update_datacap_allocation("app-1", 5.0)).success

        app = await repository.get_by_id("app-1")
        assert app.current_instruction.status == InstructionStatus.GRANTED.value
        assert app.datacap_amount == 5.0

    @pytest.mark.asyncio
    async def test_rejection_and_edit(self, service, repository):
        await service.create(make_params())
        await service.approve_kyc("app-1", {})
        await service.reject_governance_review("app-1", GovernanceReviewRejection("no", "0x"))

        edited = await service.edit("app-1", allocator_file(finished_audit(3), name="New"))

        assert edited.success
        app = await repository.get_by_id("app-1")
        assert app.application_status is S.REJECTED
        assert app.applicant_name == "New"
        assert app.application_instructions[-1].datacap_amount == 3

    @pytest.mark.asyncio
    async def test_meta_allocator_path(self, service, repository):
        await service.create(make_params())
        await service.approve_kyc("app-1", {})
        await service.approve_governance_review("app-1", approval("Manual"))

        result = await service.complete_meta_allocator_approval("app-1", 100, "0xtx")

        assert result.success
        assert (await repository.get_by_id("app-1")).application_status is S.DC_ALLOCATED

    @pytest.mark.asyncio
    async def test_concurrent_commands_are_serialized(self, service, event_store):
        await service.create(make_params())
        await service.approve_kyc("app-1", {})
        await service.approve_governance_review("app-1", approval())

        results = await asyncio.gather(
            service.update_rkh_approvals("app-1", 1, ["f1a"]),
            service.update_rkh_approvals("app-1", 1, ["f1a", "f1b"]),
            service.complete_rkh_approval("app-1"),
        )

        assert results[0].success and results[1].success
        assert not results[2].success
        kinds = [e.event_name for e in await event_store.load("app-1")]
        assert kinds.count("RKHApprovalsUpdated") == 2
        assert "RKHApprovalCompleted" not in kinds


class TestHelpers:
    def test_normalize_github_handles(self):
        assert normalize_github_handles(" @Alice,bob  @CAROL\n") == ("alice", "bob", "carol")
        assert normalize_github_handles(None) == ()
        assert normalize_github_handles(["@x", ""]) == ("x",)

    def test_command_result_defaults(self):
        ok = CommandResult.ok({"a": 1})
        assert ok.status_code == 200
        assert ok.error_code is None

    @pytest.mark.asyncio
    async def test_locks_are_per_aggregate(self):
        locks = AggregateLocks()
        async with locks.hold("a"):
            async with locks.hold("b"):
                assert len(locks) == 2
        gc.collect()
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_same_aggregate_waits(self):
        locks = AggregateLocks()
        order: list[str] = []

        async def second():
            async with locks.hold("a"):
                order.append("second")

        async with locks.hold("a"):
            task = asyncio.create_task(second())
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            order.append("first")
        await task

        assert order == ["first", "second"]
