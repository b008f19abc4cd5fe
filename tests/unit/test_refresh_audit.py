"""Tests for the refresh audit publisher and service."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from conftest import JSON_HASH, allocator_file, finished_audit

from datacap_pipeline.core.config import AllocatorRegistryConfig
from datacap_pipeline.core.enums import AuditOutcome
from datacap_pipeline.core.errors import (
    AllocatorNotFoundError,
    AuditOutcomeNotAllowedError,
    NoAuditFoundError,
    PendingAuditFoundError,
)
from datacap_pipeline.domain.documents import AuditChange, AuditCycle
from datacap_pipeline.infrastructure.allocator_registry import (
    DirectoryAllocatorRegistry,
    InMemoryAllocatorRegistry,
)
from datacap_pipeline.services.refresh_audit import RefreshAuditService
from datacap_pipeline.services.refresh_audit_publisher import RefreshAuditPublisher

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def publisher(registry) -> RefreshAuditPublisher:
    return RefreshAuditPublisher(registry, clock=lambda: NOW)


@pytest.fixture
def audits(publisher) -> RefreshAuditService:
    return RefreshAuditService(publisher, clock=lambda: NOW)


# ---------------------------------------------------------------------------
# Publisher
# ---------------------------------------------------------------------------

class TestRefreshAuditPublisher:
    @pytest.mark.asyncio
    async def test_new_audit_appends_pending_cycle(self, publisher, registry):
        history = await publisher.new_audit(JSON_HASH)

        stored = registry.get(JSON_HASH)
        assert len(stored.audits) == 2
        assert stored.audits[-1].outcome == "PENDING"
        assert stored.audits[-1].started == "2025-03-01T12:00:00.000Z"
        assert history.audit_change.outcome == "PENDING"
        assert history.branch_name.startswith(f"refresh-audit-{JSON_HASH}-2-")
        assert history.pr_number == 1
        assert len(history.commit_sha) == 40

    @pytest.mark.asyncio
    @pytest.mark.parametrize("outcome", ["PENDING", "APPROVED"])
    async def test_new_audit_refused_while_one_is_open(self, registry, outcome):
        registry.put(JSON_HASH, allocator_file(finished_audit(5, outcome)))
        publisher = RefreshAuditPublisher(registry)

        with pytest.raises(PendingAuditFoundError):
            await publisher.new_audit(JSON_HASH)
        assert registry.changes == []

    @pytest.mark.asyncio
    async def test_missing_allocator(self, publisher):
        with pytest.raises(AllocatorNotFoundError):
            await publisher.new_audit("unknown")

    @pytest.mark.asyncio
    async def test_file_without_audits(self, registry):
        registry.put(JSON_HASH, allocator_file())
        with pytest.raises(NoAuditFoundError):
            await RefreshAuditPublisher(registry).update_audit(JSON_HASH, AuditChange())

    @pytest.mark.asyncio
    async def test_update_merges_change(self, publisher, registry):
        await publisher.new_audit(JSON_HASH)

        await publisher.update_audit(JSON_HASH, AuditChange(outcome="APPROVED", datacap_amount=10))

        last = registry.get(JSON_HASH).audits[-1]
        assert last.outcome == "APPROVED"
        assert last.datacap_amount == 10
        assert last.started == "2025-03-01T12:00:00.000Z"

    @pytest.mark.asyncio
    async def test_update_accepts_factory(self, publisher, registry):
        seen = []

        def factory(allocator):
            seen.append(len(allocator.audits))
            return AuditChange(ended="x")

        await publisher.update_audit(JSON_HASH, factory)

        assert seen == [1]
        assert registry.get(JSON_HASH).audits[-1].ended == "x"

    @pytest.mark.asyncio
    async def test_update_outside_allow_list_publishes_nothing(self, publisher, registry):
        with pytest.raises(AuditOutcomeNotAllowedError) as exc_info:
            await publisher.update_audit(
                JSON_HASH, AuditChange(outcome="APPROVED"), [AuditOutcome.PENDING]
            )

        assert exc_info.value.outcome == "GRANTED"
        assert registry.changes == []
        assert registry.get(JSON_HASH).audits[-1].outcome == "GRANTED"


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class TestRefreshAuditService:
    @pytest.mark.asyncio
    async def test_approve_then_finish_doubled(self, audits, registry):
        await audits.start_audit(JSON_HASH)
        approved = await audits.approve_audit(JSON_HASH, 10)
        finished = await audits.finish_audit(JSON_HASH)

        assert approved.audit_change.outcome == "APPROVED"
        assert approved.audit_change.ended == "2025-03-01T12:00:00.000Z"
        assert finished.audit_change.outcome == "DOUBLE"
        last = registry.get(JSON_HASH).audits[-1]
        assert last.dc_allocated == "2025-03-01T12:00:00.000Z"
        assert last.outcome == "DOUBLE"

    @pytest.mark.asyncio
    async def test_finish_with_signed_amount_and_time(self, audits, registry):
        await audits.start_audit(JSON_HASH)
        await audits.approve_audit(JSON_HASH, 10)
        allocated = datetime(2025, 3, 2, tzinfo=timezone.utc)

        finished = await audits.finish_audit(JSON_HASH, new_datacap_amount=5, allocated_at=allocated)

        assert finished.audit_change.outcome == "MATCH"
        last = registry.get(JSON_HASH).audits[-1]
        assert last.datacap_amount == 5
        assert last.dc_allocated == "2025-03-02T00:00:00.000Z"

    @pytest.mark.asyncio
    async def test_reject_pending(self, audits, registry):
        await audits.start_audit(JSON_HASH)

        rejected = await audits.reject_audit(JSON_HASH)

        assert rejected.audit_change.outcome == "REJECTED"
        assert registry.get(JSON_HASH).audits[-1].outcome == "REJECTED"

    @pytest.mark.asyncio
    async def test_reject_after_approval_is_refused(self, audits):
        await audits.start_audit(JSON_HASH)
        await audits.approve_audit(JSON_HASH, 10)

        with pytest.raises(AuditOutcomeNotAllowedError):
            await audits.reject_audit(JSON_HASH)

    @pytest.mark.asyncio
    async def test_finish_requires_approval(self, audits):
        await audits.start_audit(JSON_HASH)

        with pytest.raises(AuditOutcomeNotAllowedError):
            await audits.finish_audit(JSON_HASH)

    @pytest.mark.asyncio
    async def test_single_cycle_finishes_unknown(self, registry, audits):
        registry.put(JSON_HASH, allocator_file(AuditCycle(outcome="APPROVED", datacap_amount=5)))

        finished = await audits.finish_audit(JSON_HASH)

        assert finished.audit_change.outcome == "UNKNOWN"


# ---------------------------------------------------------------------------
# Registries
# ---------------------------------------------------------------------------

class TestRegistries:
    @pytest.mark.asyncio
    async def test_in_memory_change_numbers_increase(self):
        registry = InMemoryAllocatorRegistry(base_url="https://r/pull")
        first = await registry.publish("h", allocator_file(), "b1", "t1")
        second = await registry.publish("h", allocator_file(), "b2", "t2")

        assert (first.pr_number, second.pr_number) == (1, 2)
        assert second.pr_url == "https://r/pull/2"

    @pytest.mark.asyncio
    async def test_directory_registry_round_trip(self, tmp_path):
        config = AllocatorRegistryConfig(owner="o", repo="r", local_path=str(tmp_path))
        registry = DirectoryAllocatorRegistry(config)
        publisher = RefreshAuditPublisher(registry, clock=lambda: NOW)
        await registry.publish(JSON_HASH, allocator_file(finished_audit(5)), "seed", "seed")

        history = await publisher.new_audit(JSON_HASH)

        assert history.pr_number == 2
        assert history.pr_url == "https://github.com/o/r/pull/2"
        stored = await registry.fetch_allocator(JSON_HASH)
        assert [a.outcome for a in stored.audits] == ["GRANTED", "PENDING"]
        assert (tmp_path / "Allocators" / f"{JSON_HASH}.json").exists()

    @pytest.mark.asyncio
    async def test_directory_registry_missing_file(self, tmp_path):
        registry = DirectoryAllocatorRegistry(AllocatorRegistryConfig(local_path=str(tmp_path)))
        with pytest.raises(AllocatorNotFoundError):
            await registry.fetch_allocator("nope")
