"""Shared fixtures for the datacap-pipeline test suite."""

from __future__ import annotations

import pytest

from datacap_pipeline.core.config import RegistryConfig
from datacap_pipeline.domain.application import (
    ApplicationParams,
    DatacapAllocator,
    GovernanceReviewApproval,
)
from datacap_pipeline.domain.documents import AllocatorFile, AuditCycle
from datacap_pipeline.infrastructure.allocator_registry import InMemoryAllocatorRegistry
from datacap_pipeline.infrastructure.event_store import InMemoryEventStore
from datacap_pipeline.infrastructure.issue_store import InMemoryIssueDetailsRepository
from datacap_pipeline.infrastructure.repository import ApplicationRepository
from datacap_pipeline.resolvers.allocation_path import AllocationPathResolver

MDMA_ADDRESS = "f410fw325e6novwl57jcsbhz6koljylxuhqq5jnp5ftq"
JSON_HASH = "rec123abc"


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_params(application_id: str = "app-1", **kw) -> ApplicationParams:
    defaults = dict(
        application_id=application_id,
        application_number=42,
        applicant_name="Jane",
        applicant_address="f1applicant",
        applicant_org_name="Storage Co",
        applicant_github_handle="jane",
        other_github_handles=("bob",),
    )
    defaults.update(kw)
    return ApplicationParams(**defaults)


def approval(allocator_type: str = "Automatic", mdma: bool = False, datacap: float = 5):
    return GovernanceReviewApproval(
        final_datacap=datacap,
        allocator_type=allocator_type,
        reviewer_address="0xreviewer",
        is_mdma_allocator=mdma,
    )


def allocator_file(*audits: AuditCycle, **kw) -> AllocatorFile:
    defaults = dict(
        application_number=42,
        address="f1applicant",
        name="Jane",
        metapathway_type="RKH",
        ma_address="f080",
        pathway_addresses={"msig": "f2msig", "signers": ["f1a", "f1b"]},
        audits=list(audits),
    )
    defaults.update(kw)
    return AllocatorFile.model_validate(defaults)


def finished_audit(amount: float = 5, outcome: str = "GRANTED") -> AuditCycle:
    return AuditCycle(
        started="2024-01-01T00:00:00.000Z",
        ended="2024-01-02T00:00:00.000Z",
        dc_allocated="2024-01-03T00:00:00.000Z",
        outcome=outcome,
        datacap_amount=amount,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def path_resolver() -> AllocationPathResolver:
    return AllocationPathResolver.from_config(RegistryConfig())


@pytest.fixture
def event_store() -> InMemoryEventStore:
    return InMemoryEventStore()


@pytest.fixture
def repository(event_store, path_resolver) -> ApplicationRepository:
    return ApplicationRepository(event_store, path_resolver)


@pytest.fixture
def issue_repository() -> InMemoryIssueDetailsRepository:
    return InMemoryIssueDetailsRepository()


@pytest.fixture
def registry() -> InMemoryAllocatorRegistry:
    reg = InMemoryAllocatorRegistry()
    reg.put(JSON_HASH, allocator_file(finished_audit(5)))
    return reg


@pytest.fixture
def new_application(path_resolver) -> DatacapAllocator:
    """Freshly created application in KYC_PHASE with pending events cleared."""
    app = DatacapAllocator.create(make_params(), path_resolver=path_resolver)
    app.mark_committed()
    return app


@pytest.fixture
def in_review(new_application) -> DatacapAllocator:
    """Application in GOVERNANCE_REVIEW_PHASE."""
    new_application.approve_kyc({"id": "kyc-1"})
    new_application.mark_committed()
    return new_application


@pytest.fixture
def allocated(in_review) -> DatacapAllocator:
    """Application in DC_ALLOCATED through the RKH + MDMA shortcut."""
    in_review.approve_governance_review(approval("Automatic", mdma=True, datacap=10))
    in_review.mark_committed()
    return in_review
