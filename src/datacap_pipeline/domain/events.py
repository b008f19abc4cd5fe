"""Domain events of the application aggregate.

Design invariants
-----------------
1.  Every event is **immutable** (``frozen=True``).
2.  ``event_id`` is a UUID4 generated at creation time; the kernel and the
    event store use it as the idempotency / dedup key.
3.  ``aggregate_id`` names the stream the event belongs to.
4.  Events that touch the instruction ledger carry the full ledger
    snapshot as it stands *after* the transition, so applying them never
    needs to recompute anything.
5.  ``correlation_id`` groups the events recorded by one command.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from datacap_pipeline.core.ids import new_id as _uuid
from datacap_pipeline.core.ids import utc_now as _now
from datacap_pipeline.domain.models import ApplicationInstruction

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DomainEvent:
    """Immutable base for every application event.

    Shared fields
    ~~~~~~~~~~~~~
    event_id        Unique identity (UUID4).  Idempotency key.
    aggregate_id    GUID of the owning application.
    timestamp       UTC creation time.
    source          What triggered the event (``api``, ``github``, ...).
    correlation_id  Groups events recorded by the same command.
    """

    event_id: str = field(default_factory=_uuid)
    aggregate_id: str = ""
    timestamp: datetime = field(default_factory=_now)
    source: str = "api"
    correlation_id: str = ""

    @property
    def event_name(self) -> str:
        return type(self).__name__


# =========================================================================
# Application lifecycle
# =========================================================================

@dataclass(frozen=True)
class ApplicationCreated(DomainEvent):
    application_number: int = 0
    applicant_name: str = ""
    applicant_address: str = ""
    applicant_org_name: str = ""
    applicant_org_addresses: str = ""
    allocation_audit: str = ""
    allocation_distribution_required: str = ""
    allocation_required_storage_providers: str = ""
    allocation_required_replicas: str = ""
    datacap_allocation_limits: str = ""
    applicant_github_handle: str = ""
    other_github_handles: tuple[str, ...] = ()
    on_chain_address: str = ""
    bookkeeping_repo: str = ""
    allocation_tranche_schedule: str = ""


@dataclass(frozen=True)
class ApplicationEdited(DomainEvent):
    """Allocator registry file changed; ``file`` is its JSON document.

    ``instructions`` is the ledger rebuilt from the file's audits, empty
    when the file has none and the current ledger stays.
    """

    file: dict[str, Any] = field(default_factory=dict)
    instructions: tuple[ApplicationInstruction, ...] = ()


@dataclass(frozen=True)
class AllocatorMultisigUpdated(DomainEvent):
    allocator_actor_id: str = ""
    multisig_address: str = ""
    multisig_threshold: int = 0
    multisig_signers: tuple[str, ...] = ()


@dataclass(frozen=True)
class ApplicationPullRequestUpdated(DomainEvent):
    pr_number: int = 0
    pr_url: str = ""
    comment_id: int = 0
    status: str = ""


# =========================================================================
# KYC
# =========================================================================

@dataclass(frozen=True)
class KYCStarted(DomainEvent):
    pass


@dataclass(frozen=True)
class KYCApproved(DomainEvent):
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class KYCRejected(DomainEvent):
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class KYCRevoked(DomainEvent):
    pass


# =========================================================================
# Governance review
# =========================================================================

@dataclass(frozen=True)
class GovernanceReviewStarted(DomainEvent):
    pass


@dataclass(frozen=True)
class GovernanceReviewApproved(DomainEvent):
    instructions: tuple[ApplicationInstruction, ...] = ()
    allocator_type: str = ""
    reviewer_address: str = ""


@dataclass(frozen=True)
class GovernanceReviewRejected(DomainEvent):
    instructions: tuple[ApplicationInstruction, ...] = ()
    reason: str = ""
    reviewer_address: str = ""


# =========================================================================
# Root key holder multisig
# =========================================================================

@dataclass(frozen=True)
class RKHApprovalStarted(DomainEvent):
    approval_threshold: int = 2
    pathway: str = ""
    address: str = ""


@dataclass(frozen=True)
class RKHApprovalsUpdated(DomainEvent):
    message_id: int = 0
    approvals: tuple[str, ...] = ()
    approval_threshold: int = 2


@dataclass(frozen=True)
class RKHApprovalCompleted(DomainEvent):
    instructions: tuple[ApplicationInstruction, ...] = ()
    pathway: str = ""
    address: str = ""


# =========================================================================
# Meta-allocator
# =========================================================================

@dataclass(frozen=True)
class MetaAllocatorApprovalStarted(DomainEvent):
    pathway: str = ""
    address: str = ""


@dataclass(frozen=True)
class MetaAllocatorApprovalCompleted(DomainEvent):
    block_number: int = 0
    tx_hash: str = ""
    instructions: tuple[ApplicationInstruction, ...] = ()
    pathway: str = ""
    address: str = ""


# =========================================================================
# Allocation and refresh
# =========================================================================

@dataclass(frozen=True)
class DatacapAllocationUpdated(DomainEvent):
    datacap: float = 0


@dataclass(frozen=True)
class DatacapRefreshRequested(DomainEvent):
    amount: float = 0
    method: str = ""


#: All application event types in a deterministic order.
ALL_DOMAIN_EVENTS: tuple[type[DomainEvent], ...] = (
    ApplicationCreated,
    ApplicationEdited,
    AllocatorMultisigUpdated,
    ApplicationPullRequestUpdated,
    KYCStarted,
    KYCApproved,
    KYCRejected,
    KYCRevoked,
    GovernanceReviewStarted,
    GovernanceReviewApproved,
    GovernanceReviewRejected,
    RKHApprovalStarted,
    RKHApprovalsUpdated,
    RKHApprovalCompleted,
    MetaAllocatorApprovalStarted,
    MetaAllocatorApprovalCompleted,
    DatacapAllocationUpdated,
    DatacapRefreshRequested,
)
