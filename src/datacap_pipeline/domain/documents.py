"""Read-model documents exchanged with external collaborators.

These mirror the allocator registry JSON files and the refresh issue
records kept by the document store. Field names follow the registry's
snake_case wire format.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from datacap_pipeline.core.enums import AuditOutcome, RefreshStatus


class AuditCycle(BaseModel):
    """One pass through the refresh/audit workflow."""

    model_config = ConfigDict(extra="allow")

    started: str = ""
    ended: str = ""
    dc_allocated: str = ""
    outcome: str = AuditOutcome.PENDING.value
    datacap_amount: float | str = ""


class AuditChange(BaseModel):
    """Partial update to the latest audit cycle. ``None`` means untouched."""

    started: str | None = None
    ended: str | None = None
    dc_allocated: str | None = None
    outcome: str | None = None
    datacap_amount: float | str | None = None

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude_none=True)


class PathwayAddresses(BaseModel):
    model_config = ConfigDict(extra="allow")

    msig: str | None = None
    signers: list[str] | None = None


class AllocatorApplicationSection(BaseModel):
    model_config = ConfigDict(extra="allow")

    allocations: list[str] | None = None
    audit: list[str] | None = None
    distribution: list[str] | None = None
    tranche_schedule: str | None = None
    required_replicas: str | None = None
    required_sps: str | None = None
    max_DC_client: str | None = None
    github_handles: list[str] | None = None
    client_contract_address: str | None = None
    allocation_bookkeeping: str | None = None


class AllocatorFile(BaseModel):
    """Allocator JSON file as stored in the allocator registry."""

    model_config = ConfigDict(extra="allow")

    application_number: int | None = None
    allocator_id: str | None = None
    address: str | None = None
    name: str | None = None
    organization: str | None = None
    associated_org_addresses: str | None = None
    metapathway_type: str | None = None
    ma_address: str | None = None
    pathway_addresses: PathwayAddresses | None = None
    application: AllocatorApplicationSection = Field(
        default_factory=AllocatorApplicationSection
    )
    audits: list[AuditCycle] = Field(default_factory=list)


class PublishedChange(BaseModel):
    """Reference to the registry change that carried an audit update."""

    branch_name: str
    commit_sha: str
    pr_number: int
    pr_url: str


class AuditHistory(PublishedChange):
    audit_change: AuditChange


class IssueUser(BaseModel):
    user_id: int
    name: str


class RkhPhase(BaseModel):
    message_id: int
    approvals: list[str] = Field(default_factory=list)


class MetaAllocatorPhase(BaseModel):
    block_number: int


class IssueDetails(BaseModel):
    """Refresh issue record kept by the document store."""

    github_issue_id: int
    github_issue_number: int
    title: str = ""
    creator: IssueUser | None = None
    assignees: list[IssueUser] | None = None
    labels: list[str] | None = None
    state: str = "open"
    created_at: datetime | None = None
    updated_at: datetime | None = None
    closed_at: datetime | None = None
    json_number: str = ""
    msig_address: str | None = None
    metapathway_type: str | None = None
    ma_address: str | None = None
    refresh_status: RefreshStatus | None = None
    actor_id: str | None = None
    transaction_cid: str | None = None
    block_number: int | None = None
    data_cap: float | None = None
    rkh_phase: RkhPhase | None = None
    meta_allocator: MetaAllocatorPhase | None = None
    current_audit: AuditChange | None = None
    audit_history: list[AuditHistory] = Field(default_factory=list)
