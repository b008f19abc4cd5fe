"""Event-sourced application aggregate and its approval state machine.

Lifecycle::

    KYC_PHASE -> GOVERNANCE_REVIEW_PHASE
    GOVERNANCE_REVIEW_PHASE -> [RKH_APPROVAL_PHASE|META_APPROVAL_PHASE|DC_ALLOCATED|REJECTED]
    RKH_APPROVAL_PHASE -> DC_ALLOCATED
    META_APPROVAL_PHASE -> DC_ALLOCATED
    DC_ALLOCATED -> IN_REFRESH -> GOVERNANCE_REVIEW_PHASE
    KYC_PHASE -> REJECTED

Every command checks the current phase first and raises
:class:`InvalidPhaseError` without touching state when it does not match.
Commands then compute the event payload (calling the allocation path
resolver where needed) and record the events; the ``_apply_*`` handlers
are the only place state changes.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from datacap_pipeline.core.config import RegistryConfig
from datacap_pipeline.core.enums import (
    AllocatorType,
    ApplicationAllocator,
    ApplicationStatus,
    InstructionStatus,
)
from datacap_pipeline.core.errors import (
    ApplicationError,
    InvalidAllocatorFileError,
    InvalidPhaseError,
)
from datacap_pipeline.core.ids import new_id, to_epoch_ms, utc_now, zulu_to_epoch_ms
from datacap_pipeline.domain.aggregate import AggregateRoot
from datacap_pipeline.domain.documents import AllocatorFile
from datacap_pipeline.domain.events import (
    AllocatorMultisigUpdated,
    ApplicationCreated,
    ApplicationEdited,
    ApplicationPullRequestUpdated,
    DatacapAllocationUpdated,
    DatacapRefreshRequested,
    DomainEvent,
    GovernanceReviewApproved,
    GovernanceReviewRejected,
    GovernanceReviewStarted,
    KYCApproved,
    KYCRejected,
    KYCRevoked,
    KYCStarted,
    MetaAllocatorApprovalCompleted,
    MetaAllocatorApprovalStarted,
    RKHApprovalCompleted,
    RKHApprovalStarted,
    RKHApprovalsUpdated,
)
from datacap_pipeline.domain.models import AllocationPath, ApplicationInstruction
from datacap_pipeline.resolvers.allocation_path import AllocationPathResolver

logger = logging.getLogger(__name__)

_S = ApplicationStatus

INITIAL_DATACAP_AMOUNT = 5
RKH_APPROVAL_THRESHOLD = 2
REJECTED_ACTOR_ID = "f00000000"
META_ALLOCATOR_TOOLING = ("smart_contract_allocator",)
MANUAL_ALLOCATOR_TYPE = "Manual"


def _audit_amount(value: float | str | None) -> float:
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidAllocatorFileError(f"datacap amount {value!r}") from exc


def _audit_time(value: str | None) -> int | None:
    try:
        return zulu_to_epoch_ms(value)
    except ValueError as exc:
        raise InvalidAllocatorFileError(f"audit date {value!r}") from exc


def _ledger_from_audits(file: AllocatorFile) -> tuple[ApplicationInstruction, ...]:
    """One instruction per registry audit; empty when the file has none."""
    method = (
        ApplicationAllocator.META_ALLOCATOR
        if file.metapathway_type == "MDMA"
        else ApplicationAllocator.RKH_ALLOCATOR
    )
    return tuple(
        ApplicationInstruction(
            method=method.value,
            datacap_amount=_audit_amount(audit.datacap_amount),
            start_timestamp=_audit_time(audit.started),
            end_timestamp=_audit_time(audit.ended),
            allocated_timestamp=_audit_time(audit.dc_allocated),
            status=audit.outcome or InstructionStatus.PENDING.value,
        )
        for audit in file.audits
    )


# ---------------------------------------------------------------------------
# Command payloads
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ApplicationParams:
    application_id: str
    application_number: int
    applicant_name: str = ""
    applicant_address: str = ""
    applicant_org_name: str = ""
    applicant_org_addresses: str = ""
    allocation_tranche_schedule: str = ""
    allocation_audit: str = ""
    allocation_distribution_required: str = ""
    allocation_required_storage_providers: str = ""
    allocation_required_replicas: str = ""
    bookkeeping_repo: str = ""
    datacap_allocation_limits: str = ""
    applicant_github_handle: str = ""
    other_github_handles: tuple[str, ...] = ()
    on_chain_address: str = ""


@dataclass(frozen=True)
class GovernanceReviewApproval:
    final_datacap: float
    allocator_type: str
    reviewer_address: str
    is_mdma_allocator: bool = False


@dataclass(frozen=True)
class GovernanceReviewRejection:
    reason: str
    reviewer_address: str


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------

class DatacapAllocator(AggregateRoot):
    """One allocator application, rebuilt from its event stream.

    Args:
        guid: Application id. A new UUID when omitted.
        path_resolver: Resolver used by commands that route the
            application to a pathway. Built from the default registry
            config when omitted.
    """

    def __init__(
        self,
        guid: str | None = None,
        path_resolver: AllocationPathResolver | None = None,
    ) -> None:
        super().__init__(guid)
        self._path_resolver = path_resolver

        self.application_number: int = 0
        self.application_pull_request: dict[str, Any] | None = None

        self.applicant_name: str = ""
        self.applicant_address: str = ""
        self.applicant_org_name: str = ""
        self.applicant_org_addresses: str = ""
        self.applicant_github_handle: str = ""
        self.applicant_other_github_handles: list[str] = []

        self.allocation_standardized_allocations: list[str] = []
        self.allocation_audit: str = ""
        self.allocation_distribution_required: str = ""
        self.allocation_tranche_schedule: str = ""
        self.allocation_required_replicas: str = ""
        self.allocation_required_storage_providers: str = ""
        self.allocation_bookkeeping_repo: str = ""
        self.allocation_max_dc_client: str = ""
        self.allocation_datacap_allocation_limits: str = ""
        self.allocation_tooling: list[str] = []
        self.on_chain_address: str = ""

        self.application_status: ApplicationStatus | None = None
        self.application_instructions: list[ApplicationInstruction] = []

        self.datacap_amount: float | None = None
        self.pathway: str | None = None
        self.ma_address: str | None = None
        self.is_meta_allocator: bool | None = None
        self.is_mdma: bool | None = None

        self.rkh_approval_threshold: int = RKH_APPROVAL_THRESHOLD
        self.rkh_approvals: list[str] = []
        self.rkh_message_id: int | None = None

        self.allocator_actor_id: str | None = None
        self.allocator_multisig_address: str | None = None
        self.allocator_multisig_threshold: int | None = None
        self.allocator_multisig_signers: list[str] = []

        self.milestones: dict[str, int | None] = {
            "Application Submitted": None,
            "KYC Submitted": None,
            "Approved": None,
            "Declined": None,
            "DC Allocated": None,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def path_resolver(self) -> AllocationPathResolver:
        if self._path_resolver is None:
            self._path_resolver = AllocationPathResolver.from_config(RegistryConfig())
        return self._path_resolver

    @property
    def current_instruction(self) -> ApplicationInstruction | None:
        return self.application_instructions[-1] if self.application_instructions else None

    def _ensure_phase(self, *allowed: ApplicationStatus) -> None:
        if self.application_status not in allowed:
            current = self.application_status.value if self.application_status else None
            expected = tuple(s.value for s in allowed)
            logger.debug(
                "Application %s: invalid status %s, expected one of %s",
                self.guid[:8], current, expected,
            )
            raise InvalidPhaseError(current, expected)

    def _last_instruction(self) -> ApplicationInstruction:
        if not self.application_instructions:
            raise ApplicationError(400, InvalidPhaseError.CODE, "Empty instruction data")
        return self.application_instructions[-1]

    def _with_last(
        self,
        instruction: ApplicationInstruction,
        ledger: tuple[ApplicationInstruction, ...] | None = None,
    ) -> tuple[ApplicationInstruction, ...]:
        base = tuple(self.application_instructions) if ledger is None else ledger
        return base[:-1] + (instruction,)

    def _granted(
        self, ledger: tuple[ApplicationInstruction, ...] | None = None
    ) -> tuple[ApplicationInstruction, ...]:
        base = tuple(self.application_instructions) if ledger is None else ledger
        return self._with_last(
            base[-1].evolve(status=InstructionStatus.GRANTED.value), base
        )

    def _event(self, cls: type[DomainEvent], correlation_id: str = "", **payload: Any):
        return cls(aggregate_id=self.guid, correlation_id=correlation_id, **payload)

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of the public state, for comparisons and read models."""
        state = {k: v for k, v in vars(self).items() if not k.startswith("_")}
        state["application_instructions"] = [
            i.to_dict() for i in self.application_instructions
        ]
        return copy.deepcopy(state)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        params: ApplicationParams,
        path_resolver: AllocationPathResolver | None = None,
    ) -> DatacapAllocator:
        allocator = cls(params.application_id, path_resolver=path_resolver)
        allocator.record(
            allocator._event(
                ApplicationCreated,
                application_number=params.application_number,
                applicant_name=params.applicant_name,
                applicant_address=params.applicant_address,
                applicant_org_name=params.applicant_org_name,
                applicant_org_addresses=params.applicant_org_addresses,
                allocation_audit=params.allocation_audit,
                allocation_distribution_required=params.allocation_distribution_required,
                allocation_required_storage_providers=params.allocation_required_storage_providers,
                allocation_required_replicas=params.allocation_required_replicas,
                datacap_allocation_limits=params.datacap_allocation_limits,
                applicant_github_handle=params.applicant_github_handle,
                other_github_handles=tuple(params.other_github_handles),
                on_chain_address=params.on_chain_address,
                bookkeeping_repo=params.bookkeeping_repo,
                allocation_tranche_schedule=params.allocation_tranche_schedule,
            )
        )
        return allocator

    def edit(self, file: AllocatorFile | dict[str, Any]) -> None:
        """Apply a changed allocator registry file. Allowed in any phase.

        Raises:
            InvalidAllocatorFileError: An audit amount or date cannot be read.
        """
        try:
            document = AllocatorFile.model_validate(file)
        except ValidationError as exc:
            raise InvalidAllocatorFileError(str(exc)) from exc
        ledger = _ledger_from_audits(document)
        self.record(
            self._event(
                ApplicationEdited,
                file=document.model_dump(mode="json"),
                instructions=ledger,
            )
        )

    def set_allocator_multisig(
        self,
        allocator_actor_id: str,
        multisig_address: str,
        multisig_threshold: int,
        multisig_signers: list[str],
    ) -> None:
        self._ensure_phase(_S.KYC_PHASE)
        self.record(
            self._event(
                AllocatorMultisigUpdated,
                allocator_actor_id=allocator_actor_id,
                multisig_address=multisig_address,
                multisig_threshold=multisig_threshold,
                multisig_signers=tuple(multisig_signers),
            )
        )

    def set_application_pull_request(
        self,
        pr_number: int,
        pr_url: str,
        comment_id: int,
        refresh: bool = False,
    ) -> None:
        if refresh:
            self._ensure_phase(_S.DC_ALLOCATED)
            status = _S.GOVERNANCE_REVIEW_PHASE
        else:
            self._ensure_phase(_S.KYC_PHASE)
            status = _S.KYC_PHASE
        self.record(
            self._event(
                ApplicationPullRequestUpdated,
                pr_number=pr_number,
                pr_url=pr_url,
                comment_id=comment_id,
                status=status.value,
            )
        )

    def approve_kyc(self, data: dict[str, Any]) -> None:
        self._ensure_phase(_S.KYC_PHASE)
        correlation = new_id()
        self.record(self._event(KYCApproved, correlation, data=dict(data)))
        self.record(self._event(GovernanceReviewStarted, correlation))

    def reject_kyc(self, data: dict[str, Any]) -> None:
        self._ensure_phase(_S.KYC_PHASE)
        self.record(self._event(KYCRejected, data=dict(data)))

    def revoke_kyc(self) -> None:
        self._ensure_phase(_S.GOVERNANCE_REVIEW_PHASE)
        self.record(self._event(KYCRevoked))

    def approve_governance_review(self, details: GovernanceReviewApproval) -> None:
        """Record the reviewer's decision and route the application.

        ``Manual`` allocators go through the meta-allocator, everything else
        through the root key holders. MDMA allocations are granted straight
        away on either pathway; otherwise the application waits for the
        on-chain confirmation of its pathway.
        """
        self._ensure_phase(_S.GOVERNANCE_REVIEW_PHASE)
        last = self._last_instruction()

        method = (
            ApplicationAllocator.META_ALLOCATOR
            if details.allocator_type == MANUAL_ALLOCATOR_TYPE
            else ApplicationAllocator.RKH_ALLOCATOR
        )
        is_meta = method is ApplicationAllocator.META_ALLOCATOR
        is_mdma = bool(details.is_mdma_allocator)
        reviewed = self._with_last(
            last.evolve(
                method=method.value,
                datacap_amount=details.final_datacap,
                status=InstructionStatus.PENDING.value,
                is_mdma_allocator=is_mdma,
                end_timestamp=to_epoch_ms(utc_now()),
            )
        )
        path = self.path_resolver.resolve(
            AllocatorType.MDMA if is_meta else AllocatorType.RKH
        )

        correlation = new_id()
        approved = self._event(
            GovernanceReviewApproved,
            correlation,
            instructions=reviewed,
            allocator_type=details.allocator_type,
            reviewer_address=details.reviewer_address,
        )
        routed = self._routing_event(is_meta, is_mdma, reviewed, path, correlation)

        logger.info(
            "Application %s: governance review approved (meta=%s, mdma=%s) -> %s",
            self.guid[:8], is_meta, is_mdma, routed.event_name,
        )
        self.record(approved)
        self.record(routed)

    def _routing_event(
        self,
        is_meta: bool,
        is_mdma: bool,
        ledger: tuple[ApplicationInstruction, ...],
        path: AllocationPath,
        correlation: str,
    ) -> DomainEvent:
        route = {"pathway": path.pathway.value, "address": path.address}
        if is_meta and is_mdma:
            return self._event(
                MetaAllocatorApprovalCompleted,
                correlation,
                block_number=0,
                tx_hash="",
                instructions=self._granted(ledger),
                **route,
            )
        if is_meta:
            return self._event(MetaAllocatorApprovalStarted, correlation, **route)
        if is_mdma:
            return self._event(
                RKHApprovalCompleted,
                correlation,
                instructions=self._granted(ledger),
                **route,
            )
        return self._event(
            RKHApprovalStarted,
            correlation,
            approval_threshold=self.path_resolver.rkh_threshold,
            **route,
        )

    def reject_governance_review(self, details: GovernanceReviewRejection) -> None:
        self._ensure_phase(_S.GOVERNANCE_REVIEW_PHASE)
        denied = self._with_last(
            self._last_instruction().evolve(status=InstructionStatus.DENIED.value)
        )
        self.record(
            self._event(
                GovernanceReviewRejected,
                instructions=denied,
                reason=details.reason,
                reviewer_address=details.reviewer_address,
            )
        )

    def update_rkh_approvals(self, message_id: int, approvals: list[str]) -> None:
        """Track multisig signatures; a redelivered count records nothing."""
        self._ensure_phase(_S.RKH_APPROVAL_PHASE)
        if len(approvals) == len(self.rkh_approvals):
            return
        self.record(
            self._event(
                RKHApprovalsUpdated,
                message_id=message_id,
                approvals=tuple(approvals),
                approval_threshold=self.rkh_approval_threshold,
            )
        )

    def complete_rkh_approval(self) -> None:
        self._ensure_phase(_S.RKH_APPROVAL_PHASE)
        self._last_instruction()
        path = self.path_resolver.resolve(AllocatorType.RKH)
        self.record(
            self._event(
                RKHApprovalCompleted,
                instructions=self._granted(),
                pathway=path.pathway.value,
                address=path.address,
            )
        )

    def complete_meta_allocator_approval(self, block_number: int, tx_hash: str) -> None:
        self._ensure_phase(
            _S.GOVERNANCE_REVIEW_PHASE, _S.META_APPROVAL_PHASE, _S.DC_ALLOCATED
        )
        self._last_instruction()
        path = self.path_resolver.resolve(AllocatorType.MDMA)
        self.record(
            self._event(
                MetaAllocatorApprovalCompleted,
                block_number=block_number,
                tx_hash=tx_hash,
                instructions=self._granted(),
                pathway=path.pathway.value,
                address=path.address,
            )
        )

    def update_datacap_allocation(self, datacap: float) -> None:
        """Record the allowance observed on chain for an RKH allocation.

        A still-pending RKH instruction is granted first, whether the phase
        is RKH approval or the approvals count already reached threshold.
        """
        self._ensure_phase(_S.RKH_APPROVAL_PHASE, _S.DC_ALLOCATED)
        last = self._last_instruction()
        correlation = new_id()
        completion = None
        if self.application_status is _S.RKH_APPROVAL_PHASE or (
            last.status == InstructionStatus.PENDING.value
            and last.method == ApplicationAllocator.RKH_ALLOCATOR.value
        ):
            path = self.path_resolver.resolve(AllocatorType.RKH)
            completion = self._event(
                RKHApprovalCompleted,
                correlation,
                instructions=self._granted(),
                pathway=path.pathway.value,
                address=path.address,
            )
        if completion is not None:
            self.record(completion)
        self.record(self._event(DatacapAllocationUpdated, correlation, datacap=datacap))

    def request_datacap_refresh(self) -> None:
        self._ensure_phase(_S.DC_ALLOCATED)
        previous = self._last_instruction()
        self.record(
            self._event(
                DatacapRefreshRequested,
                amount=previous.datacap_amount * 2,
                method=previous.method,
            )
        )

    def start_refresh_review(self) -> None:
        """Hand a published refresh request over to governance review."""
        self._ensure_phase(_S.IN_REFRESH)
        self.record(self._event(GovernanceReviewStarted))

    # ------------------------------------------------------------------
    # Apply handlers
    # ------------------------------------------------------------------

    def _mark(self, milestone: str, event: DomainEvent) -> None:
        if self.milestones.get(milestone) is None:
            self.milestones[milestone] = to_epoch_ms(event.timestamp)

    def _install_granted(self, event: DomainEvent, instructions) -> None:
        ledger = list(instructions)
        if ledger:
            ledger[-1] = ledger[-1].evolve(
                allocated_timestamp=to_epoch_ms(event.timestamp)
            )
        self.application_instructions = ledger

    def _apply_ApplicationCreated(self, event: ApplicationCreated) -> None:
        self.guid = event.aggregate_id or self.guid
        self.application_number = event.application_number
        self.applicant_name = event.applicant_name
        self.applicant_address = event.applicant_address
        self.applicant_org_name = event.applicant_org_name
        self.applicant_org_addresses = event.applicant_org_addresses
        self.applicant_github_handle = event.applicant_github_handle
        self.applicant_other_github_handles = list(event.other_github_handles)
        self.allocation_bookkeeping_repo = event.bookkeeping_repo
        self.allocation_tranche_schedule = event.allocation_tranche_schedule
        self.allocation_audit = event.allocation_audit
        self.allocation_distribution_required = event.allocation_distribution_required
        self.allocation_required_storage_providers = event.allocation_required_storage_providers
        self.allocation_required_replicas = event.allocation_required_replicas
        self.allocation_datacap_allocation_limits = event.datacap_allocation_limits
        self.on_chain_address = event.on_chain_address
        if self.application_status is None:
            self.application_status = _S.KYC_PHASE
            self.application_instructions = [
                ApplicationInstruction(
                    method="",
                    datacap_amount=INITIAL_DATACAP_AMOUNT,
                    start_timestamp=to_epoch_ms(event.timestamp),
                    status=InstructionStatus.PENDING.value,
                )
            ]

    def _apply_ApplicationEdited(self, event: ApplicationEdited) -> None:
        file = AllocatorFile.model_validate(event.file)
        app = file.application

        self.applicant_address = file.address or self.applicant_address
        self.applicant_name = file.name or self.applicant_name
        self.applicant_org_name = file.organization or self.applicant_org_name
        self.applicant_org_addresses = (
            file.associated_org_addresses or self.applicant_org_addresses
        )
        self.allocation_standardized_allocations = (
            app.allocations or self.allocation_standardized_allocations
        )
        self.allocation_audit = app.audit[0] if app.audit else self.allocation_audit
        self.allocation_distribution_required = (
            app.distribution[0] if app.distribution else self.allocation_distribution_required
        )
        self.allocation_tranche_schedule = (
            app.tranche_schedule or self.allocation_tranche_schedule
        )
        self.allocation_required_replicas = (
            app.required_replicas or self.allocation_required_replicas
        )
        self.allocation_required_storage_providers = (
            app.required_sps or self.allocation_required_storage_providers
        )
        self.allocation_max_dc_client = app.max_DC_client or self.allocation_max_dc_client
        self.applicant_github_handle = (
            app.github_handles[0] if app.github_handles else self.applicant_github_handle
        )
        self.on_chain_address = app.client_contract_address or self.on_chain_address
        self.allocation_bookkeeping_repo = (
            app.allocation_bookkeeping or self.allocation_bookkeeping_repo
        )
        if file.pathway_addresses is not None:
            self.allocator_multisig_address = (
                file.pathway_addresses.msig or self.allocator_multisig_address
            )
            self.allocator_multisig_signers = (
                file.pathway_addresses.signers or self.allocator_multisig_signers
            )

        # The registry's audit list is the authoritative ledger history.
        if event.instructions:
            self.application_instructions = list(event.instructions)

    def _apply_AllocatorMultisigUpdated(self, event: AllocatorMultisigUpdated) -> None:
        self.allocator_actor_id = event.allocator_actor_id
        self.allocator_multisig_address = event.multisig_address
        self.allocator_multisig_threshold = event.multisig_threshold
        self.allocator_multisig_signers = list(event.multisig_signers)

    def _apply_ApplicationPullRequestUpdated(
        self, event: ApplicationPullRequestUpdated
    ) -> None:
        self.application_pull_request = {
            "pr_number": event.pr_number,
            "pr_url": event.pr_url,
            "comment_id": event.comment_id,
            "timestamp": to_epoch_ms(event.timestamp),
        }
        self._mark("Application Submitted", event)

    def _apply_KYCStarted(self, event: KYCStarted) -> None:
        self.application_status = _S.KYC_PHASE

    def _apply_KYCApproved(self, event: KYCApproved) -> None:
        if self.application_status is _S.KYC_PHASE:
            self._mark("KYC Submitted", event)
            self.application_status = _S.GOVERNANCE_REVIEW_PHASE

    def _apply_KYCRevoked(self, event: KYCRevoked) -> None:
        self.application_status = _S.GOVERNANCE_REVIEW_PHASE
        self.milestones["KYC Submitted"] = None

    def _apply_KYCRejected(self, event: KYCRejected) -> None:
        self.milestones["KYC Failed"] = to_epoch_ms(event.timestamp)
        self.application_status = _S.REJECTED

    def _apply_GovernanceReviewStarted(self, event: GovernanceReviewStarted) -> None:
        if self.application_status is _S.IN_REFRESH:
            self._mark("In Refresh", event)
            self.application_status = _S.GOVERNANCE_REVIEW_PHASE

    def _apply_GovernanceReviewApproved(self, event: GovernanceReviewApproved) -> None:
        if self.application_status is _S.GOVERNANCE_REVIEW_PHASE:
            self._mark("Approved", event)
        self.application_instructions = list(event.instructions)
        last = self.current_instruction
        if last is not None:
            self.is_meta_allocator = (
                last.method == ApplicationAllocator.META_ALLOCATOR.value
            )
            self.is_mdma = bool(last.is_mdma_allocator)

    def _apply_GovernanceReviewRejected(self, event: GovernanceReviewRejected) -> None:
        self.application_status = _S.REJECTED
        # A rejected application must not be matched by on-chain scanners.
        self.allocator_actor_id = REJECTED_ACTOR_ID
        self._mark("Declined", event)
        self.application_instructions = list(event.instructions)

    def _apply_RKHApprovalStarted(self, event: RKHApprovalStarted) -> None:
        self.application_status = _S.RKH_APPROVAL_PHASE
        self.allocation_tooling = []
        self.pathway = event.pathway
        self.ma_address = event.address
        self.rkh_approval_threshold = event.approval_threshold
        self.rkh_approvals = []
        self.rkh_message_id = None

    def _apply_RKHApprovalsUpdated(self, event: RKHApprovalsUpdated) -> None:
        self.application_status = (
            _S.RKH_APPROVAL_PHASE
            if len(event.approvals) < event.approval_threshold
            else _S.DC_ALLOCATED
        )
        self.rkh_approvals = list(event.approvals)
        self.rkh_approval_threshold = event.approval_threshold
        self.rkh_message_id = event.message_id

    def _apply_RKHApprovalCompleted(self, event: RKHApprovalCompleted) -> None:
        self._mark("DC Allocated", event)
        self.application_status = _S.DC_ALLOCATED
        self.allocation_tooling = []
        self.pathway = event.pathway
        self.ma_address = event.address
        self._install_granted(event, event.instructions)

    def _apply_MetaAllocatorApprovalStarted(
        self, event: MetaAllocatorApprovalStarted
    ) -> None:
        self.application_status = _S.META_APPROVAL_PHASE
        self.allocation_tooling = list(META_ALLOCATOR_TOOLING)
        self.pathway = event.pathway
        self.ma_address = event.address

    def _apply_MetaAllocatorApprovalCompleted(
        self, event: MetaAllocatorApprovalCompleted
    ) -> None:
        self._mark("DC Allocated", event)
        self.application_status = _S.DC_ALLOCATED
        self.allocation_tooling = list(META_ALLOCATOR_TOOLING)
        self.pathway = event.pathway
        self.ma_address = event.address
        self._install_granted(event, event.instructions)

    def _apply_DatacapAllocationUpdated(self, event: DatacapAllocationUpdated) -> None:
        self.application_status = _S.DC_ALLOCATED
        self.datacap_amount = event.datacap

    def _apply_DatacapRefreshRequested(self, event: DatacapRefreshRequested) -> None:
        if self.application_status is _S.DC_ALLOCATED:
            self._mark("In Refresh", event)
        self.application_status = _S.IN_REFRESH
        self.application_instructions = self.application_instructions + [
            ApplicationInstruction(
                method=event.method,
                datacap_amount=event.amount,
                start_timestamp=to_epoch_ms(event.timestamp),
                status=InstructionStatus.PENDING.value,
            )
        ]
