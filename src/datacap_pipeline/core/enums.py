"""Enumerations used across the pipeline."""

from enum import Enum


class ApplicationStatus(str, Enum):
    KYC_PHASE = "KYC_PHASE"
    GOVERNANCE_REVIEW_PHASE = "GOVERNANCE_REVIEW_PHASE"
    RKH_APPROVAL_PHASE = "RKH_APPROVAL_PHASE"
    META_APPROVAL_PHASE = "META_APPROVAL_PHASE"
    REJECTED = "REJECTED"
    IN_REFRESH = "IN_REFRESH"
    DC_ALLOCATED = "DC_ALLOCATED"


class ApplicationAllocator(str, Enum):
    """Method recorded on a ledger instruction."""

    META_ALLOCATOR = "META_ALLOCATOR"
    RKH_ALLOCATOR = "RKH_ALLOCATOR"


class InstructionStatus(str, Enum):
    PENDING = "PENDING"
    GRANTED = "GRANTED"
    DENIED = "DENIED"


class AllocatorType(str, Enum):
    """Allocator classification requested for a pathway."""

    MDMA = "MDMA"
    ORMA = "ORMA"
    RKH = "RKH"
    AMA = "AMA"


class Pathway(str, Enum):
    MDMA = "MDMA"
    ORMA = "ORMA"
    AMA = "AMA"
    RKH = "RKH"


class AuditType(str, Enum):
    ENTERPRISE = "Enterprise"
    MARKET_BASED = "Market Based"
    AUTOMATED = "Automated"
    ON_RAMP = "On Ramp"


class AuditOutcome(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    GRANTED = "GRANTED"
    MATCH = "MATCH"
    REJECTED = "REJECTED"
    DOUBLE = "DOUBLE"
    THROTTLE = "THROTTLE"
    UNKNOWN = "UNKNOWN"


class RefreshStatus(str, Enum):
    DC_ALLOCATED = "DC_ALLOCATED"
    REJECTED = "REJECTED"
    PENDING = "PENDING"
    SIGNED_BY_RKH = "SIGNED_BY_RKH"
    APPROVED = "APPROVED"


FINISHED_AUDIT_OUTCOMES: frozenset[AuditOutcome] = frozenset({
    AuditOutcome.DOUBLE,
    AuditOutcome.GRANTED,
    AuditOutcome.MATCH,
    AuditOutcome.REJECTED,
    AuditOutcome.THROTTLE,
})

PENDING_AUDIT_OUTCOMES: frozenset[AuditOutcome] = frozenset({
    AuditOutcome.PENDING,
    AuditOutcome.APPROVED,
})

FINISHED_REFRESH_STATUSES: frozenset[RefreshStatus] = frozenset({
    RefreshStatus.DC_ALLOCATED,
    RefreshStatus.REJECTED,
})

PENDING_REFRESH_STATUSES: frozenset[RefreshStatus] = frozenset({
    RefreshStatus.PENDING,
    RefreshStatus.APPROVED,
    RefreshStatus.SIGNED_BY_RKH,
})
