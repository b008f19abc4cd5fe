"""Custom exception hierarchy for the DataCap allocation pipeline."""


class DatacapError(Exception):
    """Base exception for all pipeline errors."""


# --- Configuration ---
class ConfigError(DatacapError):
    """Invalid or missing configuration."""


# --- Application aggregate ---
class ApplicationError(DatacapError):
    """Domain rule violated by a command on the application aggregate.

    Carries a stable domain ``code`` and the HTTP ``status_code`` the
    command-handling layer should surface.
    """

    def __init__(self, status_code: int, code: str, message: str):
        self.status_code = status_code
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


class InvalidPhaseError(ApplicationError):
    """Command is not allowed in the aggregate's current lifecycle phase."""

    CODE = "5308"
    MESSAGE = "Invalid operation for the current phase"

    def __init__(self, current: str | None, expected: tuple[str, ...] = ()):
        self.current = current
        self.expected = expected
        super().__init__(400, self.CODE, self.MESSAGE)


class InvalidAllocatorFileError(ApplicationError):
    """Allocator registry file holds an audit the ledger cannot represent."""

    CODE = "5309"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(400, self.CODE, f"Invalid allocator file: {detail}")


# --- Allocation path ---
class AllocationPathError(DatacapError):
    """Allocation pathway could not be resolved."""


class UnknownAllocatorTypeError(AllocationPathError):
    """Allocator type is outside the known enumeration."""

    def __init__(self, allocator_type: object):
        self.allocator_type = allocator_type
        super().__init__(f"Unknown allocator type: {allocator_type}")


# --- Reconciliation ---
class ReconciliationError(DatacapError):
    """External sync signal cannot be reconciled with stored state."""


class IssueRefreshFinishedError(ReconciliationError):
    """The issue's refresh is already finished and cannot be reopened."""

    def __init__(self, issue_number: int):
        self.issue_number = issue_number
        super().__init__(f"{issue_number} This issue refresh is already finished")


class PendingAuditError(ReconciliationError):
    """Another audit cycle is still pending for the same allocator."""

    def __init__(self, json_number: str):
        self.json_number = json_number
        super().__init__(
            f"{json_number} has pending audit, finish existing refresh "
            "before creating a new one"
        )


class UnresolvableStrategyError(ReconciliationError):
    """No upsert strategy matches the observed state."""

    def __init__(self, json_number: str):
        self.json_number = json_number
        super().__init__(f"{json_number} Cannot resolve upsert strategy")


class IssueNotFoundError(DatacapError):
    """No issue record matches the requested filter."""


# --- Audit publishing ---
class AuditPublishError(DatacapError):
    """Audit change could not be published to the allocator registry."""


class AllocatorNotFoundError(AuditPublishError):
    """Allocator JSON file is missing from the registry."""


class NoAuditFoundError(AuditPublishError):
    """Allocator file carries no audit cycle to update."""


class PendingAuditFoundError(AuditPublishError):
    """A new audit was requested while the latest one is still open."""


class AuditOutcomeNotAllowedError(AuditPublishError):
    """Latest audit outcome is outside the caller's allow-list."""

    def __init__(self, outcome: str, allowed: tuple[str, ...]):
        self.outcome = outcome
        self.allowed = allowed
        super().__init__(
            f"Audit outcome {outcome!r} cannot be advanced; "
            f"allowed: {list(allowed)}"
        )


# --- Event store ---
class EventStoreError(DatacapError):
    """Event persistence failure."""


class ConcurrencyError(EventStoreError):
    """Stream version does not match the expected version."""

    def __init__(self, aggregate_id: str, expected: int, actual: int):
        self.aggregate_id = aggregate_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Stream {aggregate_id}: expected version {expected}, found {actual}"
        )


# --- Command handling ---
class ApplicationNotFoundError(DatacapError):
    """No event stream exists for the requested application id."""

    def __init__(self, guid: str):
        self.guid = guid
        super().__init__(f"Application {guid} not found")


class ApplicationExistsError(DatacapError):
    """An application with the same id has already been created."""

    def __init__(self, guid: str):
        self.guid = guid
        super().__init__(f"Application {guid} already exists")
