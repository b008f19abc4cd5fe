"""Pure resolvers used by the aggregate's commands and the audit workflow."""

from .allocation_path import AllocationPathResolver
from .audit_outcome import AuditOutcomeResolver

__all__ = ["AllocationPathResolver", "AuditOutcomeResolver"]
