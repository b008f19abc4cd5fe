"""Immutable value objects of the application domain.

Instructions are frozen: a command derives the next instruction value,
the event carries it, and applying the event installs it in the ledger.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any

from datacap_pipeline.core.enums import AuditType, InstructionStatus, Pathway


@dataclass(frozen=True)
class ApplicationInstruction:
    """One entry of the instruction ledger.

    Timestamps are epoch milliseconds. ``method`` is empty until the
    governance review decides between RKH and meta-allocator.
    """

    method: str = ""
    datacap_amount: float = 0
    start_timestamp: int | None = None
    end_timestamp: int | None = None
    allocated_timestamp: int | None = None
    status: str = InstructionStatus.PENDING.value
    is_mdma_allocator: bool | None = None

    def evolve(self, **changes: Any) -> ApplicationInstruction:
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApplicationInstruction:
        names = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})


@dataclass(frozen=True)
class AllocationPath:
    """Routing decision for an allocator type. Never persisted."""

    pathway: Pathway
    address: str
    audit_type: AuditType
    is_meta_allocator: bool
