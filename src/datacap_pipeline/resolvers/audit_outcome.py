"""Classifies the change in allocated DataCap between two audit cycles."""

from __future__ import annotations

from datacap_pipeline.core.enums import AuditOutcome
from datacap_pipeline.domain.documents import AuditCycle

AuditAmount = AuditCycle | float | int | str | None


def _amount(value: AuditAmount) -> float:
    if value is None:
        return 0.0
    if isinstance(value, AuditCycle):
        value = value.datacap_amount
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class AuditOutcomeResolver:
    """Pure classifier: ``MATCH``, ``DOUBLE``, ``THROTTLE`` or ``UNKNOWN``.

    A missing, empty or zero amount on either side is ``UNKNOWN``.
    """

    def resolve(self, previous: AuditAmount, current: AuditAmount) -> AuditOutcome:
        prev_amount = _amount(previous)
        curr_amount = _amount(current)
        if not prev_amount or not curr_amount:
            return AuditOutcome.UNKNOWN

        if prev_amount == curr_amount:
            return AuditOutcome.MATCH
        if prev_amount * 2 == curr_amount:
            return AuditOutcome.DOUBLE
        if prev_amount / 2 == curr_amount:
            return AuditOutcome.THROTTLE
        return AuditOutcome.UNKNOWN
