"""Command outcome envelope."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from datacap_pipeline.core.errors import ApplicationError


@dataclass
class CommandResult:
    """Outcome of one command. Failures carry the raised exception."""

    success: bool
    data: Any = None
    error: Exception | None = None

    @classmethod
    def ok(cls, data: Any = None) -> CommandResult:
        return cls(success=True, data=data)

    @classmethod
    def failed(cls, error: Exception) -> CommandResult:
        return cls(success=False, error=error)

    @property
    def error_code(self) -> str | None:
        if isinstance(self.error, ApplicationError):
            return self.error.code
        return None

    @property
    def status_code(self) -> int:
        if self.success:
            return 200
        if isinstance(self.error, ApplicationError):
            return self.error.status_code
        return 500

