from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class ReconciliationError(Exception):
    """Base error for the reconciliation layer."""


class ValidationError(ReconciliationError):
    """Raised for bad input before any remote call is made."""


class RemoteServiceError(ReconciliationError):
    """Raised when the parsing/matching service fails, including timeouts."""

    def __init__(self, message: str, *, status_code: int | None = None, timed_out: bool = False) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.timed_out = timed_out


@dataclass(slots=True)
class PersistenceWarning:
    """The parse succeeded but the mirror write did not."""

    message: str
    detail: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {"kind": "persistence", "message": self.message, "detail": self.detail}


@dataclass(slots=True)
class SyncPartialFailure:
    """Some rows of a batched upsert were rejected; the rest were kept."""

    failed: int
    failures: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {"kind": "sync_partial_failure", "failed": self.failed, "failures": self.failures}
