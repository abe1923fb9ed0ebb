"""Structured operation results.

Repository operations never raise for backend failures; they return an
Outcome carrying an HTTP-style status, the value on success and the error
classification on failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from .enums import ErrorKind, OutcomeStatus

T = TypeVar("T")

_STATUS_FOR_ERROR = {
    ErrorKind.CONFLICT: OutcomeStatus.CONFLICT,
    ErrorKind.BAD_KEY: OutcomeStatus.NOT_ACCEPTABLE,
    ErrorKind.NOT_FOUND: OutcomeStatus.NOT_FOUND,
    ErrorKind.BAD_REQUEST: OutcomeStatus.BAD_REQUEST,
    ErrorKind.BACKEND_UNAVAILABLE: OutcomeStatus.SERVICE_UNAVAILABLE,
    ErrorKind.BACKEND_REJECTED: OutcomeStatus.INTERNAL_ERROR,
    ErrorKind.UNKNOWN: OutcomeStatus.INTERNAL_ERROR,
}


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a repository operation.

    value is set for 200 / 206; error is set for every non-2xx status.
    size is the accumulated payload byte count for list operations.
    next_key is the continuation key of a partial list; pass it back as
    start_key to resume.
    """

    status: OutcomeStatus
    value: T | None = None
    error: ErrorKind | None = None
    detail: str | None = None
    size: int = 0
    next_key: dict[str, Any] | None = None

    @classmethod
    def success(cls, value: T | None = None, size: int = 0) -> Outcome[T]:
        return cls(status=OutcomeStatus.OK, value=value, size=size)

    @classmethod
    def partial(
        cls, value: T, size: int = 0, next_key: dict[str, Any] | None = None
    ) -> Outcome[T]:
        return cls(
            status=OutcomeStatus.PARTIAL_CONTENT, value=value, size=size, next_key=next_key
        )

    @classmethod
    def failure(
        cls,
        error: ErrorKind,
        detail: str | None = None,
        status: OutcomeStatus | None = None,
    ) -> Outcome[T]:
        return cls(status=status or _STATUS_FOR_ERROR[error], error=error, detail=detail)

    @property
    def ok(self) -> bool:
        return self.status.is_success

    @property
    def is_partial(self) -> bool:
        return self.status is OutcomeStatus.PARTIAL_CONTENT

    @property
    def is_conflict(self) -> bool:
        return self.error is ErrorKind.CONFLICT

    @property
    def is_not_found(self) -> bool:
        return self.error is ErrorKind.NOT_FOUND

    def map(self, fn) -> Outcome:  # type: ignore[no-untyped-def]
        """Apply fn to the value of a successful outcome, keeping the status."""
        if not self.ok:
            return Outcome(status=self.status, error=self.error, detail=self.detail)
        return Outcome(
            status=self.status, value=fn(self.value), size=self.size, next_key=self.next_key
        )
