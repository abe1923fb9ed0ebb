"""Store-level exceptions.

Every RecordStore implementation translates its backend's native errors
(SQLAlchemy, botocore, ...) into these types.  The repository layer is the
only consumer: it maps them onto ErrorKind / OutcomeStatus and never lets
them escape to callers.
"""

from typing import Any, Optional


class StoreError(Exception):
    """Base exception for all record store errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConditionFailedError(StoreError):
    """A conditional write found the stored record in an unexpected state.

    Raised for create-on-existing-key and for a stale UpdateUtcTick.
    """

    def __init__(self, table: str, pk: str, sk: str, condition: str):
        super().__init__(
            message=f"Condition '{condition}' failed for {table}:{pk}{sk}",
            details={"table": table, "pk": pk, "sk": sk, "condition": condition},
        )


class StoreUnavailableError(StoreError):
    """Transient backend failure (throttling, connection loss). Safe to retry."""

    def __init__(self, backend: str, reason: Optional[str] = None):
        message = f"Record store '{backend}' unavailable"
        if reason:
            message += f": {reason}"
        super().__init__(message=message, details={"backend": backend, "reason": reason})


class StoreRejectedError(StoreError):
    """The backend rejected the request as malformed. Not retried."""

    def __init__(self, backend: str, reason: Optional[str] = None):
        message = f"Record store '{backend}' rejected the request"
        if reason:
            message += f": {reason}"
        super().__init__(message=message, details={"backend": backend, "reason": reason})


class BadKeyError(StoreError):
    """A required key (PK / SK) is missing or empty."""

    def __init__(self, pk: Optional[str], sk: Optional[str]):
        super().__init__(
            message=f"Bad key: PK={pk!r} SK={sk!r}",
            details={"pk": pk, "sk": sk},
        )
