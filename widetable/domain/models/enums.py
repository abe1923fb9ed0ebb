"""Domain enumerations for the wide-table repository.

String-valued enums use the str mixin so they serialize cleanly to JSON and
stay comparable to plain strings.  OutcomeStatus is an IntEnum because its
values are HTTP-style status codes.
"""

from enum import Enum, IntEnum


class OutcomeStatus(IntEnum):
    OK = 200
    PARTIAL_CONTENT = 206
    BAD_REQUEST = 400
    NOT_FOUND = 404
    NOT_ACCEPTABLE = 406  # bad or empty key
    CONFLICT = 409
    INTERNAL_ERROR = 500
    SERVICE_UNAVAILABLE = 503

    @property
    def is_success(self) -> bool:
        return 200 <= self.value < 300


class ErrorKind(str, Enum):
    """Error taxonomy every repository failure is classified into."""

    CONFLICT = "conflict"
    BAD_KEY = "bad_key"
    NOT_FOUND = "not_found"
    BAD_REQUEST = "bad_request"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    BACKEND_REJECTED = "backend_rejected"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        """Whether a caller may retry (after re-reading for CONFLICT)."""
        return self in (ErrorKind.CONFLICT, ErrorKind.BACKEND_UNAVAILABLE)


class NotificationAction(str, Enum):
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"


class QueryOperator(str, Enum):
    """Key-condition operators supported by the query builder."""

    EQUAL = "Equal"
    BEGINS_WITH = "BeginsWith"
    LESS_THAN = "LessThan"
    LESS_THAN_OR_EQUAL = "LessThanOrEqual"
    GREATER_THAN = "GreaterThan"
    GREATER_THAN_OR_EQUAL = "GreaterThanOrEqual"
    BETWEEN = "Between"

    @property
    def symbol(self) -> str | None:
        """Infix comparison symbol, or None for function-style operators."""
        return {
            QueryOperator.EQUAL: "=",
            QueryOperator.LESS_THAN: "<",
            QueryOperator.LESS_THAN_OR_EQUAL: "<=",
            QueryOperator.GREATER_THAN: ">",
            QueryOperator.GREATER_THAN_OR_EQUAL: ">=",
        }.get(self)

    @classmethod
    def parse(cls, name: str) -> "QueryOperator":
        """Resolve an operator by its name ("BeginsWith", "Between", ...).

        Raises ValueError for unknown names.
        """
        try:
            return cls(name)
        except ValueError:
            raise ValueError(f"Unsupported query operator: {name!r}") from None
