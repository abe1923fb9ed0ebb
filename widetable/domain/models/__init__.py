"""Domain model package.

All domain objects are plain Python / Pydantic models with no backend
dependencies.  Import from this package to avoid coupling application code
to individual module paths.
"""

from .context import CallerContext, RepositoryOptions
from .entity import TICKS_PER_SECOND, Entity, TickAccessor, to_ticks
from .envelope import (
    DEFAULT_TTL_PERIOD,
    GLOBAL_INDEX_KEYS,
    KEY_ATTRIBUTES,
    SECONDARY_SORT_KEYS,
    Envelope,
    EnvelopeSchema,
)
from .enums import ErrorKind, NotificationAction, OutcomeStatus, QueryOperator
from .outcomes import Outcome
from .query import QueryDescriptor

__all__ = [
    # context
    "CallerContext",
    "RepositoryOptions",
    # entity
    "Entity",
    "TickAccessor",
    "TICKS_PER_SECOND",
    "to_ticks",
    # envelope
    "Envelope",
    "EnvelopeSchema",
    "DEFAULT_TTL_PERIOD",
    "KEY_ATTRIBUTES",
    "SECONDARY_SORT_KEYS",
    "GLOBAL_INDEX_KEYS",
    # enums
    "ErrorKind",
    "NotificationAction",
    "OutcomeStatus",
    "QueryOperator",
    # outcomes / query
    "Outcome",
    "QueryDescriptor",
]
