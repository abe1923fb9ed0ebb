"""Persistence package.

Importing this package registers the records ORM mapper with Base.metadata
(required for Alembic autogenerate) and exports the record stores, the
repository implementation and the wiring factory.
"""

from widetable.infrastructure.persistence.models import *  # noqa: F401, F403
from widetable.infrastructure.persistence.models import __all__ as _orm_all
from widetable.infrastructure.persistence.repositories import (
    MAX_RESPONSE_SIZE,
    EnvelopeRepository,
    get_repository,
)
from widetable.infrastructure.persistence.stores import (
    DynamoDbRecordStore,
    InMemoryRecordStore,
    SqlRecordStore,
)

__all__ = _orm_all + [
    "EnvelopeRepository",
    "MAX_RESPONSE_SIZE",
    "get_repository",
    "InMemoryRecordStore",
    "SqlRecordStore",
    "DynamoDbRecordStore",
]
