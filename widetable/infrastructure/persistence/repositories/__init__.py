"""Concrete wide-table repository and the get_repository() factory.

get_repository() is the wiring point at the application boundary: it turns
Settings into RepositoryOptions and binds one entity schema to a store.
"""

from __future__ import annotations

from typing import Any, TypeVar

from widetable.domain.models.entity import Entity
from widetable.domain.models.envelope import EnvelopeSchema
from widetable.domain.repositories.store import RecordStore
from widetable.infrastructure.database import Settings
from widetable.infrastructure.database import settings as default_settings

from .envelope import MAX_RESPONSE_SIZE, EnvelopeRepository

T = TypeVar("T", bound=Entity)

_OPTION_FIELDS = frozenset(
    {
        "table_name",
        "cache_time_seconds",
        "max_cache_items",
        "always_cache",
        "ttl_seconds",
        "use_is_deleted",
        "use_soft_delete",
        "use_notifications",
    }
)


def get_repository(
    schema: EnvelopeSchema[T],
    store: RecordStore,
    settings: Settings | None = None,
    **kwargs: Any,
) -> EnvelopeRepository[T]:
    """Construct an EnvelopeRepository for schema on store.

    Keyword arguments naming a RepositoryOptions field override the settings
    value for this repository; the rest (topics_for, augment, notifier,
    clock, cache) are passed to the repository as strategies:

        orders = get_repository(
            ORDER_SCHEMA, store, max_cache_items=500, notifier=hook
        )
        outcome = await orders.read(ctx, "1")
    """
    settings = settings or default_settings
    overrides = {k: kwargs.pop(k) for k in list(kwargs) if k in _OPTION_FIELDS}
    return EnvelopeRepository(schema, store, settings.repository_options(**overrides), **kwargs)


__all__ = [
    "EnvelopeRepository",
    "MAX_RESPONSE_SIZE",
    "get_repository",
]
