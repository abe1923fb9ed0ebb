"""Domain services: query construction, caching, notifications."""

from .cache import CacheEntry, EnvelopeCache, cache_key
from .notifications import CallbackNotificationHook, NoopNotificationHook, NotificationHook
from .query_builder import (
    DEFAULT_ATTRIBUTE_NAMES,
    DEFAULT_PROJECTION,
    QueryBuilder,
    index_name_for,
)

__all__ = [
    "CacheEntry",
    "EnvelopeCache",
    "cache_key",
    "NotificationHook",
    "NoopNotificationHook",
    "CallbackNotificationHook",
    "QueryBuilder",
    "index_name_for",
    "DEFAULT_ATTRIBUTE_NAMES",
    "DEFAULT_PROJECTION",
]
