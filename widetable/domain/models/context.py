"""Caller context and repository options.

CallerContext is produced by the (external) authorization layer and passed
into every repository operation.  RepositoryOptions holds the per-repository
behaviour switches; infrastructure builds it from Settings.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CallerContext(BaseModel):
    """Identity and routing for one inbound request.

    table and partition_key override the repository defaults when set.
    session_id is stamped on written records so downstream notification
    delivery can skip the session that made the change.
    """

    model_config = ConfigDict(frozen=True)

    table: str | None = None
    partition_key: str | None = None
    session_id: str | None = None
    user_id: str | None = None


class RepositoryOptions(BaseModel):
    """Behaviour switches for one EnvelopeRepository.

    cache_time_seconds = 0 disables freshness unless always_cache is set.
    max_cache_items = 0 means an unbounded cache.
    ttl_seconds = 0 disables the TTL attribute on ordinary writes; soft
    deletes always attach one (schema ttl_period).
    """

    model_config = ConfigDict(frozen=True)

    table_name: str
    cache_time_seconds: float = Field(default=0, ge=0)
    max_cache_items: int = Field(default=0, ge=0)
    always_cache: bool = False
    ttl_seconds: int = Field(default=0, ge=0)
    use_is_deleted: bool = False
    use_soft_delete: bool = False
    use_notifications: bool = False
