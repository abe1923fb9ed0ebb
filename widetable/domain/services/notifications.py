"""Mutation notification hook.

The repository calls on_write after every successful create / update and
on_delete after every successful delete (hard or soft).  Delivery (stream
processing, socket push, ...) lives outside this package behind this
interface.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from widetable.domain.models.context import CallerContext
from widetable.domain.models.enums import NotificationAction

WriteCallback = Callable[
    [CallerContext, str, str, list[str], int, NotificationAction], Awaitable[None]
]
DeleteCallback = Callable[[CallerContext, str, str, list[str], int], Awaitable[None]]


@runtime_checkable
class NotificationHook(Protocol):
    async def on_write(
        self,
        context: CallerContext,
        entity_type: str,
        payload: str,
        topics: list[str],
        timestamp: int,
        action: NotificationAction,
    ) -> None: ...

    async def on_delete(
        self,
        context: CallerContext,
        entity_type: str,
        sort_key: str,
        topics: list[str],
        timestamp: int,
    ) -> None: ...


class NoopNotificationHook:
    """Default hook: drops every notification."""

    async def on_write(self, context, entity_type, payload, topics, timestamp, action) -> None:  # type: ignore[no-untyped-def]
        return None

    async def on_delete(self, context, entity_type, sort_key, topics, timestamp) -> None:  # type: ignore[no-untyped-def]
        return None


class CallbackNotificationHook:
    """Adapts a pair of plain async callables to NotificationHook."""

    def __init__(
        self,
        on_write: WriteCallback | None = None,
        on_delete: DeleteCallback | None = None,
    ) -> None:
        self._on_write = on_write
        self._on_delete = on_delete

    async def on_write(
        self,
        context: CallerContext,
        entity_type: str,
        payload: str,
        topics: list[str],
        timestamp: int,
        action: NotificationAction,
    ) -> None:
        if self._on_write is not None:
            await self._on_write(context, entity_type, payload, topics, timestamp, action)

    async def on_delete(
        self,
        context: CallerContext,
        entity_type: str,
        sort_key: str,
        topics: list[str],
        timestamp: int,
    ) -> None:
        if self._on_delete is not None:
            await self._on_delete(context, entity_type, sort_key, topics, timestamp)
