"""Tests for widetable/domain/services/notifications.py."""

from unittest.mock import AsyncMock

from widetable.domain.models.context import CallerContext
from widetable.domain.models.enums import NotificationAction
from widetable.domain.services.notifications import (
    CallbackNotificationHook,
    NoopNotificationHook,
    NotificationHook,
)

CTX = CallerContext(session_id="s-1")


def test_noop_hook_satisfies_protocol():
    assert isinstance(NoopNotificationHook(), NotificationHook)


def test_callback_hook_satisfies_protocol():
    assert isinstance(CallbackNotificationHook(), NotificationHook)


async def test_noop_hook_accepts_calls():
    hook = NoopNotificationHook()
    assert await hook.on_write(CTX, "Order:v1.0.0", "{}", [], 1, NotificationAction.CREATE) is None
    assert await hook.on_delete(CTX, "Order:v1.0.0", "1:", [], 1) is None


async def test_callback_hook_forwards_write():
    on_write = AsyncMock()
    hook = CallbackNotificationHook(on_write=on_write)
    await hook.on_write(CTX, "Order:v1.0.0", "{}", ["Order:"], 5, NotificationAction.UPDATE)
    on_write.assert_awaited_once_with(
        CTX, "Order:v1.0.0", "{}", ["Order:"], 5, NotificationAction.UPDATE
    )


async def test_callback_hook_forwards_delete():
    on_delete = AsyncMock()
    hook = CallbackNotificationHook(on_delete=on_delete)
    await hook.on_delete(CTX, "Order:v1.0.0", "1:", ["Order:"], 5)
    on_delete.assert_awaited_once_with(CTX, "Order:v1.0.0", "1:", ["Order:"], 5)


async def test_callback_hook_without_delete_callback_is_noop():
    on_write = AsyncMock()
    hook = CallbackNotificationHook(on_write=on_write)
    await hook.on_delete(CTX, "Order:v1.0.0", "1:", [], 5)
    on_write.assert_not_awaited()
