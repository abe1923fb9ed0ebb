"""Tests for InMemoryRecordStore: conditional writes, paging and TTL sweep."""

import asyncio

import pytest

from widetable.domain.exceptions import BadKeyError, ConditionFailedError
from widetable.domain.repositories.store import WriteCondition
from widetable.domain.services.query_builder import QueryBuilder
from widetable.infrastructure.persistence.stores.memory import InMemoryRecordStore

TABLE = "orders"
QUERIES = QueryBuilder(TABLE)


def _record(n, **overrides):
    record = {
        "PK": "Order:",
        "SK": f"{n}:",
        "UpdateUtcTick": 1,
        "IsDeleted": False,
        "Data": '{"id": "%s"}' % n,
    }
    record.update(overrides)
    return record


async def _store_with(n, **kwargs):
    store = InMemoryRecordStore(**kwargs)
    for i in range(n):
        await store.put_item(TABLE, _record(i))
    return store


# --- get / put / delete ---

async def test_get_missing_returns_none():
    assert await InMemoryRecordStore().get_item(TABLE, "Order:", "1:") is None


async def test_put_then_get():
    store = InMemoryRecordStore()
    await store.put_item(TABLE, _record(1))
    assert (await store.get_item(TABLE, "Order:", "1:"))["SK"] == "1:"


async def test_get_returns_copy():
    store = InMemoryRecordStore()
    await store.put_item(TABLE, _record(1))
    (await store.get_item(TABLE, "Order:", "1:"))["Data"] = "changed"
    assert (await store.get_item(TABLE, "Order:", "1:"))["Data"] != "changed"


async def test_tables_are_isolated():
    store = InMemoryRecordStore()
    await store.put_item(TABLE, _record(1))
    assert await store.get_item("other", "Order:", "1:") is None


async def test_put_empty_key_raises():
    with pytest.raises(BadKeyError):
        await InMemoryRecordStore().put_item(TABLE, _record(1, SK=""))


async def test_get_empty_key_raises():
    with pytest.raises(BadKeyError):
        await InMemoryRecordStore().get_item(TABLE, "Order:", "")


async def test_delete_removes_record():
    store = await _store_with(1)
    await store.delete_item(TABLE, "Order:", "0:")
    assert store.records(TABLE) == []


async def test_delete_missing_is_noop():
    await InMemoryRecordStore().delete_item(TABLE, "Order:", "9:")


async def test_calls_are_counted():
    store = InMemoryRecordStore()
    await store.get_item(TABLE, "Order:", "1:")
    await store.get_item(TABLE, "Order:", "2:")
    assert store.calls["get_item"] == 2


# --- conditions ---

async def test_not_exists_fails_on_existing_key():
    store = await _store_with(1)
    with pytest.raises(ConditionFailedError):
        await store.put_item(TABLE, _record(0, Data="new"), WriteCondition.not_exists())
    assert store.records(TABLE)[0]["Data"] == '{"id": "0"}'


async def test_tick_condition_succeeds_on_match():
    store = await _store_with(1)
    await store.put_item(TABLE, _record(0, UpdateUtcTick=2), WriteCondition.update_tick_equals(1))
    assert store.records(TABLE)[0]["UpdateUtcTick"] == 2


async def test_tick_condition_fails_on_stale_tick():
    store = await _store_with(1)
    with pytest.raises(ConditionFailedError):
        await store.put_item(TABLE, _record(0), WriteCondition.update_tick_equals(99))


async def test_concurrent_conditional_puts_one_wins():
    store = await _store_with(1)
    condition = WriteCondition.update_tick_equals(1)
    results = await asyncio.gather(
        store.put_item(TABLE, _record(0, UpdateUtcTick=2), condition),
        store.put_item(TABLE, _record(0, UpdateUtcTick=3), condition),
        return_exceptions=True,
    )
    assert sum(isinstance(r, ConditionFailedError) for r in results) == 1


# --- query ---

async def test_query_returns_key_order():
    store = InMemoryRecordStore()
    for n in (3, 1, 2):
        await store.put_item(TABLE, _record(n))
    page = await store.query(QUERIES.partition("Order:"))
    assert [r["SK"] for r in page.items] == ["1:", "2:", "3:"]


async def test_query_applies_projection():
    store = await _store_with(1)
    page = await store.query(QUERIES.partition("Order:", projection="PK, SK"))
    assert page.items == [{"PK": "Order:", "SK": "0:"}]


async def test_query_sparse_index_skips_records_without_key():
    store = InMemoryRecordStore()
    await store.put_item(TABLE, _record(1, SK1="acme"))
    await store.put_item(TABLE, _record(2))
    page = await store.query(QUERIES.begins_with("Order:", "a", "SK1"))
    assert [r["SK"] for r in page.items] == ["1:"]


async def test_query_orders_by_index_key():
    store = InMemoryRecordStore()
    await store.put_item(TABLE, _record(1, SK1="b"))
    await store.put_item(TABLE, _record(2, SK1="a"))
    page = await store.query(QUERIES.greater_than_or_equal("Order:", "a", "SK1"))
    assert [r["SK"] for r in page.items] == ["2:", "1:"]


async def test_query_pages_by_page_size():
    store = await _store_with(5, page_size=2)
    page = await store.query(QUERIES.partition("Order:"))
    assert len(page.items) == 2
    assert page.last_evaluated_key == {"PK": "Order:", "SK": "1:"}


async def test_query_resumes_after_last_evaluated_key():
    store = await _store_with(5, page_size=2)
    query = QUERIES.partition("Order:")
    first = await store.query(query)
    second = await store.query(query, exclusive_start_key=first.last_evaluated_key)
    assert [r["SK"] for r in second.items] == ["2:", "3:"]


async def test_query_last_page_has_no_key():
    store = await _store_with(4, page_size=2)
    query = QUERIES.partition("Order:")
    page = await store.query(query, exclusive_start_key={"PK": "Order:", "SK": "1:"})
    assert page.last_evaluated_key is None


async def test_query_limit_caps_page():
    store = await _store_with(5)
    page = await store.query(QUERIES.partition("Order:"), limit=3)
    assert len(page.items) == 3
    assert page.has_more is True


async def test_query_byte_budget_caps_page():
    store = InMemoryRecordStore(max_page_bytes=25)
    for n in range(3):
        await store.put_item(TABLE, _record(n, Data="x" * 10))
    page = await store.query(QUERIES.partition("Order:"))
    assert len(page.items) == 2
    assert page.has_more is True


async def test_query_filters_deleted():
    store = InMemoryRecordStore()
    await store.put_item(TABLE, _record(1, IsDeleted=True))
    await store.put_item(TABLE, _record(2))
    page = await store.query(QueryBuilder(TABLE, use_is_deleted=True).partition("Order:"))
    assert [r["SK"] for r in page.items] == ["2:"]


# --- TTL sweep ---

async def test_sweep_removes_expired_records():
    store = InMemoryRecordStore()
    await store.put_item(TABLE, _record(1, TTL=100))
    await store.put_item(TABLE, _record(2, TTL=300))
    await store.put_item(TABLE, _record(3))
    assert store.sweep_expired(now=200) == 1
    assert [r["SK"] for r in store.records(TABLE)] == ["2:", "3:"]


async def test_sweep_uses_injected_clock():
    store = InMemoryRecordStore(clock=lambda: 1_000)
    await store.put_item(TABLE, _record(1, TTL=999))
    assert store.sweep_expired() == 1
