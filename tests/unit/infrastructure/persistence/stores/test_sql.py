"""Tests for SqlRecordStore against an in-memory SQLite database (aiosqlite)."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from widetable.domain.exceptions import (
    BadKeyError,
    ConditionFailedError,
    StoreRejectedError,
    StoreUnavailableError,
)
from widetable.domain.repositories.store import WriteCondition
from widetable.domain.services.query_builder import QueryBuilder
from widetable.infrastructure.database import AsyncSessionLocal, Base
from widetable.infrastructure.persistence.stores.sql import SqlRecordStore

TABLE = "orders"
QUERIES = QueryBuilder(TABLE)


def _record(n, **overrides):
    record = {
        "PK": "Order:",
        "SK": f"{n}:",
        "TypeName": "Order:v1.0.0",
        "CreateUtcTick": 1,
        "UpdateUtcTick": 1,
        "IsDeleted": False,
        "Data": '{"id": "%s"}' % n,
    }
    record.update(overrides)
    return record


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return SqlRecordStore(session_factory, page_size=2)


async def _fill(store, n):
    for i in range(n):
        await store.put_item(TABLE, _record(i))


# --- get / put / delete ---

async def test_get_missing_returns_none(store):
    assert await store.get_item(TABLE, "Order:", "1:") is None


async def test_put_then_get_round_trips_record(store):
    await store.put_item(TABLE, _record(1, SK1="acme", Tenant="t1"))
    assert await store.get_item(TABLE, "Order:", "1:") == _record(1, SK1="acme", Tenant="t1")


async def test_unconditional_put_replaces(store):
    await store.put_item(TABLE, _record(1))
    await store.put_item(TABLE, _record(1, Data="{}"))
    assert (await store.get_item(TABLE, "Order:", "1:"))["Data"] == "{}"


async def test_put_empty_key_raises(store):
    with pytest.raises(BadKeyError):
        await store.put_item(TABLE, _record(1, PK=""))


async def test_delete_removes_record(store):
    await store.put_item(TABLE, _record(1))
    await store.delete_item(TABLE, "Order:", "1:")
    assert await store.get_item(TABLE, "Order:", "1:") is None


# --- conditions ---

async def test_create_on_existing_key_fails(store):
    await store.put_item(TABLE, _record(1))
    with pytest.raises(ConditionFailedError):
        await store.put_item(TABLE, _record(1, Data="{}"), WriteCondition.not_exists())
    assert (await store.get_item(TABLE, "Order:", "1:"))["Data"] == '{"id": "1"}'


async def test_create_on_new_key_succeeds(store):
    await store.put_item(TABLE, _record(1), WriteCondition.not_exists())
    assert await store.get_item(TABLE, "Order:", "1:") is not None


async def test_tick_condition_match_updates(store):
    await store.put_item(TABLE, _record(1))
    await store.put_item(TABLE, _record(1, UpdateUtcTick=2), WriteCondition.update_tick_equals(1))
    assert (await store.get_item(TABLE, "Order:", "1:"))["UpdateUtcTick"] == 2


async def test_tick_condition_mismatch_fails(store):
    await store.put_item(TABLE, _record(1, UpdateUtcTick=5))
    with pytest.raises(ConditionFailedError):
        await store.put_item(TABLE, _record(1, UpdateUtcTick=6), WriteCondition.update_tick_equals(4))


async def test_tick_condition_missing_record_fails(store):
    with pytest.raises(ConditionFailedError):
        await store.put_item(TABLE, _record(1), WriteCondition.update_tick_equals(1))


# --- query ---

async def test_query_pages_with_keyset(store):
    await _fill(store, 5)
    query = QUERIES.partition("Order:")
    first = await store.query(query)
    second = await store.query(query, exclusive_start_key=first.last_evaluated_key)
    assert [r["SK"] for r in first.items] == ["0:", "1:"]
    assert [r["SK"] for r in second.items] == ["2:", "3:"]


async def test_query_last_page_has_no_key(store):
    await _fill(store, 2)
    page = await store.query(QUERIES.partition("Order:"))
    assert page.last_evaluated_key is None


async def test_query_limit_below_page_size(store):
    await _fill(store, 3)
    page = await store.query(QUERIES.partition("Order:"), limit=1)
    assert len(page.items) == 1
    assert page.has_more is True


async def test_query_secondary_index_range(store):
    await store.put_item(TABLE, _record(1, SK2="2024-01"))
    await store.put_item(TABLE, _record(2, SK2="2024-06"))
    await store.put_item(TABLE, _record(3))
    page = await store.query(QUERIES.between("Order:", "2024-02", "2024-12", "SK2"))
    assert [r["SK"] for r in page.items] == ["2:"]


async def test_query_begins_with_escapes_wildcards(store):
    await store.put_item(TABLE, _record(1, SK1="a%b"))
    await store.put_item(TABLE, _record(2, SK1="axb"))
    page = await store.query(QUERIES.begins_with("Order:", "a%", "SK1"))
    assert [r["SK"] for r in page.items] == ["1:"]


async def test_query_global_index(store):
    await store.put_item(TABLE, _record(1, GSI1PK="Region:eu", GSI1SK="b"))
    await store.put_item(TABLE, _record(2, GSI1PK="Region:us", GSI1SK="a"))
    page = await store.query(QUERIES.greater_than("Region:eu", "a", "GSI1SK"))
    assert [r["SK"] for r in page.items] == ["1:"]


async def test_query_filters_deleted(store):
    await store.put_item(TABLE, _record(1, IsDeleted=True))
    await store.put_item(TABLE, _record(2))
    page = await store.query(QueryBuilder(TABLE, use_is_deleted=True).partition("Order:"))
    assert [r["SK"] for r in page.items] == ["2:"]


async def test_query_unknown_key_field_rejected(store):
    with pytest.raises(StoreRejectedError):
        await store.query(QUERIES.equals("Order:", "x", "Colour"))


# --- TTL sweep ---

async def test_sweep_expired(store):
    await store.put_item(TABLE, _record(1, TTL=100))
    await store.put_item(TABLE, _record(2, TTL=500))
    assert await store.sweep_expired(now=200) == 1
    assert await store.get_item(TABLE, "Order:", "1:") is None


async def test_sweep_without_now_uses_injected_clock(session_factory):
    store = SqlRecordStore(session_factory, clock=lambda: 200)
    await store.put_item(TABLE, _record(1, TTL=100))
    await store.put_item(TABLE, _record(2, TTL=500))
    assert await store.sweep_expired() == 1
    assert await store.get_item(TABLE, "Order:", "2:") is not None


# --- error translation ---

def test_operational_error_is_unavailable():
    store = SqlRecordStore(MagicMock())
    exc = OperationalError("SELECT 1", {}, Exception("connection refused"))
    assert isinstance(store._translate(exc), StoreUnavailableError)


def test_programming_error_is_rejected():
    store = SqlRecordStore(MagicMock())
    exc = ProgrammingError("SELECT", {}, Exception("syntax"))
    assert isinstance(store._translate(exc), StoreRejectedError)


def test_page_size_must_be_positive():
    with pytest.raises(ValueError):
        SqlRecordStore(MagicMock(), page_size=0)


def test_default_session_factory_is_application_factory():
    assert SqlRecordStore()._session_factory is AsyncSessionLocal
