"""In-process RecordStore.

Behaves like the wide-table backend the repository expects: conditional
puts are atomic, queries return key-ordered pages capped by item count and by
a byte budget, and records carrying a TTL stay visible until sweep_expired()
runs (the backend's TTL sweep is lazy, so tests drive it explicitly).
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from collections import Counter
from collections.abc import Callable
from typing import Any

from widetable.domain.exceptions import BadKeyError, ConditionFailedError
from widetable.domain.models.query import QueryDescriptor
from widetable.domain.repositories.store import Page, Record, RecordStore, WriteCondition

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
DEFAULT_MAX_PAGE_BYTES = 1_048_576  # 1 MB per query page


def _record_bytes(record: Record) -> int:
    data = record.get("Data") or ""
    return len(data.encode("utf-8"))


class InMemoryRecordStore(RecordStore):
    name = "memory"

    def __init__(
        self,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_page_bytes: int = DEFAULT_MAX_PAGE_BYTES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be > 0")
        self.page_size = page_size
        self.max_page_bytes = max_page_bytes
        self._clock = clock
        self._tables: dict[str, dict[tuple[str, str], Record]] = {}
        self._lock = asyncio.Lock()
        self.calls: Counter[str] = Counter()

    def records(self, table: str) -> list[Record]:
        """Snapshot of every record in table, in key order."""
        rows = self._tables.get(table, {})
        return [copy.deepcopy(rows[k]) for k in sorted(rows)]

    async def get_item(self, table: str, pk: str, sk: str) -> Record | None:
        self.calls["get_item"] += 1
        if not pk or not sk:
            raise BadKeyError(pk, sk)
        record = self._tables.get(table, {}).get((pk, sk))
        return copy.deepcopy(record) if record is not None else None

    async def put_item(
        self, table: str, record: Record, condition: WriteCondition | None = None
    ) -> None:
        self.calls["put_item"] += 1
        pk, sk = record.get("PK"), record.get("SK")
        if not pk or not sk:
            raise BadKeyError(pk, sk)
        async with self._lock:
            rows = self._tables.setdefault(table, {})
            if condition is not None and not condition.holds_for(rows.get((pk, sk))):
                raise ConditionFailedError(table, pk, sk, condition.expression)
            rows[(pk, sk)] = copy.deepcopy(record)

    async def delete_item(self, table: str, pk: str, sk: str) -> None:
        self.calls["delete_item"] += 1
        if not pk or not sk:
            raise BadKeyError(pk, sk)
        async with self._lock:
            self._tables.get(table, {}).pop((pk, sk), None)

    async def query(
        self,
        query: QueryDescriptor,
        exclusive_start_key: Record | None = None,
        limit: int | None = None,
    ) -> Page:
        self.calls["query"] += 1
        sort_attribute = query.key_field or "SK"

        def order(record: Record) -> tuple[Any, ...]:
            return (record.get(sort_attribute), record["PK"], record["SK"])

        rows = self._tables.get(query.table, {}).values()
        matches = sorted((r for r in rows if query.matches(r)), key=order)
        if exclusive_start_key is not None:
            start = (
                exclusive_start_key.get(sort_attribute),
                exclusive_start_key["PK"],
                exclusive_start_key["SK"],
            )
            matches = [r for r in matches if order(r) > start]

        page_size = min(limit, self.page_size) if limit else self.page_size
        items: list[Record] = []
        page_bytes = 0
        for record in matches:
            if len(items) >= page_size:
                break
            if items and page_bytes + _record_bytes(record) > self.max_page_bytes:
                break
            items.append(record)
            page_bytes += _record_bytes(record)

        last_evaluated_key = None
        if len(items) < len(matches):
            last = items[-1]
            last_evaluated_key = {
                attr: last[attr]
                for attr in ("PK", "SK", query.partition_attribute, sort_attribute)
                if attr in last
            }

        projection = query.projected_attributes()
        if projection is not None:
            items = [{k: r[k] for k in projection if k in r} for r in items]
        return Page(items=copy.deepcopy(items), last_evaluated_key=last_evaluated_key)

    def sweep_expired(self, now: float | None = None) -> int:
        """Physically remove records whose TTL is at or before now."""
        now = self._clock() if now is None else now
        removed = 0
        for rows in self._tables.values():
            expired = [k for k, r in rows.items() if r.get("TTL") is not None and r["TTL"] <= now]
            for key in expired:
                del rows[key]
            removed += len(expired)
        if removed:
            logger.info("TTL sweep removed %d records", removed)
        return removed
