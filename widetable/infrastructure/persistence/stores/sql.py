"""SQLAlchemy implementation of RecordStore.

Conditional writes map onto the database's own guarantees: create relies on
the (table_name, pk, sk) primary key, optimistic updates are a single
``UPDATE ... WHERE update_utc_tick = :old`` whose rowcount decides success.
Queries page with a keyset on (sort column, pk, sk).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from sqlalchemy import delete, select, tuple_, update
from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from widetable.domain.exceptions import (
    BadKeyError,
    ConditionFailedError,
    StoreRejectedError,
    StoreUnavailableError,
)
from widetable.domain.models.enums import QueryOperator
from widetable.domain.models.query import QueryDescriptor
from widetable.domain.repositories.store import Page, Record, RecordStore, WriteCondition
from widetable.infrastructure.database import AsyncSessionLocal
from widetable.infrastructure.persistence.models.records import (
    ATTRIBUTE_COLUMNS,
    RecordRow,
    to_columns,
    to_record,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


def _column(attribute: str):  # type: ignore[no-untyped-def]
    try:
        return getattr(RecordRow, ATTRIBUTE_COLUMNS[attribute])
    except KeyError:
        raise StoreRejectedError("sql", f"attribute {attribute!r} is not indexable") from None


class SqlRecordStore(RecordStore):
    name = "sql"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be > 0")
        self._session_factory = session_factory if session_factory is not None else AsyncSessionLocal
        self.page_size = page_size
        self._clock = clock

    def _translate(self, exc: SQLAlchemyError) -> Exception:
        if isinstance(exc, (OperationalError, InterfaceError, PoolTimeoutError)):
            return StoreUnavailableError(self.name, str(exc.__class__.__name__))
        return StoreRejectedError(self.name, str(exc))

    async def get_item(self, table: str, pk: str, sk: str) -> Record | None:
        if not pk or not sk:
            raise BadKeyError(pk, sk)
        stmt = select(RecordRow).where(
            RecordRow.table_name == table, RecordRow.pk == pk, RecordRow.sk == sk
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                row = result.scalar_one_or_none()
                return to_record(row) if row else None
        except SQLAlchemyError as exc:
            raise self._translate(exc) from exc

    async def put_item(
        self, table: str, record: Record, condition: WriteCondition | None = None
    ) -> None:
        pk, sk = record.get("PK"), record.get("SK")
        if not pk or not sk:
            raise BadKeyError(pk, sk)
        values = to_columns(table, record)
        try:
            async with self._session_factory() as session, session.begin():
                if condition is None:
                    await session.merge(RecordRow(**values))
                elif condition.key_absent:
                    session.add(RecordRow(**values))
                else:
                    stmt = (
                        update(RecordRow)
                        .where(
                            RecordRow.table_name == table,
                            RecordRow.pk == pk,
                            RecordRow.sk == sk,
                            RecordRow.update_utc_tick == condition.expected_update_tick,
                        )
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
                    result = await session.execute(stmt)
                    if result.rowcount != 1:
                        raise ConditionFailedError(table, pk, sk, condition.expression)
        except IntegrityError as exc:
            if condition is not None and condition.key_absent:
                raise ConditionFailedError(table, pk, sk, condition.expression) from exc
            raise self._translate(exc) from exc
        except SQLAlchemyError as exc:
            raise self._translate(exc) from exc

    async def delete_item(self, table: str, pk: str, sk: str) -> None:
        if not pk or not sk:
            raise BadKeyError(pk, sk)
        stmt = (
            delete(RecordRow)
            .where(RecordRow.table_name == table, RecordRow.pk == pk, RecordRow.sk == sk)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_factory() as session, session.begin():
                await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise self._translate(exc) from exc

    async def query(
        self,
        query: QueryDescriptor,
        exclusive_start_key: Record | None = None,
        limit: int | None = None,
    ) -> Page:
        sort_attribute = query.key_field or "SK"
        sort_column = _column(sort_attribute)
        stmt = select(RecordRow).where(
            RecordRow.table_name == query.table,
            _column(query.partition_attribute) == query.partition_value,
        )
        if query.exclude_deleted:
            stmt = stmt.where(RecordRow.is_deleted.is_(False))
        if query.operator is not None:
            stmt = stmt.where(self._key_condition(sort_column, query.operator, query.operands))
        if exclusive_start_key is not None:
            stmt = stmt.where(
                tuple_(sort_column, RecordRow.pk, RecordRow.sk)
                > tuple_(
                    exclusive_start_key.get(sort_attribute),
                    exclusive_start_key["PK"],
                    exclusive_start_key["SK"],
                )
            )
        page_size = min(limit, self.page_size) if limit else self.page_size
        # One extra row tells us whether another page exists.
        stmt = stmt.order_by(sort_column, RecordRow.pk, RecordRow.sk).limit(page_size + 1)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = list(result.scalars())
        except SQLAlchemyError as exc:
            raise self._translate(exc) from exc

        records = [to_record(row) for row in rows[:page_size]]
        last_evaluated_key = None
        if len(rows) > page_size:
            last = records[-1]
            last_evaluated_key = {
                attr: last[attr]
                for attr in ("PK", "SK", query.partition_attribute, sort_attribute)
                if attr in last
            }

        projection = query.projected_attributes()
        if projection is not None:
            records = [{k: r[k] for k in projection if k in r} for r in records]
        return Page(items=records, last_evaluated_key=last_evaluated_key)

    @staticmethod
    def _key_condition(column: Any, operator: QueryOperator, operands: tuple[str, ...]) -> Any:
        if operator is QueryOperator.EQUAL:
            return column == operands[0]
        if operator is QueryOperator.BEGINS_WITH:
            return column.startswith(operands[0], autoescape=True)
        if operator is QueryOperator.LESS_THAN:
            return column < operands[0]
        if operator is QueryOperator.LESS_THAN_OR_EQUAL:
            return column <= operands[0]
        if operator is QueryOperator.GREATER_THAN:
            return column > operands[0]
        if operator is QueryOperator.GREATER_THAN_OR_EQUAL:
            return column >= operands[0]
        if operator is QueryOperator.BETWEEN:
            return column.between(operands[0], operands[1])
        raise StoreRejectedError("sql", f"unsupported operator {operator}")

    async def sweep_expired(self, now: float | None = None) -> int:
        """Delete rows whose TTL has passed; the relational TTL sweep."""
        cutoff = int(self._clock() if now is None else now)
        stmt = (
            delete(RecordRow)
            .where(RecordRow.ttl.is_not(None), RecordRow.ttl <= cutoff)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(stmt)
                removed = result.rowcount or 0
        except SQLAlchemyError as exc:
            raise self._translate(exc) from exc
        if removed:
            logger.info("TTL sweep removed %d rows", removed)
        return removed
