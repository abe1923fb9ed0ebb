"""Wide-table implementation of Repository.

EnvelopeRepository maps CRUDL onto a RecordStore: every mutation is the same
straight line (seal envelope, attach TTL / topics, conditional write, cache
update, notification) and every failure comes back as an Outcome.

Strategies that vary per entity type are injected, not overridden:
  - topics_for(entity) -> list[str]: notification topics (stored in Topics)
  - augment(context, envelope): add extra record attributes before the write
  - notifier: NotificationHook receiving write / delete events
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

from widetable.domain.exceptions import (
    BadKeyError,
    ConditionFailedError,
    StoreError,
    StoreRejectedError,
    StoreUnavailableError,
)
from widetable.domain.models.context import CallerContext, RepositoryOptions
from widetable.domain.models.entity import Entity, to_ticks
from widetable.domain.models.enums import (
    ErrorKind,
    NotificationAction,
    OutcomeStatus,
    QueryOperator,
)
from widetable.domain.models.envelope import Envelope, EnvelopeSchema
from widetable.domain.models.outcomes import Outcome
from widetable.domain.models.query import QueryDescriptor
from widetable.domain.repositories.base import Repository
from widetable.domain.repositories.store import Record, RecordStore, WriteCondition
from widetable.domain.services.cache import EnvelopeCache, cache_key
from widetable.domain.services.notifications import NoopNotificationHook, NotificationHook
from widetable.domain.services.query_builder import PRIMARY_SORT_KEY, QueryBuilder

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Entity)

# Stay under the 6 MB response body limit of the API layer in front of us.
MAX_RESPONSE_SIZE = 5_248_000

TopicsFor = Callable[[Any], list[str]]
Augmenter = Callable[[CallerContext, Envelope[Any]], None]


class EnvelopeRepository(Repository[T]):
    def __init__(
        self,
        schema: EnvelopeSchema[T],
        store: RecordStore,
        options: RepositoryOptions,
        *,
        topics_for: TopicsFor | None = None,
        augment: Augmenter | None = None,
        notifier: NotificationHook | None = None,
        clock: Callable[[], float] = time.time,
        cache: EnvelopeCache[Envelope[T]] | None = None,
    ) -> None:
        self.schema = schema
        self.store = store
        self.options = options
        self._topics_for = topics_for or (lambda entity: [schema.pk])
        self._augment = augment
        self._notifier = notifier or NoopNotificationHook()
        self._clock = clock
        self.cache: EnvelopeCache[Envelope[T]] = cache or EnvelopeCache(
            cache_time_seconds=options.cache_time_seconds,
            max_items=options.max_cache_items,
            always_cache=options.always_cache,
            clock=clock,
        )
        self.queries = QueryBuilder(options.table_name, use_is_deleted=options.use_is_deleted)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _resolve(self, context: CallerContext | None) -> tuple[CallerContext, str, str]:
        ctx = context or CallerContext()
        return ctx, ctx.table or self.options.table_name, ctx.partition_key or self.schema.pk

    def _use_cache(self, use_cache: bool | None) -> bool:
        return self.options.always_cache if use_cache is None else use_cache

    def _snapshot(self, envelope: Envelope[T]) -> Envelope[T]:
        # Cached and returned envelopes never share an entity.
        return Envelope.open(self.schema, envelope.record)

    def _prepare(self, ctx: CallerContext, envelope: Envelope[T], now: float, pk: str) -> str:
        """Seal envelope and attach every computed attribute, Data last."""
        envelope.seal(now, pk=pk)
        if self._augment is not None:
            self._augment(ctx, envelope)
        if self.options.ttl_seconds and not envelope.use_ttl:
            envelope.attach_ttl(int(now) + self.options.ttl_seconds)
        topics = self._topics_for(envelope.entity)
        if topics:
            envelope.attach_topics(topics)
        return envelope.attach_payload()

    def _failure(self, exc: Exception, operation: str, *, write: bool) -> Outcome[Any]:
        """Classify an exception into the error taxonomy."""
        if isinstance(exc, ConditionFailedError):
            logger.info("%s conflict: %s", operation, exc.message)
            return Outcome.failure(ErrorKind.CONFLICT, exc.message)
        if isinstance(exc, BadKeyError):
            return Outcome.failure(ErrorKind.BAD_KEY, exc.message)
        if isinstance(exc, StoreUnavailableError):
            logger.warning("%s failed, store unavailable: %s", operation, exc.message)
            return Outcome.failure(ErrorKind.BACKEND_UNAVAILABLE, exc.message)
        if isinstance(exc, StoreRejectedError):
            logger.error("%s rejected by store: %s", operation, exc.message)
            status = OutcomeStatus.BAD_REQUEST if write else OutcomeStatus.INTERNAL_ERROR
            return Outcome.failure(ErrorKind.BACKEND_REJECTED, exc.message, status)
        if isinstance(exc, StoreError):
            logger.error("%s failed: %s", operation, exc.message)
            return Outcome.failure(ErrorKind.UNKNOWN, exc.message)
        logger.exception("Unexpected error during %s", operation)
        return Outcome.failure(ErrorKind.UNKNOWN, str(exc))

    async def _notify_write(
        self, ctx: CallerContext, envelope: Envelope[T], payload: str, action: NotificationAction
    ) -> None:
        if not self.options.use_notifications:
            return
        try:
            await self._notifier.on_write(
                ctx, envelope.type_name or "", payload, envelope.topics,
                envelope.update_utc_tick, action,
            )
        except Exception:
            # The write is already committed.
            logger.exception("Write notification failed for %s%s", envelope.pk, envelope.sk)

    def _delete_topics(self, record: Record) -> list[str]:
        """Topics of a deleted record, read from the raw attributes.

        Falls back to topics_for only when the payload still loads.
        """
        if record.get("Topics"):
            try:
                return list(json.loads(record["Topics"]))
            except ValueError:
                logger.warning("Unreadable Topics on %s%s", record.get("PK"), record.get("SK"))
        try:
            entity = Envelope.open(self.schema, record).entity
        except ValueError:
            logger.warning(
                "Payload of %s%s (%s) no longer loads",
                record.get("PK"), record.get("SK"), record.get("TypeName"),
            )
            return []
        return self._topics_for(entity) if entity is not None else []

    async def _notify_delete(self, ctx: CallerContext, record: Record, sk: str) -> None:
        if not self.options.use_notifications:
            return
        try:
            await self._notifier.on_delete(
                ctx,
                record.get("TypeName") or "",
                sk,
                self._delete_topics(record),
                to_ticks(self._clock()),
            )
        except Exception:
            logger.exception("Delete notification failed for %s%s", record.get("PK"), sk)

    # ------------------------------------------------------------------ #
    # Create
    # ------------------------------------------------------------------ #

    async def create_envelope(
        self, context: CallerContext | None, entity: T, use_cache: bool | None = None
    ) -> Outcome[Envelope[T]]:
        ctx, table, pk = self._resolve(context)
        if entity is None:
            return Outcome.failure(ErrorKind.BAD_REQUEST, "entity is required")
        if not entity.id:
            return Outcome.failure(ErrorKind.BAD_KEY, "entity id is empty")
        try:
            envelope = Envelope(self.schema, entity.model_copy(deep=True), session_id=ctx.session_id)
            now = self._clock()
            tick = to_ticks(now)
            envelope.create_utc_tick = tick
            envelope.update_utc_tick = tick
            payload = self._prepare(ctx, envelope, now, pk)
            await self.store.put_item(table, envelope.record, WriteCondition.not_exists())
        except Exception as exc:
            return self._failure(exc, "create", write=True)

        if self._use_cache(use_cache):
            self.cache.put(cache_key(table, envelope.pk, envelope.sk), self._snapshot(envelope))
        await self._notify_write(ctx, envelope, payload, NotificationAction.CREATE)
        return Outcome.success(envelope)

    async def create(
        self, context: CallerContext | None, entity: T, use_cache: bool | None = None
    ) -> Outcome[T]:
        outcome = await self.create_envelope(context, entity, use_cache)
        return outcome.map(lambda envelope: envelope.entity)

    # ------------------------------------------------------------------ #
    # Read
    # ------------------------------------------------------------------ #

    async def read_envelope(
        self,
        context: CallerContext | None,
        pk: str | None,
        sk: str | None,
        use_cache: bool | None = None,
    ) -> Outcome[Envelope[T]]:
        """Read the envelope at (pk, sk), from the cache when fresh.

        The entity is always complete.  The record is the full stored item
        after a store read, a create or an update; an entry cached by a list
        holds only the query's projected attributes, so its keys, topics,
        session id and TTL may be missing.
        """
        ctx, table, _ = self._resolve(context)
        if not pk or not sk:
            return Outcome.failure(ErrorKind.BAD_KEY, f"Bad key: PK={pk!r} SK={sk!r}")
        use_cache = self._use_cache(use_cache)
        key = cache_key(table, pk, sk)

        if use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Cache hit %s", key)
                return Outcome.success(self._snapshot(cached))

        try:
            record = await self.store.get_item(table, pk, sk)
            envelope = Envelope.open(self.schema, record)
        except Exception as exc:
            return self._failure(exc, "read", write=False)

        if envelope.entity is None or (self.options.use_is_deleted and envelope.is_deleted):
            return Outcome.failure(ErrorKind.NOT_FOUND, f"No record at {key}")
        if use_cache:
            self.cache.put(key, self._snapshot(envelope))
        return Outcome.success(envelope)

    async def read_key(
        self,
        context: CallerContext | None,
        pk: str | None,
        sk: str | None,
        use_cache: bool | None = None,
    ) -> Outcome[T]:
        outcome = await self.read_envelope(context, pk, sk, use_cache)
        return outcome.map(lambda envelope: envelope.entity)

    async def read(
        self, context: CallerContext | None, id: str, use_cache: bool | None = None
    ) -> Outcome[T]:
        _, _, pk = self._resolve(context)
        sk = self.schema.sort_key(id) if id else None
        return await self.read_key(context, pk, sk, use_cache)

    async def read_by_index(
        self,
        context: CallerContext | None,
        key_field: str,
        value: str,
        use_cache: bool | None = None,
    ) -> Outcome[T]:
        """Read the single entity whose key_field equals value.

        Zero or several matches are both a 404.
        """
        _, table, pk = self._resolve(context)
        query = self.queries.equals(pk, value, key_field, table=table)
        outcome = await self.list_envelopes(context, query, use_cache)
        if not outcome.ok:
            return Outcome(status=outcome.status, error=outcome.error, detail=outcome.detail)
        if len(outcome.value or []) != 1:
            return Outcome.failure(
                ErrorKind.NOT_FOUND,
                f"{len(outcome.value or [])} records match {key_field} = {value!r}",
            )
        return Outcome.success(outcome.value[0].entity)

    # ------------------------------------------------------------------ #
    # Update
    # ------------------------------------------------------------------ #

    async def _write_update(
        self,
        ctx: CallerContext,
        table: str,
        pk: str,
        envelope: Envelope[T],
        force: bool,
        notify: bool = True,
    ) -> Envelope[T]:
        old_tick = envelope.update_utc_tick
        now = self._clock()
        # Strictly increasing even when two updates land in one clock quantum.
        tick = max(to_ticks(now), old_tick + 1)
        envelope.update_utc_tick = tick
        if envelope.create_utc_tick == 0:
            envelope.create_utc_tick = tick
        payload = self._prepare(ctx, envelope, now, pk)
        condition = None if force else WriteCondition.update_tick_equals(old_tick)
        await self.store.put_item(table, envelope.record, condition)

        self.cache.refresh_if_present(
            cache_key(table, envelope.pk, envelope.sk), self._snapshot(envelope)
        )
        if notify:
            await self._notify_write(ctx, envelope, payload, NotificationAction.UPDATE)
        return envelope

    async def update_envelope(
        self, context: CallerContext | None, entity: T, force: bool = False
    ) -> Outcome[Envelope[T]]:
        ctx, table, pk = self._resolve(context)
        if entity is None:
            return Outcome.failure(ErrorKind.BAD_REQUEST, "entity is required")
        if not entity.id:
            return Outcome.failure(ErrorKind.BAD_KEY, "entity id is empty")
        try:
            envelope = Envelope(self.schema, entity.model_copy(deep=True), session_id=ctx.session_id)
            envelope = await self._write_update(ctx, table, pk, envelope, force)
        except Exception as exc:
            return self._failure(exc, "update", write=True)
        return Outcome.success(envelope)

    async def update(
        self, context: CallerContext | None, entity: T, force: bool = False
    ) -> Outcome[T]:
        outcome = await self.update_envelope(context, entity, force)
        return outcome.map(lambda envelope: envelope.entity)

    async def update_add(self, context: CallerContext | None, entity: T) -> Outcome[T]:
        """Write entity unconditionally, creating or replacing the record."""
        return await self.update(context, entity, force=True)

    # ------------------------------------------------------------------ #
    # Delete
    # ------------------------------------------------------------------ #

    async def delete_key(
        self, context: CallerContext | None, pk: str | None, sk: str | None
    ) -> Outcome[None]:
        """Delete the record at (pk, sk).

        With use_soft_delete the record is marked IsDeleted and given a TTL
        through a conditional update instead; the store purges it later.
        Deleting a record that does not exist is a successful no-op.
        """
        ctx, table, _ = self._resolve(context)
        if not pk or not sk:
            return Outcome.failure(ErrorKind.BAD_KEY, f"Bad key: PK={pk!r} SK={sk!r}")

        try:
            existing: Record | None = None
            if self.options.use_soft_delete or self.options.use_notifications:
                existing = await self.store.get_item(table, pk, sk)

            if not self.options.use_soft_delete:
                await self.store.delete_item(table, pk, sk)
            elif existing is not None:
                envelope = Envelope.open(self.schema, existing)
                if envelope.entity is not None:
                    envelope.is_deleted = True
                    envelope.use_ttl = True
                    envelope.session_id = ctx.session_id
                    await self._write_update(ctx, table, pk, envelope, force=False, notify=False)
        except Exception as exc:
            return self._failure(exc, "delete", write=True)

        self.cache.remove(cache_key(table, pk, sk))
        if existing is not None:
            await self._notify_delete(ctx, existing, sk)
        return Outcome.success()

    async def delete(self, context: CallerContext | None, id: str) -> Outcome[None]:
        _, _, pk = self._resolve(context)
        sk = self.schema.sort_key(id) if id else None
        return await self.delete_key(context, pk, sk)

    # ------------------------------------------------------------------ #
    # List
    # ------------------------------------------------------------------ #

    @staticmethod
    def _continuation_key(query: QueryDescriptor, record: Record) -> Record:
        attributes = ("PK", "SK", query.partition_attribute, query.key_field or PRIMARY_SORT_KEY)
        return {attr: record[attr] for attr in attributes if attr in record}

    async def list_envelopes(
        self,
        context: CallerContext | None,
        query: QueryDescriptor | None = None,
        use_cache: bool | None = None,
        limit: int = 0,
        *,
        start_key: Record | None = None,
        timeout: float | None = None,
    ) -> Outcome[list[Envelope[T]]]:
        """Run query to completion, a size ceiling, limit items or timeout.

        The result is 206 whenever the store holds more data than was
        returned; next_key then resumes the listing.  Callers must treat
        status 200, not a short page, as the end of the list.

        Listed envelopes are opened from the projected attributes only (the
        default projection omits SK1..SK5, Topics, SessionId and TTL), and
        are cached in that form.
        """
        _, table, pk = self._resolve(context)
        if limit < 0:
            return Outcome.failure(ErrorKind.BAD_REQUEST, "limit must be >= 0")
        if query is None:
            query = self.queries.partition(pk, table=table)
        deadline = None if timeout is None else self._clock() + timeout

        envelopes: list[Envelope[T]] = []
        size = 0
        exclusive_start_key = start_key
        next_key: Record | None = None
        try:
            while True:
                remaining = limit - len(envelopes) if limit else None
                page = await self.store.query(query, exclusive_start_key, remaining)
                truncated = False
                for record in page.items:
                    envelope = Envelope.open(self.schema, record)
                    if envelopes and size + envelope.json_size > MAX_RESPONSE_SIZE:
                        truncated = True
                        break
                    size += envelope.json_size
                    envelopes.append(envelope)
                    next_key = self._continuation_key(query, record)
                if truncated:
                    logger.warning(
                        "List on %s stopped at %d bytes (%d items)", query.table, size, len(envelopes)
                    )
                    break
                exclusive_start_key = page.last_evaluated_key
                next_key = exclusive_start_key
                if not page.has_more or (limit and len(envelopes) >= limit):
                    break
                if deadline is not None and self._clock() >= deadline:
                    logger.warning("List on %s timed out after %d items", query.table, len(envelopes))
                    break
        except Exception as exc:
            return self._failure(exc, "list", write=False)

        use_cache = self._use_cache(use_cache)
        for envelope in envelopes:
            if envelope.entity is None:
                continue
            key = cache_key(query.table, envelope.pk, envelope.sk)
            if use_cache:
                self.cache.put(key, self._snapshot(envelope))
            else:
                self.cache.refresh_if_present(key, self._snapshot(envelope))

        if next_key is not None:
            return Outcome.partial(envelopes, size=size, next_key=next_key)
        return Outcome.success(envelopes, size=size)

    async def list(
        self,
        context: CallerContext | None,
        query: QueryDescriptor | None = None,
        use_cache: bool | None = None,
        limit: int = 0,
        *,
        start_key: Record | None = None,
        timeout: float | None = None,
    ) -> Outcome[list[T]]:
        outcome = await self.list_envelopes(
            context, query, use_cache, limit, start_key=start_key, timeout=timeout
        )
        return outcome.map(lambda envelopes: [e.entity for e in envelopes if e.entity is not None])

    async def _list_where(
        self,
        context: CallerContext | None,
        operator: QueryOperator,
        key_field: str,
        *values: str,
        use_cache: bool | None = None,
        limit: int = 0,
    ) -> Outcome[list[T]]:
        _, table, pk = self._resolve(context)
        try:
            query = self.queries.build(operator, pk, key_field, *values, table=table)
        except ValueError as exc:
            return Outcome.failure(ErrorKind.BAD_REQUEST, str(exc))
        return await self.list(context, query, use_cache, limit)

    async def list_all(
        self, context: CallerContext | None, use_cache: bool | None = None, limit: int = 0
    ) -> Outcome[list[T]]:
        return await self.list(context, None, use_cache, limit)

    async def list_equals(
        self,
        context: CallerContext | None,
        key_field: str,
        value: str,
        use_cache: bool | None = None,
        limit: int = 0,
    ) -> Outcome[list[T]]:
        return await self._list_where(
            context, QueryOperator.EQUAL, key_field, value, use_cache=use_cache, limit=limit
        )

    async def list_begins_with(
        self,
        context: CallerContext | None,
        key_field: str,
        value: str,
        use_cache: bool | None = None,
        limit: int = 0,
    ) -> Outcome[list[T]]:
        return await self._list_where(
            context, QueryOperator.BEGINS_WITH, key_field, value, use_cache=use_cache, limit=limit
        )

    async def list_less_than(
        self,
        context: CallerContext | None,
        key_field: str,
        value: str,
        use_cache: bool | None = None,
        limit: int = 0,
    ) -> Outcome[list[T]]:
        return await self._list_where(
            context, QueryOperator.LESS_THAN, key_field, value, use_cache=use_cache, limit=limit
        )

    async def list_less_than_or_equal(
        self,
        context: CallerContext | None,
        key_field: str,
        value: str,
        use_cache: bool | None = None,
        limit: int = 0,
    ) -> Outcome[list[T]]:
        return await self._list_where(
            context, QueryOperator.LESS_THAN_OR_EQUAL, key_field, value,
            use_cache=use_cache, limit=limit,
        )

    async def list_greater_than(
        self,
        context: CallerContext | None,
        key_field: str,
        value: str,
        use_cache: bool | None = None,
        limit: int = 0,
    ) -> Outcome[list[T]]:
        return await self._list_where(
            context, QueryOperator.GREATER_THAN, key_field, value, use_cache=use_cache, limit=limit
        )

    async def list_greater_than_or_equal(
        self,
        context: CallerContext | None,
        key_field: str,
        value: str,
        use_cache: bool | None = None,
        limit: int = 0,
    ) -> Outcome[list[T]]:
        return await self._list_where(
            context, QueryOperator.GREATER_THAN_OR_EQUAL, key_field, value,
            use_cache=use_cache, limit=limit,
        )

    async def list_between(
        self,
        context: CallerContext | None,
        key_field: str,
        start: str,
        end: str,
        use_cache: bool | None = None,
        limit: int = 0,
    ) -> Outcome[list[T]]:
        return await self._list_where(
            context, QueryOperator.BETWEEN, key_field, start, end, use_cache=use_cache, limit=limit
        )

    # ------------------------------------------------------------------ #
    # Cache
    # ------------------------------------------------------------------ #

    async def flush_cache(self, table: str | None = None) -> int:
        """Drop cached entries for table, or every entry when table is None."""
        return self.cache.flush(table)
