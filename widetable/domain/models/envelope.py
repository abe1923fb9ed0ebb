"""Record envelope: the flat, indexable storage form of an entity.

A single wide table holds many entity types.  Each record carries the
partition / sort key pair, up to five sparse local sort keys (SK1..SK5), one
global index key pair (GSI1PK / GSI1SK), two projection attributes (Status,
General) and the serialized entity payload (Data).

EnvelopeSchema describes how one entity type maps onto that layout;
Envelope is the transient per-operation object that seals an entity into a
record before a write and opens a record back into an entity after a read.
Envelopes are never persisted as objects, only their ``record`` dict is.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from .entity import Entity

T = TypeVar("T", bound=Entity)

SECONDARY_SORT_KEYS = ("SK1", "SK2", "SK3", "SK4", "SK5")
GLOBAL_INDEX_KEYS = ("GSI1PK", "GSI1SK")
PROJECTION_ATTRIBUTES = ("Status", "General")
KEY_ATTRIBUTES = SECONDARY_SORT_KEYS + GLOBAL_INDEX_KEYS + PROJECTION_ATTRIBUTES

DEFAULT_TTL_PERIOD = 172_800  # 48 hours

KeySource = str | Callable[[Any], Any]
PayloadTransform = Callable[[dict[str, Any]], dict[str, Any]]


@dataclass(frozen=True)
class EnvelopeSchema(Generic[T]):
    """Mapping of one entity type onto the wide-table record layout.

    key_sources maps an envelope attribute (SK1..SK5, GSI1PK, GSI1SK, Status,
    General) to either an entity field name or a callable taking the entity.

    transforms maps an older TypeName (e.g. "Order:v1.0.0") to a function that
    upgrades a raw payload dict to the current entity shape before validation.
    """

    entity_type: type[T]
    name: str | None = None
    version: str = "v1.0.0"
    default_pk: str | None = None
    key_sources: Mapping[str, KeySource] = field(default_factory=dict)
    ttl_period: int = DEFAULT_TTL_PERIOD
    transforms: Mapping[str, PayloadTransform] = field(default_factory=dict)

    def __post_init__(self) -> None:
        unknown = set(self.key_sources) - set(KEY_ATTRIBUTES)
        if unknown:
            raise ValueError(f"Unknown envelope key attributes: {sorted(unknown)}")
        if self.ttl_period <= 0:
            raise ValueError("ttl_period must be positive")

    @property
    def type_name(self) -> str:
        return self.name or self.entity_type.__name__

    @property
    def current_type_name(self) -> str:
        return f"{self.type_name}:{self.version}"

    @property
    def pk(self) -> str:
        return self.default_pk or f"{self.type_name}:"

    @staticmethod
    def sort_key(entity_id: str) -> str:
        return f"{entity_id}:"

    def project(self, entity: T) -> dict[str, str]:
        """Return the non-empty secondary key / projection values for entity."""
        keys: dict[str, str] = {}
        for attribute, source in self.key_sources.items():
            value = source(entity) if callable(source) else getattr(entity, source, None)
            if value is None or value == "":
                continue
            keys[attribute] = str(value)
        return keys

    def dump(self, entity: T) -> str:
        return entity.model_dump_json()

    def load(self, payload: str, type_name: str | None) -> T:
        transform = self.transforms.get(type_name) if type_name else None
        if transform is None:
            return self.entity_type.model_validate_json(payload)
        return self.entity_type.model_validate(transform(json.loads(payload)))


class Envelope(Generic[T]):
    """Transient wrapper sealing / opening one record."""

    def __init__(
        self,
        schema: EnvelopeSchema[T],
        entity: T | None = None,
        *,
        session_id: str | None = None,
        is_deleted: bool = False,
        use_ttl: bool = False,
    ) -> None:
        self.schema = schema
        self.entity = entity
        self.session_id = session_id
        self.is_deleted = is_deleted
        self.use_ttl = use_ttl
        self.ttl_period = schema.ttl_period
        self.type_name: str | None = None
        self.pk: str | None = None
        self.sk: str | None = None
        self.keys: dict[str, str] = {}
        self.ttl: int | None = None
        self.topics: list[str] = []
        self.json_size = 0
        self.record: dict[str, Any] = {}

    def __repr__(self) -> str:
        return f"Envelope(type_name={self.type_name!r}, pk={self.pk!r}, sk={self.sk!r})"

    # -- ticks ----------------------------------------------------------- #

    @property
    def create_utc_tick(self) -> int:
        return self.entity.get_create_tick() if self.entity is not None else 0

    @create_utc_tick.setter
    def create_utc_tick(self, value: int) -> None:
        if self.entity is not None:
            self.entity.set_create_tick(value)
        if "CreateUtcTick" in self.record:
            self.record["CreateUtcTick"] = value

    @property
    def update_utc_tick(self) -> int:
        return self.entity.get_update_tick() if self.entity is not None else 0

    @update_utc_tick.setter
    def update_utc_tick(self, value: int) -> None:
        if self.entity is not None:
            self.entity.set_update_tick(value)
        if "UpdateUtcTick" in self.record:
            self.record["UpdateUtcTick"] = value

    # -- entity -> record ------------------------------------------------ #

    def seal(self, now: float, pk: str | None = None) -> dict[str, Any]:
        """Build the record for the current entity, without the Data payload.

        now is the POSIX time in seconds used for the TTL attribute.
        pk overrides the schema's default partition key.
        """
        if self.entity is None:
            raise ValueError("Cannot seal an envelope without an entity")

        self.type_name = self.schema.current_type_name
        self.pk = pk or self.schema.pk
        self.sk = self.schema.sort_key(self.entity.id)
        self.keys = self.schema.project(self.entity)

        record: dict[str, Any] = {
            "TypeName": self.type_name,
            "PK": self.pk,
            "SK": self.sk,
            "CreateUtcTick": self.create_utc_tick,
            "UpdateUtcTick": self.update_utc_tick,
        }
        record.update(self.keys)
        # Always present: list queries filter on it.
        record["IsDeleted"] = self.is_deleted
        if self.session_id:
            record["SessionId"] = self.session_id
        if self.use_ttl:
            self.ttl = int(now) + self.ttl_period
            record["TTL"] = self.ttl
        self.record = record
        return record

    def attach_payload(self) -> str:
        """Serialize the entity into Data.  Call immediately before the write."""
        if self.entity is None:
            raise ValueError("Cannot attach a payload without an entity")
        data = self.schema.dump(self.entity)
        self.record["Data"] = data
        self.json_size = len(data.encode("utf-8"))
        return data

    def attach_ttl(self, ttl: int) -> None:
        self.ttl = ttl
        self.record["TTL"] = ttl

    def attach_topics(self, topics: list[str]) -> str:
        self.topics = list(topics)
        encoded = json.dumps(self.topics)
        self.record["Topics"] = encoded
        return encoded

    # -- record -> entity ------------------------------------------------ #

    @classmethod
    def open(cls, schema: EnvelopeSchema[T], record: Mapping[str, Any] | None) -> Envelope[T]:
        """Rebuild an envelope from a stored record.

        A record without PK / SK / Data yields an envelope whose entity is
        None and whose ticks are zero; callers test ``entity is None`` to
        detect "not found".
        """
        envelope = cls(schema)
        if not record:
            return envelope

        envelope.record = dict(record)
        envelope.pk = record.get("PK")
        envelope.sk = record.get("SK")
        envelope.type_name = record.get("TypeName")
        envelope.keys = {a: record[a] for a in KEY_ATTRIBUTES if record.get(a)}
        envelope.is_deleted = bool(record.get("IsDeleted", False))
        envelope.session_id = record.get("SessionId")
        if record.get("TTL") is not None:
            envelope.ttl = int(record["TTL"])
        if record.get("Topics"):
            envelope.topics = json.loads(record["Topics"])

        data = record.get("Data")
        if not envelope.pk or not envelope.sk or data is None:
            return envelope

        envelope.json_size = len(data.encode("utf-8"))
        envelope.entity = schema.load(data, envelope.type_name)
        if "CreateUtcTick" in record:
            envelope.create_utc_tick = int(record["CreateUtcTick"])
        if "UpdateUtcTick" in record:
            envelope.update_utc_tick = int(record["UpdateUtcTick"])
        return envelope
