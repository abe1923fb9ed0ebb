"""Record store port.

A RecordStore is the backend key/value store underneath the repository:
a table of flat records addressed by (PK, SK) with conditional writes and
paginated key-condition queries.  Implementations raise only the exceptions
in widetable.domain.exceptions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from widetable.domain.models.query import QueryDescriptor

Record = dict[str, Any]


@dataclass(frozen=True)
class WriteCondition:
    """Precondition for put_item.

    key_absent: no record exists at (PK, SK).
    expected_update_tick: the stored UpdateUtcTick equals this value.
    """

    key_absent: bool = False
    expected_update_tick: int | None = None

    @classmethod
    def not_exists(cls) -> WriteCondition:
        return cls(key_absent=True)

    @classmethod
    def update_tick_equals(cls, tick: int) -> WriteCondition:
        return cls(expected_update_tick=tick)

    @property
    def expression(self) -> str:
        if self.key_absent:
            return "attribute_not_exists(PK)"
        return "UpdateUtcTick = :OldUpdateUtcTick"

    @property
    def values(self) -> dict[str, Any]:
        if self.key_absent:
            return {}
        return {":OldUpdateUtcTick": self.expected_update_tick}

    def holds_for(self, existing: Record | None) -> bool:
        if self.key_absent:
            return existing is None
        if existing is None:
            return False
        return int(existing.get("UpdateUtcTick", 0)) == self.expected_update_tick


@dataclass
class Page:
    """One page of query results.

    last_evaluated_key is None when the store has no more data for the query.
    """

    items: list[Record] = field(default_factory=list)
    last_evaluated_key: Record | None = None

    @property
    def has_more(self) -> bool:
        return self.last_evaluated_key is not None


class RecordStore(ABC):
    """Abstract wide-table backend."""

    name: str = "store"

    @abstractmethod
    async def get_item(self, table: str, pk: str, sk: str) -> Record | None:
        """Return the record at (pk, sk), or None."""

    @abstractmethod
    async def put_item(
        self, table: str, record: Record, condition: WriteCondition | None = None
    ) -> None:
        """Write record, replacing any existing one when condition holds.

        Raises ConditionFailedError when condition does not hold.
        """

    @abstractmethod
    async def delete_item(self, table: str, pk: str, sk: str) -> None:
        """Physically remove the record at (pk, sk); no-op when absent."""

    @abstractmethod
    async def query(
        self,
        query: QueryDescriptor,
        exclusive_start_key: Record | None = None,
        limit: int | None = None,
    ) -> Page:
        """Return one page of records matching query, in key order."""
