"""Entity base model and the tick accessor contract.

The repository only ever touches three things on an application entity: its
identifier and its create / update ticks.  Ticks are read and written through
TickAccessor so entity types may store them under any field names they like.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

TICKS_PER_SECOND = 10_000_000  # 100 ns resolution


def to_ticks(seconds: float) -> int:
    """Convert a POSIX timestamp in seconds to integer ticks."""
    return int(seconds * TICKS_PER_SECOND)


@runtime_checkable
class TickAccessor(Protocol):
    """Explicit accessor for the two concurrency / audit timestamps."""

    def get_create_tick(self) -> int: ...

    def set_create_tick(self, value: int) -> None: ...

    def get_update_tick(self) -> int: ...

    def set_update_tick(self, value: int) -> None: ...


class Entity(BaseModel):
    """Base class for entities stored through the repository.

    Subclasses add their own business fields.  The model is mutable because
    sealing an envelope stamps fresh ticks onto the entity right before its
    payload is serialized.
    """

    model_config = ConfigDict(validate_assignment=True, extra="ignore")

    id: str
    create_utc_tick: int = 0
    update_utc_tick: int = 0

    def get_create_tick(self) -> int:
        return self.create_utc_tick

    def set_create_tick(self, value: int) -> None:
        self.create_utc_tick = value

    def get_update_tick(self) -> int:
        return self.update_utc_tick

    def set_update_tick(self, value: int) -> None:
        self.update_utc_tick = value
