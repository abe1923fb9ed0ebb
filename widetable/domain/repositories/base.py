"""Generic repository base interface.

Repository[T] is the root abstraction for entity data access.  The concrete
implementation lives in widetable/infrastructure/persistence/ and is wired at
the application boundary.

Design notes:
  - All methods are async; backend calls are the only suspension points.
  - T is the entity type (never a raw record or envelope).
  - Every method returns an Outcome rather than raising for backend failures.
  - context carries the caller's table / partition override and session.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from widetable.domain.models.context import CallerContext
from widetable.domain.models.outcomes import Outcome
from widetable.domain.models.query import QueryDescriptor

T = TypeVar("T")


class Repository(ABC, Generic[T]):
    """Abstract CRUDL interface for an entity type."""

    @abstractmethod
    async def read(
        self, context: CallerContext | None, id: str, use_cache: bool | None = None
    ) -> Outcome[T]:
        """Return the entity with the given id; 404 outcome when absent."""

    @abstractmethod
    async def list(
        self,
        context: CallerContext | None,
        query: QueryDescriptor | None = None,
        use_cache: bool | None = None,
        limit: int = 0,
    ) -> Outcome[list[T]]:
        """Return matching entities; 206 when more data exists upstream."""

    @abstractmethod
    async def create(
        self, context: CallerContext | None, entity: T, use_cache: bool | None = None
    ) -> Outcome[T]:
        """Persist a new entity; 409 outcome when the key already exists."""

    @abstractmethod
    async def update(
        self, context: CallerContext | None, entity: T, force: bool = False
    ) -> Outcome[T]:
        """Persist changes; 409 outcome when the update tick is stale."""

    @abstractmethod
    async def delete(self, context: CallerContext | None, id: str) -> Outcome[None]:
        """Remove (or soft-delete) the entity with the given id."""
