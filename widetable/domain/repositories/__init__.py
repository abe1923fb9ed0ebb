"""Domain repository interfaces.

All abstractions are defined here with abc.ABC and @abstractmethod.
Concrete implementations live in widetable/infrastructure/persistence/ and
are wired at the application boundary.
"""

from .base import Repository
from .store import Page, Record, RecordStore, WriteCondition

__all__ = [
    "Repository",
    "RecordStore",
    "Record",
    "Page",
    "WriteCondition",
]
