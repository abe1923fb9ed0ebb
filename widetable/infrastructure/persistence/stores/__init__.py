"""RecordStore implementations: in-memory, SQLAlchemy and DynamoDB."""

from .dynamodb import DynamoDbRecordStore
from .memory import InMemoryRecordStore
from .sql import SqlRecordStore

__all__ = [
    "InMemoryRecordStore",
    "SqlRecordStore",
    "DynamoDbRecordStore",
]
