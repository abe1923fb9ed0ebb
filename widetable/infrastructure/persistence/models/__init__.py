"""ORM models.

Importing this package registers every mapper with Base.metadata (required
for Alembic autogenerate).
"""

from .records import ATTRIBUTE_COLUMNS, RecordRow, to_columns, to_record

__all__ = [
    "RecordRow",
    "ATTRIBUTE_COLUMNS",
    "to_columns",
    "to_record",
]
