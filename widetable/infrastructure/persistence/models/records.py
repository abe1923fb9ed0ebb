"""ORM model for the relational rendition of the wide table.

One SQL table holds every logical wide table: table_name is part of the
primary key.  Each secondary sort key gets its own (table_name, pk, skN)
index, the relational counterpart of the ``PK-SKn-Index`` local indexes; the
global index pair gets (table_name, gsi1pk, gsi1sk).
"""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, Boolean, Index, Text, false
from sqlalchemy.orm import Mapped, mapped_column

from widetable.infrastructure.database import Base

# Record attribute name -> column name
ATTRIBUTE_COLUMNS: dict[str, str] = {
    "PK": "pk",
    "SK": "sk",
    "SK1": "sk1",
    "SK2": "sk2",
    "SK3": "sk3",
    "SK4": "sk4",
    "SK5": "sk5",
    "GSI1PK": "gsi1pk",
    "GSI1SK": "gsi1sk",
    "Status": "status",
    "General": "general",
    "TypeName": "type_name",
    "CreateUtcTick": "create_utc_tick",
    "UpdateUtcTick": "update_utc_tick",
    "IsDeleted": "is_deleted",
    "SessionId": "session_id",
    "TTL": "ttl",
    "Topics": "topics",
    "Data": "data",
}


class RecordRow(Base):
    """One flattened envelope record.

    Columns mirror the record attributes; attributes outside the fixed layout
    (added by an attribute augmenter) land in extra.
    """

    __tablename__ = "records"
    __table_args__ = (
        Index("ix_records_sk1", "table_name", "pk", "sk1"),
        Index("ix_records_sk2", "table_name", "pk", "sk2"),
        Index("ix_records_sk3", "table_name", "pk", "sk3"),
        Index("ix_records_sk4", "table_name", "pk", "sk4"),
        Index("ix_records_sk5", "table_name", "pk", "sk5"),
        Index("ix_records_gsi1", "table_name", "gsi1pk", "gsi1sk"),
        Index("ix_records_ttl", "ttl"),
    )

    table_name: Mapped[str] = mapped_column(Text, primary_key=True)
    pk: Mapped[str] = mapped_column(Text, primary_key=True)
    sk: Mapped[str] = mapped_column(Text, primary_key=True)
    sk1: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sk2: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sk3: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sk4: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sk5: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    gsi1pk: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    gsi1sk: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    general: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    create_utc_tick: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    update_utc_tick: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    session_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ttl: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)  # epoch seconds
    topics: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON list
    data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    extra: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON(none_as_null=True), nullable=True)


def to_columns(table: str, record: dict[str, Any]) -> dict[str, Any]:
    """Flatten a record into RecordRow column values."""
    values: dict[str, Any] = {column: None for column in ATTRIBUTE_COLUMNS.values()}
    values["table_name"] = table
    extra: dict[str, Any] = {}
    for attribute, value in record.items():
        column = ATTRIBUTE_COLUMNS.get(attribute)
        if column is None:
            extra[attribute] = value
        else:
            values[column] = value
    values["create_utc_tick"] = values["create_utc_tick"] or 0
    values["update_utc_tick"] = values["update_utc_tick"] or 0
    values["is_deleted"] = bool(values["is_deleted"])
    values["extra"] = extra or None
    return values


def to_record(row: RecordRow) -> dict[str, Any]:
    """Rebuild the sparse record dict from a row; NULL columns are omitted."""
    record: dict[str, Any] = {}
    for attribute, column in ATTRIBUTE_COLUMNS.items():
        value = getattr(row, column)
        if value is not None:
            record[attribute] = value
    if row.extra:
        record.update(row.extra)
    return record
