"""Unit tests for the records ORM model and its record mapping.

Verifies table name, nullability, the composite PK, indexes, package
registration and to_columns / to_record. No database connection is required.
"""

from types import SimpleNamespace

import widetable.infrastructure.persistence  # noqa: F401  registers all mappers
from widetable.infrastructure.database import Base
from widetable.infrastructure.persistence.models import __all__ as models_all
from widetable.infrastructure.persistence.models.records import (
    ATTRIBUTE_COLUMNS,
    RecordRow,
    to_columns,
    to_record,
)


def _record(**overrides):
    record = {
        "PK": "Order:",
        "SK": "1:",
        "SK1": "acme",
        "TypeName": "Order:v1.0.0",
        "CreateUtcTick": 10,
        "UpdateUtcTick": 20,
        "IsDeleted": False,
        "Data": '{"id": "1"}',
    }
    record.update(overrides)
    return record


def _row(**overrides):
    values = {column: None for column in ATTRIBUTE_COLUMNS.values()}
    values.update(table_name="orders", extra=None)
    values.update(overrides)
    return SimpleNamespace(**values)


# --- Table structure ---

def test_record_row_tablename():
    assert RecordRow.__tablename__ == "records"


def test_record_row_has_three_column_pk():
    pk_cols = [c.name for c in RecordRow.__table__.primary_key.columns]
    assert pk_cols == ["table_name", "pk", "sk"]


def test_secondary_sort_keys_are_nullable():
    for name in ("sk1", "sk2", "sk3", "sk4", "sk5", "gsi1pk", "gsi1sk"):
        assert RecordRow.__table__.c[name].nullable is True


def test_update_tick_is_not_nullable():
    assert RecordRow.__table__.c["update_utc_tick"].nullable is False


def test_one_index_per_secondary_key():
    index_names = {i.name for i in RecordRow.__table__.indexes}
    assert {f"ix_records_sk{n}" for n in range(1, 6)} <= index_names
    assert "ix_records_gsi1" in index_names


# --- Package registration ---

def test_records_registered_in_base_metadata():
    assert "records" in Base.metadata.tables


def test_models_package_exports():
    assert "RecordRow" in models_all


# --- to_columns ---

def test_to_columns_maps_attributes():
    values = to_columns("orders", _record())
    assert values["table_name"] == "orders"
    assert values["sk1"] == "acme"
    assert values["update_utc_tick"] == 20


def test_to_columns_absent_attributes_are_null():
    assert to_columns("orders", _record())["sk2"] is None


def test_to_columns_unknown_attributes_go_to_extra():
    assert to_columns("orders", _record(Tenant="t1"))["extra"] == {"Tenant": "t1"}


def test_to_columns_no_extra_is_null():
    assert to_columns("orders", _record())["extra"] is None


# --- to_record ---

def test_to_record_omits_null_columns():
    record = to_record(_row(pk="Order:", sk="1:", is_deleted=False))
    assert record == {"PK": "Order:", "SK": "1:", "IsDeleted": False}


def test_to_record_merges_extra():
    record = to_record(_row(pk="Order:", sk="1:", extra={"Tenant": "t1"}))
    assert record["Tenant"] == "t1"


def test_to_record_keeps_data():
    assert to_record(_row(data="{}"))["Data"] == "{}"
