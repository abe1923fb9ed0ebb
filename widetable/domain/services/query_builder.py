"""Index-qualified query construction.

Secondary sort keys follow the index naming convention ``PK-{field}-Index``
(local indexes sharing the table partition key); the primary sort key SK
queries the base table and GSI1SK queries ``GSI1PK-GSI1SK-Index`` with GSI1PK
as its partition attribute.  The builder only describes queries, it performs
no I/O.
"""

from __future__ import annotations

from typing import Any

from widetable.domain.models.enums import QueryOperator
from widetable.domain.models.query import QueryDescriptor

PRIMARY_SORT_KEY = "SK"
GLOBAL_INDEX_NAME = "GSI1PK-GSI1SK-Index"

DEFAULT_ATTRIBUTE_NAMES = {"#Data": "Data", "#Status": "Status", "#General": "General"}
DEFAULT_PROJECTION = (
    "PK, SK, #Data, TypeName, #Status, UpdateUtcTick, CreateUtcTick, #General, IsDeleted"
)


def index_name_for(key_field: str | None) -> str | None:
    """Map a key field to the index that serves it (None = base table)."""
    if not key_field or key_field == PRIMARY_SORT_KEY:
        return None
    if key_field == "GSI1SK":
        return GLOBAL_INDEX_NAME
    return f"PK-{key_field}-Index"


def partition_attribute_for(key_field: str | None) -> str:
    return "GSI1PK" if key_field == "GSI1SK" else "PK"


class QueryBuilder:
    """Builds QueryDescriptors against one default table.

    With use_is_deleted every query also filters out soft-deleted records.
    """

    def __init__(self, table: str, use_is_deleted: bool = False) -> None:
        self.table = table
        self.use_is_deleted = use_is_deleted

    def _build(
        self,
        pk: str,
        key_field: str | None,
        operator: QueryOperator | None,
        operands: tuple[str, ...],
        *,
        table: str | None,
        attribute_names: dict[str, str] | None,
        projection: str | None,
    ) -> QueryDescriptor:
        key_field = key_field or PRIMARY_SORT_KEY
        partition_attribute = partition_attribute_for(key_field)
        condition = f"{partition_attribute} = :PKval"
        values: dict[str, Any] = {":PKval": pk}

        if operator is QueryOperator.BETWEEN:
            condition += f" and {key_field} between :SKStart and :SKEnd"
            values[":SKStart"], values[":SKEnd"] = operands
        elif operator is QueryOperator.BEGINS_WITH:
            condition += f" and begins_with({key_field}, :SKval)"
            values[":SKval"] = operands[0]
        elif operator is not None:
            condition += f" and {key_field} {operator.symbol} :SKval"
            values[":SKval"] = operands[0]

        if projection is None:
            projection = DEFAULT_PROJECTION
            # Index queries also return the index keys the caller paged on.
            for attribute in (partition_attribute, key_field):
                if attribute not in ("PK", "SK"):
                    projection += f", {attribute}"

        filter_expression = None
        if self.use_is_deleted:
            values[":IsDeleted"] = False
            filter_expression = "IsDeleted = :IsDeleted"

        return QueryDescriptor(
            table=table or self.table,
            key_condition_expression=condition,
            index_name=index_name_for(key_field) if operator is not None else None,
            expression_attribute_names=dict(attribute_names or DEFAULT_ATTRIBUTE_NAMES),
            expression_attribute_values=values,
            projection_expression=projection,
            filter_expression=filter_expression,
            partition_attribute=partition_attribute,
            partition_value=pk,
            key_field=key_field if operator is not None else None,
            operator=operator,
            operands=operands,
            exclude_deleted=self.use_is_deleted,
        )

    def partition(
        self,
        pk: str,
        *,
        table: str | None = None,
        attribute_names: dict[str, str] | None = None,
        projection: str | None = None,
    ) -> QueryDescriptor:
        """Every record in the partition."""
        return self._build(
            pk, None, None, (),
            table=table, attribute_names=attribute_names, projection=projection,
        )

    def equals(self, pk: str, value: str, key_field: str = PRIMARY_SORT_KEY, **kwargs: Any) -> QueryDescriptor:
        return self._build(pk, key_field, QueryOperator.EQUAL, (value,), **self._opts(kwargs))

    def begins_with(self, pk: str, value: str, key_field: str = PRIMARY_SORT_KEY, **kwargs: Any) -> QueryDescriptor:
        return self._build(pk, key_field, QueryOperator.BEGINS_WITH, (value,), **self._opts(kwargs))

    def less_than(self, pk: str, value: str, key_field: str = PRIMARY_SORT_KEY, **kwargs: Any) -> QueryDescriptor:
        return self._build(pk, key_field, QueryOperator.LESS_THAN, (value,), **self._opts(kwargs))

    def less_than_or_equal(self, pk: str, value: str, key_field: str = PRIMARY_SORT_KEY, **kwargs: Any) -> QueryDescriptor:
        return self._build(pk, key_field, QueryOperator.LESS_THAN_OR_EQUAL, (value,), **self._opts(kwargs))

    def greater_than(self, pk: str, value: str, key_field: str = PRIMARY_SORT_KEY, **kwargs: Any) -> QueryDescriptor:
        return self._build(pk, key_field, QueryOperator.GREATER_THAN, (value,), **self._opts(kwargs))

    def greater_than_or_equal(self, pk: str, value: str, key_field: str = PRIMARY_SORT_KEY, **kwargs: Any) -> QueryDescriptor:
        return self._build(pk, key_field, QueryOperator.GREATER_THAN_OR_EQUAL, (value,), **self._opts(kwargs))

    def between(self, pk: str, start: str, end: str, key_field: str = PRIMARY_SORT_KEY, **kwargs: Any) -> QueryDescriptor:
        if start > end:
            raise ValueError(f"Range start {start!r} sorts after range end {end!r}")
        return self._build(pk, key_field, QueryOperator.BETWEEN, (start, end), **self._opts(kwargs))

    def build(self, operator: QueryOperator | str, pk: str, key_field: str, *values: str, **kwargs: Any) -> QueryDescriptor:
        """Dispatch on an operator (or its name, e.g. "BeginsWith")."""
        if isinstance(operator, str):
            operator = QueryOperator.parse(operator)
        expected = 2 if operator is QueryOperator.BETWEEN else 1
        if len(values) != expected:
            raise ValueError(f"{operator.value} takes {expected} value(s), got {len(values)}")
        if operator is QueryOperator.BETWEEN:
            return self.between(pk, values[0], values[1], key_field, **kwargs)
        return self._build(pk, key_field, operator, (values[0],), **self._opts(kwargs))

    @staticmethod
    def _opts(kwargs: dict[str, Any]) -> dict[str, Any]:
        unknown = set(kwargs) - {"table", "attribute_names", "projection"}
        if unknown:
            raise TypeError(f"Unexpected query options: {sorted(unknown)}")
        return {
            "table": kwargs.get("table"),
            "attribute_names": kwargs.get("attribute_names"),
            "projection": kwargs.get("projection"),
        }
