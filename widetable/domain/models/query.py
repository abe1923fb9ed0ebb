"""Declarative query descriptor produced by the query builder.

The expression fields follow DynamoDB's query request shape so the DynamoDB
store can pass them through untouched.  The structured fields carry the same
condition in a form other stores evaluate directly without parsing
expressions.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import QueryOperator


class QueryDescriptor(BaseModel):
    """One index-qualified key-condition query.

    index_name is None when the query targets the base table (key_field SK).
    exclude_deleted mirrors filter_expression ("IsDeleted = :IsDeleted").
    """

    model_config = ConfigDict(frozen=True)

    table: str
    key_condition_expression: str
    index_name: str | None = None
    expression_attribute_names: dict[str, str] = Field(default_factory=dict)
    expression_attribute_values: dict[str, Any] = Field(default_factory=dict)
    projection_expression: str | None = None
    filter_expression: str | None = None

    partition_attribute: str = "PK"
    partition_value: str
    key_field: str | None = None
    operator: QueryOperator | None = None
    operands: tuple[str, ...] = ()
    exclude_deleted: bool = False

    def projected_attributes(self) -> list[str] | None:
        """Resolve projection_expression into plain attribute names."""
        if not self.projection_expression:
            return None
        names = []
        for token in self.projection_expression.split(","):
            token = token.strip()
            names.append(self.expression_attribute_names.get(token, token))
        return names

    def matches(self, record: dict[str, Any]) -> bool:
        """Evaluate the key condition and filter against a flat record."""
        if record.get(self.partition_attribute) != self.partition_value:
            return False
        if self.exclude_deleted and record.get("IsDeleted", False):
            return False
        if self.key_field is None or self.operator is None:
            return True

        value = record.get(self.key_field)
        if value is None:
            # Sparse index: records without the key field are not indexed.
            return False
        op = self.operator
        if op is QueryOperator.EQUAL:
            return value == self.operands[0]
        if op is QueryOperator.BEGINS_WITH:
            return str(value).startswith(self.operands[0])
        if op is QueryOperator.LESS_THAN:
            return value < self.operands[0]
        if op is QueryOperator.LESS_THAN_OR_EQUAL:
            return value <= self.operands[0]
        if op is QueryOperator.GREATER_THAN:
            return value > self.operands[0]
        if op is QueryOperator.GREATER_THAN_OR_EQUAL:
            return value >= self.operands[0]
        if op is QueryOperator.BETWEEN:
            return self.operands[0] <= value <= self.operands[1]
        raise ValueError(f"Unsupported query operator: {op}")
