"""Records table: the relational rendition of the wide table.

Revision ID: 0001
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SECONDARY_SORT_KEYS = ("sk1", "sk2", "sk3", "sk4", "sk5")


def upgrade() -> None:
    op.create_table(
        "records",
        sa.Column("table_name", sa.Text, nullable=False),
        sa.Column("pk", sa.Text, nullable=False),
        sa.Column("sk", sa.Text, nullable=False),
        # Sparse index keys: NULL when the entity value is empty.
        *(sa.Column(name, sa.Text, nullable=True) for name in SECONDARY_SORT_KEYS),
        sa.Column("gsi1pk", sa.Text, nullable=True),
        sa.Column("gsi1sk", sa.Text, nullable=True),
        sa.Column("status", sa.Text, nullable=True),
        sa.Column("general", sa.Text, nullable=True),
        sa.Column("type_name", sa.Text, nullable=True),
        sa.Column("create_utc_tick", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("update_utc_tick", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("session_id", sa.Text, nullable=True),
        sa.Column("ttl", sa.BigInteger, nullable=True),
        sa.Column("topics", sa.Text, nullable=True),
        sa.Column("data", sa.Text, nullable=True),
        sa.Column("extra", sa.JSON(none_as_null=True), nullable=True),
        sa.PrimaryKeyConstraint("table_name", "pk", "sk"),
    )

    for name in SECONDARY_SORT_KEYS:
        op.create_index(f"ix_records_{name}", "records", ["table_name", "pk", name])
    op.create_index("ix_records_gsi1", "records", ["table_name", "gsi1pk", "gsi1sk"])
    op.create_index("ix_records_ttl", "records", ["ttl"])


def downgrade() -> None:
    op.drop_index("ix_records_ttl", table_name="records")
    op.drop_index("ix_records_gsi1", table_name="records")
    for name in reversed(SECONDARY_SORT_KEYS):
        op.drop_index(f"ix_records_{name}", table_name="records")
    op.drop_table("records")
