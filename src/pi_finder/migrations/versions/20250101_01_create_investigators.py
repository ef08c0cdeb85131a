"""Create the investigators table."""

from __future__ import annotations

from typing import Sequence

from alembic import op
import sqlalchemy as sa

revision: str = "20250101_01"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
TIMESTAMP = sa.DateTime(timezone=True)


def upgrade() -> None:
    """Create the investigator directory table and its lookup indexes."""

    op.create_table(
        "investigators",
        sa.Column("id", ID_TYPE, primary_key=True, autoincrement=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), nullable=True),
        sa.Column("facility", sa.Text(), nullable=True),
        sa.Column("city", sa.Text(), nullable=True),
        sa.Column("state", sa.Text(), nullable=True),
        sa.Column("zip", sa.Text(), nullable=True),
        sa.Column("affiliation", sa.Text(), nullable=True),
        sa.Column("nct_id", sa.Text(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("inserted_at", TIMESTAMP, nullable=True, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("investigators_nct_id_idx", "investigators", ["nct_id"], unique=False)
    op.create_index("investigators_zip_idx", "investigators", ["zip"], unique=False)


def downgrade() -> None:
    op.drop_index("investigators_zip_idx", table_name="investigators")
    op.drop_index("investigators_nct_id_idx", table_name="investigators")
    op.drop_table("investigators")
