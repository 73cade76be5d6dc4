"""single open cycle index

Revision ID: 8e4a1d7c2f60
Revises: 5c1f2e8a9b3d
Create Date: 2026-10-20 10:03:17.552931
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "8e4a1d7c2f60"
down_revision: Union[str, None] = "5c1f2e8a9b3d"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_index(
        "uq_evaluation_cycles_single_open",
        "evaluation_cycles",
        ["status"],
        unique=True,
        postgresql_where=sa.text("status = 'OPEN'"),
        sqlite_where=sa.text("status = 'OPEN'"),
    )


def downgrade() -> None:
    op.drop_index("uq_evaluation_cycles_single_open", table_name="evaluation_cycles")
