"""create evaluation cycles

Revision ID: 5c1f2e8a9b3d
Revises:
Create Date: 2026-10-19 09:12:41.204518
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "5c1f2e8a9b3d"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "evaluation_cycles",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'UPCOMING'")),
        sa.Column("phase", sa.String(length=20), nullable=False, server_default=sa.text("'ASSESSMENTS'")),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assessment_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("manager_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("equalization_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("name", name="uq_evaluation_cycles_name"),
        sa.CheckConstraint(
            "status IN ('UPCOMING','OPEN','CLOSED')",
            name="ck_evaluation_cycles_status",
        ),
        sa.CheckConstraint(
            "phase IN ('ASSESSMENTS','MANAGER_REVIEWS','EQUALIZATION')",
            name="ck_evaluation_cycles_phase",
        ),
    )
    op.create_index("ix_evaluation_cycles_status", "evaluation_cycles", ["status"])


def downgrade() -> None:
    op.drop_index("ix_evaluation_cycles_status", table_name="evaluation_cycles")
    op.drop_table("evaluation_cycles")
