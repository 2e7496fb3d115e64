"""create lottery run and audit event tables

Revision ID: 0001_lottery_runs
Revises:
Create Date: 2026-10-19 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001_lottery_runs"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "lottery_runs",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("run_id", sa.String(length=64), nullable=False),
        sa.Column("run_salt_hex", sa.String(length=64), nullable=False),
        sa.Column("document_hash", sa.String(length=64), nullable=False),
        sa.Column("target_group", sa.String(length=255), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("rounding_mode", sa.String(length=10), nullable=False),
        sa.Column("guarantee_quota", sa.Integer(), nullable=True),
        sa.Column("seed_hash", sa.String(length=64), nullable=True),
        sa.Column("final_hash", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("summary_json", sa.Text(), nullable=True),
        sa.Column("manifest_json", sa.Text(), nullable=True),
        sa.Column("signature_base64", sa.Text(), nullable=True),
        sa.Column("public_key_jwk", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('completed','verified','verification_failed')",
            name=op.f("ck_lottery_runs_lottery_run_status_enum"),
        ),
        sa.CheckConstraint(
            "rounding_mode IN ('floor','ceil','round')",
            name=op.f("ck_lottery_runs_lottery_run_rounding_enum"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_lottery_runs")),
        sa.UniqueConstraint("run_id", name="lottery_runs_run_id_key"),
    )
    op.create_table(
        "audit_events",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("run_pk", ID_TYPE, nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.String(length=32), nullable=False),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("data_json", sa.Text(), nullable=False),
        sa.Column("prev_hash", sa.String(length=64), nullable=False),
        sa.Column("entry_hash", sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(
            ["run_pk"],
            ["lottery_runs.id"],
            name=op.f("fk_audit_events_run_pk_lottery_runs"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_audit_events")),
        sa.UniqueConstraint("run_pk", "sequence", name="audit_events_run_sequence_key"),
    )


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("lottery_runs")
