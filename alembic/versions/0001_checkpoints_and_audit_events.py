"""checkpoints and audit events

Revision ID: 0001
Revises:
Create Date: 2026-10-19 12:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

PHASES = ("INITIALIZE", "VALIDATE", "PREPARE", "DEPLOY", "VERIFY", "MONITOR")


def upgrade() -> None:
    op.create_table(
        "checkpoints",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("execution_id", sa.String(length=64), nullable=False),
        sa.Column("phase", sa.Enum(*PHASES, name="checkpoint_phase"), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("checksum", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "execution_id", "phase", "version",
            name="uq_checkpoints_execution_phase_version",
        ),
    )
    op.create_index(
        "ix_checkpoints_lookup", "checkpoints", ["execution_id", "phase", "version"]
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("execution_id", sa.String(length=64), nullable=False),
        sa.Column("phase", sa.String(length=32), nullable=True),
        sa.Column("capability", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("timestamp_ms", sa.BigInteger(), nullable=False),
        sa.Column("duration_ms", sa.Integer(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
    )
    op.create_index("ix_audit_events_execution_id", "audit_events", ["execution_id"])
    op.create_index(
        "ix_audit_events_execution_time", "audit_events", ["execution_id", "timestamp_ms"]
    )


def downgrade() -> None:
    op.drop_index("ix_audit_events_execution_time", table_name="audit_events")
    op.drop_index("ix_audit_events_execution_id", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_index("ix_checkpoints_lookup", table_name="checkpoints")
    op.drop_table("checkpoints")
    sa.Enum(name="checkpoint_phase").drop(op.get_bind(), checkfirst=True)
