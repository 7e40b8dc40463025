# rollout_engine/infrastructure/sql/models.py
"""SQLAlchemy ORM models for database tables."""

from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger, Column, DateTime, Enum as SQLEnum, Index, Integer, JSON, String, UniqueConstraint
)

from rollout_engine.core.models import Phase
from rollout_engine.infrastructure.sql.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class CheckpointORM(Base):
    """
    Checkpoint table - append-only phase snapshots.

    Constraints:
    - Unique (execution_id, phase, version): a version is written once
    """

    __tablename__ = "checkpoints"

    id = Column(Integer, primary_key=True, autoincrement=True)

    execution_id = Column(String(64), nullable=False)
    phase = Column(SQLEnum(Phase, name="checkpoint_phase"), nullable=False)
    version = Column(Integer, nullable=False)

    payload = Column(JSON, nullable=False)
    checksum = Column(String(64), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint(
            "execution_id", "phase", "version",
            name="uq_checkpoints_execution_phase_version",
        ),
        Index("ix_checkpoints_lookup", "execution_id", "phase", "version"),
    )

    def __repr__(self) -> str:
        return (
            f"<CheckpointORM(execution_id={self.execution_id}, "
            f"phase={self.phase.value}, version={self.version})>"
        )


class AuditEventORM(Base):
    """Audit trail - one row per phase transition or capability invocation."""

    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True, autoincrement=True)

    execution_id = Column(String(64), nullable=False, index=True)
    phase = Column(String(32), nullable=True)
    capability = Column(String(64), nullable=True)
    status = Column(String(32), nullable=False)

    timestamp_ms = Column(BigInteger, nullable=False)
    duration_ms = Column(Integer, nullable=False, default=0)

    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_audit_events_execution_time", "execution_id", "timestamp_ms"),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditEventORM(execution_id={self.execution_id}, "
            f"phase={self.phase}, capability={self.capability}, status={self.status})>"
        )
