# rollout_engine/infrastructure/sql/checkpoint_repository.py

"""SQL checkpoint repository (SQLite / PostgreSQL) using SQLAlchemy."""

import logging
from datetime import timezone
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from rollout_engine.core.checkpoint import Checkpoint
from rollout_engine.core.errors import CheckpointConflictError, CheckpointError
from rollout_engine.core.models import PHASE_SEQUENCE, Phase
from rollout_engine.core.repository import CheckpointRepository
from rollout_engine.infrastructure.sql.database import SessionLocal
from rollout_engine.infrastructure.sql.models import CheckpointORM

logger = logging.getLogger(__name__)


# ============================================
# Mapping Functions
# ============================================

def orm_to_domain(orm: CheckpointORM) -> Checkpoint:
    """Convert ORM model to domain model."""
    created_at = orm.created_at
    # SQLite drops tzinfo on the way back
    if created_at is not None and created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)

    return Checkpoint(
        execution_id=orm.execution_id,
        phase=orm.phase,
        payload=dict(orm.payload or {}),
        version=orm.version,
        checksum=orm.checksum,
        created_at=created_at,
    )


def domain_to_orm(checkpoint: Checkpoint) -> CheckpointORM:
    """Convert domain model to ORM model."""
    return CheckpointORM(
        execution_id=checkpoint.execution_id,
        phase=checkpoint.phase,
        version=checkpoint.version,
        payload=checkpoint.payload,
        checksum=checkpoint.checksum,
        created_at=checkpoint.created_at,
    )


# ============================================
# Repository Implementation
# ============================================

class SqlCheckpointRepository(CheckpointRepository):
    """SQLAlchemy implementation with dependency injection."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        """
        Initialize repository with optional session factory.

        Args:
            session_factory: SQLAlchemy session factory. If None, uses the default factory.
        """
        self._session_factory = session_factory or SessionLocal

    def _get_session(self) -> Session:
        return self._session_factory()

    # -------------------------
    # WRITE
    # -------------------------

    def append(self, checkpoint: Checkpoint) -> None:
        """Insert one version in its own transaction."""
        session = self._get_session()
        try:
            session.add(domain_to_orm(checkpoint))
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise CheckpointConflictError(
                f"Checkpoint {checkpoint.execution_id}/{checkpoint.phase.value} "
                f"v{checkpoint.version} already exists"
            ) from e
        except SQLAlchemyError as e:
            session.rollback()
            raise CheckpointError(f"Failed to save checkpoint: {e}") from e
        finally:
            session.close()

    # -------------------------
    # READ
    # -------------------------

    def get_latest(self, execution_id: str, phase: Phase) -> Optional[Checkpoint]:
        session = self._get_session()
        try:
            stmt = (
                select(CheckpointORM)
                .where(
                    CheckpointORM.execution_id == execution_id,
                    CheckpointORM.phase == phase,
                )
                .order_by(CheckpointORM.version.desc())
                .limit(1)
            )
            orm = session.execute(stmt).scalars().first()
            return orm_to_domain(orm) if orm else None
        except SQLAlchemyError as e:
            raise CheckpointError(f"Failed to load checkpoint: {e}") from e
        finally:
            session.close()

    def list_for_execution(self, execution_id: str) -> Iterable[Checkpoint]:
        session = self._get_session()
        try:
            stmt = (
                select(CheckpointORM)
                .where(CheckpointORM.execution_id == execution_id)
                .order_by(CheckpointORM.version)
            )
            checkpoints: List[Checkpoint] = [
                orm_to_domain(orm) for orm in session.execute(stmt).scalars()
            ]
        except SQLAlchemyError as e:
            raise CheckpointError(f"Failed to list checkpoints: {e}") from e
        finally:
            session.close()

        order = {phase: i for i, phase in enumerate(PHASE_SEQUENCE)}
        checkpoints.sort(key=lambda c: (order[c.phase], c.version))
        return checkpoints
