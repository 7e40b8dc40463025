"""Test SQL checkpoint repository and audit persistence (SQLite)."""

import pytest
from sqlalchemy import select

from rollout_engine.core.checkpoint import Checkpoint
from rollout_engine.core.checkpoint_store import CheckpointStore
from rollout_engine.core.errors import CheckpointConflictError
from rollout_engine.core.events import SqlAuditEventEmitter
from rollout_engine.core.events_model import AuditEvent
from rollout_engine.core.models import Phase
from rollout_engine.infrastructure.sql.models import AuditEventORM, CheckpointORM


class TestSqlCheckpointRepository:
    """Test repository operations."""

    # -------------------------
    # WRITE TESTS
    # -------------------------

    def test_append_and_get_latest(self, sql_repository):
        sql_repository.append(Checkpoint.build(
            execution_id="exec-1", phase=Phase.DEPLOY, payload={"n": 1}, version=1,
        ))
        sql_repository.append(Checkpoint.build(
            execution_id="exec-1", phase=Phase.DEPLOY, payload={"n": 2}, version=2,
        ))

        latest = sql_repository.get_latest("exec-1", Phase.DEPLOY)

        assert latest.version == 2
        assert latest.payload == {"n": 2}
        assert latest.is_valid()
        assert latest.created_at.tzinfo is not None

    def test_duplicate_version_conflicts(self, sql_repository):
        checkpoint = Checkpoint.build(execution_id="exec-1", phase=Phase.DEPLOY, payload={}, version=1)
        sql_repository.append(checkpoint)

        with pytest.raises(CheckpointConflictError):
            sql_repository.append(checkpoint)

    def test_rows_are_never_overwritten(self, sql_repository, test_session_factory):
        checkpoint = Checkpoint.build(execution_id="exec-1", phase=Phase.DEPLOY, payload={"n": 1}, version=1)
        sql_repository.append(checkpoint)

        with pytest.raises(CheckpointConflictError):
            sql_repository.append(Checkpoint.build(
                execution_id="exec-1", phase=Phase.DEPLOY, payload={"n": 2}, version=1,
            ))

        session = test_session_factory()
        try:
            rows = session.execute(select(CheckpointORM)).scalars().all()
        finally:
            session.close()

        assert len(rows) == 1
        assert rows[0].payload == {"n": 1}

    # -------------------------
    # READ TESTS
    # -------------------------

    def test_get_latest_missing(self, sql_repository):
        assert sql_repository.get_latest("exec-1", Phase.DEPLOY) is None

    def test_list_for_execution(self, sql_repository):
        for phase, version in ((Phase.VERIFY, 1), (Phase.INITIALIZE, 1), (Phase.VERIFY, 2)):
            sql_repository.append(Checkpoint.build(
                execution_id="exec-1", phase=phase, payload={}, version=version,
            ))
        sql_repository.append(Checkpoint.build(
            execution_id="exec-2", phase=Phase.INITIALIZE, payload={}, version=1,
        ))

        listed = sql_repository.list_for_execution("exec-1")

        assert [(c.phase, c.version) for c in listed] == [
            (Phase.INITIALIZE, 1),
            (Phase.VERIFY, 1),
            (Phase.VERIFY, 2),
        ]


class TestSqlBackedStore:
    """Test the checkpoint store on top of SQL."""

    def test_round_trip(self, sql_repository):
        store = CheckpointStore(sql_repository)
        payload = {"phase": "deploy", "status": "succeeded", "output": {"url": "https://x", "ids": [1, 2]}}

        store.save_checkpoint("exec-1", Phase.DEPLOY, payload)
        loaded = store.load_checkpoint("exec-1", Phase.DEPLOY)

        assert loaded.payload == payload

    def test_corrupted_row_reads_as_absent(self, sql_repository, test_session_factory):
        store = CheckpointStore(sql_repository)
        store.save_checkpoint("exec-1", Phase.DEPLOY, {"n": 1})

        session = test_session_factory()
        try:
            row = session.execute(select(CheckpointORM)).scalars().one()
            row.payload = {"n": 42}
            session.commit()
        finally:
            session.close()

        assert store.load_checkpoint("exec-1", Phase.DEPLOY) is None


class TestSqlAuditEventEmitter:
    """Test audit rows."""

    def test_events_are_persisted(self, test_session_factory):
        emitter = SqlAuditEventEmitter(test_session_factory)

        emitter.emit([
            AuditEvent.phase_event("exec-1", Phase.DEPLOY, "running"),
            AuditEvent.phase_event("exec-1", Phase.DEPLOY, "succeeded", duration_ms=12, retries=0),
        ])

        session = test_session_factory()
        try:
            rows = session.execute(
                select(AuditEventORM).order_by(AuditEventORM.id)
            ).scalars().all()
        finally:
            session.close()

        assert [r.status for r in rows] == ["running", "succeeded"]
        assert rows[1].phase == "deploy"
        assert rows[1].duration_ms == 12
        assert rows[1].event_metadata == {"retries": 0}

    def test_event_without_execution_id_rejected(self, test_session_factory):
        emitter = SqlAuditEventEmitter(test_session_factory)

        with pytest.raises(ValueError):
            emitter.emit([AuditEvent(execution_id="", phase=None, capability=None, status="running")])
