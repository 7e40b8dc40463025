"""Test rollback manager ordering and failure collection."""

from rollout_engine.rollback.manager import RollbackAction, RollbackManager


class TestRollbackManager:
    """Test compensating actions."""

    def test_actions_run_in_reverse_order(self):
        manager = RollbackManager()
        ran = []
        for name in ("a", "b", "c"):
            manager.register("step", f"undo {name}", lambda n=name: ran.append(n))

        summary = manager.execute_rollback()

        assert ran == ["c", "b", "a"]
        assert [o.index for o in summary.attempted] == [2, 1, 0]
        assert summary.fully_compensated

    def test_failures_are_collected_not_raised(self):
        manager = RollbackManager()
        ran = []

        def boom():
            raise RuntimeError("restore failed")

        manager.register("database", "restore db", lambda: ran.append("db"))
        manager.register("deployment", "roll back worker", boom)
        manager.register("cache", "purge cache", lambda: ran.append("cache"))

        summary = manager.execute_rollback()

        assert ran == ["cache", "db"]
        assert len(summary.attempted) == 3
        assert len(summary.succeeded) == 2
        assert [o.description for o in summary.failed] == ["roll back worker"]
        assert summary.failed[0].error == "restore failed"
        assert not summary.fully_compensated

    def test_second_rollback_attempts_nothing(self):
        manager = RollbackManager()
        calls = []
        manager.register("step", "undo", lambda: calls.append(1))

        manager.execute_rollback()
        summary = manager.execute_rollback()

        assert calls == [1]
        assert summary.attempted == []
        assert not summary.fully_compensated

    def test_register_action_assigns_index(self):
        manager = RollbackManager()

        first = manager.register_action(RollbackAction("a", "first", lambda: None))
        second = manager.register_action(RollbackAction("b", "second", lambda: None))

        assert (first.index, second.index) == (0, 1)
        assert [a.description for a in manager.pending_actions()] == ["first", "second"]

    def test_summary_to_dict(self):
        manager = RollbackManager()
        manager.register("step", "undo", lambda: None)

        data = manager.execute_rollback().to_dict()

        assert data["attempted"] == 1
        assert data["succeeded"] == 1
        assert data["failed"] == 0
        assert data["actions"][0]["description"] == "undo"
