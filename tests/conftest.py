# tests/conftest.py

"""Pytest configuration and fixtures."""

from typing import Callable, Dict, List, Optional

import pytest

from rollout_engine.backend.health import HealthCheckResult
from rollout_engine.backend.runner import CommandResult, ExecutionBackend
from rollout_engine.backend.secrets import StaticSecretProvider
from rollout_engine.capabilities.registry import CapabilityRegistry
from rollout_engine.container import Container
from rollout_engine.core.checkpoint_store import CheckpointStore
from rollout_engine.core.events import InMemoryEventEmitter
from rollout_engine.core.models import Phase, PhaseOutcome, TargetIdentity
from rollout_engine.infrastructure.memory.checkpoint_repository import InMemoryCheckpointRepository
from rollout_engine.infrastructure.sql.database import create_db_engine, drop_db, get_session_factory, init_db
from rollout_engine.infrastructure.sql.checkpoint_repository import SqlCheckpointRepository
from rollout_engine.orchestrator.base import BaseOrchestrator
from rollout_engine.orchestrator.config import OrchestratorConfig
from rollout_engine.settings import EngineSettings


# ============================================
# Fakes
# ============================================

class FakeBackend(ExecutionBackend):
    """Records commands; returns scripted results for matching command lines."""

    def __init__(self, deploy_url: str = "https://service.example.workers.dev"):
        self.calls: List[List[str]] = []
        self.stdin: List[Optional[str]] = []
        self.deploy_url = deploy_url
        self._scripts: List[tuple] = []

    def script(self, marker: str, *results) -> None:
        """Queue results (CommandResult or exception) for commands containing ``marker``."""
        self._scripts.append((marker, list(results)))

    def run_command(self, args, *, is_remote, timeout_seconds=None, input_text=None):
        self.calls.append(list(args))
        self.stdin.append(input_text)
        line = " ".join(args)

        for marker, queue in self._scripts:
            if marker in line and queue:
                result = queue.pop(0)
                if isinstance(result, BaseException):
                    raise result
                return result

        if " deploy" in line:
            return CommandResult(exit_code=0, stdout=f"Deployed to: {self.deploy_url}")
        return CommandResult(exit_code=0, stdout="ok")

    def commands_containing(self, marker: str) -> List[List[str]]:
        return [c for c in self.calls if marker in " ".join(c)]


class ProcessKilled(BaseException):
    """Stands in for the process dying mid-phase; the pipeline does not catch it."""


class FakeHealthChecker:
    def __init__(self, healthy: bool = True):
        self.healthy = healthy
        self.urls: List[str] = []

    def check_health(self, url, timeout_ms=None):
        self.urls.append(url)
        if self.healthy:
            return HealthCheckResult(ok=True, status_code=200, latency_ms=5)
        return HealthCheckResult(ok=False, status_code=503, latency_ms=5, error="HTTP 503")


class ScriptedOrchestrator(BaseOrchestrator):
    """
    Pipeline whose hooks are plain callables keyed by phase.

    Unscripted phases succeed with ``{"phase": <name>}``. Every invocation is
    appended to ``calls``.
    """

    def __init__(self, target, hooks: Optional[Dict[Phase, Callable]] = None, **kwargs):
        super().__init__(target, **kwargs)
        self.hooks = hooks or {}
        self.calls: List[Phase] = []
        self.contexts = []
        self.undone: List[str] = []

    def rebuild_compensation(self, action_type, plan):
        return lambda: self.undone.append(plan["undo"])

    def _call(self, phase, context):
        self.calls.append(phase)
        self.contexts.append(context)
        hook = self.hooks.get(phase)
        if hook is None:
            return PhaseOutcome.ok({"phase": phase.value})
        return hook(self, context)

    def on_initialize(self, context):
        return self._call(Phase.INITIALIZE, context)

    def on_validation(self, context):
        return self._call(Phase.VALIDATE, context)

    def on_prepare(self, context):
        return self._call(Phase.PREPARE, context)

    def on_deploy(self, context):
        return self._call(Phase.DEPLOY, context)

    def on_verify(self, context):
        return self._call(Phase.VERIFY, context)

    def on_monitor(self, context):
        return self._call(Phase.MONITOR, context)


# ============================================
# Database
# ============================================

@pytest.fixture(scope="function")
def test_engine():
    """In-memory SQLite engine with all tables."""
    engine = create_db_engine("sqlite://")
    init_db(engine)

    yield engine

    drop_db(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_session_factory(test_engine):
    """Create session factory for tests."""
    return get_session_factory(test_engine)


@pytest.fixture
def sql_repository(test_session_factory):
    """Create repository with test database session factory."""
    return SqlCheckpointRepository(session_factory=test_session_factory)


# ============================================
# Engine components
# ============================================

@pytest.fixture
def memory_repository():
    return InMemoryCheckpointRepository()


@pytest.fixture
def checkpoint_store(memory_repository):
    return CheckpointStore(memory_repository)


@pytest.fixture
def emitter():
    return InMemoryEventEmitter()


@pytest.fixture
def fast_config():
    """No backoff sleeps, short timeouts."""
    return OrchestratorConfig(retry_backoff_seconds=0, backend_timeout_seconds=5)


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def fake_health_checker():
    return FakeHealthChecker()


@pytest.fixture
def target():
    return TargetIdentity(
        service_name="api-gateway",
        environment="staging",
        address="https://api.example.com",
        is_remote=True,
    )


@pytest.fixture
def local_target():
    return TargetIdentity(service_name="api-gateway", environment="development", is_remote=False)


@pytest.fixture
def make_scripted(target, checkpoint_store, emitter, fast_config):
    """Factory for ScriptedOrchestrator sharing the test's store and emitter."""

    def _make(hooks=None, **kwargs):
        kwargs.setdefault("checkpoint_store", checkpoint_store)
        kwargs.setdefault("event_emitter", emitter)
        kwargs.setdefault("config", fast_config)
        kwargs.setdefault("registry", CapabilityRegistry())
        return ScriptedOrchestrator(kwargs.pop("target", target), hooks=hooks, **kwargs)

    return _make


@pytest.fixture
def memory_container(memory_repository, emitter, fake_backend, fake_health_checker, fast_config):
    """Container wired to in-memory storage and the fakes."""
    return Container(
        settings=EngineSettings(checkpoint_backend="memory", portfolio_concurrency=2),
        checkpoint_repository=memory_repository,
        event_emitter=emitter,
        backend=fake_backend,
        health_checker=fake_health_checker,
        secret_provider=StaticSecretProvider(),
        config=fast_config,
    )
