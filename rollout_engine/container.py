# rollout_engine/container.py

"""Dependency container - wires repositories, emitters and backends together."""

from functools import lru_cache
from typing import Iterable, Optional

from sqlalchemy.orm import sessionmaker

from rollout_engine.backend.health import HttpHealthChecker
from rollout_engine.backend.runner import ExecutionBackend, SubprocessBackend
from rollout_engine.backend.secrets import EnvironmentSecretProvider, SecretProvider
from rollout_engine.capabilities.registry import ProfileRef
from rollout_engine.coordinator.coordinator import PortfolioCoordinator
from rollout_engine.core.checkpoint_store import CheckpointStore
from rollout_engine.core.events import (
    EventEmitter,
    InMemoryEventEmitter,
    LoggingEventEmitter,
    MultiEventEmitter,
    SqlAuditEventEmitter,
)
from rollout_engine.core.models import TargetIdentity
from rollout_engine.core.repository import CheckpointRepository
from rollout_engine.infrastructure.memory.checkpoint_repository import InMemoryCheckpointRepository
from rollout_engine.orchestrator.config import OrchestratorConfig
from rollout_engine.orchestrator.profiles import create_orchestrator
from rollout_engine.orchestrator.service import ServiceOrchestrator
from rollout_engine.settings import EngineSettings


class Container:
    """Everything an orchestrator needs apart from its target."""

    def __init__(
        self,
        settings: EngineSettings,
        checkpoint_repository: CheckpointRepository,
        event_emitter: EventEmitter,
        backend: Optional[ExecutionBackend] = None,
        health_checker: Optional[HttpHealthChecker] = None,
        secret_provider: Optional[SecretProvider] = None,
        config: Optional[OrchestratorConfig] = None,
    ):
        self.settings = settings
        self.checkpoint_store = CheckpointStore(checkpoint_repository)
        self.event_emitter = event_emitter
        self.config = config or OrchestratorConfig.from_settings(settings)
        self.backend = backend or SubprocessBackend(
            default_timeout_seconds=self.config.backend_timeout_seconds,
        )
        self.health_checker = health_checker or HttpHealthChecker(
            default_timeout_ms=self.config.health_check_timeout_ms,
        )
        self.secret_provider = secret_provider or EnvironmentSecretProvider()

    @classmethod
    def from_settings(
        cls,
        settings: Optional[EngineSettings] = None,
        session_factory: Optional[sessionmaker] = None,
        **overrides,
    ) -> "Container":
        settings = settings or EngineSettings()

        if settings.checkpoint_backend == "sql":
            from rollout_engine.infrastructure.sql.checkpoint_repository import SqlCheckpointRepository
            from rollout_engine.infrastructure.sql.database import engine, init_db

            if session_factory is None:
                init_db(engine)
            repository = SqlCheckpointRepository(session_factory)
            emitters: Iterable[EventEmitter] = [
                LoggingEventEmitter(),
                SqlAuditEventEmitter(session_factory),
            ]
        else:
            repository = InMemoryCheckpointRepository()
            emitters = [LoggingEventEmitter(), InMemoryEventEmitter()]

        return cls(
            settings=settings,
            checkpoint_repository=repository,
            event_emitter=MultiEventEmitter(emitters),
            **overrides,
        )

    # -------------------------
    # FACTORIES
    # -------------------------

    def orchestrator_for(
        self,
        profile: ProfileRef,
        target: TargetIdentity,
        execution_id: Optional[str] = None,
    ) -> ServiceOrchestrator:
        return create_orchestrator(
            profile,
            target,
            checkpoint_store=self.checkpoint_store,
            event_emitter=self.event_emitter,
            secret_provider=self.secret_provider,
            backend=self.backend,
            health_checker=self.health_checker,
            config=self.config,
            execution_id=execution_id,
        )

    def portfolio_coordinator(self, profile: ProfileRef) -> PortfolioCoordinator:
        return PortfolioCoordinator(
            lambda target: self.orchestrator_for(profile, target),
            max_concurrency=self.settings.portfolio_concurrency,
        )


@lru_cache(maxsize=1)
def get_container() -> Container:
    return Container.from_settings()
