# rollout_engine/orchestrator/config.py
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class OrchestratorConfig:
    platform_cli: str = "npx wrangler"
    config_path: Optional[str] = None

    backend_timeout_seconds: float = 300
    health_check_timeout_ms: int = 5000
    health_check_path: str = "/health"

    transient_retry_limit: int = 2
    retry_backoff_seconds: float = 1.0

    # Database handled by db_migration; None skips migrations
    database_name: Optional[str] = None
    backup_dir: str = "backups"

    @classmethod
    def from_settings(cls, settings, **overrides) -> "OrchestratorConfig":
        values = dict(
            platform_cli=settings.platform_cli,
            config_path=settings.config_path,
            backend_timeout_seconds=settings.backend_timeout_seconds,
            health_check_timeout_ms=settings.health_check_timeout_ms,
            health_check_path=settings.health_check_path,
            transient_retry_limit=settings.transient_retry_limit,
            retry_backoff_seconds=settings.retry_backoff_seconds,
            database_name=settings.database_name,
            backup_dir=settings.backup_dir,
        )
        values.update(overrides)
        return cls(**values)

    def as_settings(self) -> Dict[str, Any]:
        return asdict(self)
