# rollout_engine/settings.py

from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Engine configuration from environment variables (ROLLOUT_*)."""

    model_config = SettingsConfigDict(
        env_prefix="ROLLOUT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Portfolio
    portfolio_concurrency: int = 3

    # Backend
    platform_cli: str = "npx wrangler"
    backend_timeout_seconds: int = 300
    health_check_timeout_ms: int = 5000
    health_check_path: str = "/health"
    config_path: Optional[str] = None

    # Database handled by db_migration and database_management
    database_name: Optional[str] = None
    backup_dir: str = "backups"

    # Retries (inside hooks only)
    transient_retry_limit: int = 2
    retry_backoff_seconds: float = 1.0

    # Persistence
    checkpoint_backend: Literal["sql", "memory"] = "sql"

    # Logging
    log_level: str = "INFO"


def get_settings() -> EngineSettings:
    return EngineSettings()
