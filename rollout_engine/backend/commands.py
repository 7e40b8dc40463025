# rollout_engine/backend/commands.py
"""
Typed builder for platform CLI commands.

Every (locality, environment) pair is handled explicitly:
- non-production environments select their section with ``--env <env>``;
  production uses the top-level configuration
- a LOCAL deploy adds ``--dry-run`` so nothing reaches the remote platform
- migrations carry exactly one of ``--remote`` / ``--local``
"""

import re
import shlex
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple, Union

DEFAULT_CLI: Tuple[str, ...] = ("npx", "wrangler")
DEFAULT_CONFIG_PATH = "wrangler.toml"

_URL_PATTERN = re.compile(r"https://[^\s>]+")


class Locality(Enum):
    LOCAL = "local"
    REMOTE = "remote"


class Environment(Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


_ENVIRONMENT_ALIASES = {
    "dev": Environment.DEVELOPMENT,
    "development": Environment.DEVELOPMENT,
    "staging": Environment.STAGING,
    "stage": Environment.STAGING,
    "prod": Environment.PRODUCTION,
    "production": Environment.PRODUCTION,
}


def resolve_environment(value: Union[Environment, str]) -> Environment:
    if isinstance(value, Environment):
        return value
    try:
        return _ENVIRONMENT_ALIASES[value.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown environment: {value}") from None


def locality_for(is_remote: bool) -> Locality:
    return Locality.REMOTE if is_remote else Locality.LOCAL


@dataclass(frozen=True)
class Command:
    """A fully built argv plus where it is meant to act."""

    args: Tuple[str, ...]
    locality: Locality
    environment: Environment

    @property
    def is_remote(self) -> bool:
        return self.locality is Locality.REMOTE

    def as_list(self) -> list:
        return list(self.args)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "args": list(self.args),
            "locality": self.locality.value,
            "environment": self.environment.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Command":
        return cls(
            args=tuple(data["args"]),
            locality=Locality(data["locality"]),
            environment=Environment(data["environment"]),
        )

    def __str__(self) -> str:
        return shlex.join(self.args)


def _cli_prefix(cli: Union[str, Sequence[str]]) -> Tuple[str, ...]:
    if isinstance(cli, str):
        return tuple(shlex.split(cli))
    return tuple(cli)


def _environment_args(environment: Environment) -> Tuple[str, ...]:
    if environment is Environment.PRODUCTION:
        return ()
    if environment in (Environment.DEVELOPMENT, Environment.STAGING):
        return ("--env", environment.value)
    raise ValueError(f"Unhandled environment: {environment}")


def _locality_flag(locality: Locality) -> str:
    if locality is Locality.REMOTE:
        return "--remote"
    if locality is Locality.LOCAL:
        return "--local"
    raise ValueError(f"Unhandled locality: {locality}")


def build_deploy_command(
    environment: Union[Environment, str],
    locality: Locality,
    *,
    cli: Union[str, Sequence[str]] = DEFAULT_CLI,
    config_path: Optional[str] = None,
) -> Command:
    env = resolve_environment(environment)
    args = list(_cli_prefix(cli)) + ["deploy"]

    if config_path and config_path != DEFAULT_CONFIG_PATH:
        args += ["--config", config_path]

    args += _environment_args(env)

    if locality is Locality.LOCAL:
        args.append("--dry-run")
    elif locality is not Locality.REMOTE:
        raise ValueError(f"Unhandled locality: {locality}")

    return Command(args=tuple(args), locality=locality, environment=env)


def build_migration_command(
    database_name: str,
    environment: Union[Environment, str],
    locality: Locality,
    *,
    cli: Union[str, Sequence[str]] = DEFAULT_CLI,
) -> Command:
    env = resolve_environment(environment)
    args = list(_cli_prefix(cli)) + ["d1", "migrations", "apply", database_name]
    args += _environment_args(env)
    args.append(_locality_flag(locality))
    return Command(args=tuple(args), locality=locality, environment=env)


def build_backup_command(
    database_name: str,
    environment: Union[Environment, str],
    output_path: str,
    *,
    cli: Union[str, Sequence[str]] = DEFAULT_CLI,
) -> Command:
    """Export a remote database before migrations touch it."""
    env = resolve_environment(environment)
    args = list(_cli_prefix(cli)) + ["d1", "export", database_name]
    args += _environment_args(env)
    args += ["--remote", "--output", output_path]
    return Command(args=tuple(args), locality=Locality.REMOTE, environment=env)


def build_restore_command(
    database_name: str,
    environment: Union[Environment, str],
    backup_path: str,
    *,
    cli: Union[str, Sequence[str]] = DEFAULT_CLI,
) -> Command:
    env = resolve_environment(environment)
    args = list(_cli_prefix(cli)) + ["d1", "execute", database_name]
    args += _environment_args(env)
    args += ["--remote", "--file", backup_path]
    return Command(args=tuple(args), locality=Locality.REMOTE, environment=env)


def build_secret_put_command(
    key: str,
    environment: Union[Environment, str],
    *,
    cli: Union[str, Sequence[str]] = DEFAULT_CLI,
) -> Command:
    """Upload one secret; the value is passed on stdin, never in argv."""
    env = resolve_environment(environment)
    args = list(_cli_prefix(cli)) + ["secret", "put", key]
    args += _environment_args(env)
    return Command(args=tuple(args), locality=Locality.REMOTE, environment=env)


def build_database_info_command(
    database_name: str,
    environment: Union[Environment, str],
    *,
    cli: Union[str, Sequence[str]] = DEFAULT_CLI,
) -> Command:
    env = resolve_environment(environment)
    args = list(_cli_prefix(cli)) + ["d1", "info", database_name]
    args += _environment_args(env)
    return Command(args=tuple(args), locality=Locality.REMOTE, environment=env)


def build_database_create_command(
    database_name: str,
    environment: Union[Environment, str],
    *,
    cli: Union[str, Sequence[str]] = DEFAULT_CLI,
) -> Command:
    env = resolve_environment(environment)
    args = list(_cli_prefix(cli)) + ["d1", "create", database_name]
    args += _environment_args(env)
    return Command(args=tuple(args), locality=Locality.REMOTE, environment=env)


def build_rollback_command(
    environment: Union[Environment, str],
    *,
    cli: Union[str, Sequence[str]] = DEFAULT_CLI,
) -> Command:
    """Return the remote service to its previous deployed version."""
    env = resolve_environment(environment)
    args = list(_cli_prefix(cli)) + ["rollback"]
    args += _environment_args(env)
    return Command(args=tuple(args), locality=Locality.REMOTE, environment=env)


def extract_deployment_url(output: str) -> Optional[str]:
    """First https URL printed by a deploy, if any."""
    match = _URL_PATTERN.search(output or "")
    return match.group(0).rstrip(".,)") if match else None
