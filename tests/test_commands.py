"""Test the typed platform command builder."""

import pytest

from rollout_engine.backend.commands import (
    Command,
    Environment,
    Locality,
    build_backup_command,
    build_database_create_command,
    build_database_info_command,
    build_deploy_command,
    build_migration_command,
    build_restore_command,
    build_rollback_command,
    build_secret_put_command,
    extract_deployment_url,
    locality_for,
    resolve_environment,
)

CLI = ["npx", "wrangler"]


class TestEnvironment:
    """Test environment resolution."""

    @pytest.mark.parametrize("value, expected", [
        ("dev", Environment.DEVELOPMENT),
        ("Development", Environment.DEVELOPMENT),
        ("stage", Environment.STAGING),
        (" staging ", Environment.STAGING),
        ("prod", Environment.PRODUCTION),
        (Environment.PRODUCTION, Environment.PRODUCTION),
    ])
    def test_aliases(self, value, expected):
        assert resolve_environment(value) is expected

    def test_unknown_environment(self):
        with pytest.raises(ValueError, match="Unknown environment: qa"):
            resolve_environment("qa")

    def test_locality_for(self):
        assert locality_for(True) is Locality.REMOTE
        assert locality_for(False) is Locality.LOCAL


class TestDeployCommand:
    """Every (locality, environment) pair."""

    @pytest.mark.parametrize("environment, locality, expected", [
        (Environment.DEVELOPMENT, Locality.LOCAL, ["deploy", "--env", "development", "--dry-run"]),
        (Environment.DEVELOPMENT, Locality.REMOTE, ["deploy", "--env", "development"]),
        (Environment.STAGING, Locality.LOCAL, ["deploy", "--env", "staging", "--dry-run"]),
        (Environment.STAGING, Locality.REMOTE, ["deploy", "--env", "staging"]),
        (Environment.PRODUCTION, Locality.LOCAL, ["deploy", "--dry-run"]),
        (Environment.PRODUCTION, Locality.REMOTE, ["deploy"]),
    ])
    def test_matrix(self, environment, locality, expected):
        command = build_deploy_command(environment, locality)

        assert command.as_list() == CLI + expected
        assert command.locality is locality
        assert command.environment is environment
        assert command.is_remote == (locality is Locality.REMOTE)

    def test_custom_config_path(self):
        command = build_deploy_command("staging", Locality.REMOTE, config_path="deploy/wrangler.prod.toml")

        assert command.as_list() == CLI + ["deploy", "--config", "deploy/wrangler.prod.toml", "--env", "staging"]

    def test_default_config_path_is_omitted(self):
        command = build_deploy_command("production", Locality.REMOTE, config_path="wrangler.toml")

        assert "--config" not in command.as_list()

    def test_custom_cli(self):
        command = build_deploy_command("production", Locality.REMOTE, cli="wrangler")

        assert command.as_list() == ["wrangler", "deploy"]
        assert str(command) == "wrangler deploy"


class TestMigrationCommand:
    """Every (locality, environment) pair."""

    @pytest.mark.parametrize("environment", list(Environment))
    @pytest.mark.parametrize("locality", list(Locality))
    def test_exactly_one_locality_flag(self, environment, locality):
        args = build_migration_command("app-db", environment, locality).as_list()

        flags = [a for a in args if a in ("--remote", "--local")]
        assert flags == [f"--{locality.value}"]
        assert args[:6] == CLI + ["d1", "migrations", "apply", "app-db"]

    @pytest.mark.parametrize("environment", list(Environment))
    @pytest.mark.parametrize("locality", list(Locality))
    def test_env_flag_only_outside_production(self, environment, locality):
        args = build_migration_command("app-db", environment, locality).as_list()

        if environment is Environment.PRODUCTION:
            assert "--env" not in args
        else:
            assert args[args.index("--env") + 1] == environment.value


class TestCompensationCommands:
    """Test backup, restore and rollback commands."""

    def test_backup(self):
        command = build_backup_command("app-db", "production", "backups/app-db.sql")

        assert command.as_list() == CLI + ["d1", "export", "app-db", "--remote", "--output", "backups/app-db.sql"]
        assert command.is_remote

    def test_restore(self):
        command = build_restore_command("app-db", "staging", "backups/app-db.sql")

        assert command.as_list() == CLI + [
            "d1", "execute", "app-db", "--env", "staging", "--remote", "--file", "backups/app-db.sql",
        ]

    def test_rollback(self):
        assert build_rollback_command("prod").as_list() == CLI + ["rollback"]
        assert build_rollback_command("dev").as_list() == CLI + ["rollback", "--env", "development"]

    def test_stored_command_rebuilds_identically(self):
        command = build_restore_command("app-db", "staging", "backups/app-db.sql")

        assert Command.from_dict(command.to_dict()) == command


class TestPlatformResourceCommands:
    """Test secret upload and database provisioning commands."""

    def test_secret_put_never_carries_the_value(self):
        assert build_secret_put_command("API_KEY", "staging").as_list() == CLI + [
            "secret", "put", "API_KEY", "--env", "staging",
        ]
        assert build_secret_put_command("API_KEY", "production").as_list() == CLI + ["secret", "put", "API_KEY"]

    def test_database_info_and_create(self):
        assert build_database_info_command("app-db", "dev").as_list() == CLI + [
            "d1", "info", "app-db", "--env", "development",
        ]
        create = build_database_create_command("app-db", "prod")
        assert create.as_list() == CLI + ["d1", "create", "app-db"]
        assert create.is_remote

class TestExtractDeploymentUrl:
    """Test URL parsing of deploy output."""

    def test_first_url(self):
        output = "Uploaded api (1.2 sec)\nDeployed api triggers\n  https://api.acme.workers.dev\n"

        assert extract_deployment_url(output) == "https://api.acme.workers.dev"

    def test_trailing_punctuation_stripped(self):
        assert extract_deployment_url("Published to https://x.example.dev.") == "https://x.example.dev"

    def test_no_url(self):
        assert extract_deployment_url("Uploaded.") is None
        assert extract_deployment_url("") is None
