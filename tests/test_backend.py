"""Test execution backend, failure classification, retries and health checks."""

import subprocess
from unittest.mock import MagicMock

import pytest
import requests

from rollout_engine.backend.classification import (
    FailureCategory,
    categorize_error,
    classify_backend_failure,
    get_recovery_suggestions,
    is_transient_failure,
)
from rollout_engine.backend.health import HttpHealthChecker
from rollout_engine.backend.retry import calculate_backoff, run_with_retry
from rollout_engine.backend.runner import CommandResult, SubprocessBackend
from rollout_engine.backend.secrets import EnvironmentSecretProvider, StaticSecretProvider
from rollout_engine.core.errors import (
    BackendTimeoutError,
    FatalBackendError,
    TransientBackendError,
)
from rollout_engine.core.models import TargetIdentity


class TestSubprocessBackend:
    """Test command execution via subprocess."""

    def test_successful_command(self, monkeypatch):
        captured = {}

        def fake_run(argv, **kwargs):
            captured["argv"] = argv
            captured.update(kwargs)
            return subprocess.CompletedProcess(argv, 0, stdout="done\n", stderr="")

        monkeypatch.setattr(subprocess, "run", fake_run)

        result = SubprocessBackend(default_timeout_seconds=30).run_command(
            ["npx", "wrangler", "deploy"], is_remote=True,
        )

        assert result.ok
        assert result.stdout == "done\n"
        assert captured["argv"] == ["npx", "wrangler", "deploy"]
        assert captured["timeout"] == 30
        assert captured["check"] is False
        assert captured["input"] is None

    def test_input_text_goes_to_stdin(self, monkeypatch):
        captured = {}

        def fake_run(argv, **kwargs):
            captured.update(kwargs)
            return subprocess.CompletedProcess(argv, 0, stdout="", stderr="")

        monkeypatch.setattr(subprocess, "run", fake_run)

        SubprocessBackend().run_command(
            ["npx", "wrangler", "secret", "put", "API_KEY"], is_remote=True, input_text="k-123",
        )

        assert captured["input"] == "k-123"

    def test_non_zero_exit_is_returned(self, monkeypatch):
        monkeypatch.setattr(
            subprocess, "run",
            lambda argv, **kw: subprocess.CompletedProcess(argv, 2, stdout="", stderr="boom"),
        )

        result = SubprocessBackend().run_command(["false"], is_remote=False)

        assert not result.ok
        assert result.exit_code == 2
        assert result.output == "boom"

    def test_timeout_raises(self, monkeypatch):
        def fake_run(argv, **kwargs):
            raise subprocess.TimeoutExpired(argv, kwargs["timeout"])

        monkeypatch.setattr(subprocess, "run", fake_run)

        with pytest.raises(BackendTimeoutError, match="timed out after 5s"):
            SubprocessBackend().run_command(["sleep", "60"], is_remote=False, timeout_seconds=5)

    def test_missing_executable_is_fatal(self, monkeypatch):
        def fake_run(argv, **kwargs):
            raise FileNotFoundError(2, "No such file or directory")

        monkeypatch.setattr(subprocess, "run", fake_run)

        with pytest.raises(FatalBackendError, match="Failed to execute npx"):
            SubprocessBackend().run_command(["npx", "wrangler"], is_remote=True)


class TestClassification:
    """Test transient vs fatal classification and categories."""

    @pytest.mark.parametrize("stderr", [
        "Couldn't find a D1 DB with the name or binding 'DB'",
        "binding not found",
        "Error: 429 Too Many Requests",
        "Service temporarily unavailable",
    ])
    def test_transient(self, stderr):
        result = CommandResult(exit_code=1, stderr=stderr)

        assert is_transient_failure(result)
        assert isinstance(classify_backend_failure(result, "deploy"), TransientBackendError)

    def test_fatal(self):
        result = CommandResult(exit_code=1, stderr="Compiling...\nBuild failed: syntax error")

        error = classify_backend_failure(result, "deploy")

        assert isinstance(error, FatalBackendError)
        assert not isinstance(error, TransientBackendError)
        assert str(error) == "deploy failed (exit 1): Build failed: syntax error"
        assert error.exit_code == 1

    def test_empty_output(self):
        assert str(classify_backend_failure(CommandResult(exit_code=3))) == "command failed (exit 3): no output"

    @pytest.mark.parametrize("message, category", [
        ("Authentication error: invalid token", FailureCategory.CREDENTIALS),
        ("Could not find zone for domain", FailureCategory.DOMAIN),
        ("request timed out", FailureCategory.NETWORK),
        ("Build failed: module not found", FailureCategory.BUNDLE),
        ("migration 0003 failed", FailureCategory.DATABASE),
        ("something odd", FailureCategory.UNKNOWN),
        ("", FailureCategory.UNKNOWN),
    ])
    def test_categorize(self, message, category):
        assert categorize_error(message) is category

    def test_every_category_has_suggestions(self):
        for category in FailureCategory:
            assert get_recovery_suggestions(category)


class TestRetry:
    """Test bounded exponential backoff."""

    def test_backoff_doubles(self):
        assert [calculate_backoff(n, 1.5) for n in (1, 2, 3)] == [1.5, 3.0, 6.0]

    def test_transient_then_success(self):
        sleeps = []
        attempts = []

        def operation():
            attempts.append(1)
            if len(attempts) < 3:
                raise TransientBackendError("rate limit")
            return "ok"

        result = run_with_retry(operation, max_retries=2, backoff_seconds=1.0, sleep=sleeps.append)

        assert result.value == "ok"
        assert result.retries == 2
        assert sleeps == [1.0, 2.0]

    def test_exhausted_raises_last_error(self):
        def operation():
            raise TransientBackendError("rate limit")

        with pytest.raises(TransientBackendError):
            run_with_retry(operation, max_retries=1, sleep=lambda s: None)

    def test_fatal_propagates_immediately(self):
        attempts = []

        def operation():
            attempts.append(1)
            raise FatalBackendError("bad config")

        with pytest.raises(FatalBackendError):
            run_with_retry(operation, max_retries=5, sleep=lambda s: None)
        assert attempts == [1]


class TestHttpHealthChecker:
    """Test health checks with a mocked requests session."""

    def _session(self, status_code=None, error=None):
        session = MagicMock(spec=requests.Session)
        if error is not None:
            session.get.side_effect = error
        else:
            session.get.return_value = MagicMock(status_code=status_code)
        return session

    @pytest.mark.parametrize("status_code, ok", [(200, True), (204, True), (302, True), (404, False), (503, False)])
    def test_status_codes(self, status_code, ok):
        checker = HttpHealthChecker(session=self._session(status_code))

        result = checker.check_health("https://api.example.com/health")

        assert result.ok is ok
        assert result.status_code == status_code
        if not ok:
            assert result.error == f"HTTP {status_code}"

    def test_timeout_is_passed_in_seconds(self):
        session = self._session(200)
        checker = HttpHealthChecker(session=session, default_timeout_ms=2500)

        checker.check_health("https://api.example.com/health")

        session.get.assert_called_once_with("https://api.example.com/health", timeout=2.5)

    def test_network_error_is_unhealthy(self):
        checker = HttpHealthChecker(session=self._session(error=requests.exceptions.ConnectTimeout("slow")))

        result = checker.check_health("https://api.example.com/health", timeout_ms=100)

        assert result.ok is False
        assert result.status_code is None
        assert "slow" in result.error


class TestSecretProviders:
    """Test secret sources."""

    def test_static_per_service_overrides(self):
        provider = StaticSecretProvider(
            {"API_KEY": "shared", "REGION": "eu"},
            per_service={"api-gateway": {"API_KEY": "gateway"}},
        )

        secrets = provider.get_secrets(TargetIdentity(service_name="api-gateway", environment="staging"))

        assert secrets == {"API_KEY": "gateway", "REGION": "eu"}

    def test_environment_provider_scopes_by_service(self):
        provider = EnvironmentSecretProvider(environ={
            "ROLLOUT_SECRET_API_GATEWAY_AUTH_TOKEN": "abc",
            "ROLLOUT_SECRET_WEB_AUTH_TOKEN": "other",
            "PATH": "/usr/bin",
        })

        secrets = provider.get_secrets(TargetIdentity(service_name="api-gateway", environment="staging"))

        assert secrets == {"AUTH_TOKEN": "abc"}
