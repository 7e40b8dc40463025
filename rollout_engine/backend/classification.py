# rollout_engine/backend/classification.py
"""Failure classification and recovery suggestions."""

from enum import Enum
from typing import List

from rollout_engine.backend.runner import CommandResult
from rollout_engine.core.errors import BackendError, FatalBackendError, TransientBackendError


class FailureCategory(Enum):
    CREDENTIALS = "credentials"
    DOMAIN = "domain"
    NETWORK = "network"
    BUNDLE = "bundle"
    DATABASE = "database"
    UNKNOWN = "unknown"


# Conditions that usually clear up on their own
TRANSIENT_MARKERS = (
    "couldn't find a d1 db",
    "binding not found",
    "not yet propagated",
    "rate limit",
    "too many requests",
    "429",
    "temporarily unavailable",
    "503",
    "econnreset",
    "socket hang up",
)

_CATEGORY_MARKERS = (
    (FailureCategory.CREDENTIALS, ("credential", "auth", "token", "unauthorized", "forbidden")),
    (FailureCategory.DOMAIN, ("domain", "zone", "dns")),
    (FailureCategory.NETWORK, ("network", "timeout", "timed out", "econnrefused", "enotfound", "fetch failed")),
    (FailureCategory.BUNDLE, ("bundle", "syntax", "compile", "build", "module not found")),
    (FailureCategory.DATABASE, ("database", "d1", "migration", "sql")),
)

RECOVERY_SUGGESTIONS = {
    FailureCategory.CREDENTIALS: [
        "Check your API token, account ID, and zone ID",
        "Verify token has not expired",
    ],
    FailureCategory.DOMAIN: [
        "Verify the domain exists on the platform",
        "Check the API token has zone read permissions",
        "Ensure the zone ID matches the domain",
    ],
    FailureCategory.NETWORK: [
        "Check internet connectivity",
        "Verify the platform API is reachable",
        "Check for firewall or proxy issues",
    ],
    FailureCategory.BUNDLE: [
        "Check for syntax errors in the service code",
        "Verify all dependencies are installed",
    ],
    FailureCategory.DATABASE: [
        "Verify the database exists on the platform",
        "Check migrations are valid SQL",
        "Ensure the database binding name matches the service configuration",
    ],
    FailureCategory.UNKNOWN: [
        "Check the error message for details",
        "Re-run with debug logging enabled",
        "Review deployment logs",
    ],
}


def categorize_error(message: str) -> FailureCategory:
    text = (message or "").lower()
    for category, markers in _CATEGORY_MARKERS:
        if any(marker in text for marker in markers):
            return category
    return FailureCategory.UNKNOWN


def get_recovery_suggestions(category: FailureCategory) -> List[str]:
    return list(RECOVERY_SUGGESTIONS.get(category, RECOVERY_SUGGESTIONS[FailureCategory.UNKNOWN]))


def is_transient_failure(result: CommandResult) -> bool:
    text = result.output.lower()
    return any(marker in text for marker in TRANSIENT_MARKERS)


def classify_backend_failure(result: CommandResult, action: str = "command") -> BackendError:
    """
    Map a failed command result to a transient or fatal error.

    The error is returned, not raised.
    """
    detail = (result.stderr or result.stdout).strip().splitlines()
    summary = detail[-1] if detail else "no output"
    message = f"{action} failed (exit {result.exit_code}): {summary}"

    if is_transient_failure(result):
        return TransientBackendError(message, exit_code=result.exit_code, stderr=result.stderr)
    return FatalBackendError(message, exit_code=result.exit_code, stderr=result.stderr)
