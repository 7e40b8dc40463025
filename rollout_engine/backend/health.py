# rollout_engine/backend/health.py
"""HTTP health checks against deployed services."""

import logging
import time
from dataclasses import dataclass
from typing import Optional

import requests

logger = logging.getLogger(__name__)


@dataclass
class HealthCheckResult:
    ok: bool
    status_code: Optional[int] = None
    latency_ms: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "status_code": self.status_code,
            "latency_ms": self.latency_ms,
            "error": self.error,
        }


class HttpHealthChecker:
    """
    GET-based health check.

    2xx/3xx responses are healthy. Network errors and timeouts come back
    as ``ok=False``; they are never raised.
    """

    def __init__(self, session: Optional[requests.Session] = None, default_timeout_ms: int = 5000):
        self._session = session or requests.Session()
        self.default_timeout_ms = default_timeout_ms

    def check_health(self, url: str, timeout_ms: Optional[int] = None) -> HealthCheckResult:
        timeout = (timeout_ms or self.default_timeout_ms) / 1000.0
        started = time.monotonic()

        try:
            response = self._session.get(url, timeout=timeout)
        except requests.exceptions.RequestException as e:
            latency_ms = int((time.monotonic() - started) * 1000)
            logger.warning(f"[health] ❌ {url} error: {e}")
            return HealthCheckResult(ok=False, latency_ms=latency_ms, error=str(e))

        latency_ms = int((time.monotonic() - started) * 1000)
        is_healthy = 200 <= response.status_code < 400

        if is_healthy:
            logger.info(f"[health] ✅ {url} ({response.status_code}, {latency_ms}ms)")
            return HealthCheckResult(ok=True, status_code=response.status_code, latency_ms=latency_ms)

        logger.warning(f"[health] ❌ {url} returned {response.status_code}")
        return HealthCheckResult(
            ok=False,
            status_code=response.status_code,
            latency_ms=latency_ms,
            error=f"HTTP {response.status_code}",
        )
