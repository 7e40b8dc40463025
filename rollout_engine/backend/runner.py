# rollout_engine/backend/runner.py
"""Execution backend - runs platform commands and reports results."""

import logging
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from rollout_engine.core.errors import BackendTimeoutError, FatalBackendError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class ExecutionBackend(ABC):
    """Anything that can run a platform command."""

    @abstractmethod
    def run_command(
        self,
        args: Sequence[str],
        *,
        is_remote: bool,
        timeout_seconds: Optional[float] = None,
        input_text: Optional[str] = None,
    ) -> CommandResult:
        """
        Run one command to completion, feeding ``input_text`` on stdin.

        Raises BackendTimeoutError if the timeout elapses. A non-zero exit
        is returned, not raised; callers classify it.
        """
        raise NotImplementedError


class SubprocessBackend(ExecutionBackend):
    """Shells out to the platform CLI."""

    def __init__(
        self,
        default_timeout_seconds: float = 300,
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ):
        self.default_timeout_seconds = default_timeout_seconds
        self.cwd = cwd
        self.env = dict(env) if env is not None else None

    def run_command(
        self,
        args: Sequence[str],
        *,
        is_remote: bool,
        timeout_seconds: Optional[float] = None,
        input_text: Optional[str] = None,
    ) -> CommandResult:
        timeout = timeout_seconds or self.default_timeout_seconds
        argv = list(args)
        where = "remote" if is_remote else "local"

        logger.info(f"[backend] ({where}) {' '.join(argv)}")
        started = time.monotonic()

        try:
            completed = subprocess.run(
                argv,
                input=input_text,
                capture_output=True,
                text=True,
                timeout=timeout,
                cwd=self.cwd,
                env=self.env,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise BackendTimeoutError(
                f"Command timed out after {timeout}s: {argv[0]}",
                stderr=str(e.stderr or ""),
            ) from e
        except OSError as e:
            raise FatalBackendError(f"Failed to execute {argv[0]}: {e}") from e

        duration_ms = int((time.monotonic() - started) * 1000)
        result = CommandResult(
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            duration_ms=duration_ms,
        )

        if result.ok:
            logger.debug(f"[backend] ✅ exit 0 in {duration_ms}ms")
        else:
            logger.warning(f"[backend] ❌ exit {result.exit_code} in {duration_ms}ms")
        return result
