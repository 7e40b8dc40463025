# rollout_engine/backend/retry.py
"""Bounded retry with exponential backoff for transient backend failures."""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from rollout_engine.core.errors import TransientBackendError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    value: T
    retries: int


def calculate_backoff(attempt: int, base_seconds: float) -> float:
    """base, 2*base, 4*base, ... for attempt 1, 2, 3, ..."""
    return base_seconds * (2 ** (attempt - 1))


def run_with_retry(
    operation: Callable[[], T],
    *,
    max_retries: int = 2,
    backoff_seconds: float = 1.0,
    description: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> RetryResult[T]:
    """
    Call ``operation`` until it succeeds or retries run out.

    Only TransientBackendError is retried; anything else propagates at once.
    The last transient error propagates when retries are exhausted.
    """
    retries = 0
    while True:
        try:
            return RetryResult(value=operation(), retries=retries)
        except TransientBackendError as e:
            if retries >= max_retries:
                logger.warning(
                    f"[retry] {description} still failing after {retries} retries: {e}"
                )
                raise

            retries += 1
            delay = calculate_backoff(retries, backoff_seconds)
            logger.info(
                f"[retry] {description} transient failure, "
                f"retry {retries}/{max_retries} in {delay:.1f}s: {e}"
            )
            sleep(delay)
