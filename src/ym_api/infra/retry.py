"""Retry policy for transient HTTP failures, built on Tenacity.

Retries a call when it raises an httpx transport error (DNS, connect, timeout,
reset) or returns one of the retryable status codes. Delays grow as
`base * 2**attempt`, are capped at `max_delay_seconds` and, with jitter on,
are scaled by a random factor in [0.75, 1.25] (still capped).

When retries run out the last outcome is handed back unchanged: the final
response for a retryable status, or the final exception re-raised.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
)
from tenacity.wait import wait_base

logger = logging.getLogger(__name__)

RETRY_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class _HasStatus(Protocol):
    status_code: int


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    jitter: bool = True
    retry_status_codes: frozenset[int] = field(default=RETRY_STATUS_CODES)

    def delay(self, attempt: int, rng: random.Random | None = None) -> float:
        """Backoff before retry number `attempt + 1` (attempt counts from 0)."""
        base = min(self.base_delay_seconds * (2 ** attempt), self.max_delay_seconds)
        if not self.jitter:
            return base
        factor = (rng or random).uniform(0.75, 1.25)
        return min(base * factor, self.max_delay_seconds)

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code in self.retry_status_codes


class _ExponentialBackoff(wait_base):
    def __init__(self, policy: RetryPolicy) -> None:
        self._policy = policy

    def __call__(self, retry_state: RetryCallState) -> float:
        return self._policy.delay(retry_state.attempt_number - 1)


def _return_last_outcome(retry_state: RetryCallState) -> Any:
    outcome = retry_state.outcome
    assert outcome is not None
    return outcome.result()


def build_retrying(
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> AsyncRetrying:
    def retry_on_status(response: _HasStatus) -> bool:
        return policy.is_retryable_status(response.status_code)

    return AsyncRetrying(
        stop=stop_after_attempt(policy.max_retries + 1),
        wait=_ExponentialBackoff(policy),
        retry=retry_if_exception_type(httpx.TransportError) | retry_if_result(retry_on_status),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        retry_error_callback=_return_last_outcome,
        sleep=sleep,
    )
