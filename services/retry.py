from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, FrozenSet, Optional, TypeVar

import requests

from clients.http_client import RATE_LIMIT_STATUS, TransportError, parse_retry_after
from config import DETAIL_MAX_ATTEMPTS, DETAIL_RETRY_BASE_SECONDS

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    How a fetcher reacts to an HTTP status.

    max_attempts=None means unbounded (the wait is bounded by the delay instead).
    Linear backoff waits attempt * base_delay_seconds; otherwise the delay is constant.
    A Retry-After hint, when honoured and present, replaces the computed delay.
    """

    retryable_statuses: FrozenSet[int]
    max_attempts: Optional[int] = None
    base_delay_seconds: float = 1.0
    linear_backoff: bool = True
    honor_retry_after: bool = False

    def is_retryable(self, status_code: int) -> bool:
        return status_code in self.retryable_statuses

    def should_retry(self, status_code: int, attempt: int) -> bool:
        if not self.is_retryable(status_code):
            return False
        return self.max_attempts is None or attempt < self.max_attempts

    def delay_for(self, attempt: int, resp: Optional[requests.Response] = None) -> float:
        if self.honor_retry_after:
            hint = parse_retry_after(resp)
            if hint is not None:
                return hint
        if self.linear_backoff:
            return self.base_delay_seconds * attempt
        return self.base_delay_seconds


RATE_LIMIT_POLICY = RetryPolicy(
    retryable_statuses=frozenset({RATE_LIMIT_STATUS}),
    max_attempts=None,
    base_delay_seconds=1.0,
    linear_backoff=False,
    honor_retry_after=True,
)

TRANSIENT_SERVER_POLICY = RetryPolicy(
    retryable_statuses=frozenset({500, 503}),
    max_attempts=DETAIL_MAX_ATTEMPTS,
    base_delay_seconds=DETAIL_RETRY_BASE_SECONDS,
    linear_backoff=True,
    honor_retry_after=True,
)


def fetch_detail(
    request: Callable[[], requests.Response],
    decode: Callable[[Any], T],
    *,
    label: str,
    policy: RetryPolicy = TRANSIENT_SERVER_POLICY,
    rate_limit_policy: RetryPolicy = RATE_LIMIT_POLICY,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[T]:
    """
    Fetch one detail resource, retrying transient statuses per policy.

    Rate-limited answers are waited out under rate_limit_policy and do not use
    up the transient attempts. Returns None when the resource is unavailable
    for any other reason (exhausted retries, non-retryable status, network
    failure, undecodable body); callers treat None as "unknown/unavailable".
    """
    attempt = 0
    throttled = 0
    while True:
        try:
            resp = request()
        except TransportError as exc:
            logger.error("[DetailFetch] %s network failure: %s", label, exc)
            return None

        if resp.status_code < 400:
            try:
                return decode(resp.json())
            except ValueError as exc:
                logger.error("[DetailFetch] %s returned an unreadable payload: %s", label, exc)
                return None

        if rate_limit_policy.should_retry(resp.status_code, throttled + 1):
            throttled += 1
            delay = rate_limit_policy.delay_for(throttled, resp)
            logger.warning("[DetailFetch] %s rate limited (HTTP %s). Retrying in %.1fs...", label, resp.status_code, delay)
            sleep(delay)
            continue

        attempt += 1
        if policy.should_retry(resp.status_code, attempt):
            delay = policy.delay_for(attempt, resp)
            logger.warning(
                "[DetailFetch] Attempt %s failed for %s (HTTP %s). Retrying in %.1fs...",
                attempt,
                label,
                resp.status_code,
                delay,
            )
            sleep(delay)
            continue

        logger.error(
            "[DetailFetch] Giving up on %s after %s attempt(s) (HTTP %s)",
            label,
            attempt,
            resp.status_code,
        )
        return None
