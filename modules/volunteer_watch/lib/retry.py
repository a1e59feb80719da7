from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from typing import TypeVar

import requests

from .http_client import HttpStatusError

log = logging.getLogger(__name__)

T = TypeVar("T")

BASE_DELAY_S = 0.5
MAX_DELAY_S = 6.0
JITTER_LOW = 0.7
JITTER_SPAN = 0.6  # multiplier drawn from [0.7, 1.3)


def is_retriable(exc: BaseException) -> bool:
    """
    Transient failures: timeouts, resets (including a reset mid-body),
    refused connections, DNS failures, HTTP 429 and HTTP 5xx. Everything
    else (4xx, decode/API errors) is final.
    """
    if isinstance(exc, HttpStatusError):
        return exc.status == 429 or 500 <= exc.status <= 599
    # ConnectTimeout is both a Timeout and a ConnectionError; either way transient.
    return isinstance(
        exc,
        (requests.Timeout, requests.ConnectionError, requests.exceptions.ChunkedEncodingError),
    )


def backoff_delay(
    attempt: int,
    *,
    base: float = BASE_DELAY_S,
    cap: float = MAX_DELAY_S,
    rand: Callable[[], float] = random.random,
) -> float:
    """
    Delay before retry number `attempt` (1-based): base * 2**(attempt-1),
    capped, then jittered by a factor in [0.7, 1.3). The jittered value is
    capped again so no single wait exceeds `cap`.
    """
    raw = min(cap, base * 2 ** (attempt - 1))
    return min(cap, raw * (JITTER_LOW + rand() * JITTER_SPAN))


def with_retry(
    op: Callable[[], T],
    name: str = "request",
    retries: int = 5,
    *,
    base: float = BASE_DELAY_S,
    cap: float = MAX_DELAY_S,
    sleep: Callable[[float], None] = time.sleep,
    rand: Callable[[], float] = random.random,
) -> T:
    """
    Run `op`, retrying transient failures up to `retries` extra times.

    Non-retriable errors propagate immediately without waiting; when the
    retry budget is spent the last error is re-raised.
    """
    attempt = 0
    while True:
        try:
            return op()
        except Exception as e:
            if not is_retriable(e) or attempt >= retries:
                raise
            attempt += 1
            delay = backoff_delay(attempt, base=base, cap=cap, rand=rand)
            # Exception text can embed the request URL (and its credential); log the class only.
            reason = e.status if isinstance(e, HttpStatusError) else type(e).__name__
            log.warning("[retry %d/%d] %s: %s -> wait %dms", attempt, retries, name, reason, round(delay * 1000))
            sleep(delay)
