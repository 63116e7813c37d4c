import random
import time
from typing import Callable, TypeVar

from claimlink.core.errors import TransientError
from claimlink.observability.logging import log
from claimlink.settings import settings

T = TypeVar("T")


def calc_backoff(attempt: int) -> int:
    """Exponential backoff with jitter, in ms."""
    base = int(getattr(settings, "RPC_BASE_DELAY_MS", 500) or 500)
    max_delay = int(getattr(settings, "RPC_MAX_DELAY_MS", 4000) or 4000)
    delay = base * (2 ** (attempt - 1))
    jitter = delay * 0.1 * random.uniform(-1, 1)
    return min(max_delay, int(delay + jitter))


def with_retry(fn: Callable[[], T], *, op: str, max_attempts: int = 0) -> T:
    """
    Run fn, retrying TransientError with bounded exponential backoff.
    Only for estimation / balance / receipt calls. Never wrap a broadcast.
    """
    attempts = int(max_attempts or settings.RPC_MAX_ATTEMPTS or 1)
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn()
        except TransientError as e:
            if attempt >= attempts:
                log(event="rpc_retry_exhausted", op=op, attempts=attempt, error=str(e)[:200])
                raise
            delay_ms = calc_backoff(attempt)
            log(event="rpc_retry_scheduled", op=op, attempt=attempt, backoffMs=delay_ms, error=str(e)[:200])
            time.sleep(delay_ms / 1000.0)
