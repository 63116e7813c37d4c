from contextlib import contextmanager
import time
import uuid
from claimlink.store.redis_conn import get_redis

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LockNotAcquired(RuntimeError):
    pass


@contextmanager
def job_lock(name: str, ttl_ms: int = 5000, spins: int = 0):
    """
    Distributed lock so one periodic job runs at a time across workers.
    Claim safety never depends on it; overlapping runs only waste RPC calls.
    """
    r = get_redis()
    key = f"lock:job:{name}"
    token = uuid.uuid4().hex
    acquired = bool(r.set(key, token, px=ttl_ms, nx=True))

    try:
        for _ in range(spins):
            if acquired:
                break
            time.sleep(0.1)
            acquired = bool(r.set(key, token, px=ttl_ms, nx=True))

        if not acquired:
            raise LockNotAcquired(f"Could not acquire lock for job {name}")

        yield
    finally:
        if acquired:
            # Release only if we own it
            r.eval(_RELEASE_SCRIPT, 1, key, token)
