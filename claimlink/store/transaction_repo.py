from typing import List, Optional

from claimlink.store.models import TransactionRecord, TX_PENDING
from claimlink.store.redis_conn import get_redis
from claimlink.observability.logging import log
from claimlink.utils.time import now_ms

PREFIX = "tx:"
K_PENDING = "tx:pending"

_RECORD_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 1 then
    return 0
end
redis.call('HSET', KEYS[1], unpack(ARGV, 3))
if ARGV[2] == 'pending' then
    redis.call('ZADD', KEYS[2], ARGV[1], ARGV[4])
end
return 1
"""

# status only advances pending -> success|failed
_ADVANCE_SCRIPT = """
if redis.call('HGET', KEYS[1], 'status') ~= 'pending' then
    return 0
end
redis.call('HSET', KEYS[1], 'status', ARGV[1], 'updatedAt', ARGV[2])
redis.call('ZREM', KEYS[2], ARGV[3])
return 1
"""


def _key(tx_hash: str) -> str:
    return f"{PREFIX}{tx_hash}"


def record_transaction(rec: TransactionRecord) -> bool:
    """Write a transaction record once; a second write for the same hash is ignored."""
    r = get_redis()
    ts = now_ms()
    rec.createdAt = rec.createdAt or ts
    rec.updatedAt = ts

    mapping = rec.to_hash()
    # "hash" first so ARGV[4] is the tx hash for the pending index
    flat = ["hash", mapping.pop("hash")]
    for k, v in mapping.items():
        flat.extend([k, v])

    created = r.eval(
        _RECORD_SCRIPT,
        2,
        _key(rec.hash),
        K_PENDING,
        str(rec.createdAt),
        rec.status,
        *flat,
    )
    if int(created or 0):
        log(event="tx_recorded", txHash=rec.hash, kind=rec.kind, status=rec.status,
            amount=str(rec.amount), claimRef=(rec.claimId or "")[:8])
        return True
    log(event="tx_record_duplicate", txHash=rec.hash)
    return False


def get_transaction(tx_hash: str) -> Optional[TransactionRecord]:
    r = get_redis()
    data = r.hgetall(_key(tx_hash))
    if not data:
        return None
    return TransactionRecord.from_hash(data)


def find_pending(limit: int = 50) -> List[TransactionRecord]:
    """Oldest pending records first, bounded by limit."""
    r = get_redis()
    out: List[TransactionRecord] = []
    for tx_hash in r.zrange(K_PENDING, 0, int(limit) - 1) or []:
        rec = get_transaction(tx_hash)
        if rec is not None and rec.status == TX_PENDING:
            out.append(rec)
    return out


def advance_status(tx_hash: str, new_status: str) -> bool:
    r = get_redis()
    moved = r.eval(_ADVANCE_SCRIPT, 2, _key(tx_hash), K_PENDING, new_status, str(now_ms()), tx_hash)
    return bool(int(moved or 0))
