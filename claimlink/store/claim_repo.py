"""
Claim persistence on Redis.

Layout:
  claim:{id}                    hash of Claim fields
  claims:digest:{tokenDigest}   -> claim id (unique, written with NX)
  claims:recipient:{phone}      set of claim ids
  claims:pending_expiry         sorted set of pending claim ids scored by expiresAt
  claims:failed                 recent failed claim ids (operator view)

Every status change goes through _TRANSITION_SCRIPT, which compares the
current status and writes the new one in a single atomic step. It is the
only arbiter between the claim path and the expiry sweep.
"""
import uuid
from typing import Dict, List, Optional

from claimlink.store.models import Claim, PENDING, FAILED
from claimlink.store.redis_conn import get_redis
from claimlink.observability.logging import log
from claimlink.utils.time import now_ms

PREFIX = "claim:"
DIGEST_PREFIX = "claims:digest:"
RECIPIENT_PREFIX = "claims:recipient:"
K_PENDING_EXPIRY = "claims:pending_expiry"
K_FAILED = "claims:failed"

_CREATE_SCRIPT = """
if not redis.call('SET', KEYS[2], ARGV[1], 'NX') then
    return 0
end
redis.call('HSET', KEYS[1], unpack(ARGV, 3))
redis.call('SADD', KEYS[3], ARGV[1])
redis.call('ZADD', KEYS[4], ARGV[2], ARGV[1])
return 1
"""

_TRANSITION_SCRIPT = """
local current = redis.call('HGET', KEYS[1], 'status')
if current ~= ARGV[1] then
    return 0
end
redis.call('HSET', KEYS[1], 'status', ARGV[2], unpack(ARGV, 4))
if ARGV[2] ~= 'pending' then
    redis.call('ZREM', KEYS[2], ARGV[3])
end
if ARGV[2] == 'failed' then
    redis.call('LPUSH', KEYS[3], ARGV[3])
    redis.call('LTRIM', KEYS[3], 0, 499)
end
return 1
"""


class DuplicateTokenDigest(RuntimeError):
    pass


def _key(claim_id: str) -> str:
    return f"{PREFIX}{claim_id}"


def _flatten(mapping: Dict[str, str]) -> List[str]:
    out: List[str] = []
    for k, v in mapping.items():
        out.extend([k, v])
    return out


def new_claim_id() -> str:
    return uuid.uuid4().hex


def create_claim(claim: Claim) -> Claim:
    """Persist a new pending claim together with its indices."""
    r = get_redis()
    if not claim.id:
        claim.id = new_claim_id()
    ts = now_ms()
    claim.createdAt = claim.createdAt or ts
    claim.updatedAt = ts

    created = r.eval(
        _CREATE_SCRIPT,
        4,
        _key(claim.id),
        f"{DIGEST_PREFIX}{claim.tokenDigest}",
        f"{RECIPIENT_PREFIX}{claim.recipientPhone}",
        K_PENDING_EXPIRY,
        claim.id,
        str(claim.expiresAt),
        *_flatten(claim.to_hash()),
    )
    if not int(created or 0):
        raise DuplicateTokenDigest("token digest already indexed")

    log(event="claim_created", claimRef=claim.ref, recipientPhone=claim.recipientPhone,
        amount=str(claim.amount), expiresAt=claim.expiresAt)
    return claim


def get_claim(claim_id: str) -> Optional[Claim]:
    r = get_redis()
    data = r.hgetall(_key(claim_id))
    if not data:
        return None
    return Claim.from_hash(data)


def find_by_token_digest(token_digest: str) -> Optional[Claim]:
    r = get_redis()
    claim_id = r.get(f"{DIGEST_PREFIX}{token_digest}")
    if not claim_id:
        return None
    return get_claim(claim_id)


def transition_status(claim_id: str, expected: str, new_status: str,
                      fields: Optional[Dict[str, object]] = None) -> bool:
    """
    Atomically move a claim from `expected` to `new_status`, writing `fields`
    in the same step. Returns False when the claim was not in `expected`.
    """
    r = get_redis()
    updates = {k: str(v) for k, v in (fields or {}).items() if v is not None}
    updates["updatedAt"] = str(now_ms())

    won = r.eval(
        _TRANSITION_SCRIPT,
        3,
        _key(claim_id),
        K_PENDING_EXPIRY,
        K_FAILED,
        expected,
        new_status,
        claim_id,
        *_flatten(updates),
    )
    return bool(int(won or 0))


def find_expired_pending(now: int, limit: int = 100) -> List[Claim]:
    """Pending claims whose expiresAt <= now, oldest expiry first."""
    r = get_redis()
    ids = r.zrangebyscore(K_PENDING_EXPIRY, "-inf", now, start=0, num=int(limit))
    out: List[Claim] = []
    for claim_id in ids:
        c = get_claim(claim_id)
        if c is not None and c.status == PENDING:
            out.append(c)
    return out


def list_pending_for_recipient(phone: str) -> List[Claim]:
    r = get_redis()
    out = []
    for claim_id in r.smembers(f"{RECIPIENT_PREFIX}{phone}") or []:
        c = get_claim(claim_id)
        if c is not None and c.status == PENDING:
            out.append(c)
    return sorted(out, key=lambda c: c.createdAt)


def list_failed(limit: int = 50) -> List[Claim]:
    r = get_redis()
    out = []
    for claim_id in r.lrange(K_FAILED, 0, int(limit) - 1) or []:
        c = get_claim(claim_id)
        if c is not None and c.status == FAILED:
            out.append(c)
    return out
