from typing import Optional, Tuple

from claimlink.store.models import UserWallet
from claimlink.store.redis_conn import get_redis
from claimlink.utils.time import now_ms

PREFIX = "user:"

# First writer wins; returns 1 when this call created the mapping
_CREATE_SCRIPT = """
if redis.call('HEXISTS', KEYS[1], 'address') == 1 then
    return 0
end
redis.call('HSET', KEYS[1], unpack(ARGV))
return 1
"""


def _key(phone: str) -> str:
    return f"{PREFIX}{phone}"


def get_wallet(phone: str) -> Optional[UserWallet]:
    if not phone:
        return None
    r = get_redis()
    data = r.hgetall(_key(phone))
    if not data or not data.get("address"):
        return None
    return UserWallet.from_hash(data)


def create_wallet_if_absent(wallet: UserWallet) -> Tuple[UserWallet, bool]:
    """Store the mapping unless the phone already has one; returns (stored wallet, created)."""
    r = get_redis()
    wallet.createdAt = wallet.createdAt or now_ms()
    flat = []
    for k, v in wallet.to_hash().items():
        flat.extend([k, v])
    if int(r.eval(_CREATE_SCRIPT, 1, _key(wallet.phone), *flat) or 0):
        return wallet, True
    return get_wallet(wallet.phone), False
