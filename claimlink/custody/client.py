"""
Wallet custody service client (server-managed wallets addressed by an opaque handle).

Errors are split so callers can tell "the wallet cannot pay" apart from
"the service did not answer":
- InsufficientFundsError: the custody API rejected the transfer for lack of funds
- ServiceUnavailableError: timeouts, transport errors, 5xx and 429
- BroadcastRejected: any other 4xx
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
from web3 import Web3

from claimlink.core.errors import BroadcastRejected, InsufficientFundsError, ServiceUnavailableError
from claimlink.observability.logging import log
from claimlink.settings import settings


@dataclass(frozen=True)
class CustodyWallet:
    handle: str
    address: str


def _headers() -> Dict[str, str]:
    return {
        "privy-app-id": settings.CUSTODY_APP_ID,
        "Content-Type": "application/json",
    }


def _auth() -> httpx.BasicAuth:
    return httpx.BasicAuth(settings.CUSTODY_APP_ID, settings.CUSTODY_APP_SECRET)


def _classify(op: str, resp: httpx.Response) -> Exception:
    body = (resp.text or "")[:300]
    if resp.status_code >= 500 or resp.status_code == 429:
        return ServiceUnavailableError(f"{op}: custody returned {resp.status_code}")
    if "insufficient funds" in body.lower():
        return InsufficientFundsError(f"{op}: insufficient funds")
    return BroadcastRejected(f"{op}: custody returned {resp.status_code}: {body}")


class CustodyClient:
    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or settings.CUSTODY_BASE_URL).rstrip("/")
        self.timeout = float(timeout or settings.CUSTODY_TIMEOUT_SEC)

    def _post(self, op: str, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(f"{self.base_url}{path}", json=payload, headers=_headers(), auth=_auth())
        except httpx.HTTPError as e:
            log(event="custody_transport_error", op=op, errorType=type(e).__name__)
            raise ServiceUnavailableError(f"{op}: {type(e).__name__}") from e

        if not (200 <= resp.status_code < 300):
            err = _classify(op, resp)
            log(event="custody_error", op=op, statusCode=int(resp.status_code), reason=getattr(err, "reason", ""))
            raise err
        return resp.json()

    def create_wallet(self) -> CustodyWallet:
        data = self._post("create_wallet", "/v1/wallets", {"chain_type": "ethereum"})
        wallet = CustodyWallet(handle=str(data["id"]), address=str(data["address"]))
        log(event="custody_wallet_created", address=wallet.address)
        return wallet

    def send_transaction(self, handle: str, to_address: str, amount: Decimal,
                         gas_limit: Optional[int] = None) -> str:
        """Sign and broadcast a native transfer. Returns the transaction hash. Never retried."""
        wei = Web3.to_wei(Decimal(amount), "ether")
        tx: Dict[str, Any] = {
            "to": Web3.to_checksum_address(to_address),
            "value": hex(wei),
            "chain_id": settings.CHAIN_ID,
        }
        if gas_limit:
            tx["gas_limit"] = hex(int(gas_limit))

        data = self._post("send_transaction", f"/v1/wallets/{handle}/rpc", {
            "method": "eth_sendTransaction",
            "caip2": settings.CUSTODY_CAIP2,
            "params": {"transaction": tx},
        })
        tx_hash = (data.get("data") or {}).get("hash") or data.get("hash")
        if not tx_hash:
            raise BroadcastRejected("send_transaction: custody response had no transaction hash")
        log(event="custody_tx_broadcast", txHash=tx_hash, to=to_address, amount=str(amount))
        return str(tx_hash)
