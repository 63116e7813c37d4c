"""
Chain client: fee estimation, balances and receipt lookup over EVM JSON-RPC.

Connection problems surface as ServiceUnavailableError so callers can retry
them with claimlink.utils.backoff; node-side rejections are not retried.
"""
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from typing import Optional

from web3 import Web3
from web3.exceptions import TransactionNotFound, Web3Exception

from claimlink.core.errors import InsufficientFundsError, ServiceUnavailableError, BroadcastRejected
from claimlink.observability.logging import log
from claimlink.settings import settings

# Plain native-asset transfer
TRANSFER_GAS_LIMIT = 21000


@dataclass(frozen=True)
class FeeEstimate:
    gas_limit: int
    gas_price_wei: int
    cost: Decimal


@dataclass(frozen=True)
class Receipt:
    status: str  # "success" | "failed"
    confirmations: int
    block_number: int


@lru_cache(maxsize=1)
def get_web3() -> Web3:
    return Web3(Web3.HTTPProvider(
        settings.CHAIN_RPC_URL,
        request_kwargs={"timeout": settings.CHAIN_RPC_TIMEOUT_SEC},
    ))


def _wrap_rpc_error(op: str, e: Exception) -> Exception:
    msg = str(e)
    if "insufficient funds" in msg.lower():
        return InsufficientFundsError(f"{op}: {msg[:200]}")
    if isinstance(e, (OSError, TimeoutError)):
        return ServiceUnavailableError(f"{op}: {type(e).__name__}: {msg[:200]}")
    return BroadcastRejected(f"{op}: {msg[:200]}")


class ChainClient:
    def __init__(self, w3: Optional[Web3] = None):
        self.w3 = w3 or get_web3()

    def estimate_fee(self, from_address: str, to_address: str, amount: Decimal) -> FeeEstimate:
        tx = {
            "from": Web3.to_checksum_address(from_address),
            "to": Web3.to_checksum_address(to_address),
            "value": Web3.to_wei(Decimal(amount), "ether"),
        }
        try:
            gas_limit = int(self.w3.eth.estimate_gas(tx))
            gas_price = int(self.w3.eth.gas_price)
        except (OSError, TimeoutError, ValueError, Web3Exception) as e:
            raise _wrap_rpc_error("estimate_fee", e) from e

        cost = Decimal(Web3.from_wei(gas_limit * gas_price, "ether"))
        log(event="fee_estimated", gasLimit=gas_limit, gasPriceWei=gas_price, cost=str(cost))
        return FeeEstimate(gas_limit=gas_limit, gas_price_wei=gas_price, cost=cost)

    def get_balance(self, address: str) -> Decimal:
        try:
            wei = self.w3.eth.get_balance(Web3.to_checksum_address(address))
        except (OSError, TimeoutError, ValueError, Web3Exception) as e:
            raise _wrap_rpc_error("get_balance", e) from e
        return Decimal(Web3.from_wei(wei, "ether"))

    def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        """None while the transaction is not yet mined."""
        try:
            rcpt = self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except (OSError, TimeoutError, ValueError, Web3Exception) as e:
            raise _wrap_rpc_error("get_receipt", e) from e
        if rcpt is None:
            return None

        block_number = int(rcpt["blockNumber"] or 0)
        try:
            head = int(self.w3.eth.block_number)
        except (OSError, TimeoutError, ValueError, Web3Exception):
            head = block_number
        status = "success" if int(rcpt["status"]) == 1 else "failed"
        return Receipt(status=status, confirmations=max(0, head - block_number + 1), block_number=block_number)
