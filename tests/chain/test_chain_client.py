from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from web3 import Web3
from web3.exceptions import TransactionNotFound, Web3RPCError

from claimlink.chain.client import ChainClient
from claimlink.core.errors import BroadcastRejected, InsufficientFundsError, ServiceUnavailableError

A = "0x" + "a" * 40
B = "0x" + "b" * 40


@pytest.fixture
def w3():
    m = MagicMock()
    m.eth.gas_price = Web3.to_wei(25, "gwei")
    m.eth.estimate_gas.return_value = 21000
    m.eth.block_number = 110
    return m


def test_estimate_fee_is_gas_limit_times_price(w3):
    fee = ChainClient(w3).estimate_fee(A, B, Decimal("1.5"))
    assert fee.gas_limit == 21000
    assert fee.cost == Decimal("0.000525")
    tx = w3.eth.estimate_gas.call_args.args[0]
    assert tx["value"] == Web3.to_wei(Decimal("1.5"), "ether")
    assert tx["to"] == Web3.to_checksum_address(B)


def test_connection_errors_are_transient(w3):
    w3.eth.estimate_gas.side_effect = ConnectionError("refused")
    with pytest.raises(ServiceUnavailableError):
        ChainClient(w3).estimate_fee(A, B, Decimal("1"))


def test_node_insufficient_funds_is_distinguished(w3):
    w3.eth.estimate_gas.side_effect = ValueError({"code": -32000, "message": "insufficient funds for transfer"})
    with pytest.raises(InsufficientFundsError):
        ChainClient(w3).estimate_fee(A, B, Decimal("1"))


def test_get_balance_in_native_units(w3):
    w3.eth.get_balance.return_value = Web3.to_wei(3, "ether")
    assert ChainClient(w3).get_balance(A) == Decimal("3")


def test_receipt_absent_until_mined(w3):
    w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("not yet")
    assert ChainClient(w3).get_receipt("0x01") is None


def test_receipt_status_and_confirmations(w3):
    w3.eth.get_transaction_receipt.return_value = {"status": 0, "blockNumber": 100}
    rcpt = ChainClient(w3).get_receipt("0x01")
    assert rcpt.status == "failed"
    assert rcpt.confirmations == 11


def test_web3_rpc_errors_are_classified(w3):
    w3.eth.estimate_gas.side_effect = Web3RPCError("insufficient funds for gas * price + value")
    with pytest.raises(InsufficientFundsError):
        ChainClient(w3).estimate_fee(A, B, Decimal("1"))

    w3.eth.get_transaction_receipt.side_effect = Web3RPCError("execution reverted")
    with pytest.raises(BroadcastRejected):
        ChainClient(w3).get_receipt("0x01")
