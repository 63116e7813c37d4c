import json
from decimal import Decimal

import pytest

from claimlink.core import hold_manager
from claimlink.core.claim_tokens import digest_token, parse_claim_command
from claimlink.core.errors import BroadcastRejected, HoldNotRecorded, InvalidHoldRequest, ServiceUnavailableError
from claimlink.settings import settings
from claimlink.store.models import PENDING, TX_HOLD
from claimlink.utils.time import DAY_MS

SENDER = "15550001111"
RECIPIENT = "15550002222"
SENDER_ADDR = "0x" + "a" * 40


def _hold(custody, amount="2.0", **overrides):
    args = dict(sender_phone=SENDER, sender_address=SENDER_ADDR, sender_wallet_handle="sender-h",
                recipient_phone=RECIPIENT, amount=amount)
    args.update(overrides)
    return hold_manager.create_hold(custody=custody, **args)


def test_create_hold_persists_pending_claim_with_digest_only(store, custody):
    result = _hold(custody)

    claim = store.get_claim(result.claimId)
    assert claim.status == PENDING
    assert claim.amount == Decimal("2.0")
    assert claim.holdTxRef == result.holdTxRef
    assert claim.tokenDigest == digest_token(result.token)
    assert claim.expiresAt - claim.createdAt == settings.ESCROW_EXPIRY_DAYS * DAY_MS
    # plaintext never reaches the store
    assert all(result.token not in v for v in store.claims[result.claimId].values())

    assert parse_claim_command(result.claimLink.split("text=")[1].replace("%20", " ")) == result.token


def test_hold_transfer_goes_from_sender_wallet_to_new_custody_wallet(store, custody):
    result = _hold(custody)
    handle, to_address, amount = custody.sends[0]
    assert handle == "sender-h"
    assert to_address == custody.wallets[0].address
    assert amount == Decimal("2.0")

    rec = store.get_transaction(result.holdTxRef)
    assert rec.kind == TX_HOLD
    assert rec.claimId == result.claimId


@pytest.mark.parametrize("overrides", [
    {"sender_phone": ""},
    {"recipient_phone": ""},
    {"sender_address": ""},
    {"amount": "0"},
    {"amount": "-1"},
    {"amount": "abc"},
])
def test_invalid_requests_are_rejected_before_any_side_effect(store, custody, overrides):
    with pytest.raises(InvalidHoldRequest):
        _hold(custody, **overrides)
    assert custody.wallets == []
    assert store.claims == {}


def test_custody_wallet_failure_leaves_no_state(store, custody):
    custody.create_error = ServiceUnavailableError("down")
    with pytest.raises(ServiceUnavailableError):
        _hold(custody)
    assert store.claims == {}
    assert store.txs == {}


def test_failed_hold_broadcast_never_persists_a_claim(store, custody):
    custody.send_error = BroadcastRejected("nonce too low")
    with pytest.raises(BroadcastRejected):
        _hold(custody)
    assert len(custody.wallets) == 1  # orphaned, holds nothing
    assert store.claims == {}
    assert store.txs == {}


def test_status_queries(store, custody):
    first = _hold(custody, amount="1")
    _hold(custody, amount="3", recipient_phone="15550009999")

    view = hold_manager.get_claim_status(first.claimId)
    assert view["status"] == PENDING
    assert view["amount"] == "1"
    assert "tokenDigest" not in view

    pending = hold_manager.list_pending_for_recipient(RECIPIENT)
    assert [c["id"] for c in pending] == [first.claimId]
    assert hold_manager.get_claim_status("missing") is None


def test_claim_write_failure_after_hold_keeps_funds_traceable(store, custody, monkeypatch, capsys):
    def down(claim):
        raise ConnectionError("redis went away")

    monkeypatch.setattr(hold_manager.claim_repo, "create_claim", down)
    with pytest.raises(HoldNotRecorded) as exc:
        _hold(custody)

    wallet = custody.wallets[0]
    hold_tx = exc.value.hold_tx_ref
    assert hold_tx in str(exc.value)
    assert custody.sends[0][1] == wallet.address

    rec = store.get_transaction(hold_tx)
    assert rec.kind == TX_HOLD
    assert rec.custodyWalletHandle == wallet.handle

    failures = [json.loads(line) for line in capsys.readouterr().out.splitlines()
                if '"hold_persist_failed"' in line]
    assert len(failures) == 1
    assert failures[0]["custodyWalletHandle"] == wallet.handle
    assert failures[0]["custodyAddress"] == wallet.address
    assert failures[0]["holdTxRef"] == hold_tx
    assert failures[0]["amount"] == "2.0"


def test_exhausted_token_reissue_is_reported_as_unrecorded_hold(store, custody, monkeypatch):
    def collide(claim):
        raise hold_manager.claim_repo.DuplicateTokenDigest()

    monkeypatch.setattr(hold_manager.claim_repo, "create_claim", collide)
    with pytest.raises(HoldNotRecorded):
        _hold(custody)
    assert store.claims == {}
