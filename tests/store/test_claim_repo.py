from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from claimlink.store import claim_repo
from claimlink.store.models import Claim, FAILED, PENDING, SETTLING


def _claim(**kw):
    base = dict(id="c0ffee1234", senderPhone="1555", senderAddress="0xs", recipientPhone="1666",
                tokenDigest="d" * 64, custodyWalletHandle="h", custodyAddress="0xc",
                amount=Decimal("2.0"), holdTxRef="0xhold", expiresAt=5000)
    base.update(kw)
    return Claim(**base)


@patch("claimlink.store.claim_repo.get_redis")
def test_create_claim_indexes_digest_recipient_and_expiry(mock_get_redis):
    r = MagicMock()
    r.eval.return_value = 1
    mock_get_redis.return_value = r

    claim_repo.create_claim(_claim())

    args = r.eval.call_args.args
    assert args[0] == claim_repo._CREATE_SCRIPT
    assert args[1] == 4
    assert args[2:6] == ("claim:c0ffee1234", "claims:digest:" + "d" * 64, "claims:recipient:1666",
                         claim_repo.K_PENDING_EXPIRY)
    assert args[6:8] == ("c0ffee1234", "5000")
    flat = args[8:]
    mapping = dict(zip(flat[::2], flat[1::2]))
    assert mapping["status"] == PENDING
    assert mapping["amount"] == "2.0"
    assert "token" not in mapping


@patch("claimlink.store.claim_repo.get_redis")
def test_create_claim_rejects_duplicate_digest(mock_get_redis):
    r = MagicMock()
    r.eval.return_value = 0
    mock_get_redis.return_value = r
    with pytest.raises(claim_repo.DuplicateTokenDigest):
        claim_repo.create_claim(_claim())


@patch("claimlink.store.claim_repo.get_redis")
def test_transition_is_a_single_conditional_write(mock_get_redis):
    r = MagicMock()
    r.eval.return_value = 1
    mock_get_redis.return_value = r

    assert claim_repo.transition_status("c0ffee1234", PENDING, SETTLING, {"settlementKind": "claim", "gasCost": None})

    args = r.eval.call_args.args
    assert args[0] == claim_repo._TRANSITION_SCRIPT
    assert args[2:5] == ("claim:c0ffee1234", claim_repo.K_PENDING_EXPIRY, claim_repo.K_FAILED)
    assert args[5:8] == (PENDING, SETTLING, "c0ffee1234")
    flat = args[8:]
    mapping = dict(zip(flat[::2], flat[1::2]))
    assert mapping["settlementKind"] == "claim"
    assert "gasCost" not in mapping
    assert "updatedAt" in mapping


@patch("claimlink.store.claim_repo.get_redis")
def test_transition_reports_lost_compare_and_swap(mock_get_redis):
    r = MagicMock()
    r.eval.return_value = 0
    mock_get_redis.return_value = r
    assert claim_repo.transition_status("c0ffee1234", PENDING, FAILED) is False


@patch("claimlink.store.claim_repo.get_redis")
def test_get_claim_round_trips_types(mock_get_redis):
    r = MagicMock()
    r.hgetall.return_value = {**_claim().to_hash(), "gasCost": "0.01", "settledAt": "7000", "unknown": "x"}
    mock_get_redis.return_value = r

    c = claim_repo.get_claim("c0ffee1234")
    assert c.amount == Decimal("2.0")
    assert c.gasCost == Decimal("0.01")
    assert c.settledAt == 7000
    assert c.expiresAt == 5000


@patch("claimlink.store.claim_repo.get_redis")
def test_find_expired_pending_filters_stale_index_entries(mock_get_redis):
    r = MagicMock()
    r.zrangebyscore.return_value = ["a", "b"]
    r.hgetall.side_effect = [_claim(id="a").to_hash(), _claim(id="b", status=SETTLING).to_hash()]
    mock_get_redis.return_value = r

    out = claim_repo.find_expired_pending(9000, limit=10)
    assert [c.id for c in out] == ["a"]
    r.zrangebyscore.assert_called_once_with(claim_repo.K_PENDING_EXPIRY, "-inf", 9000, start=0, num=10)


@patch("claimlink.store.claim_repo.get_redis")
def test_find_by_token_digest_miss(mock_get_redis):
    r = MagicMock()
    r.get.return_value = None
    mock_get_redis.return_value = r
    assert claim_repo.find_by_token_digest("nope") is None
