import threading
import uuid
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from claimlink.chain.client import FeeEstimate
from claimlink.custody.client import CustodyWallet
from claimlink.settings import settings
from claimlink.store import claim_repo, transaction_repo, user_repo
from claimlink.store.models import Claim, FAILED, PENDING, TX_PENDING, UserWallet
from claimlink.utils.time import now_ms


class InMemoryStore:
    """Repository double: claims kept as flat string hashes, transitions guarded by one lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self.claims = {}
        self.digests = {}
        self.failed = []
        self.txs = {}
        self.wallets = {}
        self.transitions = []

    # claims
    def create_claim(self, claim):
        with self._lock:
            if claim.tokenDigest in self.digests:
                raise claim_repo.DuplicateTokenDigest("token digest already indexed")
            claim.id = claim.id or uuid.uuid4().hex
            claim.createdAt = claim.createdAt or now_ms()
            claim.updatedAt = now_ms()
            self.claims[claim.id] = claim.to_hash()
            self.digests[claim.tokenDigest] = claim.id
        return claim

    def get_claim(self, claim_id):
        h = self.claims.get(claim_id)
        return Claim.from_hash(dict(h)) if h else None

    def find_by_token_digest(self, digest):
        claim_id = self.digests.get(digest)
        return self.get_claim(claim_id) if claim_id else None

    def transition_status(self, claim_id, expected, new_status, fields=None):
        with self._lock:
            h = self.claims.get(claim_id)
            if h is None or h.get("status") != expected:
                return False
            h["status"] = new_status
            for k, v in (fields or {}).items():
                if v is not None:
                    h[k] = str(v)
            h["updatedAt"] = str(now_ms())
            if new_status == FAILED:
                self.failed.insert(0, claim_id)
            self.transitions.append((claim_id, expected, new_status))
            return True

    def find_expired_pending(self, now, limit=100):
        out = [c for c in map(self.get_claim, list(self.claims)) if c.status == PENDING and c.expiresAt <= now]
        return sorted(out, key=lambda c: c.expiresAt)[:limit]

    def list_pending_for_recipient(self, phone):
        out = [c for c in map(self.get_claim, list(self.claims)) if c.status == PENDING and c.recipientPhone == phone]
        return sorted(out, key=lambda c: c.createdAt)

    def list_failed(self, limit=50):
        return [self.get_claim(i) for i in self.failed[:limit]]

    # transactions
    def record_transaction(self, rec):
        with self._lock:
            if rec.hash in self.txs:
                return False
            rec.createdAt = rec.createdAt or now_ms()
            self.txs[rec.hash] = rec
            return True

    def get_transaction(self, tx_hash):
        return self.txs.get(tx_hash)

    def find_pending(self, limit=50):
        return [r for r in self.txs.values() if r.status == TX_PENDING][:limit]

    def advance_status(self, tx_hash, new_status):
        with self._lock:
            rec = self.txs.get(tx_hash)
            if rec is None or rec.status != TX_PENDING:
                return False
            rec.status = new_status
            return True

    # wallets
    def get_wallet(self, phone):
        return self.wallets.get(phone)

    def create_wallet_if_absent(self, wallet):
        with self._lock:
            if wallet.phone in self.wallets:
                return self.wallets[wallet.phone], False
            wallet.createdAt = wallet.createdAt or now_ms()
            self.wallets[wallet.phone] = wallet
            return wallet, True

    def add_wallet(self, phone, address, handle=None):
        wallet, _ = self.create_wallet_if_absent(
            UserWallet(phone=phone, walletHandle=handle or f"h-{phone}", address=address)
        )
        return wallet


class FakeChain:
    def __init__(self, gas_cost=Decimal("0.01"), balance=Decimal("10")):
        self.gas_cost = Decimal(gas_cost)
        self.balance = Decimal(balance)
        self.balances = {}
        self.receipts = {}
        self.fee_calls = []
        self.fee_error = None

    def estimate_fee(self, from_address, to_address, amount):
        self.fee_calls.append((from_address, to_address, Decimal(amount)))
        if self.fee_error is not None:
            raise self.fee_error
        return FeeEstimate(gas_limit=21000, gas_price_wei=1, cost=self.gas_cost)

    def get_balance(self, address):
        return self.balances.get(address, self.balance)

    def get_receipt(self, tx_hash):
        return self.receipts.get(tx_hash)


class FakeCustody:
    def __init__(self):
        self.wallets = []
        self.sends = []
        self.send_error = None
        self.create_error = None
        self._lock = threading.Lock()

    def create_wallet(self):
        if self.create_error is not None:
            raise self.create_error
        n = len(self.wallets) + 1
        w = CustodyWallet(handle=f"custody-{n}", address="0x" + f"{0xC0DE0000 + n:040x}")
        self.wallets.append(w)
        return w

    def send_transaction(self, handle, to_address, amount, gas_limit=None):
        with self._lock:
            if self.send_error is not None:
                raise self.send_error
            self.sends.append((handle, to_address, Decimal(amount)))
            return "0x" + f"{len(self.sends):064x}"


@pytest.fixture
def store(monkeypatch):
    s = InMemoryStore()
    for name in ("create_claim", "get_claim", "find_by_token_digest", "transition_status",
                 "find_expired_pending", "list_pending_for_recipient", "list_failed"):
        monkeypatch.setattr(claim_repo, name, getattr(s, name))
    for name in ("record_transaction", "get_transaction", "find_pending", "advance_status"):
        monkeypatch.setattr(transaction_repo, name, getattr(s, name))
    monkeypatch.setattr(user_repo, "get_wallet", s.get_wallet)
    monkeypatch.setattr(user_repo, "create_wallet_if_absent", s.create_wallet_if_absent)
    # counters go to a throwaway client
    monkeypatch.setattr("claimlink.observability.metrics.get_redis", lambda: MagicMock())
    monkeypatch.setattr(settings, "RPC_BASE_DELAY_MS", 1)
    monkeypatch.setattr(settings, "RPC_MAX_DELAY_MS", 1)
    return s


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def custody():
    return FakeCustody()


@pytest.fixture
def notifications(monkeypatch):
    sent = []

    def _notify(requester_id, text, kind="info"):
        sent.append((requester_id, text, kind))
        return "sent"

    monkeypatch.setattr("claimlink.core.expiry_sweep.notify", _notify)
    return sent


@pytest.fixture
def fake_clients(monkeypatch, chain, custody):
    """Route every default-constructed client to the fakes."""
    for mod in ("claimlink.core.orchestrator", "claimlink.core.claim_engine",
                "claimlink.core.expiry_sweep", "claimlink.core.reconciler"):
        monkeypatch.setattr(f"{mod}.ChainClient", lambda: chain)
    for mod in ("claimlink.core.orchestrator", "claimlink.core.claim_engine",
                "claimlink.core.expiry_sweep", "claimlink.core.hold_manager"):
        monkeypatch.setattr(f"{mod}.CustodyClient", lambda: custody)
    return chain, custody
