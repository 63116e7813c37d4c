from dataclasses import dataclass, fields as dc_fields
from decimal import Decimal
from typing import Any, Dict, Optional

# Claim status values. SETTLING is held only between the winning
# compare-and-swap and the terminal write.
PENDING = "pending"
SETTLING = "settling"
CLAIMED = "claimed"
REFUNDED = "refunded"
FAILED = "failed"

TERMINAL_CLAIM_STATES = (CLAIMED, REFUNDED, FAILED)

# Transaction record status values
TX_PENDING = "pending"
TX_SUCCESS = "success"
TX_FAILED = "failed"

# Transaction kinds
TX_DIRECT = "direct"
TX_HOLD = "hold"
TX_CLAIM = "claim"
TX_REFUND = "refund"

_DECIMAL_FIELDS = {"amount", "gasCost", "settledAmount"}
_INT_FIELDS = {"createdAt", "expiresAt", "updatedAt", "settledAt"}


def _to_hash(obj) -> Dict[str, str]:
    """Flatten a dataclass into a Redis hash mapping (None values are skipped)."""
    out: Dict[str, str] = {}
    for f in dc_fields(obj):
        v = getattr(obj, f.name)
        if v is None:
            continue
        out[f.name] = str(v)
    return out


def _from_hash(cls, data: Dict[str, Any]):
    allowed = {f.name for f in dc_fields(cls)}
    kwargs: Dict[str, Any] = {}
    for k, v in data.items():
        if k not in allowed or v is None or v == "":
            continue
        if k in _DECIMAL_FIELDS:
            kwargs[k] = Decimal(v)
        elif k in _INT_FIELDS:
            kwargs[k] = int(v)
        else:
            kwargs[k] = v
    return cls(**kwargs)


@dataclass
class Claim:
    id: str = ""
    senderPhone: str = ""
    senderAddress: str = ""
    recipientPhone: str = ""

    # Only the digest is ever stored; the plaintext token leaves once, inside the link
    tokenDigest: str = ""

    custodyWalletHandle: str = ""
    custodyAddress: str = ""

    amount: Decimal = Decimal("0")
    status: str = PENDING

    holdTxRef: Optional[str] = None
    settleTxRef: Optional[str] = None
    gasCost: Optional[Decimal] = None
    settledAmount: Optional[Decimal] = None

    # "claim" or "refund": which path won the transition out of pending
    settlementKind: Optional[str] = None
    error: Optional[str] = None

    createdAt: int = 0
    expiresAt: int = 0
    updatedAt: int = 0
    settledAt: Optional[int] = None

    @property
    def ref(self) -> str:
        return self.id[:8]

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_CLAIM_STATES

    def to_hash(self) -> Dict[str, str]:
        return _to_hash(self)

    @classmethod
    def from_hash(cls, data: Dict[str, Any]) -> "Claim":
        return _from_hash(cls, data)


@dataclass
class TransactionRecord:
    hash: str = ""
    kind: str = TX_DIRECT
    requesterPhone: str = ""
    fromAddress: str = ""
    toAddress: str = ""
    amount: Decimal = Decimal("0")
    status: str = TX_PENDING
    claimId: Optional[str] = None
    # Set on hold records
    custodyWalletHandle: Optional[str] = None
    createdAt: int = 0
    updatedAt: int = 0

    def to_hash(self) -> Dict[str, str]:
        return _to_hash(self)

    @classmethod
    def from_hash(cls, data: Dict[str, Any]) -> "TransactionRecord":
        return _from_hash(cls, data)


@dataclass
class UserWallet:
    phone: str = ""
    walletHandle: str = ""
    address: str = ""
    createdAt: int = 0

    def to_hash(self) -> Dict[str, str]:
        return _to_hash(self)

    @classmethod
    def from_hash(cls, data: Dict[str, Any]) -> "UserWallet":
        return _from_hash(cls, data)


@dataclass
class SendPlan:
    """
    A send request resolved once at proposal time.
    route is "direct" (recipient holds a wallet) or "escrow" (claim link).
    """
    senderPhone: str
    senderAddress: str
    senderWalletHandle: str
    amount: Decimal
    route: str
    feeEstimate: Decimal
    totalCost: Decimal
    recipientPhone: Optional[str] = None
    recipientAddress: Optional[str] = None
    recipientLabel: Optional[str] = None


@dataclass
class PendingOperation:
    requesterId: str
    kind: str  # direct_send | claim_link_send | small_amount_warning
    payload: SendPlan
    createdAt: int = 0
