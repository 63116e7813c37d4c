"""
Escrow holds: move a sender's funds into a fresh custody wallet and issue a
claim link for the recipient phone.

A Claim is written only after the hold transfer has a transaction reference,
so a failed hold never leaves a claimable record behind.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from claimlink.core.claim_tokens import build_link, issue_token, token_ref
from claimlink.core.errors import HoldNotRecorded, InvalidHoldRequest
from claimlink.custody.client import CustodyClient
from claimlink.observability.logging import log
import claimlink.observability.metrics as metrics
from claimlink.settings import settings
from claimlink.store import claim_repo, transaction_repo
from claimlink.store.models import Claim, PENDING, TX_HOLD, TransactionRecord
from claimlink.utils.time import DAY_MS, iso_from_ms, now_ms

# Digest collisions are astronomically unlikely; reissue a bounded number of times
_TOKEN_ATTEMPTS = 3


@dataclass(frozen=True)
class HoldResult:
    claimId: str
    claimLink: str
    token: str
    holdTxRef: str
    expiresAt: int


def _parse_amount(amount) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise InvalidHoldRequest("Invalid amount for escrow hold.")
    if not value.is_finite() or value <= 0:
        raise InvalidHoldRequest("Invalid amount for escrow hold. Amount must be greater than 0.")
    return value


def create_hold(sender_phone: str, sender_address: str, sender_wallet_handle: str,
                recipient_phone: str, amount, *, custody: Optional[CustodyClient] = None) -> HoldResult:
    if not (sender_phone and sender_address and sender_wallet_handle and recipient_phone):
        raise InvalidHoldRequest()
    value = _parse_amount(amount)
    custody = custody or CustodyClient()

    # 1) Fresh custody wallet; a failure here leaves nothing behind
    wallet = custody.create_wallet()

    # 2) Hold transfer sender -> custody. Broadcasts are never retried.
    try:
        hold_tx = custody.send_transaction(sender_wallet_handle, wallet.address, value)
    except Exception as e:
        log(event="hold_broadcast_failed", senderPhone=sender_phone, recipientPhone=recipient_phone,
            amount=str(value), orphanedCustodyAddress=wallet.address,
            errorType=type(e).__name__, reason=getattr(e, "reason", ""))
        raise

    claim_id = claim_repo.new_claim_id()
    transaction_repo.record_transaction(TransactionRecord(
        hash=hold_tx,
        kind=TX_HOLD,
        requesterPhone=sender_phone,
        fromAddress=sender_address,
        toAddress=wallet.address,
        amount=value,
        claimId=claim_id,
        custodyWalletHandle=wallet.handle,
    ))

    # 3) Only now issue the token and persist the pending claim
    try:
        claim, token, digest = _persist_claim(
            claim_id, sender_phone, sender_address, recipient_phone, value, wallet, hold_tx,
        )
    except Exception as e:
        # Funds already sit in the custody wallet
        log(event="hold_persist_failed", claimRef=claim_id[:8], holdTxRef=hold_tx,
            custodyWalletHandle=wallet.handle, custodyAddress=wallet.address,
            senderPhone=sender_phone, senderAddress=sender_address, recipientPhone=recipient_phone,
            amount=str(value), errorType=type(e).__name__, error=str(e)[:200])
        metrics.increment_settlements_failed()
        raise HoldNotRecorded(hold_tx) from e

    metrics.increment_holds_created()
    log(event="hold_created", claimRef=claim.ref, tokenRef=token_ref(digest, is_digest=True),
        holdTxRef=hold_tx, senderPhone=sender_phone, recipientPhone=recipient_phone,
        amount=str(value), expiresAt=claim.expiresAt)

    return HoldResult(
        claimId=claim.id,
        claimLink=build_link(token),
        token=token,
        holdTxRef=hold_tx,
        expiresAt=claim.expiresAt,
    )


def _persist_claim(claim_id, sender_phone, sender_address, recipient_phone, value, wallet, hold_tx):
    created_at = now_ms()
    expires_at = created_at + int(settings.ESCROW_EXPIRY_DAYS) * DAY_MS
    for attempt in range(1, _TOKEN_ATTEMPTS + 1):
        token, digest = issue_token()
        claim = Claim(
            id=claim_id,
            senderPhone=sender_phone,
            senderAddress=sender_address,
            recipientPhone=recipient_phone,
            tokenDigest=digest,
            custodyWalletHandle=wallet.handle,
            custodyAddress=wallet.address,
            amount=value,
            status=PENDING,
            holdTxRef=hold_tx,
            createdAt=created_at,
            expiresAt=expires_at,
        )
        try:
            claim_repo.create_claim(claim)
            break
        except claim_repo.DuplicateTokenDigest:
            if attempt >= _TOKEN_ATTEMPTS:
                raise
            log(event="claim_token_reissued", claimRef=claim_id[:8], attempt=attempt)
    return claim, token, digest


def claim_view(claim: Claim) -> Dict[str, Any]:
    """Public shape of a claim. The token digest and custody handle stay internal."""
    return {
        "id": claim.id,
        "status": claim.status,
        "senderPhone": claim.senderPhone,
        "recipientPhone": claim.recipientPhone,
        "amount": str(claim.amount),
        "holdTxRef": claim.holdTxRef,
        "settleTxRef": claim.settleTxRef,
        "gasCost": None if claim.gasCost is None else str(claim.gasCost),
        "settledAmount": None if claim.settledAmount is None else str(claim.settledAmount),
        "settlementKind": claim.settlementKind,
        "error": claim.error,
        "createdAt": iso_from_ms(claim.createdAt),
        "expiresAt": iso_from_ms(claim.expiresAt),
        "settledAt": iso_from_ms(claim.settledAt) if claim.settledAt else None,
    }


def get_claim_status(claim_id: str) -> Optional[Dict[str, Any]]:
    claim = claim_repo.get_claim(claim_id)
    return claim_view(claim) if claim else None


def list_pending_for_recipient(phone: str) -> List[Dict[str, Any]]:
    return [claim_view(c) for c in claim_repo.list_pending_for_recipient(phone)]
