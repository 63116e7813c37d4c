"""
Claim settlement: validate a claim token for a claimer and pay out the hold.

Ordered checks (first failure wins):
  1) token resolves to a claim            -> InvalidOrExpiredClaim
  2) claim is pending                     -> ClaimNotActive(status)
  3) claimer phone is the recipient phone -> ClaimPhoneMismatch
  4) now < expiresAt                      -> ClaimExpired
  5) fresh fee estimate passes the calculator -> calculator reason

The pending -> settling compare-and-swap decides the single winner against
concurrent claims and the expiry sweep. After winning, the claim always ends
in claimed or failed; a failed broadcast is never retried here.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from claimlink.chain.client import ChainClient
from claimlink.core.claim_tokens import digest_token, token_ref, verify
from claimlink.core.errors import (
    ClaimExpired,
    ClaimNotActive,
    ClaimPhoneMismatch,
    InvalidOrExpiredClaim,
    SettlementFailed,
)
from claimlink.core.settlement_calculator import claim_policy, compute_settlement
from claimlink.custody.client import CustodyClient
from claimlink.observability.logging import log
import claimlink.observability.metrics as metrics
from claimlink.store import claim_repo, transaction_repo
from claimlink.store.models import CLAIMED, FAILED, PENDING, SETTLING, TX_CLAIM, TransactionRecord
from claimlink.utils.backoff import with_retry
from claimlink.utils.time import now_ms


@dataclass(frozen=True)
class ClaimResult:
    claimId: str
    txRef: str
    gasCost: Decimal
    settledAmount: Decimal


def validate_and_claim(token: str, claimer_phone: str, claimer_address: str, *,
                       now: Optional[int] = None,
                       chain: Optional[ChainClient] = None,
                       custody: Optional[CustodyClient] = None) -> ClaimResult:
    now = now_ms() if now is None else int(now)
    tref = token_ref(token or "")

    # 1) token -> claim
    claim = claim_repo.find_by_token_digest(digest_token(token or ""))
    if claim is None or not verify(token, claim.tokenDigest):
        log(event="claim_rejected", reason=InvalidOrExpiredClaim.reason, tokenRef=tref, claimerPhone=claimer_phone)
        raise InvalidOrExpiredClaim()

    # 2) still pending
    if claim.status != PENDING:
        log(event="claim_rejected", reason=ClaimNotActive.reason, claimRef=claim.ref, status=claim.status)
        raise ClaimNotActive(claim.status)

    # 3) restricted to the recipient phone
    if claim.recipientPhone != claimer_phone:
        log(event="claim_rejected", reason=ClaimPhoneMismatch.reason, claimRef=claim.ref, claimerPhone=claimer_phone)
        raise ClaimPhoneMismatch()

    # 4) expired claims are left for the sweep to refund
    if now >= claim.expiresAt:
        log(event="claim_rejected", reason=ClaimExpired.reason, claimRef=claim.ref, expiresAt=claim.expiresAt)
        raise ClaimExpired()

    # 5) fresh estimate, custody -> claimer
    chain = chain or ChainClient()
    fee = with_retry(
        lambda: chain.estimate_fee(claim.custodyAddress, claimer_address, claim.amount),
        op="claim_estimate_fee",
    )
    decision = compute_settlement(claim.amount, fee.cost, claim_policy())
    if not decision.ok:
        log(event="claim_rejected", reason=decision.reason, claimRef=claim.ref, amount=str(claim.amount),
            gasCost=str(fee.cost), required=str(decision.required))
        decision.raise_for_reason()

    # Single arbiter: only one caller moves the claim out of pending
    if not claim_repo.transition_status(claim.id, PENDING, SETTLING, {"settlementKind": "claim"}):
        current = claim_repo.get_claim(claim.id)
        status = current.status if current else "unknown"
        log(event="claim_lost_race", claimRef=claim.ref, status=status)
        raise ClaimNotActive(status)

    custody = custody or CustodyClient()
    try:
        tx_ref = custody.send_transaction(
            claim.custodyWalletHandle, claimer_address, decision.settle_amount, gas_limit=fee.gas_limit,
        )
    except Exception as e:
        reason = getattr(e, "reason", type(e).__name__)
        claim_repo.transition_status(claim.id, SETTLING, FAILED, {
            "error": f"{reason}: {str(e)[:200]}",
            "gasCost": decision.gas_cost,
        })
        metrics.increment_settlements_failed()
        log(event="claim_settlement_failed", claimRef=claim.ref, reason=reason,
            claimerPhone=claimer_phone, amount=str(claim.amount))
        raise SettlementFailed(claim_id=claim.id) from e

    settled_at = now_ms()
    moved = claim_repo.transition_status(claim.id, SETTLING, CLAIMED, {
        "settleTxRef": tx_ref,
        "gasCost": decision.gas_cost,
        "settledAmount": decision.settle_amount,
        "settledAt": settled_at,
    })
    if not moved:
        log(event="claim_terminal_write_skipped", claimRef=claim.ref, settleTxRef=tx_ref)

    transaction_repo.record_transaction(TransactionRecord(
        hash=tx_ref,
        kind=TX_CLAIM,
        requesterPhone=claimer_phone,
        fromAddress=claim.custodyAddress,
        toAddress=claimer_address,
        amount=decision.settle_amount,
        claimId=claim.id,
    ))
    metrics.increment_claims_settled()
    log(event="claim_settled", claimRef=claim.ref, settleTxRef=tx_ref, claimerPhone=claimer_phone,
        amount=str(claim.amount), gasCost=str(decision.gas_cost), settledAmount=str(decision.settle_amount))

    return ClaimResult(
        claimId=claim.id,
        txRef=tx_ref,
        gasCost=decision.gas_cost,
        settledAmount=decision.settle_amount,
    )
