"""
Refunds for expired, unclaimed holds.

Uses the same pending -> settling compare-and-swap as the claim path, so for
any claim exactly one of claimed, refunded or failed is ever written.
"""
import time
from typing import Dict, Optional

from claimlink.chain.client import ChainClient
from claimlink.core import messages
from claimlink.core.errors import InsufficientFundsError, TransientError
from claimlink.core.settlement_calculator import compute_settlement, refund_policy
from claimlink.custody.client import CustodyClient
from claimlink.messaging.notify import notify
from claimlink.observability.logging import log
import claimlink.observability.metrics as metrics
from claimlink.settings import settings
from claimlink.store import claim_repo, transaction_repo
from claimlink.store.models import Claim, FAILED, PENDING, REFUNDED, SETTLING, TX_REFUND, TransactionRecord
from claimlink.utils.backoff import with_retry
from claimlink.utils.time import now_ms

INSUFFICIENT_FUNDS_FOR_GAS = "InsufficientFundsForGas"

# refund_claim outcomes
OUTCOME_REFUNDED = "refunded"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"


def _fail(claim: Claim, expected: str, error: str, gas_cost=None) -> bool:
    won = claim_repo.transition_status(claim.id, expected, FAILED, {
        "settlementKind": "refund",
        "error": error,
        "gasCost": gas_cost,
    })
    if won:
        metrics.increment_settlements_failed()
        log(event="refund_failed", claimRef=claim.ref, error=error, senderPhone=claim.senderPhone,
            amount=str(claim.amount))
        failed = claim_repo.get_claim(claim.id) or claim
        notify(claim.senderPhone, messages.refund_failed(failed), kind="refund_failed")
    return won


def refund_claim(claim: Claim, *, chain: Optional[ChainClient] = None,
                 custody: Optional[CustodyClient] = None) -> str:
    chain = chain or ChainClient()
    custody = custody or CustodyClient()

    try:
        fee = with_retry(
            lambda: chain.estimate_fee(claim.custodyAddress, claim.senderAddress, claim.amount),
            op="refund_estimate_fee",
        )
    except TransientError:
        # Still pending; the next sweep tries again
        log(event="refund_deferred", claimRef=claim.ref, reason="fee_estimate_unavailable")
        return OUTCOME_SKIPPED
    except InsufficientFundsError:
        return OUTCOME_FAILED if _fail(claim, PENDING, INSUFFICIENT_FUNDS_FOR_GAS) else OUTCOME_SKIPPED

    decision = compute_settlement(claim.amount, fee.cost, refund_policy())
    if not decision.ok:
        # No partial refund is attempted
        log(event="refund_rejected", claimRef=claim.ref, amount=str(claim.amount), gasCost=str(fee.cost),
            required=str(decision.required))
        won = _fail(claim, PENDING, INSUFFICIENT_FUNDS_FOR_GAS, gas_cost=fee.cost)
        return OUTCOME_FAILED if won else OUTCOME_SKIPPED

    if not claim_repo.transition_status(claim.id, PENDING, SETTLING, {"settlementKind": "refund"}):
        log(event="refund_lost_race", claimRef=claim.ref)
        return OUTCOME_SKIPPED

    try:
        tx_ref = custody.send_transaction(
            claim.custodyWalletHandle, claim.senderAddress, decision.settle_amount, gas_limit=fee.gas_limit,
        )
    except InsufficientFundsError:
        _fail(claim, SETTLING, INSUFFICIENT_FUNDS_FOR_GAS, gas_cost=decision.gas_cost)
        return OUTCOME_FAILED
    except Exception as e:
        reason = getattr(e, "reason", type(e).__name__)
        _fail(claim, SETTLING, f"{reason}: {str(e)[:200]}", gas_cost=decision.gas_cost)
        return OUTCOME_FAILED

    claim_repo.transition_status(claim.id, SETTLING, REFUNDED, {
        "settleTxRef": tx_ref,
        "gasCost": decision.gas_cost,
        "settledAmount": decision.settle_amount,
        "settledAt": now_ms(),
    })
    transaction_repo.record_transaction(TransactionRecord(
        hash=tx_ref,
        kind=TX_REFUND,
        requesterPhone=claim.senderPhone,
        fromAddress=claim.custodyAddress,
        toAddress=claim.senderAddress,
        amount=decision.settle_amount,
        claimId=claim.id,
    ))
    metrics.increment_refunds_completed()
    log(event="refund_completed", claimRef=claim.ref, settleTxRef=tx_ref, senderPhone=claim.senderPhone,
        amount=str(claim.amount), gasCost=str(decision.gas_cost), refundedAmount=str(decision.settle_amount))

    refunded = claim_repo.get_claim(claim.id) or claim
    notify(claim.senderPhone, messages.refund_completed(refunded), kind="refund")
    return OUTCOME_REFUNDED


def refund_expired(now: Optional[int] = None, limit: int = 0, *,
                   chain: Optional[ChainClient] = None,
                   custody: Optional[CustodyClient] = None) -> Dict[str, int]:
    """One sweep pass over pending claims with expiresAt <= now."""
    start = time.monotonic()
    now = now_ms() if now is None else int(now)
    limit = int(limit or settings.SWEEP_BATCH_SIZE)
    summary = {"scanned": 0, OUTCOME_REFUNDED: 0, OUTCOME_FAILED: 0, OUTCOME_SKIPPED: 0, "errors": 0}

    chain = chain or ChainClient()
    custody = custody or CustodyClient()

    for claim in claim_repo.find_expired_pending(now, limit):
        summary["scanned"] += 1
        try:
            outcome = refund_claim(claim, chain=chain, custody=custody)
        except Exception as e:
            summary["errors"] += 1
            log(event="sweep_claim_error", claimRef=claim.ref, errorType=type(e).__name__, error=str(e)[:200])
            continue
        summary[outcome] += 1

    elapsed_ms = int((time.monotonic() - start) * 1000)
    metrics.record_sweep_latency(elapsed_ms)
    log(event="expiry_sweep_done", elapsedMs=elapsed_ms, **summary)
    return summary
