"""User-facing chat texts."""
from decimal import Decimal
from typing import Optional

from claimlink.settings import settings


def fmt(amount) -> str:
    """Fixed six-decimal rendering used in every amount shown to users."""
    return f"{Decimal(str(amount)).quantize(Decimal('0.000001'))}"


def _sym() -> str:
    return settings.NATIVE_SYMBOL


def explorer_link(tx_ref: Optional[str]) -> str:
    if not tx_ref:
        return ""
    return f"{settings.EXPLORER_TX_URL.rstrip('/')}/{tx_ref}"


CONFIRM_HINT = "Confirm? Reply YES or react with 👍, reply NO or react with 👎 to cancel."

NOTHING_TO_CONFIRM = "There is nothing to confirm right now. Send a new request to start a transfer."

CANCELLED = "Transaction cancelled."

REPROMPT = "I didn't catch that. " + CONFIRM_HINT

HELP = ("Send funds with a request like: send 0.5 to +15551234567. "
        "To receive funds from a claim link, send the CLAIM message from the link.")

CREATE_WALLET_FIRST = "You need a wallet to claim funds. Create one first, then send the CLAIM message again."

GENERIC_FAILURE = "Something went wrong. Please try again later."


def send_confirmation(plan) -> str:
    lines = [
        "*Transaction confirmation*",
        "",
        f"Sending: {fmt(plan.amount)} {_sym()}",
        f"To: {plan.recipientLabel or plan.recipientAddress or plan.recipientPhone}",
        f"Network fee: {fmt(plan.feeEstimate)} {_sym()}",
        f"Total cost: {fmt(plan.totalCost)} {_sym()}",
    ]
    if plan.route == "escrow":
        lines += ["", "Note: the recipient has no wallet yet. They will receive a claim link "
                      "and pay the network fee when claiming."]
    lines += ["", CONFIRM_HINT]
    return "\n".join(lines)


def small_amount_warning(plan) -> str:
    return "\n".join([
        "*Small amount warning*",
        "",
        f"You are sending {fmt(plan.amount)} {_sym()} through a claim link. The recipient pays the "
        f"network fee when claiming, so very little may arrive and the claim can be rejected as too "
        f"small.",
        "",
        "Continue anyway? Reply YES to continue or NO to cancel.",
    ])


def direct_sent(plan, tx_ref: str) -> str:
    return "\n".join([
        "*Transaction sent*",
        "",
        f"Sent: {fmt(plan.amount)} {_sym()}",
        f"To: {plan.recipientLabel or plan.recipientAddress}",
        f"Network fee: {fmt(plan.feeEstimate)} {_sym()}",
        f"Transaction: {explorer_link(tx_ref)}",
    ])


def claim_link_created(plan, claim_link: str, expiry_days: int) -> str:
    return "\n".join([
        "*Claim link created*",
        "",
        f"Amount: {fmt(plan.amount)} {_sym()}",
        f"Recipient: {plan.recipientPhone}",
        f"Claim link: {claim_link}",
        "",
        f"Share the link with the recipient. Unclaimed funds return to you after {expiry_days} days.",
    ])


def claim_settled(result) -> str:
    return "\n".join([
        "*Funds claimed*",
        "",
        f"Received: {fmt(result.settledAmount)} {_sym()}",
        f"Network fee: {fmt(result.gasCost)} {_sym()}",
        f"Transaction: {explorer_link(result.txRef)}",
    ])


def refund_completed(claim) -> str:
    return "\n".join([
        "*Claim link expired: funds refunded*",
        "",
        f"Original amount: {fmt(claim.amount)} {_sym()}",
        f"Network fee: {fmt(claim.gasCost or 0)} {_sym()}",
        f"Refunded: {fmt(claim.settledAmount or 0)} {_sym()}",
        f"Recipient: {claim.recipientPhone}",
        f"Transaction: {explorer_link(claim.settleTxRef)}",
    ])


def refund_failed(claim) -> str:
    return "\n".join([
        "*Claim link expired: refund failed*",
        "",
        f"Your {fmt(claim.amount)} {_sym()} to {claim.recipientPhone} expired unclaimed, but the refund "
        f"could not be sent ({claim.error or 'unknown error'}).",
        f"Please contact support and quote reference {claim.ref}.",
    ])


def error_reply(err) -> str:
    """Chat reply for an EscrowError; economic errors include the shortfall."""
    shortfall = getattr(err, "shortfall", None)
    if shortfall:
        return f"{err} Short by {fmt(shortfall)} {_sym()}."
    return str(err)
