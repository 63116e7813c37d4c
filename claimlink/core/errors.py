"""
Error taxonomy for the escrow engine.

Every class carries a stable `reason` code (reported to callers and logs)
and a user-facing message. Nothing here ever embeds a plaintext claim token.
"""
from decimal import Decimal
from typing import Optional


class EscrowError(Exception):
    reason = "EscrowError"
    user_message = "Something went wrong. Please try again later."

    def __init__(self, message: Optional[str] = None, **context):
        super().__init__(message or self.user_message)
        self.context = context

    @property
    def message(self) -> str:
        return str(self)


# --- Validation errors: rejected synchronously, never retried ---

class ValidationError(EscrowError):
    reason = "ValidationError"


class InvalidHoldRequest(ValidationError):
    reason = "InvalidHoldRequest"
    user_message = "Missing required details for creating the escrow hold."


class InvalidAmount(ValidationError):
    reason = "InvalidAmount"
    user_message = "Invalid amount. Amount must be greater than 0."


class InvalidRecipient(ValidationError):
    reason = "InvalidRecipient"
    user_message = "Please provide a recipient phone number or wallet address."


class WalletNotFound(ValidationError):
    reason = "WalletNotFound"
    user_message = "Wallet not found. Please create a wallet first."


# --- Economic errors: carry the numeric shortfall so callers can self-correct ---

class EconomicError(EscrowError):
    reason = "EconomicError"

    def __init__(self, message: Optional[str] = None, *, required: Decimal = Decimal("0"),
                 available: Decimal = Decimal("0"), **context):
        self.required = Decimal(required)
        self.available = Decimal(available)
        super().__init__(message, **context)

    @property
    def shortfall(self) -> Decimal:
        return max(Decimal("0"), self.required - self.available)


class AmountTooSmallForGas(EconomicError):
    reason = "AmountTooSmallForGas"
    user_message = "Amount too small to cover network fees."


class AmountTooSmallAfterGas(EconomicError):
    reason = "AmountTooSmallAfterGas"
    user_message = "Amount too small: almost nothing would remain after network fees."


class InsufficientBalance(EconomicError):
    reason = "InsufficientBalance"
    user_message = "Insufficient balance for amount plus network fee."


# --- Claim-state errors: reported with the specific reason, never retried ---

class ClaimStateError(EscrowError):
    reason = "ClaimStateError"


class InvalidOrExpiredClaim(ClaimStateError):
    reason = "InvalidOrExpiredClaim"
    user_message = "Invalid or expired claim link. Please check the link and try again."


class ClaimNotActive(ClaimStateError):
    reason = "ClaimNotActive"

    def __init__(self, status: str, **context):
        self.status = status
        super().__init__(
            f"This claim link is no longer active (status: {status}). "
            "Please contact the sender for a new link.",
            **context,
        )


class ClaimPhoneMismatch(ClaimStateError):
    reason = "ClaimPhoneMismatch"
    user_message = ("This claim link is not intended for this phone number. "
                    "Please ask the sender to send you the correct link.")


class ClaimExpired(ClaimStateError):
    reason = "ClaimExpired"
    user_message = "This claim link has expired. The funds will be returned to the sender."


# --- Collaborator errors ---

class CollaboratorError(EscrowError):
    reason = "CollaboratorError"


class TransientError(CollaboratorError):
    """Timeouts and 5xx from custody or chain RPC. Retried only before settlement."""
    reason = "ServiceUnavailable"
    user_message = "The network service is temporarily unavailable. Please try again shortly."


class ServiceUnavailableError(TransientError):
    pass


class InsufficientFundsError(CollaboratorError):
    reason = "InsufficientFunds"
    user_message = "The wallet does not hold enough funds for this transfer and its fee."


class BroadcastRejected(CollaboratorError):
    reason = "BroadcastRejected"
    user_message = "The transaction was rejected by the network."


# --- Terminal settlement failures: recorded as Claim.status=failed, not auto-retried ---

class SettlementFailed(EscrowError):
    reason = "SettlementFailed"
    user_message = ("The transfer could not be completed. The claim has been flagged "
                    "for review; please contact support.")


class HoldNotRecorded(SettlementFailed):
    """Hold transfer broadcast, but the claim could not be persisted."""
    reason = "HoldNotRecorded"
    user_message = ("Your funds were moved to escrow but the claim link could not be created. "
                    "Please contact support with the transaction reference.")

    def __init__(self, hold_tx_ref: str):
        super().__init__(f"{self.user_message} Reference: {hold_tx_ref}", holdTxRef=hold_tx_ref)
        self.hold_tx_ref = hold_tx_ref
