"""
Inbound event handling and the send flow.

A send request is resolved once into a SendPlan (direct to a registered
wallet, or escrow through a claim link), priced, checked against the sender
balance and parked in the confirmation machine. On confirm the executor is a
plain two-arm match on the operation kind.
"""
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional, Tuple

from web3 import Web3

from claimlink.api.normalize import normalize_phone
from claimlink.api.schemas import InboundEvent
from claimlink.chain.client import ChainClient
from claimlink.core import confirmation as cm
from claimlink.core import messages
from claimlink.core.claim_engine import validate_and_claim
from claimlink.core.claim_tokens import parse_claim_command, token_ref
from claimlink.core.errors import (
    EscrowError,
    InsufficientBalance,
    InvalidAmount,
    InvalidRecipient,
    WalletNotFound,
)
from claimlink.core.hold_manager import create_hold
from claimlink.custody.client import CustodyClient
from claimlink.observability.logging import log
import claimlink.observability.metrics as metrics
from claimlink.settings import settings
from claimlink.store import transaction_repo, user_repo
from claimlink.store.models import PendingOperation, SendPlan, TX_DIRECT, TransactionRecord, UserWallet
from claimlink.utils.backoff import with_retry

ROUTE_DIRECT = "direct"
ROUTE_ESCROW = "escrow"

confirmations = cm.ConfirmationMachine()


def register_wallet(phone: str, *, custody: Optional[CustodyClient] = None) -> Tuple[UserWallet, bool]:
    """Return the phone's wallet, creating one through custody when absent."""
    phone = normalize_phone(phone)
    if not phone:
        raise InvalidRecipient("A phone number is required to create a wallet.")
    existing = user_repo.get_wallet(phone)
    if existing is not None:
        return existing, False

    custody = custody or CustodyClient()
    w = custody.create_wallet()
    wallet, created = user_repo.create_wallet_if_absent(
        UserWallet(phone=phone, walletHandle=w.handle, address=w.address)
    )
    if not created:
        # A concurrent registration won; the wallet created here stays empty
        log(event="wallet_registration_raced", phone=phone, unusedAddress=w.address)
        return wallet, False
    log(event="wallet_registered", phone=phone, address=wallet.address)
    return wallet, True


def _parse_amount(amount) -> Decimal:
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmount()
    if not value.is_finite() or value <= 0:
        raise InvalidAmount()
    return value


def prepare_send(sender_phone: str, amount, *, recipient_phone: Optional[str] = None,
                 recipient_address: Optional[str] = None, recipient_label: Optional[str] = None,
                 chain: Optional[ChainClient] = None) -> SendPlan:
    value = _parse_amount(amount)

    sender = user_repo.get_wallet(sender_phone)
    if sender is None:
        raise WalletNotFound()

    # Resolve the route once; the executor never re-inspects the recipient
    if recipient_address:
        if not Web3.is_address(recipient_address):
            raise InvalidRecipient("Invalid wallet address.")
        route, to_address, phone = ROUTE_DIRECT, Web3.to_checksum_address(recipient_address), None
    elif recipient_phone:
        phone = normalize_phone(recipient_phone)
        if not phone:
            raise InvalidRecipient()
        wallet = user_repo.get_wallet(phone)
        if wallet is not None:
            route, to_address = ROUTE_DIRECT, wallet.address
        else:
            route, to_address = ROUTE_ESCROW, None
    else:
        raise InvalidRecipient()

    chain = chain or ChainClient()
    balance = with_retry(lambda: chain.get_balance(sender.address), op="get_balance")
    # The custody wallet does not exist yet for escrow; price a plain transfer to a probe address
    fee = with_retry(
        lambda: chain.estimate_fee(sender.address, to_address or settings.FEE_PROBE_ADDRESS, value),
        op="send_estimate_fee",
    )
    total = value + fee.cost
    if total > balance:
        raise InsufficientBalance(
            f"Insufficient balance. Amount plus network fee is {messages.fmt(total)} {settings.NATIVE_SYMBOL}, "
            f"available {messages.fmt(balance)} {settings.NATIVE_SYMBOL}.",
            required=total,
            available=balance,
        )

    return SendPlan(
        senderPhone=sender.phone,
        senderAddress=sender.address,
        senderWalletHandle=sender.walletHandle,
        amount=value,
        route=route,
        feeEstimate=fee.cost,
        totalCost=total,
        recipientPhone=phone,
        recipientAddress=to_address,
        recipientLabel=recipient_label or phone or to_address,
    )


def request_send(sender_phone: str, amount, **kwargs) -> Tuple[PendingOperation, str]:
    """Prepare a send and park it for confirmation. Returns (operation, prompt)."""
    plan = prepare_send(sender_phone, amount, **kwargs)

    if plan.route == ROUTE_DIRECT:
        kind = cm.DIRECT_SEND
    elif plan.amount < Decimal(settings.SMALL_CLAIM_WARNING_FLOOR):
        kind = cm.SMALL_AMOUNT_WARNING
    else:
        kind = cm.CLAIM_LINK_SEND

    op = confirmations.propose(plan.senderPhone, kind, plan)
    prompt = messages.small_amount_warning(plan) if kind == cm.SMALL_AMOUNT_WARNING else messages.send_confirmation(plan)
    return op, prompt


def execute_operation(op: PendingOperation, *, chain: Optional[ChainClient] = None,
                      custody: Optional[CustodyClient] = None) -> str:
    plan = op.payload
    chain = chain or ChainClient()
    custody = custody or CustodyClient()

    balance = with_retry(lambda: chain.get_balance(plan.senderAddress), op="get_balance")
    if plan.totalCost > balance:
        raise InsufficientBalance(
            "Insufficient balance. Your balance may have changed since confirmation.",
            required=plan.totalCost,
            available=balance,
        )

    if op.kind == cm.DIRECT_SEND:
        tx_ref = custody.send_transaction(plan.senderWalletHandle, plan.recipientAddress, plan.amount)
        transaction_repo.record_transaction(TransactionRecord(
            hash=tx_ref,
            kind=TX_DIRECT,
            requesterPhone=plan.senderPhone,
            fromAddress=plan.senderAddress,
            toAddress=plan.recipientAddress,
            amount=plan.amount,
        ))
        metrics.increment_direct_sent()
        return messages.direct_sent(plan, tx_ref)

    if op.kind == cm.CLAIM_LINK_SEND:
        hold = create_hold(plan.senderPhone, plan.senderAddress, plan.senderWalletHandle,
                           plan.recipientPhone, plan.amount, custody=custody)
        return messages.claim_link_created(plan, hold.claimLink, int(settings.ESCROW_EXPIRY_DAYS))

    raise ValueError(f"operation kind {op.kind!r} is not executable")


def handle_claim(claimer_phone: str, token: str) -> str:
    log(event="claim_command_received", requesterId=claimer_phone, tokenRef=token_ref(token))
    wallet = user_repo.get_wallet(claimer_phone)
    if wallet is None:
        return messages.CREATE_WALLET_FIRST
    result = validate_and_claim(token, claimer_phone, wallet.address)
    return messages.claim_settled(result)


def _route_event(requester: str, evt: InboundEvent) -> str:
    signal = cm.classify_signal(evt.text, evt.reactionGlyph)

    # 1) a pending confirmation consumes the event
    if confirmations.has_pending(requester):
        res = confirmations.resolve(requester, signal, execute_operation)
        if res.outcome == cm.EXECUTED:
            return res.result
        if res.outcome == cm.CANCELLED:
            return messages.CANCELLED
        if res.outcome == cm.REPROPOSED:
            return messages.send_confirmation(res.operation.payload)
        if res.outcome == cm.REPROMPT:
            return messages.REPROMPT
        return messages.NOTHING_TO_CONFIRM

    # 2) claim command
    token = parse_claim_command(evt.text)
    if token:
        return handle_claim(requester, token)

    # 3) a bare yes/no with nothing pending
    if signal != cm.UNRECOGNIZED:
        return messages.NOTHING_TO_CONFIRM

    return messages.HELP


def handle_event(evt: InboundEvent) -> Dict[str, str]:
    requester = normalize_phone(evt.requesterId)
    log(event="event_received", requesterId=requester, textLen=len(evt.text or ""),
        hasReaction=bool(evt.reactionGlyph))
    try:
        reply = _route_event(requester, evt)
    except EscrowError as e:
        log(event="event_rejected", requesterId=requester, reason=e.reason, errorType=type(e).__name__)
        reply = messages.error_reply(e)
    except Exception as e:
        log(event="event_handler_error", requesterId=requester, errorType=type(e).__name__, error=str(e)[:200])
        reply = messages.GENERIC_FAILURE
    return {"reply": reply}
