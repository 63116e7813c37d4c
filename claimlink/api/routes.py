from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from starlette.concurrency import run_in_threadpool

from claimlink.api.auth import require_api_key
from claimlink.api.normalize import normalize_event_payload, normalize_phone
from claimlink.api.schemas import (
    ClaimList,
    EventResponse,
    InboundEvent,
    SendRequest,
    SendResponse,
    WalletRequest,
    WalletResponse,
)
from claimlink.core import hold_manager
from claimlink.core import orchestrator

router = APIRouter(prefix="/api", dependencies=[Depends(require_api_key)])


@router.post("/events", response_model=EventResponse)
async def inbound_event(request: Request, payload: Any = Body(None)):
    """Inbound chat event from the messaging gateway; the reply text goes back to the requester."""
    if payload is None:
        try:
            payload = await request.json()
        except ValueError:
            payload = {}
    if not isinstance(payload, dict):
        payload = {"text": payload} if isinstance(payload, str) else {}

    evt = InboundEvent.model_validate(normalize_event_payload(payload))
    if not evt.requesterId:
        raise HTTPException(status_code=422, detail="requesterId is required")

    out = await run_in_threadpool(orchestrator.handle_event, evt)
    return EventResponse(status="success", reply=out.get("reply") or "")


@router.post("/send", response_model=SendResponse)
async def send(req: SendRequest):
    """Prepare a send and park it for confirmation through /api/events."""
    op, prompt = await run_in_threadpool(
        orchestrator.request_send,
        normalize_phone(req.requesterId),
        req.amount,
        recipient_phone=req.recipientPhone,
        recipient_address=req.recipientAddress,
        recipient_label=req.recipientLabel,
    )
    plan = op.payload
    return SendResponse(
        kind=op.kind,
        route=plan.route,
        amount=str(plan.amount),
        feeEstimate=str(plan.feeEstimate),
        totalCost=str(plan.totalCost),
        reply=prompt,
    )


@router.post("/wallets", response_model=WalletResponse)
async def create_wallet(req: WalletRequest):
    wallet, created = await run_in_threadpool(orchestrator.register_wallet, req.phone)
    return WalletResponse(phone=wallet.phone, address=wallet.address, created=created)


@router.get("/claims/{claim_id}")
def claim_status(claim_id: str):
    view = hold_manager.get_claim_status(claim_id)
    if view is None:
        raise HTTPException(status_code=404, detail="Claim not found")
    return view


@router.get("/claims", response_model=ClaimList)
def pending_claims(recipientPhone: str = Query(...)):
    phone = normalize_phone(recipientPhone)
    return ClaimList(recipientPhone=phone, claims=hold_manager.list_pending_for_recipient(phone))
