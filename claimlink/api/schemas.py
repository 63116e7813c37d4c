from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field


class InboundEvent(BaseModel):
    requesterId: str
    text: str = ""
    reactionGlyph: Optional[str] = None
    # Gateways send epoch ms or ISO-8601
    timestamp: Union[int, str, None] = None


class EventResponse(BaseModel):
    status: Literal["success", "error"] = "success"
    reply: str


class SendRequest(BaseModel):
    requesterId: str
    amount: str
    recipientPhone: Optional[str] = None
    recipientAddress: Optional[str] = None
    recipientLabel: Optional[str] = None


class SendResponse(BaseModel):
    status: Literal["awaiting_confirmation", "error"] = "awaiting_confirmation"
    kind: Optional[str] = None
    route: Optional[str] = None
    amount: Optional[str] = None
    feeEstimate: Optional[str] = None
    totalCost: Optional[str] = None
    reply: str


class WalletRequest(BaseModel):
    phone: str


class WalletResponse(BaseModel):
    phone: str
    address: str
    created: bool


class ErrorResponse(BaseModel):
    status: Literal["error"] = "error"
    reason: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class ClaimList(BaseModel):
    recipientPhone: str
    claims: List[Dict[str, Any]] = Field(default_factory=list)
