import re

from claimlink.utils.time import parse_timestamp_ms

_JID_SUFFIX = re.compile(r"@.*$")


def normalize_phone(raw) -> str:
    """Strip messaging suffixes (`@s.whatsapp.net`, `@c.us`) and every non-digit."""
    s = _JID_SUFFIX.sub("", str(raw or "").strip())
    return re.sub(r"\D", "", s)


def normalize_event_payload(payload: dict) -> dict:
    """
    Accepts the gateway's event shape and a few common variants, and converts
    them into the canonical structure expected by InboundEvent:

    {"requesterId": "...", "text": "...", "reactionGlyph": "...", "timestamp": ...}
    """
    if payload is None:
        payload = {}

    requester = (
        payload.get("requesterId")
        or payload.get("from")
        or payload.get("phone")
        or payload.get("sender")
        or ""
    )

    msg = payload.get("message")
    if isinstance(msg, dict):
        text = msg.get("text") or msg.get("body") or ""
    elif isinstance(msg, str):
        text = msg
    else:
        text = payload.get("text") or payload.get("body") or ""

    reaction = payload.get("reactionGlyph") or payload.get("reaction") or payload.get("emoji")
    if isinstance(reaction, dict):
        reaction = reaction.get("text") or reaction.get("emoji")

    timestamp = parse_timestamp_ms(payload.get("timestamp"))

    return {
        "requesterId": normalize_phone(requester),
        "text": text or "",
        "reactionGlyph": reaction or None,
        "timestamp": timestamp,
    }
