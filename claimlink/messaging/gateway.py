"""
Outbound messaging gateway client.

send_message() never raises: it returns False on transport errors and non-2xx
responses so callers can fall back to the queue. deliver_or_raise() is the
worker-side variant that raises, letting RQ's Retry reschedule the job.
"""
import time

import httpx

from claimlink.observability.logging import log
from claimlink.settings import settings


class DeliveryFailed(RuntimeError):
    pass


def _post(requester_id: str, text: str, timeout: float) -> httpx.Response:
    url = settings.MESSAGING_GATEWAY_URL.rstrip("/") + "/send"
    with httpx.Client(timeout=timeout) as client:
        return client.post(url, json={"to": requester_id, "text": text})


def send_message(requester_id: str, text: str, *, timeout: float = 0) -> bool:
    if not settings.MESSAGING_GATEWAY_URL:
        log(event="message_send_skipped_no_url", requesterId=requester_id)
        return False

    timeout = float(timeout or settings.MESSAGING_TIMEOUT_SEC)
    start = time.monotonic()
    try:
        resp = _post(requester_id, text, timeout)
    except httpx.HTTPError as e:
        log(event="message_send_exception", requesterId=requester_id,
            errorType=type(e).__name__, error=str(e)[:200])
        return False

    elapsed_ms = int((time.monotonic() - start) * 1000)
    if 200 <= resp.status_code < 300:
        log(event="message_sent", requesterId=requester_id, statusCode=int(resp.status_code), elapsedMs=elapsed_ms)
        return True

    log(event="message_send_non2xx", requesterId=requester_id, statusCode=int(resp.status_code),
        elapsedMs=elapsed_ms, responseText=(resp.text or "")[:300])
    return False


def deliver_or_raise(requester_id: str, text: str) -> None:
    if not send_message(requester_id, text):
        raise DeliveryFailed(f"message delivery to {requester_id} failed")
