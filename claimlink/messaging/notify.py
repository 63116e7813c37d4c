from rq import Retry

from claimlink.messaging.gateway import send_message
from claimlink.observability.logging import log
from claimlink.queue.rq_conn import get_queue
from claimlink.settings import settings

_RETRY_INTERVALS = [5, 15, 30, 60, 120]


def notify(requester_id: str, text: str, *, kind: str = "info") -> str:
    """
    Deliver a message inline; if the gateway is unavailable, hand it to an RQ job.
    Returns "sent", "queued" or "failed".
    """
    if not requester_id:
        return "failed"

    if send_message(requester_id, text):
        return "sent"

    # Lazy import: jobs -> core modules -> notify
    from claimlink.queue.jobs import send_notification_job

    max_retries = int(settings.NOTIFY_MAX_RETRIES or 1)
    try:
        q = get_queue()
        job = q.enqueue(
            send_notification_job,
            requester_id,
            text,
            retry=Retry(max=max_retries, interval=_RETRY_INTERVALS[:max_retries]),
        )
    except Exception as e:
        log(event="notification_enqueue_failed", requesterId=requester_id, kind=kind,
            errorType=type(e).__name__, error=str(e)[:200])
        return "failed"

    log(event="notification_enqueued", requesterId=requester_id, kind=kind,
        rq_job_id=getattr(job, "id", "") or "")
    return "queued"
