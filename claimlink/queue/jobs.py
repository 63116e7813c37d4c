from claimlink.core.expiry_sweep import refund_expired
from claimlink.core.reconciler import reconcile_pending_transactions
from claimlink.messaging.gateway import deliver_or_raise
from claimlink.observability.logging import log
from claimlink.settings import settings
from claimlink.utils.lock import LockNotAcquired, job_lock


def run_expiry_sweep_job():
    """
    Background job for one expiry sweep pass.
    The lock only avoids duplicate work; the claim compare-and-swap keeps overlapping runs safe.
    """
    try:
        with job_lock("expiry_sweep", ttl_ms=settings.JOB_LOCK_TTL_MS):
            log(event="sweep_job_start")
            return refund_expired()
    except LockNotAcquired:
        log(event="sweep_job_skipped_locked")
        return None
    except Exception as e:
        log(event="sweep_job_exception", error=str(e))
        raise


def run_reconcile_job():
    try:
        with job_lock("reconcile", ttl_ms=settings.JOB_LOCK_TTL_MS):
            log(event="reconcile_job_start")
            return reconcile_pending_transactions()
    except LockNotAcquired:
        log(event="reconcile_job_skipped_locked")
        return None
    except Exception as e:
        log(event="reconcile_job_exception", error=str(e))
        raise


def send_notification_job(requester_id: str, text: str):
    """Deferred message delivery. Raises on failure so RQ's Retry reschedules it."""
    log(event="notification_job_start", requesterId=requester_id)
    deliver_or_raise(requester_id, text)
