#!/usr/bin/env python3
"""
Enqueue the periodic jobs at their fixed intervals.

Run alongside one or more `rq worker escrow` processes:
    python scripts/run_scheduler.py
"""
import time

from claimlink.observability.logging import log
from claimlink.queue.jobs import run_expiry_sweep_job, run_reconcile_job
from claimlink.queue.rq_conn import get_queue
from claimlink.settings import settings


def tick(q, due: dict, now: float) -> dict:
    """Enqueue every job whose next run time has passed; returns the updated schedule."""
    schedule = (
        ("expiry_sweep", run_expiry_sweep_job, settings.SWEEP_INTERVAL_SEC),
        ("reconcile", run_reconcile_job, settings.RECONCILE_INTERVAL_SEC),
    )
    for name, fn, interval in schedule:
        if now >= due.get(name, 0):
            job = q.enqueue(fn)
            log(event="scheduler_enqueued", job=name, rq_job_id=getattr(job, "id", "") or "")
            due[name] = now + int(interval)
    return due


def main():
    q = get_queue()
    due: dict = {}
    log(event="scheduler_start", sweepIntervalSec=settings.SWEEP_INTERVAL_SEC,
        reconcileIntervalSec=settings.RECONCILE_INTERVAL_SEC)
    while True:
        due = tick(q, due, time.time())
        time.sleep(1)


if __name__ == "__main__":
    main()
