"""
Observability Metrics & Operations Snapshot
-------------------------------------------
Lightweight Redis counters/timers plus a single snapshot function consumed by
/admin/stats. Missing keys (first boot) read as zero.
"""
from __future__ import annotations
import time
from typing import List, Tuple
from claimlink.store.redis_conn import get_redis
from claimlink.store.claim_repo import K_FAILED, K_PENDING_EXPIRY
from claimlink.store.transaction_repo import K_PENDING as K_TX_PENDING

# Counters (INCR)
K_HOLDS = "metrics:holds:created"
K_CLAIMS = "metrics:claims:settled"
K_REFUNDS = "metrics:refunds:completed"
K_SETTLE_FAIL = "metrics:settlements:failed"
K_DIRECT = "metrics:direct:sent"

# Latencies (LPUSH ms)
K_SWEEP_LAT = "metrics:sweep:latencies"
K_RECON_LAT = "metrics:reconcile:latencies"

_MAX_SAMPLES = 500  # cap to bound percentile computation cost


def _percentile(data: List[float], p: float) -> float:
    """Deterministic percentile (nearest-rank on sorted data)."""
    if not data:
        return 0.0
    d = sorted(data)
    k = max(1, int(round(p * len(d))))
    return float(d[k - 1])


def _incr(key: str) -> None:
    r = get_redis()
    r.incr(key, 1)


def increment_holds_created() -> None:
    _incr(K_HOLDS)


def increment_claims_settled() -> None:
    _incr(K_CLAIMS)


def increment_refunds_completed() -> None:
    _incr(K_REFUNDS)


def increment_settlements_failed() -> None:
    _incr(K_SETTLE_FAIL)


def increment_direct_sent() -> None:
    _incr(K_DIRECT)


def _record_latency(key: str, ms: int) -> None:
    try:
        ms = int(ms)
    except (TypeError, ValueError):
        return
    r = get_redis()
    r.lpush(key, ms)
    r.ltrim(key, 0, _MAX_SAMPLES - 1)


def record_sweep_latency(ms: int) -> None:
    _record_latency(K_SWEEP_LAT, ms)


def record_reconcile_latency(ms: int) -> None:
    _record_latency(K_RECON_LAT, ms)


def _read_latency_list(key: str) -> List[float]:
    r = get_redis()
    out: List[float] = []
    for x in r.lrange(key, 0, _MAX_SAMPLES - 1) or []:
        try:
            out.append(float(x) / 1000.0)  # seconds
        except (TypeError, ValueError):
            continue
    return out


def _p50_p95(latencies_s: List[float]) -> Tuple[float, float]:
    if not latencies_s:
        return 0.0, 0.0
    return _percentile(latencies_s, 0.50), _percentile(latencies_s, 0.95)


def get_ops_snapshot() -> dict:
    """
    Shape consumed by /admin/stats:
      - counters: holds created, claims settled, refunds, failed settlements, direct sends
      - backlog: pending claims awaiting claim/expiry, pending transaction records
      - p50/p95 sweep and reconcile run latencies (seconds)
      - recent failed claim id prefixes
    """
    r = get_redis()

    p50_sweep, p95_sweep = _p50_p95(_read_latency_list(K_SWEEP_LAT))
    p50_recon, p95_recon = _p50_p95(_read_latency_list(K_RECON_LAT))

    recent_failed = [str(x)[:8] for x in (r.lrange(K_FAILED, 0, 19) or [])]

    return {
        "holds_created": int(r.get(K_HOLDS) or 0),
        "claims_settled": int(r.get(K_CLAIMS) or 0),
        "refunds_completed": int(r.get(K_REFUNDS) or 0),
        "settlements_failed": int(r.get(K_SETTLE_FAIL) or 0),
        "direct_sent": int(r.get(K_DIRECT) or 0),
        "pending_claims": int(r.zcard(K_PENDING_EXPIRY) or 0),
        "pending_transactions": int(r.zcard(K_TX_PENDING) or 0),
        "p50_sweep_latency": round(p50_sweep, 3),
        "p95_sweep_latency": round(p95_sweep, 3),
        "p50_reconcile_latency": round(p50_recon, 3),
        "p95_reconcile_latency": round(p95_recon, 3),
        "recent_failed_claims": recent_failed,
        "snapshot_at": int(time.time()),
    }
