from fastapi import APIRouter, Depends, Query
from starlette.concurrency import run_in_threadpool

from claimlink.api.auth import require_admin
from claimlink.core.expiry_sweep import refund_expired
from claimlink.core.hold_manager import claim_view
from claimlink.core.reconciler import reconcile_pending_transactions
from claimlink.store import claim_repo
import claimlink.observability.metrics as metrics

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/claims/failed")
def failed_claims(limit: int = Query(50, ge=1, le=500), _=Depends(require_admin)):
    """Most recent failed settlements, for manual investigation."""
    return {"claims": [claim_view(c) for c in claim_repo.list_failed(limit)]}


@router.post("/sweep")
async def run_sweep(_=Depends(require_admin)):
    """Run one expiry sweep pass inline."""
    return await run_in_threadpool(refund_expired)


@router.post("/reconcile")
async def run_reconcile(_=Depends(require_admin)):
    return await run_in_threadpool(reconcile_pending_transactions)


@router.get("/stats")
def get_stats(_=Depends(require_admin)):
    """
    Operations snapshot backed by Redis counters.
    """
    return metrics.get_ops_snapshot()
