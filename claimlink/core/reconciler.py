import time
from typing import Dict, Optional

from claimlink.chain.client import ChainClient
from claimlink.core.errors import CollaboratorError
from claimlink.observability.logging import log
import claimlink.observability.metrics as metrics
from claimlink.settings import settings
from claimlink.store import transaction_repo
from claimlink.store.models import TX_FAILED, TX_SUCCESS
from claimlink.utils.backoff import with_retry


def reconcile_pending_transactions(limit: int = 0, *, chain: Optional[ChainClient] = None) -> Dict[str, int]:
    """
    Advance pending transaction records that now have a receipt.
    Records without a receipt are left for the next cycle; settled records are never touched.
    """
    start = time.monotonic()
    limit = int(limit or settings.RECONCILE_BATCH_SIZE)
    chain = chain or ChainClient()
    summary = {"checked": 0, "success": 0, "failed": 0, "pending": 0, "errors": 0}

    for rec in transaction_repo.find_pending(limit):
        summary["checked"] += 1
        try:
            receipt = with_retry(lambda: chain.get_receipt(rec.hash), op="get_receipt")
        except CollaboratorError as e:
            summary["errors"] += 1
            log(event="reconcile_lookup_failed", txHash=rec.hash, reason=e.reason, error=str(e)[:200])
            continue

        if receipt is None:
            summary["pending"] += 1
            continue

        new_status = TX_SUCCESS if receipt.status == "success" else TX_FAILED
        if transaction_repo.advance_status(rec.hash, new_status):
            summary["success" if new_status == TX_SUCCESS else "failed"] += 1
            log(event="tx_reconciled", txHash=rec.hash, kind=rec.kind, status=new_status,
                confirmations=receipt.confirmations, claimRef=(rec.claimId or "")[:8])

    elapsed_ms = int((time.monotonic() - start) * 1000)
    metrics.record_reconcile_latency(elapsed_ms)
    log(event="reconcile_done", elapsedMs=elapsed_ms, **summary)
    return summary
