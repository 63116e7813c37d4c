#!/usr/bin/env python3
import sys
import os

print("Running preflight import check...")
try:
    # Set dummy env vars to avoid surprises during config load
    os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

    import claimlink.main
    print("Import claimlink.main: OK")

    import claimlink.queue.jobs
    print("Import claimlink.queue.jobs: OK")

    from claimlink.core.settlement_calculator import claim_policy, refund_policy
    claim_policy()
    refund_policy()
    print("Gas policies: OK")

    print("Preflight check passed.")
    sys.exit(0)
except Exception as e:
    print(f"Preflight check FAILED: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)
