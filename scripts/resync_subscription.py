"""Re-apply the provider's current state of one subscription to its local record.

Run with:

    python -m scripts.resync_subscription --subscription-id sub_123

Use it for records whose webhook processing failed and was logged.
Requires SUPABASE_URL/SUPABASE_SERVICE_ROLE_KEY and STRIPE_SECRET_KEY environment variables.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict


def get_reconciler():
    # Lazy imports so .env is loaded before CONFIG is read
    from billsync.billing import WebhookReconciler, get_billing_provider
    from billsync.db import get_database_client

    return WebhookReconciler(get_database_client(), get_billing_provider())


def dump(obj: Dict[str, Any]) -> str:
    return json.dumps(obj, indent=2, sort_keys=True, default=str)


def resync(subscription_id: str, *, reconciler=None) -> int:
    from billsync.billing.errors import BillingError
    from billsync.logger import log

    reconciler = reconciler or get_reconciler()
    try:
        record = reconciler.resync(subscription_id)
    except BillingError as exc:
        print(f"Resync failed: {exc.message}", file=sys.stderr)
        return 1

    log("Resynced subscription", subscription_id=subscription_id, status=record.status.value)
    print("Subscription record:\n" + dump(record.to_dict()))
    return 0


def main(argv=None) -> int:
    from billsync.config import load_envs

    parser = argparse.ArgumentParser(description="Resync a subscription record from Stripe")
    parser.add_argument("--subscription-id", required=True, help="Stripe subscription id (sub_...)")
    parser.add_argument("--env-dir", default=".", help="Directory holding the .env file")
    args = parser.parse_args(argv)

    load_envs(args.env_dir)
    return resync(args.subscription_id)


if __name__ == "__main__":
    raise SystemExit(main())
