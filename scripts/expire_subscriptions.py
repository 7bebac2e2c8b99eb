#!/usr/bin/env python3
"""Mark lapsed paid subscriptions as expired.

Plan resolution already treats a row past ``expires_at`` as free, so this only
keeps the stored status honest for reporting.
"""
import argparse
import time

from exavy.config import load_config
from exavy.extensions import init_firestore
from exavy.services.subscription_service import expire_lapsed_subscriptions


def main():
    parser = argparse.ArgumentParser(description="Mark active subscriptions past their expiry as expired.")
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Apply changes. Without this flag, the script runs in dry-run mode.",
    )
    parser.add_argument("--limit", type=int, default=500, help="Maximum documents to process in one run.")
    args = parser.parse_args()

    db = init_firestore(load_config())
    matched, updated = expire_lapsed_subscriptions(db, now_ts=time.time(), apply_changes=args.apply, limit=args.limit)
    mode = "APPLY" if args.apply else "DRY-RUN"
    print(f"[{mode}] lapsed_active_subscriptions={matched}, updated={updated}")
    if not args.apply:
        print("No changes were written. Re-run with --apply to persist.")


if __name__ == "__main__":
    main()
