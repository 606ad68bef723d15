#!/usr/bin/env python3
"""
Reconcile deposits that never received a final webhook.

Polls pawaPay for every payment still pending or processing that is older
than --min-age-minutes and applies the answer through the same state machine
the webhook uses, so completed deposits activate the subscription exactly once.

Usage:
    python scripts/reconcile_deposits.py [--min-age-minutes 15] [--limit 100] [--dry-run]

Environment Variables:
    DATABASE_URL, PAWAPAY_API_TOKEN, PAWAPAY_ENVIRONMENT (optional, can use .env file)
"""

import argparse
import os
import sys
from datetime import timedelta

# Add parent directory to path so we can import from the project
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from database import SessionLocal
from models.payment import Payment, PaymentStatus
from services.pawapay_service import create_pawapay_client
from services.payment_service import PaymentOrchestrator, PaymentDeliveryError
from utils.datetime_helpers import utcnow
from utils.logger_factory import new_logger

logger = new_logger("reconcile_deposits")


def find_stale_payments(db, min_age_minutes: int, limit: int):
    cutoff = utcnow() - timedelta(minutes=min_age_minutes)
    return (
        db.query(Payment)
        .filter(
            Payment.status.in_((PaymentStatus.PENDING, PaymentStatus.PROCESSING)),
            Payment.created_at < cutoff,
        )
        .order_by(Payment.created_at)
        .limit(limit)
        .all()
    )


def reconcile(db, orchestrator: PaymentOrchestrator, min_age_minutes: int, limit: int, dry_run: bool = False):
    stale = find_stale_payments(db, min_age_minutes, limit)
    logger.info(f"Found {len(stale)} unsettled payments older than {min_age_minutes} minutes")
    summary = {"checked": 0, "settled": 0, "activated": 0, "errors": 0}
    deposit_ids = [payment.deposit_id for payment in stale]
    for deposit_id in deposit_ids:
        if dry_run:
            logger.info(f"[dry-run] would poll deposit {deposit_id}")
            continue
        summary["checked"] += 1
        try:
            result = orchestrator.check_deposit_status(deposit_id)
        except PaymentDeliveryError as e:
            summary["errors"] += 1
            logger.error(f"Could not poll deposit {deposit_id}: {e}")
            continue
        record = result.get("payment_record") or {}
        if PaymentStatus.is_terminal(record.get("status")):
            summary["settled"] += 1
        if result.get("user_subscription_updated"):
            summary["activated"] += 1
        logger.info(f"Deposit {deposit_id}: pawaPay={result['status']} local={record.get('status')}")
    return summary


def main():
    parser = argparse.ArgumentParser(description="Poll pawaPay for deposits stuck in pending/processing.")
    parser.add_argument("--min-age-minutes", type=int, default=15, help="Only poll payments older than this (default: 15)")
    parser.add_argument("--limit", type=int, default=100, help="Maximum payments to poll in one run (default: 100)")
    parser.add_argument("--dry-run", action="store_true", help="List the payments without polling")
    args = parser.parse_args()

    db = SessionLocal()
    try:
        orchestrator = PaymentOrchestrator(db, create_pawapay_client())
        summary = reconcile(db, orchestrator, args.min_age_minutes, args.limit, dry_run=args.dry_run)
    finally:
        db.close()
    logger.info(f"Reconciliation finished: {summary}")


if __name__ == "__main__":
    main()
