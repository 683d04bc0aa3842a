#!/usr/bin/env python3
"""
Pending Order Reconciliation

Settles orders whose payment Razorpay captured but that were never verified
(client closed the tab, verify request lost, webhook not delivered). Each
captured payment goes through the same conditional settlement as client
verification, so running this concurrently with live traffic is safe.

Usage:
    # Reconcile orders pending for more than 15 minutes (default - for cron)
    python3 scripts/reconcile_pending_orders.py

    # Custom age threshold and batch size
    python3 scripts/reconcile_pending_orders.py --older-than 3600 --limit 500

    # Report only, no settlement
    python3 scripts/reconcile_pending_orders.py --dry-run
"""

import argparse
import asyncio
import os
import sys
from collections import Counter

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog

from app.config import settings
from app.db.session import close_engines, get_write_session
from app.exceptions import PaymentProviderError
from app.observability.logging import setup_logging
from app.services.ledger import LedgerStore
from app.services.purchases import PurchaseService
from app.services.razorpay_provider import build_payment_provider

logger = structlog.get_logger()

DEFAULT_OLDER_THAN_SECONDS = 15 * 60
DEFAULT_LIMIT = 100


async def reconcile(older_than_seconds: int, limit: int, dry_run: bool) -> Counter[str]:
    """Reconcile one batch of stale pending orders. Returns outcome counts."""
    provider = build_payment_provider(settings)
    if provider is None:
        logger.error("razorpay_not_configured")
        raise SystemExit(1)

    outcomes: Counter[str] = Counter()
    async with get_write_session() as session:
        pending = await LedgerStore(session).list_pending(older_than_seconds, limit=limit)
        logger.info("pending_orders_found", count=len(pending), older_than=older_than_seconds)

        service = PurchaseService(session, provider)
        for order in pending:
            if dry_run:
                payments = await provider.fetch_order_payments(order.external_order_id)
                captured = [p.payment_id for p in payments if p.is_captured]
                logger.info(
                    "reconcile_dry_run",
                    external_order_id=order.external_order_id,
                    captured_payments=captured,
                )
                outcomes["dry_run"] += 1
                continue

            try:
                outcome = await service.reconcile_order(order)
            except PaymentProviderError as exc:
                logger.warning(
                    "reconcile_order_failed",
                    external_order_id=order.external_order_id,
                    error=str(exc),
                )
                outcome = "gateway_error"
            outcomes[outcome] += 1

    return outcomes


async def run(args: argparse.Namespace) -> None:
    try:
        outcomes = await reconcile(args.older_than, args.limit, args.dry_run)
    finally:
        await close_engines()
    logger.info("reconciliation_complete", **dict(outcomes))


def main():
    parser = argparse.ArgumentParser(
        description="Settle captured Razorpay payments left on pending orders",
    )
    parser.add_argument(
        "--older-than",
        type=int,
        default=DEFAULT_OLDER_THAN_SECONDS,
        help="Only orders pending longer than this many seconds",
    )
    parser.add_argument("--limit", type=int, default=DEFAULT_LIMIT, help="Batch size")
    parser.add_argument(
        "--dry-run", action="store_true", help="Report captured payments without settling"
    )
    args = parser.parse_args()

    setup_logging()
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
