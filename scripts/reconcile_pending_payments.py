#!/usr/bin/env python
"""Script to reconcile unpaid orders that have a payOS payment link.

This script:
1. Loads unpaid, non-cancelled orders that have a payment link
2. Asks payOS for the status of each link
3. Applies the result the same way the status check endpoint does

Run it periodically (cron) to catch payments whose webhook never arrived.

Usage:
    python scripts/reconcile_pending_payments.py

Requirements:
    - SUPABASE_* and PAYOS_* environment variables must be set
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.config import get_settings
from src.core.payos import create_payment_gateway
from src.services.order_repository import get_order_repository
from src.services.payment_service import PaymentService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

BATCH_SIZE = 100


async def reconcile_pending_payments(service: PaymentService, limit: int = BATCH_SIZE) -> dict[str, int]:
    """Reconcile one batch of pending orders.

    Args:
        service: Payment service to reconcile with.
        limit: Maximum number of orders to check.

    Returns:
        dict: Counts per outcome.
    """
    orders = await service.repository.list_unpaid_linked_orders(limit=limit)
    logger.info("Found %d unpaid orders with a payment link", len(orders))

    results = {"processed": 0, "paid": 0, "cancelled": 0, "unchanged": 0, "heuristic": 0, "failed": 0}

    for order in orders:
        results["processed"] += 1
        try:
            result = await service.reconcile_order(order)
        except Exception as e:
            logger.error("Failed to reconcile order %s: %s", order["id"], e, exc_info=True)
            results["failed"] += 1
            continue

        if result.is_paid:
            results["paid"] += 1
            if result.heuristic:
                results["heuristic"] += 1
        elif result.payment_status == "cancelled":
            results["cancelled"] += 1
        else:
            results["unchanged"] += 1
            if result.error_message:
                logger.warning("Order %s: payOS query failed: %s", order["id"], result.error_message)

    return results


async def main() -> None:
    """Main entry point for the reconciliation script."""
    settings = get_settings()
    if not settings.is_payos_configured:
        logger.error("payOS credentials are not configured")
        sys.exit(1)

    service = PaymentService(create_payment_gateway(settings), get_order_repository(), settings)
    logger.info("Starting payment reconciliation...")

    try:
        results = await reconcile_pending_payments(service)
    except Exception as e:
        logger.error(f"Reconciliation failed: {e}", exc_info=True)
        sys.exit(1)

    logger.info("=" * 60)
    logger.info("Payment reconciliation complete!")
    logger.info(f"Orders checked: {results['processed']}")
    logger.info(f"Marked paid: {results['paid']} ({results['heuristic']} by heuristic)")
    logger.info(f"Cancelled: {results['cancelled']}")
    logger.info(f"Unchanged: {results['unchanged']}")
    logger.info(f"Failed: {results['failed']}")
    logger.info("=" * 60)

    if results["failed"] > 0:
        logger.warning("Some orders failed to reconcile. Check logs for details.")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
