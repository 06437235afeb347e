#!/usr/bin/env python3
"""
Demo Storefront Script

Walks through the purchase manager against the sandbox store:
1) Checking if the user can make purchases.
2) Tracking what the user has purchased in the past.
3) Buying a single item.
4) Buying a subscription.
5) Restoring past purchases.

Alerts a real UI would show are printed instead.
"""

import argparse
import asyncio
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog

from iap_manager.db.store import InMemoryKeyValueStore, SQLKeyValueStore
from iap_manager.exceptions import InvalidProductError, ProductFetchFailedError
from iap_manager.main import build_purchase_engine, shutdown
from iap_manager.models.events import (
    LoadingEnded,
    LoadingStarted,
    PaymentsUnavailable,
    PurchaseDeferred,
    PurchaseFailed,
    PurchaseSucceeded,
    RestoreCompleted,
    RestoreEmpty,
    RestoreFailed,
)
from iap_manager.services.dispatcher import EventDispatcher
from iap_manager.services.sandbox_backend import SandboxStoreBackend

logger = structlog.get_logger()


def alert(message: str) -> None:
    print(f"[alert] {message}")


def wire_alerts(dispatcher: EventDispatcher) -> None:
    """Map every store event to the alert the demo UI would show."""
    dispatcher.observe(LoadingStarted, lambda e: print("[busy] ..."))
    dispatcher.observe(LoadingEnded, lambda e: print("[busy] done"))
    dispatcher.observe(PaymentsUnavailable, lambda e: alert(e.message))
    dispatcher.observe(PurchaseSucceeded, lambda e: alert("Thanks!"))
    dispatcher.observe(PurchaseFailed, lambda e: alert(f"ERROR: Buying failed! {e.error}"))
    dispatcher.observe(PurchaseDeferred, lambda e: alert("Waiting for approval..."))
    dispatcher.observe(RestoreEmpty, lambda e: alert(e.message))
    dispatcher.observe(RestoreCompleted, lambda e: alert(e.message))
    dispatcher.observe(RestoreFailed, lambda e: alert(e.error))


async def run(args: argparse.Namespace) -> int:
    backend = SandboxStoreBackend(can_make_payments=not args.no_payments, latency=0.05)
    if args.history:
        backend.add_history(*args.history)

    dispatcher = EventDispatcher()
    wire_alerts(dispatcher)
    storage = SQLKeyValueStore(args.storage) if args.storage else InMemoryKeyValueStore()
    engine = build_purchase_engine(backend, storage=storage, dispatcher=dispatcher)

    # 1) Can the user make payments?
    if not engine.initialize():
        return 1

    # 2) Tracking what the user has purchased in the past
    def what_have_i_purchased() -> None:
        for label, identifier in (("Single Item", "DigitalSodaPop"), ("Subscription", "MonthlySodaPop")):
            alert(f"{label}: {'Purchased!' if engine.is_purchased(identifier) else 'Not Yet'}")

    what_have_i_purchased()

    # 3) and 4) Buying a single item and a subscription
    for identifier in args.buy:
        try:
            product = await engine.request_product(identifier)
        except ProductFetchFailedError:
            alert("ERROR: We failed to talk to the store!")
            continue
        except InvalidProductError:
            alert("ERROR: We requested an invalid product!")
            continue
        print(f"Buy {product.title}, {product.formatted_price}")
        await engine.purchase(product)

    # 5) Restoring past purchases
    if args.restore:
        await engine.restore_purchases()

    what_have_i_purchased()
    shutdown()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Sandbox storefront demo")
    parser.add_argument(
        "--buy",
        nargs="*",
        default=["DigitalSodaPop", "MonthlySodaPop"],
        help="Product identifiers to buy",
    )
    parser.add_argument("--restore", action="store_true", help="Restore lost purchases")
    parser.add_argument(
        "--history", nargs="*", default=[], help="Purchases made on another device"
    )
    parser.add_argument("--no-payments", action="store_true", help="Simulate a locked-down device")
    parser.add_argument("--storage", help="SQLAlchemy URL for durable entitlements")
    args = parser.parse_args()

    logger.info("demo_storefront_starting", buy=args.buy, restore=args.restore)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
