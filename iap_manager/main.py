"""
Main Application - Wires the purchase manager together.

    engine = build_purchase_engine(MyStoreKitBinding())
    engine.dispatcher.observe(PurchaseSucceeded, show_thanks)
    if engine.initialize():
        product = await engine.request_product("DigitalSodaPop")
"""

from iap_manager.config import settings
from iap_manager.db.session import close_engines
from iap_manager.db.store import KeyValueStore, SQLKeyValueStore
from iap_manager.observability import get_logger, setup_logging, setup_tracing
from iap_manager.services.backend import StoreBackend
from iap_manager.services.busy import BusyObserver, BusyTracker, DispatchingBusyObserver
from iap_manager.services.dispatcher import EventDispatcher
from iap_manager.services.engine import PurchaseEngine
from iap_manager.services.entitlements import EntitlementStore
from iap_manager.services.product_cache import ProductCache

logger = get_logger(__name__)


def configure_observability() -> None:
    """Set up logging and tracing before anything logs."""
    setup_logging()
    setup_tracing()
    logger.info(
        "purchase_manager_starting",
        service=settings.service_name,
        version=settings.service_version,
        tracing_enabled=settings.tracing_enabled,
        metrics_enabled=settings.metrics_enabled,
    )


def build_purchase_engine(
    backend: StoreBackend,
    storage: KeyValueStore | None = None,
    dispatcher: EventDispatcher | None = None,
    busy_observers: list[BusyObserver] | None = None,
) -> PurchaseEngine:
    """
    Build a PurchaseEngine with its collaborators.

    Args:
        backend: Platform purchase service binding
        storage: Entitlement storage, defaults to SQL storage at settings.storage_url
        dispatcher: Event dispatcher, a new one if omitted
        busy_observers: Extra busy indicator observers; LoadingStarted and
            LoadingEnded are always dispatched as events too

    Returns:
        Engine whose dispatcher, busy tracker and cache are reachable as attributes
    """
    dispatcher = dispatcher or EventDispatcher()
    busy = BusyTracker([DispatchingBusyObserver(dispatcher), *(busy_observers or [])])
    entitlements = EntitlementStore(storage if storage is not None else SQLKeyValueStore())
    cache = ProductCache(backend, busy)

    engine = PurchaseEngine(
        backend=backend,
        entitlements=entitlements,
        busy=busy,
        dispatcher=dispatcher,
        cache=cache,
    )
    logger.debug("purchase_engine_built", backend=type(backend).__name__)
    return engine


def shutdown() -> None:
    """Release database connections."""
    logger.info("purchase_manager_shutting_down")
    close_engines()
