"""
Pytest Configuration and Centralized Fixtures.

Provides reusable collaborators for testing the purchase manager:
- Sandbox store backend with the Soda Pop catalog
- In-memory and SQL entitlement storage
- Event recorder subscribed to every dispatched event
- Fully wired PurchaseEngine
"""

import os
from decimal import Decimal

import pytest

# Set environment variables BEFORE importing iap_manager modules
os.environ.setdefault("IAP_STORAGE_URL", "sqlite:///:memory:")
os.environ.setdefault("IAP_LOG_FORMAT", "console")
os.environ.setdefault("IAP_TRACING_ENABLED", "false")

from iap_manager.db.store import InMemoryKeyValueStore, SQLKeyValueStore
from iap_manager.models.domain import Product
from iap_manager.models.events import LoadingEnded, LoadingStarted, StoreEvent
from iap_manager.services.busy import BusyTracker, DispatchingBusyObserver
from iap_manager.services.dispatcher import EventDispatcher
from iap_manager.services.engine import PurchaseEngine
from iap_manager.services.entitlements import EntitlementStore
from iap_manager.services.product_cache import ProductCache
from iap_manager.services.sandbox_backend import SandboxStoreBackend


class EventRecorder:
    """Collects every dispatched event in delivery order."""

    def __init__(self, dispatcher: EventDispatcher) -> None:
        self.events: list[StoreEvent] = []
        dispatcher.observe(StoreEvent, self.events.append)

    def of_type(self, event_type: type) -> list:
        return [e for e in self.events if type(e) is event_type]

    def outcomes(self) -> list[StoreEvent]:
        """Events other than busy indicator transitions."""
        return [e for e in self.events if not isinstance(e, (LoadingStarted, LoadingEnded))]


# ============================================================================
# Product Fixtures
# ============================================================================


@pytest.fixture
def soda_pop() -> Product:
    """The non-consumable demo product."""
    return Product(
        identifier="DigitalSodaPop",
        title="Soda Pop",
        formatted_price="$0.99",
        price=Decimal("0.99"),
    )


@pytest.fixture
def monthly_soda_pop() -> Product:
    """The subscription demo product."""
    return Product(
        identifier="MonthlySodaPop",
        title="Monthly Soda Pop",
        formatted_price="$2.99",
        price=Decimal("2.99"),
    )


# ============================================================================
# Collaborator Fixtures
# ============================================================================


@pytest.fixture
def backend() -> SandboxStoreBackend:
    """Sandbox store that allows payments."""
    return SandboxStoreBackend()


@pytest.fixture
def storage() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def sql_storage(tmp_path) -> SQLKeyValueStore:
    """SQL storage backed by a throwaway SQLite file."""
    return SQLKeyValueStore(f"sqlite:///{tmp_path / 'entitlements.db'}")


@pytest.fixture
def dispatcher() -> EventDispatcher:
    return EventDispatcher()


@pytest.fixture
def recorder(dispatcher: EventDispatcher) -> EventRecorder:
    return EventRecorder(dispatcher)


@pytest.fixture
def busy(dispatcher: EventDispatcher) -> BusyTracker:
    return BusyTracker([DispatchingBusyObserver(dispatcher)])


@pytest.fixture
def entitlements(storage: InMemoryKeyValueStore) -> EntitlementStore:
    return EntitlementStore(storage, key_prefix="Purchased-")


@pytest.fixture
def engine(
    backend: SandboxStoreBackend,
    entitlements: EntitlementStore,
    busy: BusyTracker,
    dispatcher: EventDispatcher,
    recorder: EventRecorder,
) -> PurchaseEngine:
    """Engine over the sandbox, initialized, with an event recorder attached."""
    engine = PurchaseEngine(
        backend=backend,
        entitlements=entitlements,
        busy=busy,
        dispatcher=dispatcher,
        cache=ProductCache(backend, busy, coalesce=True),
    )
    engine.initialize()
    return engine
