"""
Sandbox Store Backend - In-memory store for tests and local demos.

Behaves like a store sandbox environment: a fixed catalog, purchases that
succeed unless scripted otherwise, a purchase history that restore replays,
and deferred purchases that an "approver" completes later.
"""

import asyncio
from dataclasses import replace
from decimal import Decimal

from structlog import get_logger

from iap_manager.exceptions import RestoreFailedError, ServiceUnreachableError
from iap_manager.models.domain import (
    Product,
    ProductLookup,
    RestoredTransaction,
    RestoreResult,
    TransactionOutcome,
    TransactionState,
)
from iap_manager.services.backend import TransactionUpdateHandler

logger = get_logger(__name__)


# Catalog used by the demo storefront: a non-consumable and a subscription
SODA_POP_CATALOG: tuple[Product, ...] = (
    Product(
        identifier="DigitalSodaPop",
        title="Soda Pop",
        formatted_price="$0.99",
        price=Decimal("0.99"),
        description="A single refreshing digital soda pop.",
        locale="en_US",
    ),
    Product(
        identifier="MonthlySodaPop",
        title="Monthly Soda Pop",
        formatted_price="$2.99",
        price=Decimal("2.99"),
        description="A fresh soda pop every month.",
        locale="en_US",
    ),
)


class SandboxStoreBackend:
    """Scriptable in-memory StoreBackend."""

    def __init__(
        self,
        catalog: tuple[Product, ...] | list[Product] = SODA_POP_CATALOG,
        can_make_payments: bool = True,
        latency: float = 0.0,
    ) -> None:
        """
        Initialize the sandbox.

        Args:
            catalog: Products the store knows about
            can_make_payments: Result of the startup capability check
            latency: Seconds each async call sleeps before answering
        """
        self.catalog: dict[str, Product] = {p.identifier: p for p in catalog}
        self.payments_allowed = can_make_payments
        self.latency = latency
        self.reachable = True
        self.restore_error: str | None = None

        self.history: list[str] = []
        self.product_requests: list[set[str]] = []
        self.submitted: list[tuple[str, str]] = []

        self._scripted: dict[str, list[TransactionOutcome | str | Exception]] = {}
        self._deferred: dict[str, str] = {}  # token -> product identifier
        self._update_handler: TransactionUpdateHandler | None = None

    # ========================================================================
    # StoreBackend
    # ========================================================================

    def can_make_payments(self) -> bool:
        return self.payments_allowed

    def set_update_handler(self, handler: TransactionUpdateHandler) -> None:
        self._update_handler = handler

    async def request_products(self, identifiers: set[str]) -> ProductLookup:
        await self._wait()
        self.product_requests.append(set(identifiers))
        if not self.reachable:
            raise ServiceUnreachableError("sandbox is offline")

        products = {i: self.catalog[i] for i in identifiers if i in self.catalog}
        invalid = sorted(i for i in identifiers if i not in self.catalog)
        return ProductLookup(products=products, invalid_identifiers=invalid)

    async def submit_purchase(self, product: Product, token: str) -> TransactionOutcome:
        await self._wait()
        self.submitted.append((product.identifier, token))
        if not self.reachable:
            raise ServiceUnreachableError("sandbox is offline")

        state = self._next_script(product.identifier)
        if isinstance(state, Exception):
            raise state
        if isinstance(state, str):
            return TransactionOutcome.failed(token, state)
        outcome = replace(state, token=token)

        if outcome.state == TransactionState.DEFERRED:
            self._deferred[token] = product.identifier
        elif outcome.state.is_success:
            self.history.append(product.identifier)

        logger.debug(
            "sandbox_purchase_answered",
            product_id=product.identifier,
            state=outcome.state.value,
        )
        return outcome

    async def restore_completed_transactions(self) -> RestoreResult:
        await self._wait()
        if not self.reachable:
            raise ServiceUnreachableError("sandbox is offline")
        if self.restore_error is not None:
            raise RestoreFailedError(self.restore_error)
        return RestoreResult(transactions=[RestoredTransaction(i) for i in self.history])

    # ========================================================================
    # Scripting
    # ========================================================================

    def script_purchase(self, identifier: str, *outcomes: TransactionState | str | Exception) -> None:
        """
        Queue the next outcomes for purchases of a product.

        A TransactionState is answered as-is, a str fails with that message,
        an Exception is raised from submit_purchase. Unscripted purchases succeed.
        """
        queue = self._scripted.setdefault(identifier, [])
        for item in outcomes:
            if isinstance(item, TransactionState):
                # Placeholder token; replaced with the real one on submission
                queue.append(TransactionOutcome(item, ""))
            else:
                queue.append(item)

    def add_history(self, *identifiers: str) -> None:
        """Pretend the account bought these products on another device."""
        self.history.extend(identifiers)

    def _next_script(self, identifier: str) -> TransactionOutcome | str | Exception:
        queue = self._scripted.get(identifier)
        if queue:
            return queue.pop(0)
        return TransactionOutcome.purchased("")

    @property
    def deferred_tokens(self) -> list[str]:
        return list(self._deferred)

    def approve(self, token: str) -> None:
        """Complete a deferred purchase successfully."""
        identifier = self._deferred.pop(token)
        self.history.append(identifier)
        self._notify(TransactionOutcome.purchased(token))

    def decline(self, token: str, reason: str = "Request declined by approver") -> None:
        """Fail a deferred purchase."""
        self._deferred.pop(token)
        self._notify(TransactionOutcome.failed(token, reason))

    def _notify(self, outcome: TransactionOutcome) -> None:
        if self._update_handler is None:
            logger.warning("sandbox_update_dropped", token=outcome.token)
            return
        self._update_handler(outcome)

    async def _wait(self) -> None:
        # Always yield so callers observe real suspension points
        await asyncio.sleep(self.latency)
