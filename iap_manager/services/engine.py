"""
Purchase Transaction Engine - Drives purchases and restores through the store.

Every operation follows the same shape: open a busy scope, call the backend,
close the busy scope, move the transaction through its state machine, record
the entitlement on success, and dispatch exactly one terminal event.
"""

import asyncio
import threading
import time
from dataclasses import replace
from uuid import uuid4

from structlog import get_logger

from iap_manager.exceptions import (
    InvalidProductError,
    PaymentsDisabledError,
    PurchaseFailedError,
    RestoreFailedError,
)
from iap_manager.models.domain import (
    Product,
    ProductLookup,
    RestoreOutcome,
    Transaction,
    TransactionOutcome,
    TransactionState,
)
from iap_manager.models.events import (
    PaymentsUnavailable,
    PurchaseDeferred,
    PurchaseFailed,
    PurchaseSucceeded,
    RestoreCompleted,
    RestoreEmpty,
    RestoreFailed,
)
from iap_manager.observability.logging import log_context
from iap_manager.observability.metrics import metrics
from iap_manager.observability.tracing import trace_operation
from iap_manager.services.backend import StoreBackend
from iap_manager.services.busy import BusyTracker
from iap_manager.services.dispatcher import EventDispatcher
from iap_manager.services.entitlements import EntitlementStore
from iap_manager.services.product_cache import ProductCache

logger = get_logger(__name__)


class PurchaseEngine:
    """Purchase and restore state machine over a StoreBackend."""

    def __init__(
        self,
        backend: StoreBackend,
        entitlements: EntitlementStore,
        busy: BusyTracker,
        dispatcher: EventDispatcher,
        cache: ProductCache | None = None,
    ) -> None:
        """
        Initialize the engine and register for out-of-band transaction updates.

        Args:
            backend: Platform purchase service binding
            entitlements: Durable purchase flags
            busy: Busy tracker shared with the presentation layer
            dispatcher: Receives terminal outcomes
            cache: Product cache, built over the backend if omitted
        """
        self.backend = backend
        self.entitlements = entitlements
        self.busy = busy
        self.dispatcher = dispatcher
        self.cache = cache if cache is not None else ProductCache(backend, busy)

        self._transactions: dict[str, Transaction] = {}
        self._lock = threading.RLock()
        self._payments_enabled: bool | None = None

        backend.set_update_handler(self.handle_transaction_update)

    # ========================================================================
    # Startup
    # ========================================================================

    def initialize(self) -> bool:
        """
        Query payment capability once and cache it.

        Dispatches PaymentsUnavailable when the device cannot pay, so callers
        learn it here rather than when a purchase is attempted.
        """
        if self._payments_enabled is None:
            self._payments_enabled = bool(self.backend.can_make_payments())
            logger.info("payments_capability_checked", enabled=self._payments_enabled)
            if not self._payments_enabled:
                self.dispatcher.dispatch(PaymentsUnavailable())
        return self._payments_enabled

    @property
    def payments_enabled(self) -> bool:
        return self.initialize()

    @property
    def pending_transactions(self) -> dict[str, TransactionState]:
        """In-flight and deferred transactions by correlation token."""
        with self._lock:
            return {token: t.state for token, t in self._transactions.items()}

    # ========================================================================
    # Products
    # ========================================================================

    async def request_products(self, identifiers: set[str]) -> ProductLookup:
        """
        Fetch product metadata, serving cached entries without a backend call.

        Raises:
            ProductFetchFailedError: If the store could not be reached
        """
        with trace_operation("iap.request_products", count=len(identifiers)):
            return await self.cache.get(identifiers)

    async def request_product(self, identifier: str) -> Product:
        """
        Fetch a single product.

        Raises:
            InvalidProductError: If the store does not know the identifier
            ProductFetchFailedError: If the store could not be reached
        """
        lookup = await self.request_products({identifier})
        product = lookup.get(identifier)
        if product is None or identifier in lookup.invalid_identifiers:
            logger.warning("invalid_product_requested", product_id=identifier)
            metrics.record_error("InvalidProductError", "request_product")
            raise InvalidProductError(identifier)
        return product

    # ========================================================================
    # Purchases
    # ========================================================================

    async def purchase(self, product: Product) -> TransactionOutcome:
        """
        Purchase a product.

        Backend failures, including exceptions raised by the binding, come
        back as a FAILED outcome and a PurchaseFailed event. A cancelled
        purchase is failed with "Purchase cancelled" before the
        cancellation propagates.

        Returns:
            The first outcome reported by the store

        Raises:
            PaymentsDisabledError: If the device cannot make payments
        """
        if not self.payments_enabled:
            raise PaymentsDisabledError()

        token = uuid4().hex
        transaction = Transaction(product_identifier=product.identifier, token=token)
        with self._lock:
            transaction.transition(TransactionState.REQUESTED)
            self._transactions[token] = transaction

        started = time.monotonic()
        with log_context(token=token, product_id=product.identifier):
            with trace_operation(
                "iap.purchase", product_id=product.identifier, token=token
            ) as span:
                logger.info("purchase_submitted", price=str(product.price))

                try:
                    with self.busy.scope():
                        try:
                            outcome = await self.backend.submit_purchase(product, token)
                        except PurchaseFailedError as exc:
                            outcome = TransactionOutcome.failed(token, exc.reason)
                        except Exception as exc:
                            logger.exception("purchase_submission_failed")
                            metrics.record_error(type(exc).__name__, "purchase")
                            outcome = TransactionOutcome.failed(token, str(exc))
                except asyncio.CancelledError:
                    logger.warning("purchase_cancelled")
                    span.set_attribute("outcome", "cancelled")
                    if self._apply_outcome(
                        transaction,
                        TransactionOutcome.failed(token, "Purchase cancelled"),
                        pending_only=True,
                    ):
                        metrics.record_purchase(TransactionState.FAILED.value, time.monotonic() - started)
                    raise

                if outcome.token != token:
                    logger.warning("purchase_outcome_token_mismatch", reported=outcome.token)
                    outcome = replace(outcome, token=token)

                if not self._apply_outcome(transaction, outcome):
                    outcome = TransactionOutcome(transaction.state, token)
                span.set_attribute("outcome", outcome.state.value)

        metrics.record_purchase(outcome.state.value, time.monotonic() - started)
        return outcome

    def handle_transaction_update(self, outcome: TransactionOutcome) -> bool:
        """
        Apply an out-of-band update, e.g. a deferred purchase being approved.

        No busy scope is opened: the user is not waiting on it.

        Returns:
            True if the update matched an in-flight transaction
        """
        with self._lock:
            transaction = self._transactions.get(outcome.token)

        if transaction is None:
            logger.warning(
                "unknown_transaction_update",
                token=outcome.token,
                state=outcome.state.value,
            )
            return False

        with log_context(token=outcome.token, product_id=transaction.product_identifier):
            logger.info("transaction_update_received", state=outcome.state.value)
            applied = self._apply_outcome(transaction, outcome)

        if applied:
            metrics.record_purchase(outcome.state.value)
        return applied

    def _apply_outcome(
        self,
        transaction: Transaction,
        outcome: TransactionOutcome,
        pending_only: bool = False,
    ) -> bool:
        """
        Transition, persist, then dispatch outside the lock.

        With pending_only, a transaction that already finished is left alone.
        """
        with self._lock:
            if transaction.state.is_terminal and (
                pending_only or outcome.state == TransactionState.DEFERRED
            ):
                # Completed out-of-band before submit_purchase returned
                logger.debug("stale_outcome_ignored", state=outcome.state.value)
                return False

            previous = transaction.transition(outcome.state)
            if outcome.state.is_terminal:
                self._transactions.pop(transaction.token, None)
            if outcome.state.is_success:
                self.entitlements.mark_as_purchased(transaction.product_identifier)

        identifier = transaction.product_identifier
        if outcome.state.is_success:
            logger.info("purchase_succeeded", state=outcome.state.value)
            self.dispatcher.dispatch(
                PurchaseSucceeded(
                    identifier=identifier,
                    token=transaction.token,
                    restored=outcome.state == TransactionState.RESTORED,
                )
            )
        elif outcome.state == TransactionState.FAILED:
            logger.warning("purchase_failed", error=outcome.error)
            self.dispatcher.dispatch(
                PurchaseFailed(
                    identifier=identifier,
                    token=transaction.token,
                    error=outcome.error or "Purchase failed",
                )
            )
        elif previous != TransactionState.DEFERRED:
            logger.info("purchase_deferred")
            self.dispatcher.dispatch(PurchaseDeferred(identifier=identifier, token=transaction.token))
        return True

    # ========================================================================
    # Restore
    # ========================================================================

    async def restore_purchases(self) -> RestoreOutcome:
        """
        Restore purchases the store remembers but this install has lost.

        Dispatches exactly one of RestoreEmpty, RestoreCompleted or RestoreFailed.
        """
        with trace_operation("iap.restore") as span:
            logger.info("restore_started")
            error: str | None = None

            with self.busy.scope():
                try:
                    result = await self.backend.restore_completed_transactions()
                except RestoreFailedError as exc:
                    error = exc.reason
                except Exception as exc:
                    logger.exception("restore_request_failed")
                    error = str(exc) or type(exc).__name__

            if error is not None:
                logger.warning("restore_failed", error=error)
                metrics.record_error("RestoreFailedError", "restore")
                metrics.record_restore("failed")
                span.set_attribute("outcome", "failed")
                self.dispatcher.dispatch(RestoreFailed(error=error))
                return RestoreOutcome(success=False, error=error)

            identifiers = result.identifiers if result is not None else []
            if not identifiers:
                logger.info("restore_empty")
                metrics.record_restore("empty")
                span.set_attribute("outcome", "empty")
                self.dispatcher.dispatch(RestoreEmpty())
                return RestoreOutcome(success=True)

            with self._lock:
                for identifier in identifiers:
                    self.entitlements.mark_as_purchased(identifier)

            logger.info("restore_completed", count=len(identifiers), identifiers=identifiers)
            metrics.record_restore("completed", len(identifiers))
            span.set_attribute("outcome", "completed")
            self.dispatcher.dispatch(
                RestoreCompleted(count=len(identifiers), identifiers=list(identifiers))
            )
            return RestoreOutcome(success=True, identifiers=list(identifiers))

    # ========================================================================
    # Entitlements
    # ========================================================================

    def is_purchased(self, identifier: str) -> bool:
        """Check local purchase memory. Never touches the network or the busy tracker."""
        return self.entitlements.is_purchased(identifier)
