"""
Event Dispatcher - Delivers typed store events to subscribers.

Handlers run synchronously on the dispatching thread, in subscription
order, so events from one transaction are never reordered.
"""

import threading
from collections.abc import Callable
from typing import TypeVar

from structlog import get_logger

from iap_manager.models.events import StoreEvent
from iap_manager.observability.metrics import metrics

logger = get_logger(__name__)

E = TypeVar("E", bound=StoreEvent)


class Subscription:
    """Handle returned by observe(); cancel() stops delivery."""

    def __init__(
        self, dispatcher: "EventDispatcher", event_type: type[StoreEvent], handler: Callable
    ) -> None:
        self._dispatcher = dispatcher
        self.event_type = event_type
        self.handler = handler
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self._dispatcher._remove(self)
            self.active = False


class EventDispatcher:
    """One-to-many typed observer registry."""

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._lock = threading.Lock()

    def observe(self, event_type: type[E], handler: Callable[[E], None]) -> Subscription:
        """
        Subscribe a handler to an event class.

        Subclasses match too, so observing StoreEvent receives everything.
        """
        subscription = Subscription(self, event_type, handler)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def dispatch(self, event: StoreEvent) -> int:
        """
        Deliver an event to every matching subscriber.

        A handler that raises is logged and counted; the remaining
        subscribers still receive the event.

        Returns:
            Number of handlers that completed without raising
        """
        with self._lock:
            targets = [s for s in self._subscriptions if isinstance(event, s.event_type)]

        event_type = type(event).__name__
        delivered = 0
        for subscription in targets:
            try:
                subscription.handler(event)
                delivered += 1
            except Exception:
                logger.exception("event_handler_failed", event_type=event_type)
                metrics.record_handler_failure(event_type)

        logger.debug("event_dispatched", event_type=event_type, subscribers=len(targets))
        return delivered
