"""
Busy Tracker - Reference-counted indicator of in-flight store operations.

Overlapping operations collapse into a single visible busy period: observers
hear loading_started on 0 -> 1 and loading_ended on 1 -> 0, nothing else.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol

from structlog import get_logger

from iap_manager.exceptions import InvariantViolationError
from iap_manager.models.events import LoadingEnded, LoadingStarted
from iap_manager.observability.metrics import metrics
from iap_manager.services.dispatcher import EventDispatcher

logger = get_logger(__name__)


class BusyObserver(Protocol):
    """Receives busy indicator transitions."""

    def loading_started(self) -> None: ...

    def loading_ended(self) -> None: ...


class DispatchingBusyObserver:
    """Forwards busy transitions to an EventDispatcher as typed events."""

    def __init__(self, dispatcher: EventDispatcher) -> None:
        self.dispatcher = dispatcher

    def loading_started(self) -> None:
        self.dispatcher.dispatch(LoadingStarted())

    def loading_ended(self) -> None:
        self.dispatcher.dispatch(LoadingEnded())


class BusyTracker:
    """Process-wide counter of in-flight operations."""

    def __init__(self, observers: list[BusyObserver] | None = None) -> None:
        self._count = 0
        # Held across the notification so observers see started/ended in order
        self._lock = threading.RLock()
        self._observers: list[BusyObserver] = list(observers or [])

    def add_observer(self, observer: BusyObserver) -> None:
        self._observers.append(observer)

    @property
    def count(self) -> int:
        return self._count

    @property
    def is_busy(self) -> bool:
        return self._count > 0

    def begin(self) -> None:
        """Enter a busy scope."""
        with self._lock:
            self._count += 1
            metrics.set_operations_in_progress(self._count)

            if self._count == 1:
                logger.debug("loading_started")
                for observer in self._observers:
                    observer.loading_started()

    def end(self) -> None:
        """
        Leave a busy scope.

        Raises:
            InvariantViolationError: If there is no matching begin()
        """
        with self._lock:
            if self._count == 0:
                raise InvariantViolationError("BusyTracker.end() called with no open scope")
            self._count -= 1
            metrics.set_operations_in_progress(self._count)

            if self._count == 0:
                logger.debug("loading_ended")
                for observer in self._observers:
                    observer.loading_ended()

    @contextmanager
    def scope(self) -> Iterator[None]:
        """
        Busy scope that ends exactly once, however the body exits.

        Usage:
            with busy.scope():
                await backend.request_products(...)
        """
        self.begin()
        try:
            yield
        finally:
            self.end()
