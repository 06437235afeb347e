"""
Event Models - Typed events delivered to the presentation boundary.

Every event a subscriber can observe is an immutable dataclass; the
dispatcher routes on the event's class rather than on a string key.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class StoreEvent:
    """Base class for all dispatched events."""


@dataclass(frozen=True)
class LoadingStarted(StoreEvent):
    """The first in-flight operation began; show a busy indicator."""


@dataclass(frozen=True)
class LoadingEnded(StoreEvent):
    """The last in-flight operation finished; hide the busy indicator."""


@dataclass(frozen=True)
class PaymentsUnavailable(StoreEvent):
    """The device or account cannot make payments."""

    message: str = "This device cannot make purchases!"


@dataclass(frozen=True)
class PurchaseSucceeded(StoreEvent):
    """A purchase reached PURCHASED or RESTORED and was recorded."""

    identifier: str
    token: str
    restored: bool = False


@dataclass(frozen=True)
class PurchaseFailed(StoreEvent):
    """A purchase was declined, cancelled, or could not be submitted."""

    identifier: str
    token: str
    error: str


@dataclass(frozen=True)
class PurchaseDeferred(StoreEvent):
    """A purchase is waiting on out-of-band approval."""

    identifier: str
    token: str


@dataclass(frozen=True)
class RestoreEmpty(StoreEvent):
    """Restore succeeded but the account has no completed transactions."""

    message: str = "There were no purchases to restore!"


@dataclass(frozen=True)
class RestoreCompleted(StoreEvent):
    """Restore succeeded and re-recorded every returned product."""

    count: int
    identifiers: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"Restored {self.count} purchases!"


@dataclass(frozen=True)
class RestoreFailed(StoreEvent):
    """Restore failed or was cancelled by the user."""

    error: str
