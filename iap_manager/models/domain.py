"""
Domain Models - Store products, transactions and outcomes as dataclasses.

NO DICTIONARIES - All data structures are strongly typed dataclasses.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from iap_manager.exceptions import InvariantViolationError


class TransactionState(str, Enum):
    """Lifecycle states of a single purchase attempt."""

    IDLE = "idle"
    REQUESTED = "requested"
    PURCHASED = "purchased"
    RESTORED = "restored"
    FAILED = "failed"
    DEFERRED = "deferred"  # Awaiting out-of-band approval

    @property
    def is_terminal(self) -> bool:
        """Check if no further transition may follow this state."""
        return self in TERMINAL_STATES

    @property
    def is_success(self) -> bool:
        """Check if this state grants the entitlement."""
        return self in (TransactionState.PURCHASED, TransactionState.RESTORED)


TERMINAL_STATES = frozenset(
    {TransactionState.PURCHASED, TransactionState.RESTORED, TransactionState.FAILED}
)

_ALLOWED_TRANSITIONS: dict[TransactionState, frozenset[TransactionState]] = {
    TransactionState.IDLE: frozenset({TransactionState.REQUESTED}),
    TransactionState.REQUESTED: frozenset(TERMINAL_STATES | {TransactionState.DEFERRED}),
    TransactionState.DEFERRED: frozenset(TERMINAL_STATES | {TransactionState.DEFERRED}),
    TransactionState.PURCHASED: frozenset(),
    TransactionState.RESTORED: frozenset(),
    TransactionState.FAILED: frozenset(),
}


@dataclass(frozen=True)
class Product:
    """Immutable product metadata as reported by the store."""

    identifier: str  # Catalog product ID, e.g. "DigitalSodaPop"
    title: str  # Localized display title
    formatted_price: str  # Locale-specific price string, e.g. "$0.99"
    price: Decimal
    description: str = ""
    locale: str | None = None

    def __post_init__(self) -> None:
        """Validate product fields."""
        if not self.identifier:
            raise ValueError("Product identifier required")
        if self.price < 0:
            raise ValueError(f"Price cannot be negative: {self.price}")


@dataclass(frozen=True)
class ProductLookup:
    """Result of a product metadata request."""

    products: dict[str, Product]
    invalid_identifiers: list[str]

    def get(self, identifier: str) -> Product | None:
        """Get a product by identifier, None if not returned."""
        return self.products.get(identifier)


@dataclass(frozen=True)
class TransactionOutcome:
    """Backend-reported result of a purchase submission or later update."""

    state: TransactionState
    token: str
    error: str | None = None

    def __post_init__(self) -> None:
        """Only terminal or deferred states are valid outcomes."""
        if self.state in (TransactionState.IDLE, TransactionState.REQUESTED):
            raise ValueError(f"Not an outcome state: {self.state.value}")
        if self.state == TransactionState.FAILED and not self.error:
            object.__setattr__(self, "error", "Purchase failed")

    @classmethod
    def purchased(cls, token: str) -> "TransactionOutcome":
        return cls(TransactionState.PURCHASED, token)

    @classmethod
    def restored(cls, token: str) -> "TransactionOutcome":
        return cls(TransactionState.RESTORED, token)

    @classmethod
    def failed(cls, token: str, error: str) -> "TransactionOutcome":
        return cls(TransactionState.FAILED, token, error)

    @classmethod
    def deferred(cls, token: str) -> "TransactionOutcome":
        return cls(TransactionState.DEFERRED, token)


@dataclass(frozen=True)
class RestoredTransaction:
    """A historical completed transaction reported during restore."""

    identifier: str


@dataclass(frozen=True)
class RestoreResult:
    """Backend enumeration of an account's completed transactions."""

    transactions: list[RestoredTransaction] = field(default_factory=list)

    @property
    def identifiers(self) -> list[str]:
        return [t.identifier for t in self.transactions]


@dataclass(frozen=True)
class RestoreOutcome:
    """What a restore call ended with, as returned to the caller."""

    success: bool
    identifiers: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def count(self) -> int:
        return len(self.identifiers)


@dataclass
class Transaction:
    """
    One purchase attempt in flight.

    Mutable on purpose: the engine owns it and drives it through
    transition() until it reaches a terminal state, then discards it.
    """

    product_identifier: str
    token: str
    state: TransactionState = TransactionState.IDLE
    history: list[TransactionState] = field(default_factory=list)

    def transition(self, new_state: TransactionState) -> TransactionState:
        """
        Move to a new state, enforcing the purchase state machine.

        Returns:
            The previous state

        Raises:
            InvariantViolationError: If the transition is not allowed
        """
        old_state = self.state
        if new_state not in _ALLOWED_TRANSITIONS[old_state]:
            raise InvariantViolationError(
                f"transaction {self.token} cannot move from "
                f"{old_state.value} to {new_state.value}"
            )
        self.history.append(old_state)
        self.state = new_state
        return old_state
