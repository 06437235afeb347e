"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""


class IAPError(Exception):
    """Base exception for all purchase manager errors."""

    pass


class ServiceUnreachableError(IAPError):
    """Raised when the store service cannot be reached. Retry is the caller's decision."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Store service unreachable: {message}")


class ProductFetchFailedError(ServiceUnreachableError):
    """Raised when a product metadata request fails or returns garbage."""

    def __init__(self, identifiers: list[str], message: str) -> None:
        self.identifiers = identifiers
        super().__init__(f"product request for {', '.join(identifiers)} failed: {message}")


class InvalidProductError(IAPError):
    """Raised when the store reports an identifier unknown to the catalog."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"Invalid product identifier: {identifier}")


class PurchaseFailedError(IAPError):
    """Raised by a store binding when it declines or the user cancels a purchase."""

    def __init__(self, identifier: str, reason: str) -> None:
        self.identifier = identifier
        self.reason = reason
        super().__init__(f"Purchase of {identifier} failed: {reason}")


class RestoreFailedError(IAPError):
    """Raised when enumerating completed transactions fails."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Restore failed: {reason}")


class PaymentsDisabledError(IAPError):
    """Raised when a purchase is attempted on an account that cannot pay."""

    def __init__(self) -> None:
        super().__init__("This device cannot make purchases")


class InvariantViolationError(IAPError):
    """Raised on a programming error such as busy imbalance or double dispatch."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invariant violated: {message}")
