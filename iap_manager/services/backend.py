"""
Store Backend Protocol - Platform-agnostic purchase service binding.

NO DICTIONARIES - All data uses strongly typed models.
"""

from collections.abc import Callable
from typing import Protocol

from iap_manager.models.domain import (
    Product,
    ProductLookup,
    RestoreResult,
    TransactionOutcome,
)

TransactionUpdateHandler = Callable[[TransactionOutcome], object]


class StoreBackend(Protocol):
    """
    Store backend protocol.

    Any platform purchase service (StoreKit, Play Billing, a sandbox) must
    implement this interface. The purchase manager never talks to the
    network itself.
    """

    def can_make_payments(self) -> bool:
        """
        Check whether this device/account may make payments.

        Queried once at startup.
        """
        ...

    async def request_products(self, identifiers: set[str]) -> ProductLookup:
        """
        Fetch product metadata.

        Args:
            identifiers: Product identifiers to look up

        Returns:
            Valid products plus identifiers the catalog does not know

        Raises:
            ServiceUnreachableError: If the service is down or the reply is malformed
        """
        ...

    async def submit_purchase(self, product: Product, token: str) -> TransactionOutcome:
        """
        Submit a purchase.

        Args:
            product: Product to buy
            token: Correlation token; every outcome for this purchase carries it

        Returns:
            The first outcome: PURCHASED, RESTORED, FAILED or DEFERRED.
            A DEFERRED purchase completes later through the update handler.
        """
        ...

    async def restore_completed_transactions(self) -> RestoreResult:
        """
        Enumerate the account's completed transactions.

        Raises:
            RestoreFailedError: If enumeration fails or the user cancels
        """
        ...

    def set_update_handler(self, handler: TransactionUpdateHandler) -> None:
        """
        Register the receiver of out-of-band transaction updates.

        Used for deferred purchases that complete after submit_purchase returned.
        """
        ...
