"""
Entitlement Store - Durable record of which products were purchased.

Writes are single-key idempotent upserts: marking a product twice, or from
two racing completions, always leaves exactly one "purchased" flag.
"""

from structlog import get_logger

from iap_manager.config import settings
from iap_manager.db.store import KeyValueStore

logger = get_logger(__name__)


class EntitlementStore:
    """Namespaced purchase flags over a KeyValueStore."""

    def __init__(self, storage: KeyValueStore, key_prefix: str | None = None) -> None:
        """
        Initialize the entitlement store.

        Args:
            storage: Durable key-value storage
            key_prefix: Namespace for keys, defaults to settings.entitlement_key_prefix
        """
        self.storage = storage
        self.key_prefix = key_prefix if key_prefix is not None else settings.entitlement_key_prefix

    def _key(self, identifier: str) -> str:
        return f"{self.key_prefix}{identifier}"

    def mark_as_purchased(self, identifier: str) -> bool:
        """
        Record that a product has been purchased.

        Returns:
            True if the flag was newly set, False if it was already set
        """
        if not identifier:
            raise ValueError("Product identifier required")

        key = self._key(identifier)
        if self.storage.get(key, False):
            logger.debug("entitlement_already_recorded", product_id=identifier)
            return False

        self.storage.set(key, True)
        logger.info("entitlement_recorded", product_id=identifier)
        return True

    def is_purchased(self, identifier: str) -> bool:
        """Check if a product has been purchased, based on local memory."""
        return self.storage.get(self._key(identifier), False)
