"""
Product Cache - Memoizes product metadata lookups by identifier.

The catalog is small and static for a session, so entries are never
evicted. Identifiers the store reports as invalid are never cached.
"""

import asyncio
import functools

from structlog import get_logger

from iap_manager.config import settings
from iap_manager.exceptions import ProductFetchFailedError
from iap_manager.models.domain import Product, ProductLookup
from iap_manager.observability.metrics import metrics
from iap_manager.services.backend import StoreBackend
from iap_manager.services.busy import BusyTracker

logger = get_logger(__name__)


class ProductCache:
    """Identifier -> Product cache in front of a StoreBackend."""

    def __init__(
        self,
        backend: StoreBackend,
        busy: BusyTracker | None = None,
        coalesce: bool | None = None,
    ) -> None:
        """
        Initialize the cache.

        Args:
            backend: Store backend used for misses
            busy: Busy tracker wrapped around each backend request
            coalesce: Share one in-flight request between identical concurrent
                lookups, defaults to settings.coalesce_product_requests
        """
        self.backend = backend
        self.busy = busy
        self.coalesce = settings.coalesce_product_requests if coalesce is None else coalesce
        self._products: dict[str, Product] = {}
        self._in_flight: dict[frozenset[str], asyncio.Future[ProductLookup]] = {}

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._products

    def __len__(self) -> int:
        return len(self._products)

    def peek(self, identifier: str) -> Product | None:
        """Return a cached product without touching the backend."""
        return self._products.get(identifier)

    def clear(self) -> None:
        self._products.clear()

    async def get(self, identifiers: set[str]) -> ProductLookup:
        """
        Look up products, calling the backend only for uncached identifiers.

        Raises:
            ProductFetchFailedError: If the backend request fails; the cache
                is left untouched
        """
        wanted = set(identifiers)
        cached = {i: self._products[i] for i in wanted if i in self._products}
        missing = frozenset(wanted - cached.keys())
        metrics.record_cache_lookup(hits=len(cached), misses=len(missing))

        if not missing:
            return ProductLookup(products=cached, invalid_identifiers=[])

        fetched = await self._fetch(missing)

        products = dict(cached)
        products.update({i: p for i, p in fetched.products.items() if i in wanted})
        return ProductLookup(products=products, invalid_identifiers=list(fetched.invalid_identifiers))

    async def _fetch(self, missing: frozenset[str]) -> ProductLookup:
        if not self.coalesce:
            return await self._request(missing)

        shared = self._in_flight.get(missing)
        if shared is None:
            shared = asyncio.ensure_future(self._request(missing))
            self._in_flight[missing] = shared
            shared.add_done_callback(functools.partial(self._request_done, missing))
        else:
            logger.debug("product_request_coalesced", identifiers=sorted(missing))

        # Cancelling one caller must not cancel the request others share
        return await asyncio.shield(shared)

    def _request_done(self, missing: frozenset[str], shared: asyncio.Future[ProductLookup]) -> None:
        if self._in_flight.get(missing) is shared:
            del self._in_flight[missing]
        if not shared.cancelled():
            # Every caller may have gone; mark the exception retrieved
            shared.exception()

    async def _request(self, missing: frozenset[str]) -> ProductLookup:
        identifiers = sorted(missing)
        logger.info("requesting_products", identifiers=identifiers)

        if self.busy is not None:
            self.busy.begin()
        try:
            lookup = await self.backend.request_products(set(missing))
        except Exception as exc:
            metrics.record_product_request(success=False)
            logger.warning("product_request_failed", identifiers=identifiers, error=str(exc))
            raise ProductFetchFailedError(identifiers, str(exc)) from exc
        finally:
            if self.busy is not None:
                self.busy.end()

        if not isinstance(lookup, ProductLookup):
            metrics.record_product_request(success=False)
            raise ProductFetchFailedError(identifiers, "malformed response from store")

        metrics.record_product_request(success=True)

        invalid = list(lookup.invalid_identifiers)
        valid = {i: p for i, p in lookup.products.items() if i not in invalid}
        self._products.update(valid)

        logger.info(
            "products_received",
            valid=sorted(valid),
            invalid=sorted(invalid),
        )
        return ProductLookup(products=valid, invalid_identifiers=invalid)
