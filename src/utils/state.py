from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.cart import CartManager
from core.catalog import CatalogManager
from core.checkout import CheckoutEngine
from core.errors import PosError
from db.cache import LocalCache
from db.docstore import DocumentStore
from sync.facade import RemoteFacade
from sync.relay import RelayTransport
from sync.transport import StoreTransport
from sync.worker import SyncWorker
from utils.config import PosConfig, load_config
from utils.logger import get_logger

_logger = get_logger(__name__)


@dataclass
class GlobalState:
    """
    Centralized application state shared by screens.

    Fields:
      - catalog: merged product list, owner of the catalog overlay keys
      - cart: the sale in progress, owner of the cart key
      - checkout: purchase history and session counters
      - worker: background queue for remote writes
      - remote: store-then-relay façade, None when running cache-only
    """

    catalog: CatalogManager
    cart: CartManager
    checkout: CheckoutEngine
    worker: SyncWorker
    remote: Optional[RemoteFacade] = None
    seed_empty_store: bool = False

    @classmethod
    def from_config(cls, config: Optional[PosConfig] = None) -> GlobalState:
        config = config or load_config()
        cache = LocalCache(config.cache.path)

        relay = None
        if config.relay.url:
            relay = RelayTransport(
                config.relay.url,
                timeout=config.relay.timeout,
                health_timeout=config.relay.health_timeout,
            )
        remote = RemoteFacade(
            StoreTransport(DocumentStore(config.store.path)),
            relay,
            primary_timeout=config.store.timeout,
            fallback_timeout=config.relay.timeout,
            health_timeout=config.relay.health_timeout,
            liveness_ttl=config.relay.liveness_ttl,
        )
        worker = SyncWorker(config.sync.attempts, config.sync.backoff)

        cart = CartManager(cache)
        catalog = CatalogManager(cache, remote, worker)
        checkout = CheckoutEngine(
            cache, remote, worker, retry_cap=config.sync.session_retry_cap
        )
        # cart lines follow every catalog change
        catalog.add_listener(cart.sync)
        return cls(
            catalog, cart, checkout, worker, remote, config.sync.seed_empty_store
        )

    async def start(self) -> None:
        """Load persisted state, reconcile with the remote and retry leftovers."""
        self.worker.start()
        await self.cart.load()
        await self.checkout.load()
        await self.catalog.load()
        if self.seed_empty_store and not self.catalog.remote_backed:
            await self._seed()
        await self.checkout.retry_pending()
        _logger.info(
            f"Ready: {len(self.catalog.products)} products, "
            f"{'remote-backed' if self.catalog.remote_backed else 'offline'}"
        )

    async def _seed(self) -> None:
        try:
            await self.catalog.seed_remote()
        except PosError as exc:
            _logger.warning(f"Could not seed the store: {exc}")

    async def shutdown(self) -> None:
        await self.worker.stop()
