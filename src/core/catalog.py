"""
Catalog manager: owns the merged product list.

Mutations are applied to the in-memory list and the persisted overlays first.
The remote write is appended to a persisted queue, which the sync worker
flushes in order before reconciling; writes that cannot reach the store wait
there and are replayed before the remote catalog is adopted again. Remote
fetches that started before a local mutation are discarded when they land, so a
slow fetch can never undo a newer edit.
"""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from core.baseline import BASELINE_PRODUCTS, baseline_max_id, image_for
from core.errors import ConflictError, NotFoundError, PosError, TransportError, ValidationError
from core.reconcile import (
    CatalogOverlays,
    edit_for,
    insert_position,
    normalize_name,
    reconcile_overlays,
)
from db import cache as keys
from db.cache import LocalCache
from db.models import Product, ProductEdit, ProductRef, money_to_json, to_decimal
from sync.facade import RemoteFacade
from sync.worker import SyncWorker, dispatch
from utils.logger import get_logger

_logger = get_logger(__name__)

ChangeListener = Callable[[Tuple[Product, ...]], Any]
ErrorListener = Callable[[PosError], Any]

# queued remote write kinds and the fields each one carries
_WRITE_OPS: Dict[str, Tuple[str, ...]] = {
    "add": ("data",),
    "update": ("id", "changes"),
    "update_by_lookup": ("name", "category", "changes"),
    "delete": ("id",),
    "delete_by_lookup": ("name", "category"),
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def clean_product_input(name: Any, category: Any, price: Any) -> Tuple[str, str, Decimal]:
    """Validate form input; raises ValidationError before anything changes."""
    name = name.strip() if isinstance(name, str) else ""
    if not name:
        raise ValidationError("Product name is required.")
    category = category.strip() if isinstance(category, str) else ""
    if not category:
        raise ValidationError("Product category is required.")
    try:
        price = to_decimal(price)
    except ValueError:
        raise ValidationError(f"Invalid price: {price!r}")
    if not price.is_finite() or price < 0:
        raise ValidationError("Price must be a non-negative number.")
    return name, category, price


class CatalogManager:
    def __init__(
        self,
        cache: Optional[LocalCache] = None,
        remote: Optional[RemoteFacade] = None,
        worker: Optional[SyncWorker] = None,
        baseline: Sequence[Product] = BASELINE_PRODUCTS,
    ):
        self._cache = cache
        self._remote = remote
        self._worker = worker
        self._baseline = tuple(baseline)
        self._baseline_by_id: Dict[int, Product] = {
            p.ref.value: p for p in self._baseline if p.ref.is_baseline
        }
        self._overlays = CatalogOverlays()
        self._products: List[Product] = []
        self._remote_backed = False
        # bumped on every local mutation; stale remote fetches compare against it
        self._generation = 0
        # remote writes not yet accepted by the store, oldest first
        self._pending: List[Dict[str, Any]] = []
        self._flush_lock = asyncio.Lock()
        self._listeners: List[ChangeListener] = []
        self._error_listeners: List[ErrorListener] = []

    # ---------------------------
    # State
    # ---------------------------

    @property
    def products(self) -> Tuple[Product, ...]:
        return tuple(self._products)

    @property
    def remote_backed(self) -> bool:
        return self._remote_backed

    @property
    def overlays(self) -> CatalogOverlays:
        return self._overlays

    @property
    def pending_writes(self) -> Tuple[Dict[str, Any], ...]:
        return tuple(self._pending)

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    async def _notify(self) -> None:
        products = self.products
        for listener in self._listeners:
            result = listener(products)
            if inspect.isawaitable(result):
                await result

    async def _report(self, error: PosError) -> None:
        for listener in self._error_listeners:
            result = listener(error)
            if inspect.isawaitable(result):
                await result

    # ---------------------------
    # Lookups
    # ---------------------------

    def _index_of(self, ref: ProductRef) -> int:
        for i, product in enumerate(self._products):
            if product.ref == ref:
                return i
        raise NotFoundError(f"Product not found: {ref}")

    def find(self, ref: ProductRef) -> Optional[Product]:
        for product in self._products:
            if product.ref == ref:
                return product
        return None

    def find_by_name(self, name: str) -> Optional[Product]:
        key = normalize_name(name)
        for product in self._products:
            if normalize_name(product.name) == key:
                return product
        return None

    def filter(self, category: Optional[str] = None, search: str = "") -> List[Product]:
        """Products in category ("All" or None for every one) whose name contains search."""
        term = search.strip().lower()
        return [
            p
            for p in self._products
            if (not category or category == "All" or p.category == category)
            and term in p.name.lower()
        ]

    def _is_duplicate(self, name: str, category: str, ignore: Optional[ProductRef] = None) -> bool:
        key = normalize_name(name)
        return any(
            p.ref != ignore and p.category == category and normalize_name(p.name) == key
            for p in self._products
        )

    def _next_local_id(self) -> int:
        ids = [baseline_max_id(self._baseline)]
        ids += [p.ref.value for p in self._overlays.custom_items if p.ref.is_baseline]
        ids += [r.value for r in self._overlays.tombstones if r.is_baseline]
        ids += [p.ref.value for p in self._products if p.ref.is_baseline]
        return max(ids, default=0) + 1

    # ---------------------------
    # Persistence
    # ---------------------------

    async def load(self) -> None:
        """Rebuild the catalog from the persisted overlays, then try the remote."""
        if self._cache is not None:
            self._overlays = await self._read_overlays()
            self._pending = await self._read_pending()
        self._products = reconcile_overlays(self._baseline, self._overlays)
        self._remote_backed = False
        _logger.info(f"Catalog loaded locally with {len(self._products)} products")
        await self._notify()
        await self.refresh()

    async def _read_overlays(self) -> CatalogOverlays:
        raw_deleted = await self._cache.get(keys.DELETED_PRODUCTS_KEY, [])
        raw_edits = await self._cache.get(keys.EDITED_PRODUCTS_KEY, {})
        raw_custom = await self._cache.get(keys.CUSTOM_PRODUCTS_KEY, [])
        raw_prices = await self._cache.get(keys.PRICE_OVERRIDES_KEY, {})

        tombstones = set()
        for raw in raw_deleted:
            try:
                tombstones.add(ProductRef.parse(raw))
            except ValueError:
                _logger.error(f"Skipping unreadable tombstone {raw!r}")

        edits: Dict[int, ProductEdit] = {}
        for pid, raw in raw_edits.items():
            try:
                edits[int(pid)] = ProductEdit.from_dict(raw)
            except (TypeError, ValueError):
                _logger.error(f"Skipping unreadable edit for product {pid!r}")

        # older caches only kept a price map; fold it into the edits
        for pid, raw_price in raw_prices.items():
            try:
                pid, price = int(pid), to_decimal(raw_price)
            except ValueError:
                continue
            base = self._baseline_by_id.get(pid)
            if base is not None and pid not in edits and price != base.price:
                edits[pid] = ProductEdit(base.name, base.category, price)

        custom = []
        for raw in raw_custom:
            try:
                custom.append(Product.from_dict(raw))
            except (KeyError, ValueError):
                _logger.error(f"Skipping unreadable custom product {raw!r}")

        return CatalogOverlays(frozenset(tombstones), edits, tuple(custom))

    async def _save_overlays(self) -> None:
        if self._cache is None:
            return
        overlays = self._overlays
        await self._cache.set_many(
            {
                keys.DELETED_PRODUCTS_KEY: [r.value for r in overlays.tombstones],
                keys.EDITED_PRODUCTS_KEY: {
                    str(pid): edit.to_dict() for pid, edit in overlays.edits.items()
                },
                keys.CUSTOM_PRODUCTS_KEY: [p.to_dict() for p in overlays.custom_items],
                keys.PRICE_OVERRIDES_KEY: {
                    str(pid): price for pid, price in overlays.price_overrides().items()
                },
            }
        )

    async def _read_pending(self) -> List[Dict[str, Any]]:
        pending = []
        for raw in await self._cache.get(keys.PENDING_PRODUCT_WRITES_KEY, []):
            fields = _WRITE_OPS.get(raw.get("op")) if isinstance(raw, dict) else None
            if fields is not None and all(f in raw for f in fields):
                pending.append(raw)
            else:
                _logger.error(f"Skipping unreadable queued write {raw!r}")
        if pending:
            _logger.info(f"{len(pending)} product writes waiting for the store")
        return pending

    async def _save_pending(self) -> None:
        if self._cache is not None:
            await self._cache.set(keys.PENDING_PRODUCT_WRITES_KEY, self._pending)

    # ---------------------------
    # Remote reconciliation
    # ---------------------------

    async def refresh(self) -> bool:
        """
        Adopt the remote catalog when reachable. Never raises; returns whether
        the catalog is remote-backed afterwards.
        """
        if self._remote is None:
            self._remote_backed = False
            return False

        generation = self._generation
        try:
            docs = await self._remote.list_products()
            if docs and self._pending:
                # the store must see offline changes before it is adopted
                await self._flush()
                docs = await self._remote.list_products()
        except PosError as exc:
            _logger.warning(f"Remote catalog unavailable, keeping local catalog: {exc}")
            self._remote_backed = False
            return False

        if generation != self._generation:
            _logger.debug("Discarding remote catalog fetched before a local change")
            return self._remote_backed

        remote = []
        for doc in docs:
            try:
                remote.append(Product.from_dict(doc))
            except (KeyError, ValueError):
                _logger.error(f"Skipping malformed remote product {doc!r}")
        if not remote:
            # an empty store has not been seeded yet; it is no source of truth
            _logger.info("Remote catalog is empty, keeping local catalog")
            self._remote_backed = False
            return False

        self._products = reconcile_overlays(self._baseline, self._overlays, remote)
        self._remote_backed = True
        _logger.info(f"Catalog reconciled with remote ({len(self._products)} products)")
        await self._notify()
        return True

    async def _sync(self, label: str, write: Dict[str, Any]) -> None:
        """
        Persist a remote write in the queue, then flush the queue and
        reconcile. A write that cannot reach the store stays queued and is
        replayed on the next flush.
        """
        if self._remote is None:
            return
        self._pending.append(write)
        await self._save_pending()

        async def run():
            await self._flush()
            await self.refresh()

        await dispatch(self._worker, label, run, on_failure=self._report)

    async def _flush(self) -> None:
        """Send queued writes in order; raises TransportError on the first outage."""
        async with self._flush_lock:
            while self._pending:
                write = self._pending[0]
                try:
                    await self._send(write)
                except TransportError:
                    raise
                except PosError as exc:
                    # rejected by the store; resending cannot succeed
                    _logger.warning(f"Dropping queued {write['op']}: {exc}")
                    await self._report(exc)
                self._pending.pop(0)
                await self._save_pending()

    async def _send(self, write: Dict[str, Any]) -> None:
        op = write["op"]
        if op == "add":
            await self._remote.add_product(write["data"])
        elif op == "update":
            await self._remote.update_product(write["id"], write["changes"])
        elif op == "update_by_lookup":
            await self._remote.update_product_by_lookup(
                write["name"], write["category"], write["changes"]
            )
        elif op == "delete":
            await self._remote.delete_product(write["id"])
        elif op == "delete_by_lookup":
            try:
                await self._remote.delete_product_by_lookup(write["name"], write["category"])
            except NotFoundError:
                _logger.debug(f"{write['name']} was never stored remotely")

    async def seed_remote(self) -> int:
        """
        Push the local catalog into an empty remote catalog. Returns the number
        of products written; 0 when the remote already has products.
        """
        if self._remote is None:
            return 0
        existing = await self._remote.list_products()
        if existing:
            _logger.info("Remote catalog already populated, not seeding")
            return 0
        count = 0
        for product in self._products:
            data = product.to_dict()
            data.pop("id")
            await self._remote.add_product(data)
            count += 1
        _logger.info(f"Seeded remote catalog with {count} products")
        # the seed already carries every queued change
        async with self._flush_lock:
            self._pending = []
            await self._save_pending()
        await self.refresh()
        return count

    # ---------------------------
    # Mutations
    # ---------------------------

    async def add_product(self, name: Any, category: Any, price: Any) -> Product:
        name, category, price = clean_product_input(name, category, price)
        if self._is_duplicate(name, category):
            raise ConflictError(
                f'A product named "{name}" already exists in the {category} category.'
            )

        now = _now()
        product = Product(
            ref=ProductRef.baseline(self._next_local_id()),
            name=name,
            category=category,
            price=price,
            image=image_for(name, category),
            created_at=now,
            updated_at=now,
        )
        self._products.insert(insert_position(self._products, product), product)
        self._generation += 1
        self._overlays = self._overlays.with_custom(product)
        await self._save_overlays()
        await self._notify()

        payload = {
            "name": name,
            "category": category,
            "price": money_to_json(price),
            "image": product.image,
        }
        await self._sync(f"add product {name}", {"op": "add", "data": payload})
        return product

    async def update_product(
        self,
        ref: ProductRef,
        name: Optional[str] = None,
        category: Optional[str] = None,
        price: Any = None,
    ) -> Product:
        index = self._index_of(ref)
        old = self._products[index]
        new_name, new_category, new_price = clean_product_input(
            old.name if name is None else name,
            old.category if category is None else category,
            old.price if price is None else price,
        )
        moved = new_name != old.name or new_category != old.category
        if moved and self._is_duplicate(new_name, new_category, ignore=ref):
            raise ConflictError(
                f'A product named "{new_name}" already exists in the {new_category} category.'
            )
        if not moved and new_price == old.price:
            return old

        is_seed = ref.is_baseline and ref.value in self._baseline_by_id
        updated = dataclasses.replace(
            old,
            name=new_name,
            category=new_category,
            price=new_price,
            image=image_for(new_name, new_category) if moved else old.image,
            # seed items are rebuilt from their edit on load, without timestamps
            updated_at=old.updated_at if is_seed else _now(),
        )
        del self._products[index]
        if new_category != old.category:
            self._products.insert(insert_position(self._products, updated), updated)
        else:
            self._products.insert(index, updated)
        self._generation += 1

        if is_seed:
            base = self._baseline_by_id[ref.value]
            self._overlays = self._overlays.with_edit(ref.value, edit_for(base, updated))
        elif self._overlays.is_custom(ref) and new_category != old.category:
            # moved to the end of its new block, so it is replayed last on load
            self._overlays = self._overlays.with_custom(updated)
        elif self._overlays.is_custom(ref):
            self._overlays = self._overlays.replace_custom(updated)
        await self._save_overlays()
        await self._notify()

        changes: Dict[str, Any] = {"price": money_to_json(new_price)}
        if moved:
            changes.update(name=new_name, category=new_category, image=updated.image)
        if ref.is_remote:
            write = {"op": "update", "id": ref.value, "changes": changes}
        else:
            # numeric id: the remote record can only be found by name and category
            write = {
                "op": "update_by_lookup",
                "name": old.name,
                "category": old.category,
                "changes": changes,
            }
        await self._sync(f"update product {old.name}", write)
        return updated

    async def update_price(self, ref: ProductRef, price: Any) -> Product:
        return await self.update_product(ref, price=price)

    async def delete_product(self, ref: ProductRef) -> Product:
        index = self._index_of(ref)
        removed = self._products.pop(index)
        self._generation += 1

        overlays = self._overlays.with_tombstone(ref).without_custom(ref)
        if ref.is_baseline:
            overlays = overlays.with_edit(ref.value, None)
        self._overlays = overlays
        await self._save_overlays()
        await self._notify()

        if ref.is_remote:
            write = {"op": "delete", "id": ref.value}
        else:
            write = {"op": "delete_by_lookup", "name": removed.name, "category": removed.category}
        await self._sync(f"delete product {removed.name}", write)
        return removed
