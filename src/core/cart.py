from __future__ import annotations

import dataclasses
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from core.errors import NotFoundError, ValidationError
from core.reconcile import normalize_name
from db import cache as keys
from db.cache import LocalCache
from db.models import CartLine, Product, ProductRef
from utils.logger import get_logger

_logger = get_logger(__name__)


class CartManager:
    """
    The in-progress sale.

    Lines keep the name and price they were added with until the catalog
    changes, at which point sync() refreshes them from the catalog.
    """

    def __init__(self, cache: Optional[LocalCache] = None):
        self._cache = cache
        self._lines: List[CartLine] = []

    @property
    def lines(self) -> Tuple[CartLine, ...]:
        return tuple(self._lines)

    @property
    def total(self) -> Decimal:
        return sum((line.subtotal for line in self._lines), Decimal(0))

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def _index_of(self, ref: ProductRef) -> int:
        for i, line in enumerate(self._lines):
            if line.ref == ref:
                return i
        raise NotFoundError(f"Not in cart: {ref}")

    async def load(self) -> None:
        if self._cache is None:
            return
        lines = []
        for raw in await self._cache.get(keys.CART_KEY, []):
            try:
                lines.append(CartLine.from_dict(raw))
            except (KeyError, TypeError, ValueError):
                _logger.error(f"Dropping unreadable cart line {raw!r}")
        self._lines = lines

    async def _save(self) -> None:
        if self._cache is not None:
            await self._cache.set(keys.CART_KEY, [line.to_dict() for line in self._lines])

    async def add(self, product: Product, quantity: int = 1) -> CartLine:
        """Add quantity of product, merging with an existing line."""
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1.")
        try:
            index = self._index_of(product.ref)
        except NotFoundError:
            line = CartLine.from_product(product, quantity)
            self._lines.append(line)
        else:
            line = self._lines[index]
            line = dataclasses.replace(line, quantity=line.quantity + quantity)
            self._lines[index] = line
        await self._save()
        return line

    async def update_quantity(self, ref: ProductRef, quantity: int) -> Optional[CartLine]:
        """Set a line's quantity; zero or less removes the line and returns None."""
        index = self._index_of(ref)
        if quantity <= 0:
            del self._lines[index]
            await self._save()
            return None
        line = dataclasses.replace(self._lines[index], quantity=quantity)
        self._lines[index] = line
        await self._save()
        return line

    async def remove(self, ref: ProductRef) -> None:
        del self._lines[self._index_of(ref)]
        await self._save()

    async def clear(self) -> None:
        self._lines = []
        await self._save()

    async def sync(self, products: Sequence[Product]) -> None:
        """
        Refresh lines from the catalog, matching by id first and then by name
        (local ids are replaced by store ids once a product syncs). Lines whose
        product is gone are kept as they are.
        """
        by_ref: Dict[ProductRef, Product] = {p.ref: p for p in products}
        by_name: Dict[str, Product] = {}
        for p in products:
            by_name.setdefault(normalize_name(p.name), p)

        taken = {line.ref for line in self._lines}
        changed = False
        lines = []
        for line in self._lines:
            product = by_ref.get(line.ref)
            if product is None:
                product = by_name.get(normalize_name(line.name))
                if product is not None and product.ref in taken:
                    # another line already holds that id; leave this one alone
                    product = None
            if product is None:
                lines.append(line)
                continue
            if product.ref != line.ref:
                taken.discard(line.ref)
                taken.add(product.ref)
            updated = dataclasses.replace(
                line,
                ref=product.ref,
                name=product.name,
                category=product.category,
                price=product.price,
                image=product.image,
            )
            changed = changed or updated != line
            lines.append(updated)

        self._lines = lines
        if changed:
            await self._save()
