"""
Catalog reconciliation: merge the baseline catalog with local overlays
(tombstones, edits, custom items) or adopt the remote catalog, producing one
ordered, de-duplicated product list.

Everything here is pure; the overlays are persisted, never the merged output.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

from core.baseline import CATEGORIES, UNKNOWN_CATEGORY_RANK, image_for
from db.models import Product, ProductEdit, ProductRef


def category_rank(category: str) -> int:
    try:
        return CATEGORIES.index(category)
    except ValueError:
        return UNKNOWN_CATEGORY_RANK


def _category_key(category: str) -> Tuple[int, str]:
    rank = category_rank(category)
    # unknown categories sort last, grouped by their own name
    return rank, category.lower() if rank == UNKNOWN_CATEGORY_RANK else ""


def sort_key(product: Product) -> Tuple[int, str, str]:
    """(category rank, unknown-category name, case-insensitive name)."""
    return (*_category_key(product.category), product.name.lower())


def normalize_name(name: str) -> str:
    return name.strip().lower()


def insert_position(products: Sequence[Product], product: Product) -> int:
    """
    Index at which product keeps the list grouped by category.

    Goes right after the last item of the same category. With no item of that
    category, goes before the first item of a later category, else at the end.
    """
    last_same = None
    for i, existing in enumerate(products):
        if existing.category == product.category:
            last_same = i
    if last_same is not None:
        return last_same + 1

    new_category = _category_key(product.category)
    for i, existing in enumerate(products):
        if _category_key(existing.category) > new_category:
            return i
    return len(products)


def apply_edit(product: Product, edit: ProductEdit) -> Product:
    name = edit.name if edit.name is not None else product.name
    category = edit.category if edit.category is not None else product.category
    price = edit.price if edit.price is not None else product.price
    image = product.image
    if name != product.name or category != product.category:
        image = image_for(name, category)
    return dataclasses.replace(
        product, name=name, category=category, price=price, image=image
    )


def edit_for(base: Product, current: Product) -> Optional[ProductEdit]:
    """
    Edit entry that turns base into current, or None when they match again.
    """
    if (
        current.name == base.name
        and current.category == base.category
        and current.price == base.price
    ):
        return None
    return ProductEdit(name=current.name, category=current.category, price=current.price)


@dataclass(frozen=True)
class CatalogOverlays:
    """Immutable snapshot of the local overlay inputs."""

    tombstones: FrozenSet[ProductRef] = frozenset()
    edits: Mapping[int, ProductEdit] = field(default_factory=dict)
    custom_items: Tuple[Product, ...] = ()

    def with_tombstone(self, ref: ProductRef) -> CatalogOverlays:
        return dataclasses.replace(self, tombstones=self.tombstones | {ref})

    def with_edit(self, pid: int, edit: Optional[ProductEdit]) -> CatalogOverlays:
        edits: Dict[int, ProductEdit] = dict(self.edits)
        if edit is None:
            edits.pop(pid, None)
        else:
            edits[pid] = edit
        return dataclasses.replace(self, edits=edits)

    def with_custom(self, product: Product) -> CatalogOverlays:
        items = [p for p in self.custom_items if p.ref != product.ref]
        items.append(product)
        return dataclasses.replace(self, custom_items=tuple(items))

    def replace_custom(self, product: Product) -> CatalogOverlays:
        items = tuple(
            product if p.ref == product.ref else p for p in self.custom_items
        )
        return dataclasses.replace(self, custom_items=items)

    def without_custom(self, ref: ProductRef) -> CatalogOverlays:
        items = tuple(p for p in self.custom_items if p.ref != ref)
        return dataclasses.replace(self, custom_items=items)

    def is_custom(self, ref: ProductRef) -> bool:
        return any(p.ref == ref for p in self.custom_items)

    def price_overrides(self) -> Dict[int, str]:
        """Legacy price map derived from the edits."""
        return {
            pid: str(edit.price)
            for pid, edit in self.edits.items()
            if edit.price is not None
        }


def reconcile(
    baseline: Iterable[Product],
    tombstones: FrozenSet[ProductRef] | set,
    edits: Mapping[int, ProductEdit],
    custom_items: Iterable[Product],
    remote: Optional[Iterable[Product]] = None,
) -> List[Product]:
    """
    Merged, ordered, de-duplicated catalog.

    When remote is given it replaces the local layers entirely; only
    tombstones of remote ids still apply to it.
    """
    seen: set[ProductRef] = set()

    if remote is not None:
        result = []
        for product in remote:
            if product.ref in tombstones or product.ref in seen:
                continue
            seen.add(product.ref)
            result.append(product)
        result.sort(key=sort_key)
        return result

    # baseline items keep their seed position, even when renamed
    result: List[Product] = []
    moved: List[Product] = []
    for product in sorted(baseline, key=sort_key):
        if product.ref in tombstones or product.ref in seen:
            continue
        seen.add(product.ref)
        edit = edits.get(product.ref.value) if product.ref.is_baseline else None
        current = apply_edit(product, edit) if edit else product
        if current.category != product.category:
            moved.append(current)
        else:
            result.append(current)

    for product in moved:
        result.insert(insert_position(result, product), product)

    for product in custom_items:
        if product.ref in tombstones or product.ref in seen:
            continue
        seen.add(product.ref)
        result.insert(insert_position(result, product), product)
    return result


def reconcile_overlays(
    baseline: Iterable[Product],
    overlays: CatalogOverlays,
    remote: Optional[Iterable[Product]] = None,
) -> List[Product]:
    return reconcile(
        baseline, overlays.tombstones, overlays.edits, overlays.custom_items, remote
    )
