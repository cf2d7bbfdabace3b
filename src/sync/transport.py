"""
Transport interface shared by the document-store client and the REST relay,
plus the document-store implementation.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, List, Protocol

from core.errors import ConflictError, NotFoundError, TransportError, ValidationError
from db.docstore import PRODUCTS, PURCHASES, SESSIONS, DocumentStore


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Transport(Protocol):
    name: str

    async def health(self) -> dict: ...

    async def list_products(self) -> List[dict]: ...

    async def list_products_by_category(self, category: str) -> List[dict]: ...

    async def get_product(self, product_id: str) -> dict: ...

    async def add_product(self, data: dict) -> dict: ...

    async def update_product(self, product_id: str, changes: dict) -> dict: ...

    async def update_product_by_lookup(
        self, name: str, category: str, changes: dict
    ) -> dict: ...

    async def delete_product(self, product_id: str) -> None: ...

    async def delete_product_by_lookup(self, name: str, category: str) -> None: ...

    async def list_purchases(self) -> List[dict]: ...

    async def add_purchase(self, data: dict) -> dict: ...

    async def delete_purchase(self, purchase_id: str) -> None: ...

    async def list_session_purchases(self, session_id: str) -> List[dict]: ...

    async def list_sessions(self) -> List[dict]: ...

    async def add_session(self, data: dict) -> dict: ...

    async def update_session(self, session_id: str, changes: dict) -> dict: ...

    async def delete_session(self, session_id: str) -> None: ...


# ---------------------------
# Payload validation
# ---------------------------


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_product(data: Dict[str, Any], partial: bool = False) -> None:
    """Reject product payloads the store would not accept."""
    if not partial or "name" in data:
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Product name is required.")
    if not partial or "category" in data:
        category = data.get("category")
        if not isinstance(category, str) or not category.strip():
            raise ValidationError("Product category is required.")
    if not partial or "price" in data:
        price = data.get("price")
        if not _is_number(price) or price < 0:
            raise ValidationError("Product price must be a non-negative number.")


def validate_purchase(data: Dict[str, Any]) -> None:
    items = data.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("Purchase must have at least one item.")
    for item in items:
        if not item.get("id") or not item.get("name"):
            raise ValidationError("Purchase items need an id and a name.")
        if not _is_number(item.get("price")) or not _is_number(item.get("quantity")):
            raise ValidationError("Purchase items need a numeric price and quantity.")
    if not _is_number(data.get("total")):
        raise ValidationError("Purchase must have a numeric total.")


# ---------------------------
# Document store transport
# ---------------------------


def _store_errors(func):
    """Translate sqlite, filesystem and decoding failures into transport failures."""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except sqlite3.OperationalError as exc:
            code = "permission-denied" if "readonly" in str(exc) else "unavailable"
            raise TransportError(f"Document store unavailable: {exc}", code) from exc
        except sqlite3.Error as exc:
            raise TransportError(f"Document store error: {exc}") from exc
        except PermissionError as exc:
            raise TransportError(f"Document store unavailable: {exc}", "permission-denied") from exc
        except (OSError, ValueError) as exc:
            # unreachable path, closed connection or an unreadable document
            raise TransportError(f"Document store unavailable: {exc}", "unavailable") from exc

    return wrapper


class StoreTransport:
    """Talks to the document store directly."""

    name = "store"

    def __init__(self, store: DocumentStore):
        self._store = store

    @_store_errors
    async def health(self) -> dict:
        await self._store.ping()
        return {"status": "ok"}

    # ---------- products ----------

    @_store_errors
    async def list_products(self) -> List[dict]:
        return await self._store.query(PRODUCTS)

    @_store_errors
    async def list_products_by_category(self, category: str) -> List[dict]:
        return await self._store.query(PRODUCTS, where=[("category", category)])

    @_store_errors
    async def get_product(self, product_id: str) -> dict:
        doc = await self._store.get(PRODUCTS, product_id)
        if doc is None:
            raise NotFoundError(f"Product not found: {product_id}")
        return doc

    @_store_errors
    async def add_product(self, data: dict) -> dict:
        now = now_iso()
        return await self._store.add(
            PRODUCTS, {**data, "createdAt": now, "updatedAt": now}
        )

    @_store_errors
    async def update_product(self, product_id: str, changes: dict) -> dict:
        doc = await self._store.update(
            PRODUCTS, product_id, {**changes, "updatedAt": now_iso()}
        )
        if doc is None:
            raise NotFoundError(f"Product not found: {product_id}")
        return doc

    async def _lookup(self, name: str, category: str) -> dict:
        matches = await self._store.query(
            PRODUCTS, where=[("name", name), ("category", category)]
        )
        if not matches:
            raise NotFoundError(f"Product not found: {name} ({category})")
        if len(matches) > 1:
            raise ConflictError(f"{len(matches)} products match {name} ({category})")
        return matches[0]

    @_store_errors
    async def update_product_by_lookup(
        self, name: str, category: str, changes: dict
    ) -> dict:
        doc = await self._lookup(name, category)
        updated = await self._store.update(
            PRODUCTS, doc["id"], {**changes, "updatedAt": now_iso()}
        )
        if updated is None:
            raise NotFoundError(f"Product not found: {name} ({category})")
        return updated

    @_store_errors
    async def delete_product(self, product_id: str) -> None:
        if not await self._store.delete(PRODUCTS, product_id):
            raise NotFoundError(f"Product not found: {product_id}")

    @_store_errors
    async def delete_product_by_lookup(self, name: str, category: str) -> None:
        doc = await self._lookup(name, category)
        await self._store.delete(PRODUCTS, doc["id"])

    # ---------- purchases ----------

    @_store_errors
    async def list_purchases(self) -> List[dict]:
        return await self._store.query(PURCHASES, order_by="date", descending=True)

    @_store_errors
    async def add_purchase(self, data: dict) -> dict:
        return await self._store.add(
            PURCHASES,
            {**data, "date": data.get("date") or now_iso(), "createdAt": now_iso()},
        )

    @_store_errors
    async def delete_purchase(self, purchase_id: str) -> None:
        if not await self._store.delete(PURCHASES, purchase_id):
            raise NotFoundError(f"Purchase not found: {purchase_id}")

    @_store_errors
    async def list_session_purchases(self, session_id: str) -> List[dict]:
        return await self._store.query(
            PURCHASES,
            where=[("sessionId", session_id)],
            order_by="date",
            descending=True,
        )

    # ---------- sessions ----------

    @_store_errors
    async def list_sessions(self) -> List[dict]:
        return await self._store.query(SESSIONS, order_by="createdAt", descending=True)

    @_store_errors
    async def add_session(self, data: dict) -> dict:
        now = now_iso()
        return await self._store.add(
            SESSIONS, {**data, "createdAt": now, "updatedAt": now}
        )

    @_store_errors
    async def update_session(self, session_id: str, changes: dict) -> dict:
        doc = await self._store.update(
            SESSIONS, session_id, {**changes, "updatedAt": now_iso()}
        )
        if doc is None:
            raise NotFoundError(f"Session not found: {session_id}")
        return doc

    @_store_errors
    async def delete_session(self, session_id: str) -> None:
        if not await self._store.delete(SESSIONS, session_id):
            raise NotFoundError(f"Session not found: {session_id}")
