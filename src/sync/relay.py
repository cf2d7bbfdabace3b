"""
REST relay client, the fallback transport.

requests is blocking, so every call runs on a worker thread.
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional
from urllib.parse import quote

import requests

from core.errors import ConflictError, NotFoundError, TransportError, ValidationError
from utils.logger import get_logger

_logger = get_logger(__name__)


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if isinstance(body, dict) and body.get("error"):
        details = body.get("details")
        return f"{body['error']} ({details})" if details else str(body["error"])
    return f"HTTP {response.status_code}: {response.reason}"


class RelayTransport:
    name = "relay"

    def __init__(
        self,
        base_url: str,
        timeout: float = 8.0,
        health_timeout: float = 2.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.health_timeout = health_timeout
        self._session = session or requests.Session()

    def _send(
        self,
        method: str,
        path: str,
        params: Optional[dict],
        body: Any,
        timeout: float,
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(
                method, url, params=params, json=body, timeout=timeout
            )
        except requests.Timeout as exc:
            raise TransportError(f"Relay timeout: {method} {path}", "timeout") from exc
        except requests.RequestException as exc:
            raise TransportError(f"Relay unreachable: {exc}", "unavailable") from exc

        status = response.status_code
        if status >= 400:
            message = _error_message(response)
            if status == 400:
                raise ValidationError(message)
            if status == 404:
                raise NotFoundError(message)
            if status == 409:
                raise ConflictError(message)
            if status in (401, 403):
                raise TransportError(message, "permission-denied")
            raise TransportError(message, f"http-{status}")

        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"Relay sent invalid JSON for {method} {path}") from exc

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        body: Any = None,
        timeout: Optional[float] = None,
    ) -> Any:
        return await asyncio.to_thread(
            self._send, method, path, params, body, timeout or self.timeout
        )

    async def health(self) -> dict:
        return await self._request("GET", "/health", timeout=self.health_timeout)

    # ---------- products ----------

    async def list_products(self) -> List[dict]:
        return await self._request("GET", "/products")

    async def list_products_by_category(self, category: str) -> List[dict]:
        return await self._request("GET", "/products", params={"category": category})

    async def get_product(self, product_id: str) -> dict:
        return await self._request("GET", "/products", params={"id": product_id})

    async def add_product(self, data: dict) -> dict:
        return await self._request("POST", "/products", body=data)

    async def update_product(self, product_id: str, changes: dict) -> dict:
        return await self._request(
            "PUT", f"/products/{quote(str(product_id), safe='')}", body=changes
        )

    async def _lookup(self, name: str, category: str) -> dict:
        docs = await self.list_products_by_category(category)
        matches = [d for d in docs if d.get("name") == name]
        if not matches:
            raise NotFoundError(f"Product not found: {name} ({category})")
        if len(matches) > 1:
            raise ConflictError(f"{len(matches)} products match {name} ({category})")
        return matches[0]

    async def update_product_by_lookup(
        self, name: str, category: str, changes: dict
    ) -> dict:
        renamed = changes.get("name", name) != name
        recategorized = changes.get("category", category) != category
        if renamed or recategorized:
            # find/update keys on name and category, so it cannot rename
            doc = await self._lookup(name, category)
            return await self.update_product(doc["id"], changes)
        fields = {k: v for k, v in changes.items() if k not in ("name", "category")}
        return await self._request(
            "PUT",
            "/products/find/update",
            body={"name": name, "category": category, **fields},
        )

    async def delete_product(self, product_id: str) -> None:
        await self._request("DELETE", f"/products/{quote(str(product_id), safe='')}")

    async def delete_product_by_lookup(self, name: str, category: str) -> None:
        doc = await self._lookup(name, category)
        await self.delete_product(doc["id"])

    # ---------- purchases ----------

    async def list_purchases(self) -> List[dict]:
        return await self._request("GET", "/purchases")

    async def add_purchase(self, data: dict) -> dict:
        return await self._request("POST", "/purchases", body=data)

    async def delete_purchase(self, purchase_id: str) -> None:
        await self._request("DELETE", f"/purchases/{quote(str(purchase_id), safe='')}")

    async def list_session_purchases(self, session_id: str) -> List[dict]:
        return await self._request(
            "GET", f"/purchases/session/{quote(str(session_id), safe='')}"
        )

    # ---------- sessions ----------

    async def list_sessions(self) -> List[dict]:
        return await self._request("GET", "/sessions")

    async def add_session(self, data: dict) -> dict:
        return await self._request("POST", "/sessions", body=data)

    async def update_session(self, session_id: str, changes: dict) -> dict:
        return await self._request(
            "PUT", f"/sessions/{quote(str(session_id), safe='')}", body=changes
        )

    async def delete_session(self, session_id: str) -> None:
        await self._request("DELETE", f"/sessions/{quote(str(session_id), safe='')}")
