"""
Remote access façade.

Every operation tries the document store first and falls back to the REST
relay, each under its own timeout. The relay is only tried while its health
check says it is reachable; that verdict is cached and revalidated after a TTL.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, List, Optional

from core.errors import PosError, TransportError
from sync.transport import Transport, validate_product, validate_purchase
from utils.logger import get_logger

_logger = get_logger(__name__)


class Liveness:
    """Cached reachable/unreachable verdict for one transport."""

    def __init__(
        self,
        check: Callable[[], Any],
        ttl: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._check = check
        self._ttl = ttl
        self._clock = clock
        self._reachable: Optional[bool] = None
        self._checked_at = 0.0

    @property
    def known(self) -> Optional[bool]:
        return self._reachable

    async def is_reachable(self) -> bool:
        now = self._clock()
        if self._reachable is None or now - self._checked_at >= self._ttl:
            self._reachable = bool(await self._check())
            self._checked_at = now
            _logger.info(
                f"Relay is {'reachable' if self._reachable else 'unreachable'}"
            )
        return self._reachable

    def mark(self, reachable: bool) -> None:
        self._reachable = reachable
        self._checked_at = self._clock()


def _log_late_result(label: str) -> Callable[[asyncio.Future], None]:
    def callback(task: asyncio.Future) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.debug(f"{label} finished late with an error: {exc}")
        else:
            _logger.debug(f"{label} finished late; next refresh will pick it up")

    return callback


class RemoteFacade:
    def __init__(
        self,
        primary: Transport,
        fallback: Optional[Transport] = None,
        primary_timeout: float = 5.0,
        fallback_timeout: float = 8.0,
        health_timeout: float = 2.0,
        liveness_ttl: float = 60.0,
    ):
        self.primary = primary
        self.fallback = fallback
        self.primary_timeout = primary_timeout
        self.fallback_timeout = fallback_timeout
        self.health_timeout = health_timeout
        self.liveness = Liveness(self._check_fallback, liveness_ttl)

    async def _check_fallback(self) -> bool:
        if self.fallback is None:
            return False
        try:
            body = await self._attempt(
                self.fallback, "health", (), self.health_timeout
            )
        except PosError:
            return False
        return isinstance(body, dict) and body.get("status") == "ok"

    async def _attempt(
        self, transport: Transport, op: str, args: tuple, timeout: float
    ) -> Any:
        label = f"{transport.name}.{op}"
        task = asyncio.ensure_future(getattr(transport, op)(*args))
        try:
            # shield: a timed-out call keeps running in the background
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            task.add_done_callback(_log_late_result(label))
            raise TransportError(f"{label} timed out after {timeout:g}s", "timeout")

    async def _call(self, op: str, *args) -> Any:
        try:
            return await self._attempt(self.primary, op, args, self.primary_timeout)
        except TransportError as exc:
            first = exc
            _logger.warning(f"{self.primary.name}.{op} failed ({exc.code}): {exc}")

        if self.fallback is None or not await self.liveness.is_reachable():
            raise TransportError(f"Failed to sync ({op}): {first}", first.code)

        try:
            result = await self._attempt(self.fallback, op, args, self.fallback_timeout)
        except TransportError as exc:
            self.liveness.mark(False)
            _logger.warning(f"{self.fallback.name}.{op} failed ({exc.code}): {exc}")
            raise TransportError(
                f"Failed to sync ({op}) on both backends: {first}; {exc}", exc.code
            ) from exc
        _logger.info(f"{op} served by {self.fallback.name}")
        return result

    async def health(self) -> dict:
        return await self._call("health")

    # ---------- products ----------

    async def list_products(self) -> List[dict]:
        return await self._call("list_products")

    async def list_products_by_category(self, category: str) -> List[dict]:
        return await self._call("list_products_by_category", category)

    async def get_product(self, product_id: str) -> dict:
        return await self._call("get_product", product_id)

    async def add_product(self, data: dict) -> dict:
        validate_product(data)
        return await self._call("add_product", data)

    async def update_product(self, product_id: str, changes: dict) -> dict:
        validate_product(changes, partial=True)
        return await self._call("update_product", product_id, changes)

    async def update_product_by_lookup(
        self, name: str, category: str, changes: dict
    ) -> dict:
        """Update the single product named name in category; never creates one."""
        validate_product(changes, partial=True)
        return await self._call("update_product_by_lookup", name, category, changes)

    async def delete_product(self, product_id: str) -> None:
        await self._call("delete_product", product_id)

    async def delete_product_by_lookup(self, name: str, category: str) -> None:
        await self._call("delete_product_by_lookup", name, category)

    # ---------- purchases ----------

    async def list_purchases(self) -> List[dict]:
        return await self._call("list_purchases")

    async def add_purchase(self, data: dict) -> dict:
        validate_purchase(data)
        return await self._call("add_purchase", data)

    async def delete_purchase(self, purchase_id: str) -> None:
        await self._call("delete_purchase", purchase_id)

    async def list_session_purchases(self, session_id: str) -> List[dict]:
        return await self._call("list_session_purchases", session_id)

    # ---------- sessions ----------

    async def list_sessions(self) -> List[dict]:
        return await self._call("list_sessions")

    async def add_session(self, data: dict) -> dict:
        return await self._call("add_session", data)

    async def update_session(self, session_id: str, changes: dict) -> dict:
        return await self._call("update_session", session_id, changes)

    async def delete_session(self, session_id: str) -> None:
        await self._call("delete_session", session_id)
