"""
Checkout and session bookkeeping.

A sale is committed locally the moment the cart is checked out: the record
joins the history under a temporary id, earnings grow and the cart empties.
Persisting it remotely happens afterwards on the sync worker; success swaps in
the store id, failure leaves the record flagged as unsynced for a later retry.
A sale is never rolled back.
"""

from __future__ import annotations

import dataclasses
import inspect
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, List, Optional, Set, Tuple

from core.cart import CartManager
from core.errors import PosError
from db import cache as keys
from db.cache import LocalCache
from db.models import TEMP_ID_PREFIX, PurchaseItem, PurchaseRecord, SessionSummary, to_decimal
from sync.facade import RemoteFacade
from sync.worker import SyncWorker, dispatch
from utils.logger import get_logger

_logger = get_logger(__name__)


def local_now() -> datetime:
    return datetime.now().astimezone()


def temporary_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex[:12]}"


class CheckoutEngine:
    def __init__(
        self,
        cache: Optional[LocalCache] = None,
        remote: Optional[RemoteFacade] = None,
        worker: Optional[SyncWorker] = None,
        retry_cap: int = 10,
        clock: Callable[[], datetime] = local_now,
    ):
        self._cache = cache
        self._remote = remote
        self._worker = worker
        self._retry_cap = retry_cap
        self._clock = clock

        self._history: List[PurchaseRecord] = []
        self._earnings = Decimal(0)
        self._session_start = clock()
        self._pending_purchases: List[PurchaseRecord] = []
        self._pending_sessions: List[dict] = []
        # temporary ids with a remote write queued or running
        self._in_flight: Set[str] = set()

        self._listeners: List[Callable[[], Any]] = []
        self._error_listeners: List[Callable[[PosError], Any]] = []

    # ---------------------------
    # State
    # ---------------------------

    @property
    def history(self) -> Tuple[PurchaseRecord, ...]:
        """Purchases of the open session, newest first."""
        return tuple(self._history)

    @property
    def earnings(self) -> Decimal:
        return self._earnings

    @property
    def session_start(self) -> datetime:
        return self._session_start

    @property
    def pending_sessions(self) -> Tuple[dict, ...]:
        return tuple(self._pending_sessions)

    @property
    def pending_purchases(self) -> Tuple[PurchaseRecord, ...]:
        return tuple(self._pending_purchases)

    def add_listener(self, listener: Callable[[], Any]) -> None:
        self._listeners.append(listener)

    def add_error_listener(self, listener: Callable[[PosError], Any]) -> None:
        self._error_listeners.append(listener)

    async def _notify(self) -> None:
        for listener in self._listeners:
            result = listener()
            if inspect.isawaitable(result):
                await result

    async def _report(self, error: PosError) -> None:
        for listener in self._error_listeners:
            result = listener(error)
            if inspect.isawaitable(result):
                await result

    # ---------------------------
    # Persistence
    # ---------------------------

    async def load(self) -> None:
        if self._cache is None:
            return
        self._history = self._read_records(
            await self._cache.get(keys.PURCHASE_HISTORY_KEY, [])
        )
        self._pending_purchases = self._read_records(
            await self._cache.get(keys.PENDING_PURCHASES_KEY, [])
        )
        self._pending_sessions = list(
            await self._cache.get(keys.PENDING_SESSIONS_KEY, [])
        )
        try:
            self._earnings = to_decimal(
                await self._cache.get(keys.SESSION_EARNINGS_KEY, "0")
            )
        except ValueError:
            _logger.error("Unreadable session earnings, recomputing from history")
            self._earnings = sum((r.total for r in self._history), Decimal(0))

        raw_start = await self._cache.get(keys.SESSION_START_KEY)
        if raw_start:
            try:
                self._session_start = datetime.fromisoformat(raw_start)
            except ValueError:
                _logger.error(f"Unreadable session start {raw_start!r}")
        _logger.info(
            f"Session since {self._session_start:%Y-%m-%d %H:%M}: "
            f"{len(self._history)} purchases, earnings {self._earnings}"
        )

    @staticmethod
    def _read_records(raw_records: list) -> List[PurchaseRecord]:
        records = []
        for raw in raw_records:
            try:
                records.append(PurchaseRecord.from_dict(raw))
            except (KeyError, TypeError, ValueError):
                _logger.error(f"Dropping unreadable purchase record {raw!r}")
        return records

    async def _save(self) -> None:
        if self._cache is None:
            return
        await self._cache.set_many(
            {
                keys.PURCHASE_HISTORY_KEY: [r.to_dict() for r in self._history],
                keys.SESSION_EARNINGS_KEY: str(self._earnings),
                keys.SESSION_START_KEY: self._session_start.isoformat(),
                keys.PENDING_PURCHASES_KEY: [
                    r.to_dict() for r in self._pending_purchases
                ],
                keys.PENDING_SESSIONS_KEY: self._pending_sessions,
            }
        )

    # ---------------------------
    # Checkout
    # ---------------------------

    async def checkout(self, cart: CartManager) -> Optional[PurchaseRecord]:
        """Turn the cart into a purchase record. Empty carts return None."""
        if cart.is_empty:
            return None

        items = tuple(
            PurchaseItem(
                id=str(line.ref.value),
                name=line.name,
                price=line.price,
                quantity=line.quantity,
                image=line.image,
                category=line.category,
            )
            for line in cart.lines
        )
        record = PurchaseRecord(
            id=temporary_id(),
            date=self._clock(),
            items=items,
            total=cart.total,
        )
        self._history.insert(0, record)
        self._earnings += record.total
        await cart.clear()
        await self._save()
        await self._notify()
        _logger.info(f"Checked out {len(items)} lines for {record.total}")

        await self._push_purchase(record)
        return record

    async def _push_purchase(self, record: PurchaseRecord) -> None:
        if self._remote is None or record.id in self._in_flight:
            return
        self._in_flight.add(record.id)

        async def on_success(doc: dict) -> None:
            self._in_flight.discard(record.id)
            await self._confirm(record.id, str(doc["id"]))

        async def on_failure(error: PosError) -> None:
            self._in_flight.discard(record.id)
            _logger.warning(f"Purchase {record.id} kept locally for retry: {error}")
            await self._report(error)

        await dispatch(
            self._worker,
            f"save purchase {record.id}",
            lambda: self._remote.add_purchase(record.to_payload()),
            on_success,
            on_failure,
        )

    async def _confirm(self, temp_id: str, store_id: str) -> None:
        """Swap a temporary id for the store id wherever the record now lives."""
        for i, record in enumerate(self._history):
            if record.id == temp_id:
                self._history[i] = dataclasses.replace(record, id=store_id, synced=True)
                break
        else:
            # the session closed while the write was in flight
            self._pending_purchases = [
                r for r in self._pending_purchases if r.id != temp_id
            ]
        await self._save()
        await self._notify()

    # ---------------------------
    # Sessions
    # ---------------------------

    async def end_session(self) -> SessionSummary:
        """
        Close the open session and start a new one. The local reset happens
        regardless of whether the summary reaches the store.
        """
        now = self._clock()
        summary = SessionSummary(
            start_time=self._session_start,
            end_time=now,
            earnings=self._earnings,
            purchase_count=len(self._history),
            purchase_ids=tuple(r.id for r in self._history if not r.is_temporary),
        )
        self._pending_purchases.extend(r for r in self._history if not r.synced)
        self._history = []
        self._earnings = Decimal(0)
        self._session_start = now
        await self._save()
        await self._notify()
        _logger.info(
            f"Session closed: {summary.purchase_count} purchases, earnings {summary.earnings}"
        )

        await self._push_session(summary.to_payload())
        return summary

    async def _queue_session(self, payload: dict) -> None:
        self._pending_sessions.append(payload)
        overflow = len(self._pending_sessions) - self._retry_cap
        if overflow > 0:
            _logger.warning(f"Session retry queue full, dropping {overflow} oldest")
            del self._pending_sessions[:overflow]
        await self._save()

    async def _push_session(self, payload: dict) -> None:
        if self._remote is None:
            await self._queue_session(payload)
            return

        async def on_failure(error: PosError) -> None:
            _logger.warning(f"Session summary queued for retry: {error}")
            await self._queue_session(payload)
            await self._report(error)

        await dispatch(
            self._worker,
            "save session summary",
            lambda: self._remote.add_session(payload),
            on_failure=on_failure,
        )

    async def retry_pending(self) -> None:
        """Queue every unsynced purchase and session summary again."""
        if self._remote is None:
            return
        for record in [*self._history, *self._pending_purchases]:
            if not record.synced:
                await self._push_purchase(record)

        queued, self._pending_sessions = self._pending_sessions, []
        if queued:
            await self._save()
            _logger.info(f"Retrying {len(queued)} queued session summaries")
        for payload in queued:
            await self._push_session(payload)
