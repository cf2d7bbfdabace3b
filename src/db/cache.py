"""
Persistent local cache: a JSON key/value table that survives restarts.

Each key is owned by exactly one component; nobody else writes it.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict

from db.database import connect
from utils.logger import get_logger

_logger = get_logger(__name__)

# owned by the catalog
PRICE_OVERRIDES_KEY = "price_overrides"
CUSTOM_PRODUCTS_KEY = "custom_products"
DELETED_PRODUCTS_KEY = "deleted_products"
EDITED_PRODUCTS_KEY = "edited_products"
PENDING_PRODUCT_WRITES_KEY = "pending_product_writes"
# owned by the cart
CART_KEY = "cart"
# owned by the checkout engine
PURCHASE_HISTORY_KEY = "purchase_history"
SESSION_EARNINGS_KEY = "session_earnings"
SESSION_START_KEY = "session_start"
PENDING_SESSIONS_KEY = "pending_sessions"
PENDING_PURCHASES_KEY = "pending_purchases"


class LocalCache:
    def __init__(self, path: str):
        self.path = path

    async def get(self, key: str, default: Any = None) -> Any:
        """Decoded value for key, or default when missing or unreadable."""
        async with connect(self.path) as conn:
            cur = await conn.execute(
                "SELECT value FROM cache_entries WHERE key = ?;", (key,)
            )
            row = await cur.fetchone()
            await cur.close()
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except ValueError:
            _logger.error(f"Corrupt cache entry {key!r}, ignoring it.")
            return default

    async def set(self, key: str, value: Any) -> None:
        await self.set_many({key: value})

    async def set_many(self, values: Dict[str, Any]) -> None:
        """Write several keys in one transaction."""
        now = datetime.now(timezone.utc).isoformat()
        async with connect(self.path) as conn:
            await conn.executemany(
                """
                INSERT INTO cache_entries(key, value, updated_at) VALUES(?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                               updated_at = excluded.updated_at;
                """,
                [(k, json.dumps(v), now) for k, v in values.items()],
            )
            await conn.commit()

    async def delete(self, key: str) -> None:
        async with connect(self.path) as conn:
            await conn.execute("DELETE FROM cache_entries WHERE key = ?;", (key,))
            await conn.commit()

    async def keys(self) -> list[str]:
        async with connect(self.path) as conn:
            cur = await conn.execute("SELECT key FROM cache_entries ORDER BY key;")
            rows = await cur.fetchall()
            await cur.close()
        return [row[0] for row in rows]
