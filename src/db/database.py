# manages connections to the sqlite files, provides helper methods internal to db package
import asyncio
import os.path
from contextlib import asynccontextmanager
from sqlite3 import Row

import aiosqlite

from utils.logger import get_logger

_logger = get_logger(__name__)

DB_PATH = "data/cache.sqlite"

SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_entries (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    id         TEXT NOT NULL,
    data       TEXT NOT NULL,
    seq        INTEGER NOT NULL,
    PRIMARY KEY (collection, id)
);
"""

# paths whose schema has been ensured in this process
_initialized: set[str] = set()
_init_lock = asyncio.Lock()


async def _init_db(conn: aiosqlite.Connection) -> None:
    await conn.executescript(SCHEMA)
    await conn.commit()


async def _table_exists(conn: aiosqlite.Connection, table_name: str) -> bool:
    cur = await conn.execute(
        """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table'
          AND name = ?;
        """,
        (table_name,),
    )
    row = await cur.fetchone()
    await cur.close()
    return row is not None


@asynccontextmanager
async def connect(path: str | None = None) -> aiosqlite.Connection:
    """Async context manager yielding an aiosqlite connection.

    Ensures the schema exists on first use of each database file.
    """
    path = path or DB_PATH
    directory = os.path.dirname(path)
    if directory and not os.path.isdir(directory):
        os.makedirs(directory, exist_ok=True)

    conn = await aiosqlite.connect(path)
    conn.row_factory = Row

    try:
        if path not in _initialized:
            async with _init_lock:
                if path not in _initialized:
                    if not await _table_exists(conn, "documents"):
                        _logger.info(f"Initializing database {path}...")
                    await _init_db(conn)
                    _initialized.add(path)
        yield conn
    finally:
        await conn.close()
