"""
Document store client: JSON documents grouped in collections, each keyed by a
store-assigned opaque id. Supports get/add/update/delete, field-equality
queries and ordering by a field.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Iterable, List, Optional, Tuple

from db.database import connect
from utils.logger import get_logger

_logger = get_logger(__name__)

PRODUCTS = "products"
PURCHASES = "purchases"
SESSIONS = "sessions"


def _new_id() -> str:
    return uuid.uuid4().hex[:20]


def _row_to_doc(row) -> dict:
    doc = json.loads(row[1])
    doc["id"] = row[0]
    return doc


class DocumentStore:
    def __init__(self, path: str):
        self.path = path

    async def ping(self) -> None:
        async with connect(self.path) as conn:
            cur = await conn.execute("SELECT 1;")
            await cur.fetchone()
            await cur.close()

    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        async with connect(self.path) as conn:
            cur = await conn.execute(
                "SELECT id, data FROM documents WHERE collection = ? AND id = ?;",
                (collection, doc_id),
            )
            row = await cur.fetchone()
            await cur.close()
        return _row_to_doc(row) if row else None

    async def add(self, collection: str, data: dict) -> dict:
        """Insert a document and return it with its new id."""
        doc_id = _new_id()
        body = {k: v for k, v in data.items() if k != "id"}
        async with connect(self.path) as conn:
            cur = await conn.execute(
                "SELECT COALESCE(MAX(seq), 0) + 1 FROM documents WHERE collection = ?;",
                (collection,),
            )
            seq = (await cur.fetchone())[0]
            await cur.close()
            await conn.execute(
                "INSERT INTO documents(collection, id, data, seq) VALUES (?, ?, ?, ?);",
                (collection, doc_id, json.dumps(body), seq),
            )
            await conn.commit()
        _logger.debug(f"Added {collection}/{doc_id}")
        return {"id": doc_id, **body}

    async def update(self, collection: str, doc_id: str, changes: dict) -> Optional[dict]:
        """Merge changes into a document; None if it doesn't exist."""
        async with connect(self.path) as conn:
            cur = await conn.execute(
                "SELECT id, data FROM documents WHERE collection = ? AND id = ?;",
                (collection, doc_id),
            )
            row = await cur.fetchone()
            await cur.close()
            if not row:
                return None
            doc = json.loads(row[1])
            doc.update({k: v for k, v in changes.items() if k != "id"})
            await conn.execute(
                "UPDATE documents SET data = ? WHERE collection = ? AND id = ?;",
                (json.dumps(doc), collection, doc_id),
            )
            await conn.commit()
        return {"id": doc_id, **doc}

    async def delete(self, collection: str, doc_id: str) -> bool:
        async with connect(self.path) as conn:
            res = await conn.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?;",
                (collection, doc_id),
            )
            await conn.commit()
            return res.rowcount > 0

    async def query(
        self,
        collection: str,
        where: Iterable[Tuple[str, Any]] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[dict]:
        """
        Documents of a collection matching every (field, value) equality.
        Unordered queries come back in insertion order.
        """
        clauses = ["collection = ?"]
        params: List[Any] = [collection]
        for field_name, value in where:
            clauses.append("json_extract(data, ?) = ?")
            params.extend([f"$.{field_name}", value])

        sql = f"SELECT id, data FROM documents WHERE {' AND '.join(clauses)}"
        if order_by:
            direction = "DESC" if descending else "ASC"
            sql += f" ORDER BY json_extract(data, ?) {direction}, seq"
            params.append(f"$.{order_by}")
        else:
            sql += " ORDER BY seq"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        async with connect(self.path) as conn:
            cur = await conn.execute(sql + ";", tuple(params))
            rows = await cur.fetchall()
            await cur.close()
        return [_row_to_doc(row) for row in rows]
