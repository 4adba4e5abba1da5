"""Search log: append-only query records, read only in aggregate."""

from __future__ import annotations

from typing import Optional

from trendi_tools.storage.database import Database
from trendi_tools.storage.models import SearchLogRecord


class SearchLogRepository:
    def __init__(self, db: Database):
        self._db = db

    async def save(self, record: SearchLogRecord) -> int:
        cursor = await self._db.conn.execute(
            "INSERT INTO search_logs (user_id, query, results_count, timestamp) VALUES (?, ?, ?, ?)",
            (
                record.user_id,
                record.query,
                record.results_count,
                record.timestamp.replace(tzinfo=None).isoformat(timespec="milliseconds"),
            ),
        )
        await self._db.conn.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    async def log(
        self, query: str, results_count: int, user_id: Optional[str] = None
    ) -> SearchLogRecord:
        record = SearchLogRecord(query=query, results_count=results_count, user_id=user_id)
        record.id = await self.save(record)
        return record

    async def popular_queries(self, limit: int = 10) -> list[str]:
        """Most frequent queries, ties broken by first appearance."""
        cursor = await self._db.conn.execute(
            """SELECT query, COUNT(*) AS hits, MIN(id) AS first_seen
               FROM search_logs
               GROUP BY query
               ORDER BY hits DESC, first_seen ASC
               LIMIT ?""",
            (limit,),
        )
        return [row["query"] for row in await cursor.fetchall()]
