"""Bookmark repository: (user, tool) membership."""

from __future__ import annotations

from trendi_tools.storage.database import Database
from trendi_tools.storage.models import BookmarkRecord, parse_timestamp


class BookmarkRepository:
    def __init__(self, db: Database):
        self._db = db

    async def add(self, user_id: str, tool_id: int) -> bool:
        """Create the bookmark. Returns False if it already existed."""
        cursor = await self._db.conn.execute(
            "INSERT OR IGNORE INTO bookmarks (user_id, tool_id) VALUES (?, ?)",
            (user_id, tool_id),
        )
        await self._db.conn.commit()
        return cursor.rowcount > 0

    async def remove(self, user_id: str, tool_id: int) -> bool:
        cursor = await self._db.conn.execute(
            "DELETE FROM bookmarks WHERE user_id = ? AND tool_id = ?",
            (user_id, tool_id),
        )
        await self._db.conn.commit()
        return cursor.rowcount > 0

    async def exists(self, user_id: str, tool_id: int) -> bool:
        cursor = await self._db.conn.execute(
            "SELECT 1 FROM bookmarks WHERE user_id = ? AND tool_id = ?",
            (user_id, tool_id),
        )
        return await cursor.fetchone() is not None

    async def list_for_user(self, user_id: str) -> list[BookmarkRecord]:
        """Bookmarks of one user, oldest first."""
        cursor = await self._db.conn.execute(
            "SELECT * FROM bookmarks WHERE user_id = ? ORDER BY id",
            (user_id,),
        )
        return [
            BookmarkRecord(
                user_id=row["user_id"],
                tool_id=row["tool_id"],
                created_at=parse_timestamp(row["created_at"]),
                id=row["id"],
            )
            for row in await cursor.fetchall()
        ]

    async def list_tool_ids(self, user_id: str) -> list[int]:
        return [b.tool_id for b in await self.list_for_user(user_id)]
