"""Metadata for assets uploaded to object storage."""

from __future__ import annotations

from typing import Optional

from trendi_tools.storage.database import Database
from trendi_tools.storage.models import FileRecord, parse_timestamp


class FileRepository:
    def __init__(self, db: Database):
        self._db = db

    async def save(self, record: FileRecord) -> None:
        await self._db.conn.execute(
            """INSERT INTO files (storage_id, filename, content_type, size)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(storage_id) DO UPDATE SET
                   filename = excluded.filename,
                   content_type = excluded.content_type,
                   size = excluded.size""",
            (record.storage_id, record.filename, record.content_type, record.size),
        )
        await self._db.conn.commit()

    async def get(self, storage_id: str) -> Optional[FileRecord]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM files WHERE storage_id = ?", (storage_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return FileRecord(
            id=row["id"],
            storage_id=row["storage_id"],
            filename=row["filename"],
            content_type=row["content_type"],
            size=row["size"],
            uploaded_at=parse_timestamp(row["uploaded_at"]),
        )
