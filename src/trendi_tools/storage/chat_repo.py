"""Append-only store of assistant chat turns."""

from __future__ import annotations

import json

from trendi_tools.storage.database import Database
from trendi_tools.storage.models import ChatMessageRecord, TokenUsage, parse_timestamp


class ChatRepository:
    def __init__(self, db: Database):
        self._db = db

    async def save(self, record: ChatMessageRecord) -> int:
        usage = record.token_usage
        cursor = await self._db.conn.execute(
            """INSERT INTO chat_messages
               (session_id, user_id, message, response, recommendations_json,
                prompt_tokens, completion_tokens, total_tokens)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                record.session_id,
                record.user_id,
                record.message,
                record.response,
                json.dumps(record.tool_recommendations),
                usage.prompt_tokens if usage else None,
                usage.completion_tokens if usage else None,
                usage.total_tokens if usage else None,
            ),
        )
        await self._db.conn.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    async def get_session_history(self, session_id: str, limit: int = 50) -> list[ChatMessageRecord]:
        """Messages of one session, oldest first."""
        cursor = await self._db.conn.execute(
            """SELECT * FROM chat_messages
               WHERE session_id = ?
               ORDER BY created_at ASC, id ASC
               LIMIT ?""",
            (session_id, limit),
        )
        return [self._row_to_record(row) for row in await cursor.fetchall()]

    @staticmethod
    def _row_to_record(row) -> ChatMessageRecord:
        usage = None
        if row["total_tokens"] is not None:
            usage = TokenUsage(
                prompt_tokens=row["prompt_tokens"],
                completion_tokens=row["completion_tokens"],
                total_tokens=row["total_tokens"],
            )
        return ChatMessageRecord(
            id=row["id"],
            session_id=row["session_id"],
            user_id=row["user_id"],
            message=row["message"],
            response=row["response"],
            tool_recommendations=json.loads(row["recommendations_json"]),
            token_usage=usage,
            created_at=parse_timestamp(row["created_at"]),
        )
