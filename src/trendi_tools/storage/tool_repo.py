"""Tool catalog repository with CRUD, recency paging and per-field FTS5 search."""

from __future__ import annotations

import json
import re
from typing import Any, Optional

import aiosqlite

from trendi_tools.core.errors import DuplicateToolError
from trendi_tools.log import get_logger
from trendi_tools.storage.database import Database
from trendi_tools.storage.models import ToolRecord, parse_timestamp

logger = get_logger(__name__)

# Searchable field -> FTS5 table holding it
SEARCH_INDEXES = {
    "name": "tools_name_fts",
    "descriptor": "tools_descriptor_fts",
    "tags": "tools_tags_fts",
}

_UPDATABLE_FIELDS = (
    "url",
    "name",
    "tagline",
    "summary",
    "descriptor",
    "category",
    "tags",
    "rating",
    "featured",
    "screenshot",
)

_TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)


def build_match_expression(query: str) -> Optional[str]:
    """Turn free text into a safe FTS5 MATCH expression.

    Each word becomes a quoted term, the last one a prefix term so that
    search-as-you-type keeps matching. Terms are OR-ed and bm25 ranks
    documents matching more of them first. Returns None for text with no
    searchable words.
    """
    tokens = _TOKEN_PATTERN.findall(query.lower())
    if not tokens:
        return None
    terms = [f'"{token}"' for token in tokens]
    terms[-1] += "*"
    return " OR ".join(terms)


class ToolRepository:
    """CRUD + search over the tools table."""

    def __init__(self, db: Database):
        self._db = db

    async def create(self, tool: ToolRecord) -> int:
        """Insert a tool and return its id. Raises if the URL is already cataloged."""
        try:
            cursor = await self._db.conn.execute(
                """INSERT INTO tools
                   (url, name, tagline, summary, descriptor, category,
                    tags_json, rating, featured, screenshot)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    tool.url,
                    tool.name,
                    tool.tagline,
                    tool.summary,
                    tool.descriptor,
                    tool.category,
                    json.dumps(tool.tags),
                    tool.rating,
                    _bool_to_db(tool.featured),
                    tool.screenshot,
                ),
            )
        except aiosqlite.IntegrityError as e:
            raise DuplicateToolError(f"Tool with URL {tool.url} already exists") from e
        await self._db.conn.commit()
        logger.debug("tool_created", tool_id=cursor.lastrowid, url=tool.url)
        return cursor.lastrowid  # type: ignore[return-value]

    async def update(self, tool_id: int, **changes: Any) -> bool:
        """Patch the given fields. None values are ignored. Returns False if no such tool."""
        updates = {k: v for k, v in changes.items() if v is not None}
        unknown = set(updates) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown tool fields: {', '.join(sorted(unknown))}")
        if not updates:
            return await self.get(tool_id) is not None

        columns: list[str] = []
        values: list[Any] = []
        for key, value in updates.items():
            if key == "tags":
                columns.append("tags_json = ?")
                values.append(json.dumps(value))
            elif key == "featured":
                columns.append("featured = ?")
                values.append(_bool_to_db(value))
            else:
                columns.append(f"{key} = ?")
                values.append(value)
        values.append(tool_id)

        cursor = await self._db.conn.execute(
            f"UPDATE tools SET {', '.join(columns)} WHERE id = ?", values
        )
        await self._db.conn.commit()
        return cursor.rowcount > 0

    async def delete(self, tool_id: int) -> bool:
        cursor = await self._db.conn.execute("DELETE FROM tools WHERE id = ?", (tool_id,))
        await self._db.conn.commit()
        return cursor.rowcount > 0

    async def delete_many(self, tool_ids: list[int]) -> dict[int, bool]:
        """Delete each id in turn. Maps every id to whether a row was removed."""
        results = {}
        for tool_id in tool_ids:
            results[tool_id] = await self.delete(tool_id)
        logger.info("tools_deleted", requested=len(tool_ids), deleted=sum(results.values()))
        return results

    async def get(self, tool_id: int) -> Optional[ToolRecord]:
        cursor = await self._db.conn.execute("SELECT * FROM tools WHERE id = ?", (tool_id,))
        row = await cursor.fetchone()
        return self._row_to_record(row) if row else None

    async def get_many(self, tool_ids: list[int]) -> list[ToolRecord]:
        """Fetch tools by id, preserving the requested order and dropping missing ids."""
        if not tool_ids:
            return []
        placeholders = ", ".join("?" for _ in tool_ids)
        cursor = await self._db.conn.execute(
            f"SELECT * FROM tools WHERE id IN ({placeholders})", tool_ids
        )
        by_id = {row["id"]: self._row_to_record(row) for row in await cursor.fetchall()}
        return [by_id[i] for i in tool_ids if i in by_id]

    async def get_by_url(self, url: str) -> Optional[ToolRecord]:
        cursor = await self._db.conn.execute("SELECT * FROM tools WHERE url = ?", (url,))
        row = await cursor.fetchone()
        return self._row_to_record(row) if row else None

    async def get_by_name(self, name: str) -> Optional[ToolRecord]:
        """Case-insensitive exact name lookup."""
        cursor = await self._db.conn.execute(
            "SELECT * FROM tools WHERE lower(name) = lower(?) ORDER BY id LIMIT 1",
            (name,),
        )
        row = await cursor.fetchone()
        return self._row_to_record(row) if row else None

    async def list_all(self) -> list[ToolRecord]:
        cursor = await self._db.conn.execute("SELECT * FROM tools ORDER BY id")
        return [self._row_to_record(row) for row in await cursor.fetchall()]

    async def count(self) -> int:
        cursor = await self._db.conn.execute("SELECT COUNT(*) FROM tools")
        row = await cursor.fetchone()
        return row[0]

    async def list_recent(
        self, limit: int, before_id: Optional[int] = None, category: Optional[str] = None
    ) -> list[ToolRecord]:
        """Newest tools first, keyset-paginated on id."""
        clauses: list[str] = []
        params: list[Any] = []
        if category:
            clauses.append("category = ?")
            params.append(category)
        if before_id is not None:
            clauses.append("id < ?")
            params.append(before_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)
        cursor = await self._db.conn.execute(
            f"SELECT * FROM tools {where} ORDER BY id DESC LIMIT ?", params
        )
        return [self._row_to_record(row) for row in await cursor.fetchall()]

    async def list_featured(self, limit: int) -> list[ToolRecord]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM tools WHERE featured = 1 ORDER BY id LIMIT ?", (limit,)
        )
        return [self._row_to_record(row) for row in await cursor.fetchall()]

    async def list_categories(self) -> list[str]:
        cursor = await self._db.conn.execute(
            """SELECT DISTINCT category FROM tools
               WHERE category IS NOT NULL AND category != ''
               ORDER BY category"""
        )
        return [row["category"] for row in await cursor.fetchall()]

    async def search_field(
        self, field: str, query: str, limit: int, category: Optional[str] = None
    ) -> list[ToolRecord]:
        """Full-text search scoped to one field, best matches first."""
        table = SEARCH_INDEXES[field]
        expression = build_match_expression(query)
        if expression is None:
            return []

        sql = f"""SELECT t.* FROM tools t
                  JOIN {table} f ON t.id = f.rowid
                  WHERE {table} MATCH ?"""
        params: list[Any] = [expression]
        if category:
            sql += " AND t.category = ?"
            params.append(category)
        sql += " ORDER BY rank LIMIT ?"
        params.append(limit)

        cursor = await self._db.conn.execute(sql, params)
        return [self._row_to_record(row) for row in await cursor.fetchall()]

    @staticmethod
    def _row_to_record(row) -> ToolRecord:
        featured = row["featured"]
        return ToolRecord(
            id=row["id"],
            url=row["url"],
            name=row["name"],
            tagline=row["tagline"],
            summary=row["summary"],
            descriptor=row["descriptor"],
            category=row["category"],
            tags=json.loads(row["tags_json"] or "[]"),
            rating=row["rating"],
            featured=None if featured is None else bool(featured),
            screenshot=row["screenshot"],
            created_at=parse_timestamp(row["created_at"]),
        )


def _bool_to_db(value: Optional[bool]) -> Optional[int]:
    return None if value is None else int(value)
