"""SQLite database connection manager with schema migration."""

from __future__ import annotations

from pathlib import Path

import aiosqlite

from trendi_tools.log import get_logger

logger = get_logger(__name__)

# One FTS5 index per searchable field. The indexes store their own copy of the
# text keyed by the tool rowid and are kept in sync by triggers.
SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS tools (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    url             TEXT    NOT NULL UNIQUE,
    name            TEXT    NOT NULL,
    tagline         TEXT    NOT NULL DEFAULT '',
    summary         TEXT    NOT NULL DEFAULT '',
    descriptor      TEXT    NOT NULL DEFAULT '',
    category        TEXT,
    tags_json       TEXT    NOT NULL DEFAULT '[]',
    rating          REAL,
    featured        INTEGER,
    screenshot      TEXT,
    created_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now'))
);

CREATE INDEX IF NOT EXISTS idx_tools_category ON tools(category, id);
CREATE INDEX IF NOT EXISTS idx_tools_featured ON tools(featured);

CREATE VIRTUAL TABLE IF NOT EXISTS tools_name_fts USING fts5(
    name,
    tokenize='porter unicode61'
);

CREATE VIRTUAL TABLE IF NOT EXISTS tools_descriptor_fts USING fts5(
    descriptor,
    tokenize='porter unicode61'
);

CREATE VIRTUAL TABLE IF NOT EXISTS tools_tags_fts USING fts5(
    tags,
    tokenize='porter unicode61'
);

CREATE TRIGGER IF NOT EXISTS trg_tools_fts_insert AFTER INSERT ON tools BEGIN
    INSERT INTO tools_name_fts(rowid, name) VALUES (new.id, new.name);
    INSERT INTO tools_descriptor_fts(rowid, descriptor) VALUES (new.id, new.descriptor);
    INSERT INTO tools_tags_fts(rowid, tags)
        VALUES (new.id, (SELECT group_concat(value, ' ') FROM json_each(new.tags_json)));
END;

CREATE TRIGGER IF NOT EXISTS trg_tools_fts_update AFTER UPDATE ON tools BEGIN
    DELETE FROM tools_name_fts WHERE rowid = old.id;
    DELETE FROM tools_descriptor_fts WHERE rowid = old.id;
    DELETE FROM tools_tags_fts WHERE rowid = old.id;
    INSERT INTO tools_name_fts(rowid, name) VALUES (new.id, new.name);
    INSERT INTO tools_descriptor_fts(rowid, descriptor) VALUES (new.id, new.descriptor);
    INSERT INTO tools_tags_fts(rowid, tags)
        VALUES (new.id, (SELECT group_concat(value, ' ') FROM json_each(new.tags_json)));
END;

CREATE TRIGGER IF NOT EXISTS trg_tools_fts_delete AFTER DELETE ON tools BEGIN
    DELETE FROM tools_name_fts WHERE rowid = old.id;
    DELETE FROM tools_descriptor_fts WHERE rowid = old.id;
    DELETE FROM tools_tags_fts WHERE rowid = old.id;
END;

CREATE TABLE IF NOT EXISTS bookmarks (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id         TEXT    NOT NULL,
    tool_id         INTEGER NOT NULL REFERENCES tools(id) ON DELETE CASCADE,
    created_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now')),
    UNIQUE (user_id, tool_id)
);

CREATE INDEX IF NOT EXISTS idx_bookmarks_user ON bookmarks(user_id);

CREATE TABLE IF NOT EXISTS chat_messages (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id          TEXT    NOT NULL,
    user_id             TEXT,
    message             TEXT    NOT NULL,
    response            TEXT    NOT NULL,
    recommendations_json TEXT   NOT NULL DEFAULT '[]',
    prompt_tokens       INTEGER,
    completion_tokens   INTEGER,
    total_tokens        INTEGER,
    created_at          TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now'))
);

CREATE INDEX IF NOT EXISTS idx_chat_session
    ON chat_messages(session_id, created_at);

CREATE TABLE IF NOT EXISTS search_logs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id         TEXT,
    query           TEXT    NOT NULL,
    results_count   INTEGER NOT NULL,
    timestamp       TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now'))
);

CREATE INDEX IF NOT EXISTS idx_search_logs_user ON search_logs(user_id);

CREATE TABLE IF NOT EXISTS files (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    storage_id      TEXT    NOT NULL UNIQUE,
    filename        TEXT    NOT NULL,
    content_type    TEXT    NOT NULL,
    size            INTEGER NOT NULL,
    uploaded_at     TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now'))
);
"""


class Database:
    """Async SQLite database manager."""

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection and run migrations."""
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA foreign_keys=ON")
        await self._conn.executescript(SCHEMA_SQL)
        await self._conn.commit()
        logger.info("database_initialized", path=self._db_path)

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._conn

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("database_closed")
