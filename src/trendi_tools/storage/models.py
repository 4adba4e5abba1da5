"""Data models for storage layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ToolRecord:
    url: str
    name: str
    tagline: str = ""
    summary: str = ""
    descriptor: str = ""
    category: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    rating: Optional[float] = None
    featured: Optional[bool] = None
    screenshot: Optional[str] = None  # absolute URL, legacy path or storage id
    created_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None


@dataclass
class BookmarkRecord:
    user_id: str
    tool_id: int
    created_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None


@dataclass(frozen=True, slots=True)
class TokenUsage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatMessageRecord:
    session_id: str
    message: str
    response: str
    user_id: Optional[str] = None
    tool_recommendations: list[int] = field(default_factory=list)
    token_usage: Optional[TokenUsage] = None
    created_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None


@dataclass
class SearchLogRecord:
    query: str
    results_count: int
    user_id: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)
    id: Optional[int] = None


@dataclass
class FileRecord:
    storage_id: str
    filename: str
    content_type: str
    size: int
    uploaded_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None


def parse_timestamp(value: str) -> datetime:
    """Parse a timestamp written by SQLite's strftime (UTC, no offset)."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
