"""Search aggregator: merged multi-field search, paging and result annotation.

Text search runs as three independent field-searches (name, descriptor,
tags), each capped at ``field_fetch_cap`` hits. The hit lists are
concatenated in that order and de-duplicated keeping the first occurrence, so
a name match always ranks ahead of a descriptor or tag match for the same
tool. Paging over the merged list is offset based; the cursor is the next
offset as a string.

Known bound: with the default cap of 20 at most 60 distinct tools are
reachable for one query regardless of offset.

Browsing (empty query) is paged natively on the newest-first id order and
its cursor is the last id returned.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from typing import Any, Iterable, Optional

from trendi_tools.config import SearchConfig
from trendi_tools.core.screenshots import ScreenshotResolver
from trendi_tools.log import get_logger
from trendi_tools.storage.bookmark_repo import BookmarkRepository
from trendi_tools.storage.models import ToolRecord
from trendi_tools.storage.tool_repo import ToolRepository

logger = get_logger(__name__)

SEARCH_FIELDS = ("name", "descriptor", "tags")

# Returned as continue_cursor once a listing is exhausted
END_CURSOR = ""


@dataclass(frozen=True, slots=True)
class ToolResult:
    """A tool as served to clients."""

    tool: ToolRecord
    is_bookmarked: bool
    screenshot_url: Optional[str]

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self.tool)
        data["created_at"] = self.tool.created_at.isoformat()
        data["screenshot"] = self.screenshot_url
        data["is_bookmarked"] = self.is_bookmarked
        return data


@dataclass(frozen=True, slots=True)
class ToolPage:
    items: list[ToolResult]
    is_done: bool
    continue_cursor: str


def merge_unique(*result_lists: Iterable[ToolRecord]) -> list[ToolRecord]:
    """Concatenate hit lists and drop repeated tool ids, keeping first-seen order."""
    seen: set[int] = set()
    merged: list[ToolRecord] = []
    for results in result_lists:
        for tool in results:
            if tool.id in seen:
                continue
            seen.add(tool.id)  # type: ignore[arg-type]
            merged.append(tool)
    return merged


def paginate_offset(
    items: list[ToolRecord], cursor: Optional[str], page_size: int
) -> tuple[list[ToolRecord], bool, str]:
    if cursor == END_CURSOR:
        return [], True, END_CURSOR
    start = _parse_offset(cursor)
    end = start + page_size
    page = items[start:end]
    if end >= len(items):
        return page, True, END_CURSOR
    return page, False, str(end)


def _parse_offset(cursor: Optional[str]) -> int:
    if cursor is None:
        return 0
    try:
        return max(int(cursor), 0)
    except ValueError:
        logger.warning("invalid_search_cursor", cursor=cursor)
        return 0


class SearchAggregator:
    """Read paths over the tool catalog."""

    def __init__(
        self,
        tools: ToolRepository,
        bookmarks: BookmarkRepository,
        config: SearchConfig,
    ):
        self._tools = tools
        self._bookmarks = bookmarks
        self._config = config
        self._resolve = ScreenshotResolver(config.site_url)

    async def search_tools(
        self,
        query: str,
        category: Optional[str] = None,
        cursor: Optional[str] = None,
        page_size: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> ToolPage:
        page_size = page_size or self._config.default_page_size
        if not query.strip():
            page, is_done, next_cursor = await self._browse(category, cursor, page_size)
        else:
            merged = await self._merged_matches(query, category)
            page, is_done, next_cursor = paginate_offset(merged, cursor, page_size)
            logger.debug(
                "search_merged",
                query=query,
                category=category,
                matches=len(merged),
                returned=len(page),
            )

        items = await self._annotate(page, user_id)
        return ToolPage(items=items, is_done=is_done, continue_cursor=next_cursor)

    async def _merged_matches(self, query: str, category: Optional[str]) -> list[ToolRecord]:
        cap = self._config.field_fetch_cap
        hits = await asyncio.gather(
            *(self._tools.search_field(field, query, cap, category) for field in SEARCH_FIELDS)
        )
        return merge_unique(*hits)

    async def _browse(
        self, category: Optional[str], cursor: Optional[str], page_size: int
    ) -> tuple[list[ToolRecord], bool, str]:
        if cursor == END_CURSOR:
            return [], True, END_CURSOR
        before_id: Optional[int] = None
        if cursor is not None:
            try:
                before_id = int(cursor)
            except ValueError:
                logger.warning("invalid_browse_cursor", cursor=cursor)

        # One extra row tells whether another page exists
        rows = await self._tools.list_recent(page_size + 1, before_id=before_id, category=category)
        page = rows[:page_size]
        if len(rows) <= page_size or not page:
            return page, True, END_CURSOR
        return page, False, str(page[-1].id)

    async def featured_tools(self, user_id: Optional[str] = None) -> list[ToolResult]:
        tools = await self._tools.list_featured(self._config.featured_limit)
        return await self._annotate(tools, user_id)

    async def get_tool(self, tool_id: int, user_id: Optional[str] = None) -> Optional[ToolResult]:
        tool = await self._tools.get(tool_id)
        if tool is None:
            return None
        return (await self._annotate([tool], user_id))[0]

    async def get_tool_by_name(self, name: str, user_id: Optional[str] = None) -> Optional[ToolResult]:
        tool = await self._tools.get_by_name(name)
        if tool is None:
            return None
        return (await self._annotate([tool], user_id))[0]

    async def get_tool_by_url(self, url: str) -> Optional[ToolResult]:
        tool = await self._tools.get_by_url(url)
        if tool is None:
            return None
        return self._present(tool, is_bookmarked=False)

    async def get_tools(self, tool_ids: list[int]) -> list[ToolResult]:
        """Resolve stored ids (e.g. chat recommendations), dropping deleted tools."""
        tools = await self._tools.get_many(tool_ids)
        return [self._present(tool, is_bookmarked=False) for tool in tools]

    async def bookmarked_tools(self, user_id: Optional[str]) -> list[ToolResult]:
        if not user_id:
            return []
        tool_ids = await self._bookmarks.list_tool_ids(user_id)
        tools = await self._tools.get_many(tool_ids)
        return [self._present(tool, is_bookmarked=True) for tool in tools]

    async def categories(self) -> list[str]:
        return await self._tools.list_categories()

    async def _annotate(self, tools: list[ToolRecord], user_id: Optional[str]) -> list[ToolResult]:
        bookmarked: set[int] = set()
        if user_id and tools:
            bookmarked = set(await self._bookmarks.list_tool_ids(user_id))
        return [self._present(tool, tool.id in bookmarked) for tool in tools]

    def _present(self, tool: ToolRecord, is_bookmarked: bool) -> ToolResult:
        return ToolResult(
            tool=tool,
            is_bookmarked=is_bookmarked,
            screenshot_url=self._resolve(tool.screenshot, tool.name),
        )
