"""User bookmark mutations."""

from __future__ import annotations

from typing import Optional

from trendi_tools.core.errors import NotAuthenticatedError, ToolNotFoundError
from trendi_tools.log import get_logger
from trendi_tools.storage.bookmark_repo import BookmarkRepository
from trendi_tools.storage.tool_repo import ToolRepository

logger = get_logger(__name__)


class BookmarkService:
    """Add/remove bookmarks for the calling user. Both operations are idempotent."""

    def __init__(self, bookmarks: BookmarkRepository, tools: ToolRepository):
        self._bookmarks = bookmarks
        self._tools = tools

    async def add(self, user_id: Optional[str], tool_id: int) -> None:
        if not user_id:
            raise NotAuthenticatedError()
        if await self._tools.get(tool_id) is None:
            raise ToolNotFoundError(f"Tool {tool_id} not found")
        if await self._bookmarks.add(user_id, tool_id):
            logger.info("bookmark_added", user_id=user_id, tool_id=tool_id)

    async def remove(self, user_id: Optional[str], tool_id: int) -> None:
        if not user_id:
            raise NotAuthenticatedError()
        if await self._bookmarks.remove(user_id, tool_id):
            logger.info("bookmark_removed", user_id=user_id, tool_id=tool_id)

    async def bookmarked_ids(self, user_id: Optional[str]) -> list[int]:
        if not user_id:
            return []
        return await self._bookmarks.list_tool_ids(user_id)
