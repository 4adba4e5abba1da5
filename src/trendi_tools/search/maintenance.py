"""Catalog maintenance for stored screenshot values."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from trendi_tools.core.screenshots import has_double_prefix, repair_double_prefix
from trendi_tools.log import get_logger
from trendi_tools.storage.tool_repo import ToolRepository

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ScreenshotReport:
    tool_id: int
    name: str
    screenshot: Optional[str]
    has_double_prefix: bool


@dataclass(frozen=True, slots=True)
class ScreenshotFix:
    tool_id: int
    name: str
    old_value: str
    new_value: str


async def inspect_screenshots(repo: ToolRepository) -> list[ScreenshotReport]:
    return [
        ScreenshotReport(
            tool_id=tool.id,  # type: ignore[arg-type]
            name=tool.name,
            screenshot=tool.screenshot,
            has_double_prefix=has_double_prefix(tool.screenshot),
        )
        for tool in await repo.list_all()
    ]


async def fix_malformed_screenshots(repo: ToolRepository) -> list[ScreenshotFix]:
    """Rewrite doubled ``/image?id=`` prefixes left by earlier uploads."""
    fixes: list[ScreenshotFix] = []
    for tool in await repo.list_all():
        if not tool.screenshot:
            continue
        repaired = repair_double_prefix(tool.screenshot)
        if repaired is None:
            continue
        await repo.update(tool.id, screenshot=repaired)  # type: ignore[arg-type]
        fixes.append(
            ScreenshotFix(
                tool_id=tool.id,  # type: ignore[arg-type]
                name=tool.name,
                old_value=tool.screenshot,
                new_value=repaired,
            )
        )
        logger.info("screenshot_repaired", tool_id=tool.id, new_value=repaired)
    return fixes
