"""Sample catalog seeding."""

from __future__ import annotations

from importlib import resources

import yaml

from trendi_tools.log import get_logger
from trendi_tools.storage.models import ToolRecord
from trendi_tools.storage.tool_repo import ToolRepository

logger = get_logger(__name__)


def load_sample_tools() -> list[ToolRecord]:
    raw = resources.files("trendi_tools.storage").joinpath("seed_tools.yaml").read_text(encoding="utf-8")
    return [ToolRecord(**entry) for entry in yaml.safe_load(raw)]


async def seed_tools(repo: ToolRepository) -> str:
    """Insert the sample catalog unless the tools table already has rows."""
    if await repo.count() > 0:
        return "Tools already seeded"

    tools = load_sample_tools()
    for tool in tools:
        await repo.create(tool)
    logger.info("tools_seeded", count=len(tools))
    return f"Seeded {len(tools)} tools successfully!"
