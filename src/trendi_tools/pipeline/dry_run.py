"""Fabricated backends for validating the pipeline without external calls."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

from trendi_tools.core.screenshots import image_path_for
from trendi_tools.log import get_logger
from trendi_tools.pipeline.backends import PipelineBackends
from trendi_tools.storage.models import ToolRecord

logger = get_logger(__name__)

SAMPLE_EXTRACTION: dict[str, Any] = {
    "name": "Sample Tool Name",
    "tagline": "Sample tagline for testing",
    "summary": (
        "This is a sample summary that would be extracted from the website. "
        "In a real run, this would contain detailed information about the tool, "
        "its features, benefits, and use cases."
    ),
    "descriptor": "A sample tool for demonstration purposes",
    "category": "Sample",
    "tags": ["Sample", "Testing", "Demo"],
}


class DryRunExtractor:
    async def extract(self, url: str) -> dict[str, Any]:
        logger.info("dry_run_extract", url=url)
        return dict(SAMPLE_EXTRACTION, tags=list(SAMPLE_EXTRACTION["tags"]))


class DryRunScreenshotter:
    """Returns the destination path without writing anything."""

    async def capture(self, url: str, destination: Path) -> Path:
        logger.info("dry_run_screenshot", url=url, path=str(destination))
        return destination


class DryRunUploader:
    async def upload(self, path: Path) -> str:
        logger.info("dry_run_upload", path=str(path))
        return image_path_for(f"dry-run-{path.stem}")


class DryRunToolSink:
    """In-memory tool store."""

    def __init__(self) -> None:
        self.tools: dict[int, ToolRecord] = {}
        self._next_id = 1

    async def get_by_name(self, name: str) -> Optional[ToolRecord]:
        wanted = name.lower()
        return next((t for t in self.tools.values() if t.name.lower() == wanted), None)

    async def get_by_url(self, url: str) -> Optional[ToolRecord]:
        return next((t for t in self.tools.values() if t.url == url), None)

    async def create(self, tool: ToolRecord) -> int:
        tool_id = self._next_id
        self._next_id += 1
        self.tools[tool_id] = replace(tool, id=tool_id)
        logger.info("dry_run_tool_created", tool_id=tool_id, name=tool.name)
        return tool_id

    async def update(self, tool_id: int, **changes: Any) -> bool:
        if tool_id not in self.tools:
            return False
        updates = {k: v for k, v in changes.items() if v is not None}
        self.tools[tool_id] = replace(self.tools[tool_id], **updates)
        return True


def dry_run_backends() -> PipelineBackends:
    return PipelineBackends(
        extractor=DryRunExtractor(),
        screenshotter=DryRunScreenshotter(),
        uploader=DryRunUploader(),
        sink=DryRunToolSink(),
    )
