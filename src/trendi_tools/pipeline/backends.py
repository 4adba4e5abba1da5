"""External-call boundaries of the enrichment pipeline."""

from __future__ import annotations

import asyncio
import hashlib
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol

from trendi_tools.core.screenshots import image_path_for
from trendi_tools.log import get_logger
from trendi_tools.services.object_storage import ObjectStorageService
from trendi_tools.storage.file_repo import FileRepository
from trendi_tools.storage.models import FileRecord, ToolRecord

logger = get_logger(__name__)


class Extractor(Protocol):
    async def extract(self, url: str) -> dict[str, Any]: ...


class ScreenshotTaker(Protocol):
    async def capture(self, url: str, destination: Path) -> Path: ...


class Uploader(Protocol):
    async def upload(self, path: Path) -> str:
        """Store the file and return its relative asset path."""
        ...


class ToolSink(Protocol):
    async def get_by_name(self, name: str) -> Optional[ToolRecord]: ...

    async def get_by_url(self, url: str) -> Optional[ToolRecord]: ...

    async def create(self, tool: ToolRecord) -> int: ...

    async def update(self, tool_id: int, **changes: Any) -> bool: ...


@dataclass
class PipelineBackends:
    extractor: Extractor
    screenshotter: ScreenshotTaker
    uploader: Uploader
    sink: ToolSink


def screenshot_filename(name: str, url: str) -> str:
    """``("Notion AI!", url)`` -> ``"notion_ai_<8 hex of sha1(url)>.png"``.

    Tools can share a name; the URL digest keeps their files apart.
    """
    stem = re.sub(r"[^a-z0-9]", "_", name.lower())
    stem = re.sub(r"_+", "_", stem).strip("_")
    digest = hashlib.sha1(url.encode("utf-8")).hexdigest()[:8]
    return f"{stem or 'tool'}_{digest}.png"


class AssetUploader:
    """Uploads local screenshots to object storage and records file metadata."""

    def __init__(self, storage: ObjectStorageService, files: Optional[FileRepository] = None):
        self._storage = storage
        self._files = files

    async def upload(self, path: Path) -> str:
        data = await asyncio.to_thread(path.read_bytes)
        storage_id = await self._storage.upload(data, content_type="image/png")
        if self._files is not None:
            await self._files.save(
                FileRecord(
                    storage_id=storage_id,
                    filename=path.name,
                    content_type="image/png",
                    size=len(data),
                )
            )
        return image_path_for(storage_id)
