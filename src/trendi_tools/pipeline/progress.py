"""Per-URL stage ledger and its JSON checkpoint file."""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from trendi_tools.core.types import PipelineStage
from trendi_tools.log import get_logger
from trendi_tools.storage.models import utcnow

logger = get_logger(__name__)


class StageRecord(BaseModel):
    timestamp: datetime = Field(default_factory=utcnow)
    success: bool
    error: Optional[str] = None


class ExtractedTool(BaseModel):
    """Structured fields returned by the extraction stage."""

    name: str
    tagline: str = ""
    summary: str = ""
    descriptor: str = ""
    category: Optional[str] = None
    tags: list[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("extracted tool name is empty")
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_default(cls, v):
        return v or []


class UrlProgress(BaseModel):
    status: PipelineStage = PipelineStage.PENDING
    extracted: Optional[ExtractedTool] = None
    screenshot_path: Optional[str] = None
    screenshot_asset: Optional[str] = None
    saved_tool_id: Optional[int] = None
    error: Optional[str] = None
    attempts: int = 0
    last_attempt: Optional[datetime] = None
    stages: dict[PipelineStage, StageRecord] = Field(default_factory=dict)

    def begin(self, stage: PipelineStage) -> None:
        self.status = stage
        self.last_attempt = utcnow()

    def succeed(self, stage: PipelineStage, running: Optional[PipelineStage] = None) -> None:
        """Mark ``stage`` done; clears a failure left on the running stage by an earlier run."""
        self.status = stage
        self.last_attempt = utcnow()
        self.stages[stage] = StageRecord(success=True)
        if running is not None:
            self.stages.pop(running, None)

    def fail(self, stage: PipelineStage, error: str) -> None:
        self.status = PipelineStage.FAILED
        self.error = error
        self.last_attempt = utcnow()
        self.stages[stage] = StageRecord(success=False, error=error)

    def has_completed(self, stage: PipelineStage) -> bool:
        record = self.stages.get(stage)
        return record is not None and record.success


class ProgressState(BaseModel):
    started_at: datetime = Field(default_factory=utcnow)
    last_saved_at: Optional[datetime] = None
    total_urls: int = 0
    processed_count: int = 0
    current_batch: int = 0
    urls: dict[str, UrlProgress] = Field(default_factory=dict)

    def entry(self, url: str) -> UrlProgress:
        if url not in self.urls:
            self.urls[url] = UrlProgress()
        return self.urls[url]

    def status_of(self, url: str) -> Optional[PipelineStage]:
        progress = self.urls.get(url)
        return progress.status if progress else None

    def count(self, status: PipelineStage) -> int:
        return sum(1 for p in self.urls.values() if p.status == status)

    @property
    def completed_count(self) -> int:
        return self.count(PipelineStage.COMPLETED)

    @property
    def failed_count(self) -> int:
        return self.count(PipelineStage.FAILED)

    def refresh_counts(self) -> None:
        self.processed_count = self.completed_count + self.failed_count


class ProgressStore:
    """Reads and writes the progress checkpoint. Writes go through a temp file."""

    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[ProgressState]:
        if not self._path.exists():
            return None
        try:
            state = ProgressState.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (ValidationError, ValueError) as e:
            logger.warning("progress_file_unreadable", path=str(self._path), error=str(e))
            return None
        logger.info(
            "progress_loaded",
            path=str(self._path),
            urls=len(state.urls),
            completed=state.completed_count,
            failed=state.failed_count,
        )
        return state

    def save(self, state: ProgressState) -> None:
        state.last_saved_at = utcnow()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(state.model_dump_json(indent=2), encoding="utf-8")
        os.replace(tmp, self._path)
        logger.info(
            "progress_saved",
            processed=state.processed_count,
            total=state.total_urls,
        )
