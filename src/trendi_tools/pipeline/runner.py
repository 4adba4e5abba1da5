"""Batch enrichment pipeline: extract, screenshot, upload, save."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import ValidationError

from trendi_tools.config import PipelineConfig
from trendi_tools.core.errors import (
    ExtractionError,
    PersistenceError,
    ScreenshotError,
    StageError,
    UploadError,
)
from trendi_tools.core.types import PipelineStage, RunMode
from trendi_tools.log import get_logger
from trendi_tools.pipeline.backends import PipelineBackends, screenshot_filename
from trendi_tools.pipeline.progress import ExtractedTool, ProgressState, ProgressStore, UrlProgress
from trendi_tools.storage.models import ToolRecord

logger = get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


def select_urls(urls: list[str], state: ProgressState, mode: RunMode) -> list[str]:
    """Pick the URLs a run should process."""
    match mode:
        case RunMode.FRESH:
            return list(urls)
        case RunMode.RESUME:
            return [u for u in urls if state.status_of(u) != PipelineStage.COMPLETED]
        case RunMode.RETRY_FAILED:
            return [u for u in urls if state.status_of(u) in (None, PipelineStage.FAILED)]


def _error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


class EnrichmentPipeline:
    """Runs URLs through the four stages, one at a time, with a resumable ledger.

    A stage already marked successful in the ledger is skipped and its
    recorded output reused. A stage failure marks the URL failed and moves
    on to the next URL.
    """

    def __init__(
        self,
        config: PipelineConfig,
        backends: PipelineBackends,
        store: ProgressStore,
        sleep: Sleep = asyncio.sleep,
    ):
        self._config = config
        self._backends = backends
        self._store = store
        self._sleep = sleep

    def initial_state(self, mode: RunMode) -> ProgressState:
        if mode is not RunMode.FRESH:
            state = self._store.load()
            if state is not None:
                return state
            logger.info("no_saved_progress", mode=str(mode))
        return ProgressState()

    async def run(
        self,
        urls: list[str],
        mode: RunMode = RunMode.FRESH,
        state: Optional[ProgressState] = None,
    ) -> ProgressState:
        if state is None:
            state = self.initial_state(mode)
        state.total_urls = len(urls)
        todo = select_urls(urls, state, mode)
        batch_size = self._config.batch_size
        total_batches = (len(todo) + batch_size - 1) // batch_size

        logger.info(
            "pipeline_started",
            mode=str(mode),
            total_urls=len(urls),
            to_process=len(todo),
            skipped=len(urls) - len(todo),
            batches=total_batches,
        )

        processed = 0
        try:
            for batch_index in range(total_batches):
                if batch_index > 0:
                    logger.info("batch_delay", seconds=self._config.delay_between_batches_s)
                    await self._sleep(self._config.delay_between_batches_s)

                batch = todo[batch_index * batch_size : (batch_index + 1) * batch_size]
                state.current_batch = batch_index + 1
                logger.info("batch_started", batch=batch_index + 1, total=total_batches, size=len(batch))

                for position, url in enumerate(batch):
                    if position > 0:
                        await self._sleep(self._config.delay_between_requests_s)
                    await self.process_url(state, url)
                    processed += 1
                    if processed % self._config.save_progress_interval == 0:
                        self._store.save(state)

                self._store.save(state)
        finally:
            self._store.save(state)

        logger.info(
            "pipeline_finished",
            processed=processed,
            completed=state.completed_count,
            failed=state.failed_count,
        )
        return state

    async def process_url(self, state: ProgressState, url: str) -> Optional[int]:
        """Run one URL through every outstanding stage. Returns the saved tool id or None."""
        entry = state.entry(url)
        entry.attempts += 1
        entry.error = None
        logger.info("url_processing", url=url, attempt=entry.attempts)

        try:
            extracted = await self._extract(url, entry)
            screenshot = await self._capture(url, entry, extracted)
            asset = await self._upload(url, entry, screenshot)
            tool_id = await self._save(url, entry, extracted, asset)
        except StageError as e:
            logger.error("url_failed", url=url, stage=str(self._failed_stage(entry)), error=str(e))
            return None
        finally:
            state.refresh_counts()

        logger.info("url_completed", url=url, name=extracted.name, tool_id=tool_id)
        return tool_id

    @staticmethod
    def _failed_stage(entry: UrlProgress) -> Optional[PipelineStage]:
        failed = [s for s, r in entry.stages.items() if not r.success]
        return failed[-1] if failed else None

    async def _attempt(
        self,
        url: str,
        entry: UrlProgress,
        running: PipelineStage,
        error_cls: type[StageError],
        call: Callable[[], Awaitable[T]],
    ) -> T:
        entry.begin(running)
        logger.debug("stage_started", url=url, stage=str(running))
        try:
            return await call()
        except Exception as e:
            message = _error_message(e)
            entry.fail(running, message)
            if isinstance(e, StageError):
                raise
            raise error_cls(message) from e

    async def _extract(self, url: str, entry: UrlProgress) -> ExtractedTool:
        if entry.has_completed(PipelineStage.EXTRACTED) and entry.extracted is not None:
            logger.info("stage_skipped", url=url, stage=str(PipelineStage.EXTRACTED))
            return entry.extracted

        async def call() -> ExtractedTool:
            data = await self._backends.extractor.extract(url)
            try:
                return ExtractedTool.model_validate(data)
            except ValidationError as e:
                raise ExtractionError(f"Extraction returned invalid data: {e}") from e

        extracted = await self._attempt(
            url, entry, PipelineStage.EXTRACTING, ExtractionError, call
        )
        entry.extracted = extracted
        entry.succeed(PipelineStage.EXTRACTED, running=PipelineStage.EXTRACTING)
        logger.info("stage_completed", url=url, stage=str(PipelineStage.EXTRACTED), name=extracted.name)
        return extracted

    async def _capture(self, url: str, entry: UrlProgress, extracted: ExtractedTool) -> Path:
        if entry.has_completed(PipelineStage.SCREENSHOT_CAPTURED) and entry.screenshot_path:
            logger.info("stage_skipped", url=url, stage=str(PipelineStage.SCREENSHOT_CAPTURED))
            return Path(entry.screenshot_path)

        destination = Path(self._config.screenshot_dir) / screenshot_filename(extracted.name, url)
        path = await self._attempt(
            url,
            entry,
            PipelineStage.CAPTURING_SCREENSHOT,
            ScreenshotError,
            lambda: self._backends.screenshotter.capture(url, destination),
        )
        entry.screenshot_path = str(path)
        entry.succeed(PipelineStage.SCREENSHOT_CAPTURED, running=PipelineStage.CAPTURING_SCREENSHOT)
        logger.info("stage_completed", url=url, stage=str(PipelineStage.SCREENSHOT_CAPTURED), path=str(path))
        return path

    async def _upload(self, url: str, entry: UrlProgress, screenshot: Path) -> str:
        if entry.has_completed(PipelineStage.UPLOADED) and entry.screenshot_asset:
            logger.info("stage_skipped", url=url, stage=str(PipelineStage.UPLOADED))
            return entry.screenshot_asset

        asset = await self._attempt(
            url,
            entry,
            PipelineStage.UPLOADING,
            UploadError,
            lambda: self._backends.uploader.upload(screenshot),
        )
        entry.screenshot_asset = asset
        entry.succeed(PipelineStage.UPLOADED, running=PipelineStage.UPLOADING)
        logger.info("stage_completed", url=url, stage=str(PipelineStage.UPLOADED), asset=asset)
        return asset

    async def _save(
        self, url: str, entry: UrlProgress, extracted: ExtractedTool, asset: str
    ) -> int:
        if entry.has_completed(PipelineStage.COMPLETED) and entry.saved_tool_id is not None:
            logger.info("stage_skipped", url=url, stage=str(PipelineStage.COMPLETED))
            return entry.saved_tool_id

        tool = ToolRecord(
            url=url,
            name=extracted.name,
            tagline=extracted.tagline,
            summary=extracted.summary,
            descriptor=extracted.descriptor,
            category=extracted.category,
            tags=list(extracted.tags),
            screenshot=asset,
        )
        tool_id = await self._attempt(
            url, entry, PipelineStage.SAVING, PersistenceError, lambda: self._upsert(tool)
        )
        entry.saved_tool_id = tool_id
        entry.succeed(PipelineStage.COMPLETED, running=PipelineStage.SAVING)
        logger.info("stage_completed", url=url, stage=str(PipelineStage.COMPLETED), tool_id=tool_id)
        return tool_id

    async def _upsert(self, tool: ToolRecord) -> int:
        sink = self._backends.sink
        try:
            same_name = await sink.get_by_name(tool.name)
        except Exception as e:
            logger.warning("duplicate_name_check_failed", name=tool.name, error=str(e))
            same_name = None
        if same_name is not None and same_name.url != tool.url:
            logger.warning(
                "duplicate_tool_name",
                name=tool.name,
                existing_url=same_name.url,
                url=tool.url,
            )

        existing = await sink.get_by_url(tool.url)
        if existing is not None and existing.id is not None:
            await sink.update(
                existing.id,
                name=tool.name,
                tagline=tool.tagline,
                summary=tool.summary,
                descriptor=tool.descriptor,
                category=tool.category,
                tags=tool.tags,
                screenshot=tool.screenshot,
            )
            logger.info("tool_updated", tool_id=existing.id, name=tool.name)
            return existing.id

        tool_id = await sink.create(tool)
        logger.info("tool_created", tool_id=tool_id, name=tool.name)
        return tool_id
