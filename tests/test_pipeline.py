"""Tests for the enrichment pipeline: stage ledger, run modes, batching and checkpoints."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, call

import pytest

from trendi_tools.config import PipelineConfig
from trendi_tools.core.errors import ExtractionTimeoutError
from trendi_tools.core.types import PipelineStage, RunMode
from trendi_tools.pipeline.backends import PipelineBackends, screenshot_filename
from trendi_tools.pipeline.dry_run import DryRunToolSink, dry_run_backends
from trendi_tools.pipeline.progress import ExtractedTool, ProgressState, ProgressStore
from trendi_tools.pipeline.runner import EnrichmentPipeline, select_urls
from trendi_tools.storage.models import ToolRecord

URL = "https://example.com"

EXTRACTED = {
    "name": "Example Tool",
    "tagline": "Does examples",
    "summary": "An example summary",
    "descriptor": "Example descriptor",
    "category": "Testing",
    "tags": ["examples", "demo"],
}


class CountingStore(ProgressStore):
    def __init__(self, path):
        super().__init__(path)
        self.saves = 0

    def save(self, state):
        self.saves += 1
        super().save(state)


@pytest.fixture
def config(tmp_path):
    return PipelineConfig(
        progress_path=str(tmp_path / "progress.json"),
        results_path=str(tmp_path / "results.json"),
        screenshot_dir=str(tmp_path / "shots"),
    )


@pytest.fixture
def store(config):
    return CountingStore(config.progress_path)


def make_backends(sink=None, screenshot_error=None, extract_result=None):
    capture = AsyncMock(side_effect=screenshot_error or (lambda url, destination: destination))
    return PipelineBackends(
        extractor=AsyncMock(extract=AsyncMock(return_value=extract_result or dict(EXTRACTED))),
        screenshotter=AsyncMock(capture=capture),
        uploader=AsyncMock(upload=AsyncMock(return_value="/image?id=st_1")),
        sink=sink or DryRunToolSink(),
    )


def make_pipeline(config, backends, store):
    return EnrichmentPipeline(config, backends, store, sleep=AsyncMock())


class TestScreenshotFilename:
    @pytest.mark.parametrize(
        "name,filename",
        [
            ("Notion", "notion_327c3fda.png"),
            ("Notion AI!", "notion_ai_327c3fda.png"),
            ("  C++ / Rust  ", "c_rust_327c3fda.png"),
            ("!!!", "tool_327c3fda.png"),
        ],
    )
    def test_filename(self, name, filename):
        assert screenshot_filename(name, URL) == filename

    def test_same_name_different_urls(self):
        assert screenshot_filename("Notion", "https://notion.so") == "notion_40518bb0.png"
        assert screenshot_filename("Notion", URL) != screenshot_filename("Notion", "https://notion.so")


class TestSelectUrls:
    def _state(self):
        state = ProgressState()
        state.entry("a").succeed(PipelineStage.COMPLETED)
        state.entry("b").fail(PipelineStage.UPLOADING, "boom")
        state.entry("c").begin(PipelineStage.EXTRACTING)
        return state

    def test_fresh_takes_everything(self):
        assert select_urls(["a", "b", "c", "d"], self._state(), RunMode.FRESH) == ["a", "b", "c", "d"]

    def test_resume_skips_completed(self):
        assert select_urls(["a", "b", "c", "d"], self._state(), RunMode.RESUME) == ["b", "c", "d"]

    def test_retry_failed_takes_failed_and_untracked(self):
        assert select_urls(["a", "b", "c", "d"], self._state(), RunMode.RETRY_FAILED) == ["b", "d"]


class TestProcessUrl:
    @pytest.mark.asyncio
    async def test_all_stages_complete(self, config, store):
        sink = DryRunToolSink()
        backends = make_backends(sink=sink)
        pipeline = make_pipeline(config, backends, store)
        state = ProgressState()

        tool_id = await pipeline.process_url(state, URL)

        entry = state.urls[URL]
        assert entry.status == PipelineStage.COMPLETED
        assert tool_id == entry.saved_tool_id == 1
        assert entry.attempts == 1
        assert all(
            entry.has_completed(stage)
            for stage in (
                PipelineStage.EXTRACTED,
                PipelineStage.SCREENSHOT_CAPTURED,
                PipelineStage.UPLOADED,
                PipelineStage.COMPLETED,
            )
        )
        backends.screenshotter.capture.assert_awaited_once()
        destination = backends.screenshotter.capture.await_args.args[1]
        assert destination.name == "example_tool_327c3fda.png"
        saved = sink.tools[1]
        assert saved.url == URL
        assert saved.screenshot == "/image?id=st_1"
        assert saved.tags == ["examples", "demo"]

    @pytest.mark.asyncio
    async def test_screenshot_timeout_then_resume(self, config, store):
        """Extraction succeeds, the screenshot times out; resume retries only the screenshot."""
        failing = make_backends(screenshot_error=TimeoutError("Timeout 30000ms exceeded"))
        state = await make_pipeline(config, failing, store).run([URL], RunMode.FRESH)

        entry = state.urls[URL]
        assert entry.status == PipelineStage.FAILED
        assert entry.stages[PipelineStage.EXTRACTED].success
        assert entry.extracted == ExtractedTool(**EXTRACTED)
        failure = entry.stages[PipelineStage.CAPTURING_SCREENSHOT]
        assert not failure.success
        assert failure.error == "Timeout 30000ms exceeded"
        assert entry.error == "Timeout 30000ms exceeded"
        failing.uploader.upload.assert_not_awaited()

        saved = ProgressStore(config.progress_path).load()
        assert saved.urls[URL].stages[PipelineStage.EXTRACTED].success
        assert saved.urls[URL].extracted.name == "Example Tool"

        healthy = make_backends()
        state = await make_pipeline(config, healthy, store).run([URL], RunMode.RESUME)

        healthy.extractor.extract.assert_not_awaited()
        healthy.screenshotter.capture.assert_awaited_once()
        entry = state.urls[URL]
        assert entry.status == PipelineStage.COMPLETED
        assert entry.attempts == 2
        assert entry.error is None
        assert PipelineStage.CAPTURING_SCREENSHOT not in entry.stages

    @pytest.mark.asyncio
    async def test_cached_stages_are_reused(self, config, store):
        state = ProgressState()
        entry = state.entry(URL)
        entry.extracted = ExtractedTool(**EXTRACTED)
        entry.succeed(PipelineStage.EXTRACTED)
        entry.screenshot_path = "/tmp/example_tool.png"
        entry.succeed(PipelineStage.SCREENSHOT_CAPTURED)
        entry.screenshot_asset = "/image?id=old"
        entry.succeed(PipelineStage.UPLOADED)
        entry.fail(PipelineStage.SAVING, "database is locked")
        backends = make_backends()

        await make_pipeline(config, backends, store).process_url(state, URL)

        backends.extractor.extract.assert_not_awaited()
        backends.screenshotter.capture.assert_not_awaited()
        backends.uploader.upload.assert_not_awaited()
        assert backends.sink.tools[1].screenshot == "/image?id=old"
        assert state.urls[URL].status == PipelineStage.COMPLETED

    @pytest.mark.asyncio
    async def test_stage_error_message_is_kept_verbatim(self, config, store):
        backends = make_backends()
        backends.extractor.extract.side_effect = ExtractionTimeoutError(
            "Extraction job timed out after 30 attempts"
        )
        state = ProgressState()

        assert await make_pipeline(config, backends, store).process_url(state, URL) is None

        entry = state.urls[URL]
        assert entry.status == PipelineStage.FAILED
        assert entry.stages[PipelineStage.EXTRACTING].error == "Extraction job timed out after 30 attempts"
        backends.screenshotter.capture.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_extraction_fails_the_stage(self, config, store):
        backends = make_backends(extract_result={"name": "  ", "tags": None})
        state = ProgressState()

        await make_pipeline(config, backends, store).process_url(state, URL)

        failure = state.urls[URL].stages[PipelineStage.EXTRACTING]
        assert not failure.success
        assert failure.error.startswith("Extraction returned invalid data")

    @pytest.mark.asyncio
    async def test_save_updates_existing_url(self, config, store, tool_repo, make_tool):
        existing = await make_tool("Old Name", url=URL, tagline="old")
        backends = make_backends(sink=tool_repo)

        tool_id = await make_pipeline(config, backends, store).process_url(ProgressState(), URL)

        assert tool_id == existing.id
        assert await tool_repo.count() == 1
        updated = await tool_repo.get(existing.id)
        assert updated.name == "Example Tool"
        assert updated.tagline == "Does examples"
        assert updated.screenshot == "/image?id=st_1"

    @pytest.mark.asyncio
    async def test_duplicate_name_does_not_block_save(self, config, store, tool_repo, make_tool):
        await make_tool("Example Tool", url="https://other.example.com")
        backends = make_backends(sink=tool_repo)
        state = ProgressState()

        tool_id = await make_pipeline(config, backends, store).process_url(state, URL)

        assert state.urls[URL].status == PipelineStage.COMPLETED
        assert (await tool_repo.get(tool_id)).url == URL
        assert await tool_repo.count() == 2

    @pytest.mark.asyncio
    async def test_name_check_failure_does_not_block_save(self, config, store):
        sink = DryRunToolSink()
        sink.get_by_name = AsyncMock(side_effect=RuntimeError("index unavailable"))
        state = ProgressState()

        tool_id = await make_pipeline(config, make_backends(sink=sink), store).process_url(state, URL)

        assert state.urls[URL].status == PipelineStage.COMPLETED
        assert sink.tools[tool_id].url == URL

    @pytest.mark.asyncio
    async def test_persistence_failure(self, config, store):
        sink = DryRunToolSink()
        sink.create = AsyncMock(side_effect=RuntimeError("disk I/O error"))
        state = ProgressState()

        await make_pipeline(config, make_backends(sink=sink), store).process_url(state, URL)

        entry = state.urls[URL]
        assert entry.status == PipelineStage.FAILED
        assert entry.stages[PipelineStage.SAVING].error == "disk I/O error"
        assert entry.has_completed(PipelineStage.UPLOADED)


class TestRun:
    @pytest.mark.asyncio
    async def test_retry_failed_processes_only_failed(self, config, store):
        state = ProgressState()
        for url in ("https://done.example", "https://also-done.example"):
            state.entry(url).succeed(PipelineStage.COMPLETED)
        state.entry("https://broken.example").fail(PipelineStage.EXTRACTING, "boom")
        store.save(state)
        backends = make_backends()

        urls = ["https://done.example", "https://broken.example", "https://also-done.example"]
        result = await make_pipeline(config, backends, store).run(urls, RunMode.RETRY_FAILED)

        assert [c.args[0] for c in backends.extractor.extract.await_args_list] == ["https://broken.example"]
        assert result.urls["https://broken.example"].status == PipelineStage.COMPLETED
        assert result.completed_count == 3

    @pytest.mark.asyncio
    async def test_fresh_run_ignores_saved_progress(self, config, store):
        state = ProgressState()
        state.entry(URL).succeed(PipelineStage.COMPLETED)
        store.save(state)
        backends = make_backends()

        result = await make_pipeline(config, backends, store).run([URL], RunMode.FRESH)

        backends.extractor.extract.assert_awaited_once_with(URL)
        assert result.urls[URL].attempts == 1

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_the_run(self, config, store):
        backends = make_backends()
        backends.extractor.extract.side_effect = [RuntimeError("rate limited"), dict(EXTRACTED)]

        result = await make_pipeline(config, backends, store).run(
            ["https://a.example", "https://b.example"]
        )

        assert result.urls["https://a.example"].status == PipelineStage.FAILED
        assert result.urls["https://b.example"].status == PipelineStage.COMPLETED
        assert result.processed_count == 2
        assert result.total_urls == 2

    @pytest.mark.asyncio
    async def test_same_name_urls_keep_their_own_screenshots(self, config, store):
        a, b = "https://a.example", "https://b.example"
        uploaded = []

        async def upload(path):
            uploaded.append(path.name)
            if len(uploaded) == 1:
                raise RuntimeError("storage unavailable")
            return f"/image?id={path.stem}"

        backends = make_backends()
        backends.uploader.upload.side_effect = upload
        pipeline = make_pipeline(config, backends, store)

        await pipeline.run([a, b])
        state = await pipeline.run([a, b], RunMode.RETRY_FAILED)

        shot_a = Path(state.urls[a].screenshot_path).name
        shot_b = Path(state.urls[b].screenshot_path).name
        assert shot_a != shot_b
        assert uploaded == [shot_a, shot_b, shot_a]
        assert backends.screenshotter.capture.await_count == 2
        assert state.urls[a].status == PipelineStage.COMPLETED
        assert state.urls[a].screenshot_asset == f"/image?id={Path(shot_a).stem}"
        assert state.urls[a].screenshot_asset != state.urls[b].screenshot_asset

    @pytest.mark.asyncio
    async def test_delays_between_requests_and_batches(self, config, store):
        config = config.model_copy(update={"batch_size": 2})
        sleep = AsyncMock()
        pipeline = EnrichmentPipeline(config, make_backends(), store, sleep=sleep)

        await pipeline.run([f"https://{i}.example" for i in range(3)])

        assert sleep.await_args_list == [
            call(config.delay_between_requests_s),
            call(config.delay_between_batches_s),
        ]

    @pytest.mark.asyncio
    async def test_checkpoints(self, config, store):
        config = config.model_copy(update={"batch_size": 10, "save_progress_interval": 2})

        result = await make_pipeline(config, make_backends(), store).run(
            [f"https://{i}.example" for i in range(3)]
        )

        # after the 2nd URL, after the batch, and on exit
        assert store.saves == 3
        assert ProgressStore(config.progress_path).load().completed_count == 3
        assert result.current_batch == 1

    @pytest.mark.asyncio
    async def test_progress_saved_when_cancelled(self, config, store):
        backends = make_backends()
        backends.screenshotter.capture.side_effect = asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await make_pipeline(config, backends, store).run([URL])

        saved = ProgressStore(config.progress_path).load()
        assert saved.urls[URL].has_completed(PipelineStage.EXTRACTED)

    @pytest.mark.asyncio
    async def test_dry_run_backends(self, config, store):
        backends = dry_run_backends()

        result = await make_pipeline(config, backends, store).run(
            ["https://one.example", "https://two.example"]
        )

        assert result.completed_count == 2
        tools = list(backends.sink.tools.values())
        assert [t.name for t in tools] == ["Sample Tool Name", "Sample Tool Name"]
        assert tools[0].screenshot.startswith("/image?id=dry-run-sample_tool_name_")
        assert tools[0].screenshot != tools[1].screenshot


class TestDryRunToolSink:
    @pytest.mark.asyncio
    async def test_lookup_and_update(self):
        sink = DryRunToolSink()
        tool_id = await sink.create(ToolRecord(url=URL, name="Example"))
        assert (await sink.get_by_name("example")).id == tool_id
        assert (await sink.get_by_url(URL)).id == tool_id
        assert await sink.update(tool_id, tagline="new", category=None)
        assert sink.tools[tool_id].tagline == "new"
        assert not await sink.update(99, tagline="x")
