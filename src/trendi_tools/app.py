"""Application orchestrator - wires storage, search, assistant and pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from trendi_tools.ai.assistant import ChatAssistant
from trendi_tools.ai.client import AIClient, AnthropicClient
from trendi_tools.config import AppConfig
from trendi_tools.core.errors import ConfigurationError
from trendi_tools.core.types import RunMode
from trendi_tools.log import get_logger
from trendi_tools.pipeline.analytics import generate_analytics, write_results
from trendi_tools.pipeline.backends import AssetUploader, PipelineBackends
from trendi_tools.pipeline.dry_run import dry_run_backends
from trendi_tools.pipeline.progress import ProgressState, ProgressStore
from trendi_tools.pipeline.runner import EnrichmentPipeline
from trendi_tools.pipeline.sources import read_urls
from trendi_tools.search.aggregator import SearchAggregator, ToolPage
from trendi_tools.search.bookmarks import BookmarkService
from trendi_tools.search.maintenance import (
    ScreenshotFix,
    ScreenshotReport,
    fix_malformed_screenshots,
    inspect_screenshots,
)
from trendi_tools.services.service_manager import ServiceManager
from trendi_tools.storage.bookmark_repo import BookmarkRepository
from trendi_tools.storage.chat_repo import ChatRepository
from trendi_tools.storage.database import Database
from trendi_tools.storage.file_repo import FileRepository
from trendi_tools.storage.search_log_repo import SearchLogRepository
from trendi_tools.storage.seed import seed_tools
from trendi_tools.storage.tool_repo import ToolRepository

logger = get_logger(__name__)


class TrendiApp:
    """Catalog-side application: record store plus the read and write paths over it."""

    def __init__(self, config: AppConfig, ai_client: Optional[AIClient] = None):
        self.config = config
        self.db = Database(config.storage.db_path)
        self.tool_repo = ToolRepository(self.db)
        self.bookmark_repo = BookmarkRepository(self.db)
        self.chat_repo = ChatRepository(self.db)
        self.search_log_repo = SearchLogRepository(self.db)
        self.file_repo = FileRepository(self.db)
        self.aggregator = SearchAggregator(self.tool_repo, self.bookmark_repo, config.search)
        self.bookmarks = BookmarkService(self.bookmark_repo, self.tool_repo)
        self._ai_client = ai_client
        self._assistant: Optional[ChatAssistant] = None

    async def start(self) -> None:
        await self.db.initialize()
        logger.info("trendi_tools_started", db_path=self.config.storage.db_path)

    async def stop(self) -> None:
        if self._ai_client is not None:
            await self._ai_client.close()
        await self.db.close()
        logger.info("trendi_tools_stopped")

    async def search(
        self,
        query: str,
        category: Optional[str] = None,
        cursor: Optional[str] = None,
        page_size: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> ToolPage:
        """Search the catalog and record the query for popular-search stats."""
        page = await self.aggregator.search_tools(
            query, category=category, cursor=cursor, page_size=page_size, user_id=user_id
        )
        if query.strip() and cursor is None:
            await self.search_log_repo.log(query.strip(), len(page.items), user_id=user_id)
        return page

    async def popular_searches(self) -> list[str]:
        return await self.search_log_repo.popular_queries(self.config.search.popular_limit)

    async def seed(self) -> str:
        return await seed_tools(self.tool_repo)

    async def inspect_screenshots(self) -> list[ScreenshotReport]:
        return await inspect_screenshots(self.tool_repo)

    async def fix_screenshots(self) -> list[ScreenshotFix]:
        return await fix_malformed_screenshots(self.tool_repo)

    def assistant(self) -> ChatAssistant:
        if self._assistant is None:
            if self._ai_client is None:
                if not self.config.anthropic:
                    raise ConfigurationError(
                        "The chat assistant needs an 'anthropic' section with an api_key"
                    )
                self._ai_client = AnthropicClient(self.config.anthropic)
            self._assistant = ChatAssistant(
                self._ai_client, self.aggregator, self.chat_repo, self.config.assistant
            )
        return self._assistant


@dataclass
class EnrichOptions:
    mode: RunMode = RunMode.FRESH
    dry_run: bool = False
    batch_size: Optional[int] = None
    csv_path: Optional[str] = None


@dataclass
class EnrichmentReport:
    state: ProgressState
    analytics: dict[str, Any]


def check_pipeline_credentials(config: AppConfig) -> None:
    """Raise ConfigurationError when a live run lacks required settings."""
    missing = []
    if not config.extraction.api_key:
        missing.append("extraction.api_key (FIRECRAWL_API_KEY)")
    if not config.object_storage.base_url:
        missing.append("object_storage.base_url (TRENDI_STORAGE_URL)")
    if missing:
        raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")


def dry_run_path(path: str) -> str:
    """``data/progress.json`` -> ``data/progress.dry-run.json``."""
    target = Path(path)
    return str(target.with_name(f"{target.stem}.dry-run{target.suffix}"))


async def run_enrichment(config: AppConfig, options: EnrichOptions) -> EnrichmentReport:
    """Run the enrichment pipeline end to end and write the results file."""
    if not options.dry_run:
        check_pipeline_credentials(config)

    overrides: dict[str, Any] = {}
    if options.batch_size:
        overrides["batch_size"] = options.batch_size
    if options.csv_path:
        overrides["csv_path"] = options.csv_path
    if options.dry_run:
        # dry runs keep their own ledger and results
        overrides["progress_path"] = dry_run_path(config.pipeline.progress_path)
        overrides["results_path"] = dry_run_path(config.pipeline.results_path)
    pipeline_config = config.pipeline.model_copy(update=overrides)

    urls = read_urls(pipeline_config.csv_path)
    store = ProgressStore(pipeline_config.progress_path)

    if options.dry_run:
        logger.info("dry_run_mode", urls=len(urls))
        pipeline = EnrichmentPipeline(pipeline_config, dry_run_backends(), store)
        state = await pipeline.run(urls, options.mode)
    else:
        app = TrendiApp(config)
        services = ServiceManager(config)
        await app.start()
        try:
            await services.start_all()
            logger.info("services_ready", health=await services.health_check_all())
            backends = PipelineBackends(
                extractor=services.get_extraction(),
                screenshotter=services.get_browser(),
                uploader=AssetUploader(services.get_storage(), app.file_repo),
                sink=app.tool_repo,
            )
            pipeline = EnrichmentPipeline(pipeline_config, backends, store)
            state = await pipeline.run(urls, options.mode)
        finally:
            await services.stop_all()
            await app.stop()

    analytics = generate_analytics(state, pipeline_config.max_retries)
    write_results(pipeline_config.results_path, state, analytics)
    return EnrichmentReport(state=state, analytics=analytics)
