"""Service lifecycle manager."""

from __future__ import annotations

from trendi_tools.config import AppConfig
from trendi_tools.log import get_logger
from trendi_tools.services.base import Service
from trendi_tools.services.browser import BrowserService
from trendi_tools.services.extraction import ExtractionService
from trendi_tools.services.object_storage import ObjectStorageService

logger = get_logger(__name__)


class ServiceManager:
    """Manages startup and shutdown of the enrichment pipeline's external services."""

    def __init__(self, config: AppConfig):
        self._browser = BrowserService(config.services.browser)
        self._extraction = ExtractionService(config.extraction)
        self._storage = ObjectStorageService(config.object_storage)
        self._started: list[Service] = []

    def get_browser(self) -> BrowserService:
        return self._browser

    def get_extraction(self) -> ExtractionService:
        return self._extraction

    def get_storage(self) -> ObjectStorageService:
        return self._storage

    async def start_all(self) -> None:
        """Start every service. A failure stops those already started and propagates."""
        for service in (self._extraction, self._storage, self._browser):
            try:
                await service.start()
            except Exception as e:
                logger.error("service_start_failed", service=service.service_name, error=str(e))
                if service is self._browser:
                    logger.warning(
                        "browser_service_unavailable",
                        hint="Run 'python -m playwright install chromium' to install the browser",
                    )
                await self.stop_all()
                raise
            self._started.append(service)
        logger.info("all_services_started")

    async def stop_all(self) -> None:
        """Stop started services in reverse order."""
        while self._started:
            service = self._started.pop()
            try:
                await service.stop()
            except Exception as e:
                logger.warning("service_stop_failed", service=service.service_name, error=str(e))
        logger.info("all_services_stopped")

    async def health_check_all(self) -> dict[str, bool]:
        """Check health of all services."""
        return {
            "browser": await self._browser.health_check(),
            "extraction": await self._extraction.health_check(),
            "object_storage": await self._storage.health_check(),
        }
