"""Service lifecycle interface and the shared HTTP API client base."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

import httpx

from trendi_tools.log import get_logger

logger = get_logger(__name__)


class Service(ABC):
    """Base class for services backed by an external resource (browser, HTTP API)."""

    @property
    @abstractmethod
    def service_name(self) -> str:
        ...

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...


class HttpService(Service):
    """Owns one ``httpx.AsyncClient`` for a remote JSON API.

    Subclasses provide ``_client_settings`` (base URL and headers) and may
    raise ``ConfigurationError`` from it. A ``transport`` can be injected
    for tests.
    """

    def __init__(self, timeout_s: float, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._timeout_s = timeout_s
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @abstractmethod
    def _client_settings(self) -> tuple[str, dict[str, str]]:
        ...

    async def start(self) -> None:
        base_url, headers = self._client_settings()
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=self._timeout_s,
            transport=self._transport,
        )
        logger.info("http_service_started", service=self.service_name, base_url=base_url)

    async def stop(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def health_check(self) -> bool:
        return self._client is not None and not self._client.is_closed

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(f"{self.service_name} service not started. Call start() first.")
        return self._client
