"""Object storage client: short-lived upload URLs plus raw byte uploads."""

from __future__ import annotations

from typing import Optional

import httpx

from trendi_tools.config import ObjectStorageConfig
from trendi_tools.core.errors import ConfigurationError, UploadError
from trendi_tools.log import get_logger
from trendi_tools.services.base import HttpService

logger = get_logger(__name__)


class ObjectStorageService(HttpService):
    """Talks to the storage endpoint.

    ``POST {base_url}/upload-url`` returns ``{"uploadUrl": ...}``; the bytes
    are then PUT to that URL, which answers ``{"storageId": ...}``.
    """

    def __init__(
        self,
        config: ObjectStorageConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(config.timeout_s, transport)
        self._config = config

    @property
    def service_name(self) -> str:
        return "object_storage"

    def _client_settings(self) -> tuple[str, dict[str, str]]:
        if not self._config.base_url:
            raise ConfigurationError("object_storage.base_url (TRENDI_STORAGE_URL) is required")
        headers = {}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        return self._config.base_url, headers

    async def generate_upload_url(self) -> str:
        response = await self.client.post("/upload-url")
        if response.is_error:
            raise UploadError(
                f"Failed to get upload URL: {response.status_code} {response.reason_phrase}"
            )
        upload_url = response.json().get("uploadUrl")
        if not upload_url:
            raise UploadError("Storage did not return an upload URL")
        return upload_url

    async def upload(self, data: bytes, content_type: str = "image/png") -> str:
        """Upload raw bytes and return the storage identifier."""
        upload_url = await self.generate_upload_url()
        request = self.client.build_request(
            "PUT", upload_url, content=data, headers={"Content-Type": content_type}
        )
        # the upload URL is pre-signed; the storage API credentials stay off it
        request.headers.pop("Authorization", None)
        response = await self.client.send(request)
        if response.is_error:
            raise UploadError(
                f"Failed to upload file: {response.status_code} {response.reason_phrase}"
            )
        storage_id = response.json().get("storageId")
        if not storage_id:
            raise UploadError("Storage did not return a storage id")
        logger.info("file_uploaded", storage_id=storage_id, size=len(data))
        return storage_id
