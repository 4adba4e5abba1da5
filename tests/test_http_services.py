"""Tests for the extraction and object storage HTTP clients."""

import json

import httpx
import pytest

from trendi_tools.config import AppConfig, ExtractionConfig, ObjectStorageConfig
from trendi_tools.core.errors import (
    ConfigurationError,
    ExtractionError,
    ExtractionTimeoutError,
    UploadError,
)
from trendi_tools.pipeline.backends import AssetUploader
from trendi_tools.services.extraction import EXTRACTION_SCHEMA, ExtractionService
from trendi_tools.services.object_storage import ObjectStorageService
from trendi_tools.services.service_manager import ServiceManager
from trendi_tools.storage.file_repo import FileRepository

TOOL_DATA = {
    "name": "Notion",
    "tagline": "Your connected workspace",
    "summary": "Docs and wikis",
    "descriptor": "All-in-one workspace",
    "category": "Productivity",
    "tags": ["notes", "wiki"],
}


def _extraction_config(**overrides):
    values = {
        "api_key": "fc-test",
        "base_url": "https://api.firecrawl.test/v1",
        "poll_interval_s": 0,
        "max_poll_attempts": 3,
    }
    values.update(overrides)
    return ExtractionConfig(**values)


class ExtractionApi:
    """Scripted extraction endpoint: one submit reply, then a queue of status replies.

    Replies are (status code, JSON body or None) pairs.
    """

    def __init__(self, statuses, submit=None):
        self.statuses = list(statuses)
        self.submit = submit or (200, {"success": True, "id": "job-1"})
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.submit if request.method == "POST" else self.statuses.pop(0)
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    @property
    def polls(self):
        return [r for r in self.requests if r.method == "GET"]


async def _extract(api, **config_overrides):
    service = ExtractionService(_extraction_config(**config_overrides), transport=httpx.MockTransport(api))
    await service.start()
    try:
        return await service.extract("https://notion.so")
    finally:
        await service.stop()


class TestExtractionService:
    @pytest.mark.asyncio
    async def test_submit_then_poll_until_completed(self):
        api = ExtractionApi(
            [
                (200, {"status": "processing"}),
                (200, {"success": True, "status": "completed", "data": TOOL_DATA}),
            ]
        )

        data = await _extract(api)

        assert data == TOOL_DATA
        submit = api.requests[0]
        assert submit.url == "https://api.firecrawl.test/v1/extract"
        assert submit.headers["Authorization"] == "Bearer fc-test"
        body = json.loads(submit.content)
        assert body["urls"] == ["https://notion.so"]
        assert body["schema"] == EXTRACTION_SCHEMA
        assert "tagline" in body["prompt"]
        assert [str(r.url) for r in api.polls] == ["https://api.firecrawl.test/v1/extract/job-1"] * 2

    @pytest.mark.asyncio
    async def test_failed_job(self):
        api = ExtractionApi([(200, {"status": "failed", "error": "blocked"})])
        with pytest.raises(ExtractionError, match="Extraction job failed"):
            await _extract(api)
        assert len(api.polls) == 1

    @pytest.mark.asyncio
    async def test_completed_without_data_is_an_error(self):
        api = ExtractionApi([(200, {"success": True, "status": "completed"})])
        with pytest.raises(ExtractionError, match="no data returned"):
            await _extract(api)
        assert len(api.polls) == 1

    @pytest.mark.asyncio
    async def test_times_out_after_max_attempts(self):
        api = ExtractionApi([(200, {"status": "processing"})] * 3)
        with pytest.raises(ExtractionTimeoutError, match="after 3 attempts"):
            await _extract(api)
        assert len(api.polls) == 3

    @pytest.mark.asyncio
    async def test_unknown_status_keeps_polling(self):
        api = ExtractionApi(
            [
                (200, {"status": "queued"}),
                (200, {"success": True, "status": "completed", "data": TOOL_DATA}),
            ]
        )
        assert await _extract(api) == TOOL_DATA

    @pytest.mark.asyncio
    async def test_transient_poll_errors_are_retried(self):
        api = ExtractionApi(
            [
                (503, None),
                (200, {"success": True, "status": "completed", "data": TOOL_DATA}),
            ]
        )
        assert await _extract(api) == TOOL_DATA

    @pytest.mark.asyncio
    async def test_persistent_poll_errors_fail_the_stage(self):
        api = ExtractionApi([(500, None)] * 3)
        with pytest.raises(ExtractionError, match="Status check failed"):
            await _extract(api)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            (401, {"error": "unauthorized"}),
            (200, {"success": False, "error": "bad schema"}),
            (200, {"success": True}),
        ],
    )
    async def test_rejected_submission(self, response):
        api = ExtractionApi([], submit=response)
        with pytest.raises(ExtractionError):
            await _extract(api)
        assert api.polls == []

    @pytest.mark.asyncio
    async def test_requires_api_key(self):
        service = ExtractionService(_extraction_config(api_key=None))
        with pytest.raises(ConfigurationError):
            await service.start()
        assert not await service.health_check()


class StorageApi:
    def __init__(self, upload_status=200, storage_id="st_1"):
        self.upload_status = upload_status
        self.storage_id = storage_id
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/upload-url":
            return httpx.Response(200, json={"uploadUrl": "https://upload.test/put/abc"})
        if self.upload_status != 200:
            return httpx.Response(self.upload_status)
        return httpx.Response(200, json={"storageId": self.storage_id})


async def _storage(api):
    service = ObjectStorageService(
        ObjectStorageConfig(base_url="https://storage.test", api_key="secret"),
        transport=httpx.MockTransport(api),
    )
    await service.start()
    return service


class TestObjectStorageService:
    @pytest.mark.asyncio
    async def test_upload(self):
        api = StorageApi()
        service = await _storage(api)
        try:
            storage_id = await service.upload(b"\x89PNG data")
        finally:
            await service.stop()

        assert storage_id == "st_1"
        target, upload = api.requests
        assert target.method == "POST" and str(target.url) == "https://storage.test/upload-url"
        assert target.headers["Authorization"] == "Bearer secret"
        assert upload.method == "PUT" and str(upload.url) == "https://upload.test/put/abc"
        assert upload.headers["Content-Type"] == "image/png"
        assert upload.content == b"\x89PNG data"
        assert "Authorization" not in upload.headers

    @pytest.mark.asyncio
    async def test_upload_failure(self):
        service = await _storage(StorageApi(upload_status=500))
        try:
            with pytest.raises(UploadError, match="500"):
                await service.upload(b"data")
        finally:
            await service.stop()

    @pytest.mark.asyncio
    async def test_requires_base_url(self):
        with pytest.raises(ConfigurationError):
            await ObjectStorageService(ObjectStorageConfig()).start()

    @pytest.mark.asyncio
    async def test_asset_uploader_records_file(self, db, tmp_path):
        screenshot = tmp_path / "notion.png"
        screenshot.write_bytes(b"png-bytes")
        files = FileRepository(db)
        service = await _storage(StorageApi(storage_id="st_42"))
        try:
            asset = await AssetUploader(service, files).upload(screenshot)
        finally:
            await service.stop()

        assert asset == "/image?id=st_42"
        record = await files.get("st_42")
        assert record.filename == "notion.png"
        assert record.content_type == "image/png"
        assert record.size == len(b"png-bytes")


def _manager(**config):
    return ServiceManager(AppConfig(**config))


class TestServiceManager:
    @pytest.mark.asyncio
    async def test_missing_storage_url_stops_started_services(self):
        manager = _manager(extraction={"api_key": "fc-test"})

        with pytest.raises(ConfigurationError):
            await manager.start_all()

        health = await manager.health_check_all()
        assert health == {"browser": False, "extraction": False, "object_storage": False}

    @pytest.mark.asyncio
    async def test_browser_failure_stops_http_clients(self, monkeypatch):
        manager = _manager(
            extraction={"api_key": "fc-test"},
            object_storage={"base_url": "https://storage.test"},
        )

        async def broken_start():
            raise RuntimeError("Executable doesn't exist")

        monkeypatch.setattr(manager.get_browser(), "start", broken_start)

        with pytest.raises(RuntimeError):
            await manager.start_all()

        assert not await manager.get_extraction().health_check()
        assert not await manager.get_storage().health_check()
