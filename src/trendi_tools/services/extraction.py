"""Client for the asynchronous AI extraction API (Firecrawl ``/extract``)."""

from __future__ import annotations

import json
from typing import Any, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from trendi_tools.config import ExtractionConfig
from trendi_tools.core.errors import ConfigurationError, ExtractionError, ExtractionTimeoutError
from trendi_tools.log import get_logger
from trendi_tools.services.base import HttpService

logger = get_logger(__name__)

EXTRACTION_PROMPT = """Extract the following information from this website:
- name: The product/service/company name
- tagline: A short catchy phrase or slogan (1-2 sentences)
- summary: A concise paragraph (maximum 300 words) describing what the tool does, its key features, main benefits, and primary use cases. Should be informative but not overly detailed.
- descriptor: A brief 1-2 sentence description of what this tool is (used for search indexing)
- category: A single broad category that best describes this tool (e.g., "AI", "Productivity", "Design", "Development", "Marketing", "Analytics", etc.)
- tags: An array of specific use-case tags that are more granular than the category (e.g., for an AI tool: ["machine learning", "text generation", "automation", "content creation"])

IMPORTANT:
- Summary should be a brief paragraph (max 300 words) covering core functionality, features, and benefits
- Category should be broad and general
- Tags should be specific to use cases and features
- Descriptor is brief for search purposes, Summary provides adequate detail for understanding"""

EXTRACTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "tagline": {"type": "string"},
        "summary": {"type": "string"},
        "descriptor": {"type": "string"},
        "category": {"type": "string"},
        "tags": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["name", "tagline", "summary", "descriptor", "category", "tags"],
}


class _JobPending(Exception):
    """Job is still running; raised to trigger another poll."""


class ExtractionService(HttpService):
    """Submits extraction jobs and polls them to completion."""

    def __init__(
        self,
        config: ExtractionConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(config.timeout_s, transport)
        self._config = config

    @property
    def service_name(self) -> str:
        return "extraction"

    def _client_settings(self) -> tuple[str, dict[str, str]]:
        if not self._config.api_key:
            raise ConfigurationError("extraction.api_key (FIRECRAWL_API_KEY) is required")
        return self._config.base_url, {"Authorization": f"Bearer {self._config.api_key}"}

    async def extract(self, url: str) -> dict[str, Any]:
        """Run a full extraction for one URL and return the structured fields."""
        job_id = await self.submit(url)
        return await self.wait_for_job(job_id)

    async def submit(self, url: str) -> str:
        response = await self.client.post(
            "/extract",
            json={"urls": [url], "prompt": EXTRACTION_PROMPT, "schema": EXTRACTION_SCHEMA},
        )
        if response.is_error:
            raise ExtractionError(
                f"Extraction API error: {response.status_code} {response.reason_phrase}"
            )
        result = response.json()
        if not result.get("success") or not result.get("id"):
            raise ExtractionError(f"Failed to submit extraction job: {json.dumps(result)}")

        logger.info("extraction_job_submitted", url=url, job_id=result["id"])
        return result["id"]

    async def wait_for_job(self, job_id: str) -> dict[str, Any]:
        """Poll until the job completes, fails, or the attempt budget runs out.

        Transient HTTP errors while polling are retried like a pending job;
        the last one is surfaced if polling never succeeds.
        """
        max_attempts = self._config.max_poll_attempts
        data: dict[str, Any] = {}
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_fixed(self._config.poll_interval_s),
                retry=retry_if_exception_type((_JobPending, httpx.HTTPError)),
                reraise=True,
            ):
                with attempt:
                    data = await self._check_job(job_id, attempt.retry_state.attempt_number)
        except _JobPending as e:
            raise ExtractionTimeoutError(
                f"Extraction job timed out after {max_attempts} attempts"
            ) from e
        except httpx.HTTPError as e:
            raise ExtractionError(f"Status check failed: {e}") from e
        return data

    async def _check_job(self, job_id: str, attempt: int) -> dict[str, Any]:
        response = await self.client.get(f"/extract/{job_id}")
        response.raise_for_status()
        result = response.json()
        status = result.get("status")
        logger.debug(
            "extraction_job_status",
            job_id=job_id,
            status=status,
            attempt=attempt,
            max_attempts=self._config.max_poll_attempts,
        )

        if status == "completed":
            if result.get("success") and result.get("data"):
                return result["data"]
            raise ExtractionError(f"Job completed but no data returned: {json.dumps(result)}")
        if status == "failed":
            raise ExtractionError(f"Extraction job failed: {json.dumps(result)}")
        if status != "processing":
            logger.warning("extraction_job_unknown_status", job_id=job_id, status=status)
        raise _JobPending(status)
