"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class StorageConfig(BaseModel):
    db_path: str = "./data/trendi_tools.db"


class SearchConfig(BaseModel):
    site_url: str = "http://localhost:8000"  # public base URL that serves /image and /images
    field_fetch_cap: int = Field(default=20, ge=1)
    featured_limit: int = 6
    default_page_size: int = 10
    popular_limit: int = 10


class AnthropicConfig(BaseModel):
    api_key: str
    base_url: Optional[str] = None
    max_retries: int = 3
    timeout: int = 60


class AssistantConfig(BaseModel):
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 300
    temperature: float = 0.7
    recommendation_count: int = 5
    history_limit: int = 50


class ExtractionConfig(BaseModel):
    api_key: Optional[str] = None
    base_url: str = "https://api.firecrawl.dev/v1"
    poll_interval_s: float = 2.0
    max_poll_attempts: int = 30
    timeout_s: float = 60.0


class ObjectStorageConfig(BaseModel):
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    timeout_s: float = 60.0


class BrowserServiceConfig(BaseModel):
    headless: bool = True
    browser_type: str = "chromium"
    timeout_ms: int = 30000
    viewport_width: int = 1200
    viewport_height: int = 800
    settle_delay_ms: int = 2000


class ServicesConfig(BaseModel):
    browser: BrowserServiceConfig = Field(default_factory=BrowserServiceConfig)


class PipelineConfig(BaseModel):
    csv_path: str = "./data/tools.csv"
    progress_path: str = "./data/processing-progress.json"
    results_path: str = "./data/processing-results.json"
    screenshot_dir: str = "./data/screenshots"
    batch_size: int = Field(default=3, ge=1)
    delay_between_requests_s: float = 2.0
    delay_between_batches_s: float = 5.0
    max_retries: int = 3
    save_progress_interval: int = Field(default=5, ge=1)


class AppConfig(BaseModel):
    log_level: str = "INFO"
    json_logs: bool = False
    data_dir: str = "./data"
    storage: StorageConfig = Field(default_factory=StorageConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    anthropic: Optional[AnthropicConfig] = None
    assistant: AssistantConfig = Field(default_factory=AssistantConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    object_storage: ObjectStorageConfig = Field(default_factory=ObjectStorageConfig)
    services: ServicesConfig = Field(default_factory=ServicesConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} and ${VAR_NAME:-default} patterns.

    An unset variable without a default becomes an empty string, which YAML
    then reads as null for a bare value.
    """

    def _replace(match: re.Match) -> str:
        var_name, default = match.group(1), match.group(2)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value:
            return value
        return default if default is not None else ""

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # First pass: extract data_dir for self-referencing
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = _interpolate_env_vars(str(raw_data.get("data_dir", "./data")))

    # Second pass: interpolate all env vars
    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    # A section whose only key resolved to null (e.g. anthropic without a key) is dropped
    if isinstance(data.get("anthropic"), dict) and not data["anthropic"].get("api_key"):
        data.pop("anthropic")

    return AppConfig(**data)
