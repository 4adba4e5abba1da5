"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class PipelineStage(StrEnum):
    """Per-URL enrichment stage. Running stages end in -ing."""

    PENDING = "pending"
    EXTRACTING = "extracting"
    EXTRACTED = "extracted"
    CAPTURING_SCREENSHOT = "capturing-screenshot"
    SCREENSHOT_CAPTURED = "screenshot-captured"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    SAVING = "saving"
    COMPLETED = "completed"
    FAILED = "failed"


class RunMode(StrEnum):
    FRESH = "fresh"
    RESUME = "resume"
    RETRY_FAILED = "retry-failed"
