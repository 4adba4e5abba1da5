"""Exception hierarchy."""

from __future__ import annotations


class TrendiToolsError(Exception):
    """Base class for all trendi_tools errors."""


class ConfigurationError(TrendiToolsError):
    """Required configuration (credentials, endpoints) is missing or invalid."""


class NotAuthenticatedError(TrendiToolsError):
    def __init__(self, message: str = "Not logged in"):
        super().__init__(message)


class ToolNotFoundError(TrendiToolsError):
    pass


class DuplicateToolError(TrendiToolsError):
    pass


class StageError(TrendiToolsError):
    """A single enrichment stage failed for one URL. Always retryable."""


class ExtractionError(StageError):
    """The extraction service rejected the job or reported it failed."""


class ExtractionTimeoutError(ExtractionError):
    pass


class ScreenshotError(StageError):
    pass


class UploadError(StageError):
    pass


class PersistenceError(StageError):
    pass
