"""Exception hierarchy for the asset localization engine."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class FailureReason(str, Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    HTTP_FORBIDDEN = "http_forbidden"
    HTTP_STATUS = "http_status"
    INVALID_CONTENT_TYPE = "invalid_content_type"
    STORAGE = "storage"


class LocalAssetsError(Exception):
    """Base class for all errors raised by local_assets."""


class ConfigError(LocalAssetsError):
    """Raised when host settings cannot be interpreted."""


class TransportError(LocalAssetsError):
    """Transport-level failure (DNS, connection reset, timeout)."""

    def __init__(self, message: str, *, timeout: bool = False) -> None:
        super().__init__(message)
        self.timeout = timeout


class StorageError(LocalAssetsError):
    """Filesystem operation failed inside the vault."""

    def __init__(self, message: str, path: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.path = path
        self.cause = cause

    @property
    def missing_path(self) -> bool:
        return isinstance(self.cause, FileNotFoundError)


class DownloadError(LocalAssetsError):
    """Classified failure to localize a single remote image."""

    def __init__(
        self,
        url: str,
        reason: FailureReason,
        message: str,
        *,
        status: Optional[int] = None,
        content_type: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.reason = reason
        self.status = status
        self.content_type = content_type
        self.cause = cause


def describe_failure(error: BaseException) -> str:
    """Reduce an error to the short reason shown to the user."""
    if isinstance(error, DownloadError):
        if error.reason is FailureReason.HTTP_FORBIDDEN:
            return "anti-hotlink restriction"
        if error.reason is FailureReason.INVALID_CONTENT_TYPE:
            return "non-image content"
        if error.reason is FailureReason.TIMEOUT:
            return "timeout"
        if error.reason is FailureReason.HTTP_STATUS:
            return f"server error ({error.status})"
        if error.reason is FailureReason.NETWORK:
            return "network failure"
        if isinstance(error.cause, StorageError) and error.cause.missing_path:
            return "file path or directory does not exist"
        return "storage failure"
    if isinstance(error, StorageError):
        if error.missing_path:
            return "file path or directory does not exist"
        return "storage failure"
    if "timeout" in str(error).lower():
        return "timeout"
    return str(error) or "unknown error"
