from __future__ import annotations
"""Error taxonomy shared by stores, backend adapter and orchestrator."""
from enum import Enum
from typing import Optional


class BotError(Exception):
    """Base class for application errors."""


class ValidationError(BotError):
    """Input rejected before any storage access."""


class StorageError(BotError):
    """Persistent store could not complete a write."""


class BackendErrorKind(str, Enum):
    """Known failure categories of the generation backend."""
    REGION_UNAVAILABLE = "region_unavailable"
    QUOTA_EXCEEDED = "quota_exceeded"
    FILE_TOO_LARGE = "file_too_large"
    UNSUPPORTED_FORMAT = "unsupported_format"
    UNKNOWN = "unknown"


# Checked in order; first substring match wins
_BACKEND_ERROR_MARKERS = (
    ("user location is not supported", BackendErrorKind.REGION_UNAVAILABLE),
    ("quota", BackendErrorKind.QUOTA_EXCEEDED),
    ("file size", BackendErrorKind.FILE_TOO_LARGE),
    ("unsupported", BackendErrorKind.UNSUPPORTED_FORMAT),
)


def classify_backend_error(error: BaseException) -> BackendErrorKind:
    """Map a raw backend exception to a known category by its message."""
    if isinstance(error, BackendError):
        return error.kind
    message = str(error).lower()
    for marker, kind in _BACKEND_ERROR_MARKERS:
        if marker in message:
            return kind
    return BackendErrorKind.UNKNOWN


class BackendError(BotError):
    """Generation backend call failed."""

    def __init__(self, message: str, kind: Optional[BackendErrorKind] = None):
        super().__init__(message)
        self.kind = kind or classify_backend_error(Exception(message))
