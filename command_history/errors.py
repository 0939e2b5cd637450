"""
command_history/errors.py

Query-time failures. Every one of them is reported to the user at the point
of the failing call and returns control to the caller; nothing is retried.
"""

from typing import Optional

from .models import Variant


class HistoryError(Exception):
    """Base class for history query failures."""


class TranscriptNotFoundError(HistoryError):
    """No candidate path resolved for the requested variant."""

    def __init__(self, variant: Variant) -> None:
        label = "sanitized" if variant == Variant.SANITIZED else "original"
        super().__init__(f"No {label} transcript found for this session")
        self.variant = variant


class InvalidArgumentError(HistoryError, ValueError):
    """The count specifier is neither a non-negative integer nor "all"."""


class TranscriptReadError(HistoryError):
    """The transcript exists but could not be read."""

    def __init__(self, path: str, os_error: Optional[OSError]) -> None:
        super().__init__(f"Could not read transcript {path}: {os_error}")
        self.path = path
        self.os_error = os_error
