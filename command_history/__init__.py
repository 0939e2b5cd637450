"""
command_history — transcript parsing and history queries.

Public API:
    CommandBlockExtractor : Splits transcript text into CommandBlocks.
    HistoryQueryService   : Resolves a transcript variant and selects blocks.
    CommandBlock          : One command + output unit.
    Variant               : ORIGINAL or SANITIZED.
    HistoryError          : Base of the query-time errors.
"""

from .errors import (
    HistoryError,
    InvalidArgumentError,
    TranscriptNotFoundError,
    TranscriptReadError,
)
from .extractor import CommandBlockExtractor
from .models import CommandBlock, HistoryResult, ParseResult, Variant
from .resolver import PathCandidate, ResolutionChain, resolve
from .service import ALL, HistoryQueryService

__all__ = [
    "ALL",
    "CommandBlock",
    "CommandBlockExtractor",
    "HistoryError",
    "HistoryQueryService",
    "HistoryResult",
    "InvalidArgumentError",
    "ParseResult",
    "PathCandidate",
    "ResolutionChain",
    "TranscriptNotFoundError",
    "TranscriptReadError",
    "Variant",
    "resolve",
]
