"""
command_history/service.py

HistoryQueryService — "last N commands" over a chosen transcript variant.
──────────────────────────────────────────────────────────────────────────
Pipeline for one query:

  1. Validate the count specifier (before any filesystem access).
  2. Build the ResolutionChain for the requested variant and resolve it.
  3. Read one snapshot of the resolved file. The writer and the redaction
     engine may be appending concurrently; the snapshot is some prefix of
     the eventual file, never a file with holes.
  4. Hand the snapshot to CommandBlockExtractor.
  5. Keep "all" blocks or the last N, in source order.

Resolution order (first existing, readable file wins):
    ORIGINAL  : override → session raw
    SANITIZED : session sanitized → override → session raw

A SANITIZED query served from raw content is a deliberate availability
trade-off: the redacted copy may simply not have been created yet. The
result carries fell_back=True so callers can warn about it.
"""

import logging
from typing import Optional, Union

from session_context import SessionContext

from .errors import InvalidArgumentError, TranscriptNotFoundError, TranscriptReadError
from .extractor import CommandBlockExtractor
from .models import HistoryResult, Variant
from .resolver import PathCandidate, ResolutionChain, resolve

logger = logging.getLogger(__name__)

ALL = "all"

CountSpec = Union[int, str]

# Candidate labels
LABEL_OVERRIDE = "override"
LABEL_SESSION_RAW = "session_raw"
LABEL_SESSION_SANITIZED = "session_sanitized"

_RAW_LABELS = frozenset({LABEL_OVERRIDE, LABEL_SESSION_RAW})


def original_chain(context: SessionContext) -> ResolutionChain:
    return ResolutionChain([
        PathCandidate(LABEL_OVERRIDE, context.override_path),
        PathCandidate(LABEL_SESSION_RAW, context.raw_path),
    ])


def sanitized_chain(context: SessionContext) -> ResolutionChain:
    return ResolutionChain([
        PathCandidate(LABEL_SESSION_SANITIZED, context.sanitized_path),
        PathCandidate(LABEL_OVERRIDE, context.override_path),
        PathCandidate(LABEL_SESSION_RAW, context.raw_path),
    ])


def parse_count(count_spec: CountSpec) -> Optional[int]:
    """
    Normalise a count specifier.

    Returns None for "all", otherwise a non-negative int. A count of 0
    selects nothing.

    Raises:
        InvalidArgumentError : for anything else ("banana", -3, 2.5, True, "²").
    """
    if isinstance(count_spec, bool):
        raise InvalidArgumentError(f"Invalid count: {count_spec!r}")
    if isinstance(count_spec, int):
        count = count_spec
    elif isinstance(count_spec, str):
        text = count_spec.strip()
        if text.lower() == ALL:
            return None
        # isdigit() also accepts superscripts and other digits int() rejects.
        if not text.isdecimal():
            raise InvalidArgumentError(
                f"Invalid count {count_spec!r}: expected a non-negative number or 'all'"
            )
        count = int(text)
    else:
        raise InvalidArgumentError(f"Invalid count: {count_spec!r}")

    if count < 0:
        raise InvalidArgumentError(f"Invalid count {count_spec!r}: must not be negative")
    return count


class HistoryQueryService:
    """
    Answers history queries against a SessionContext.

    Args:
        context   : Session state supplying the candidate paths.
        extractor : Block parser. Defaults to CommandBlockExtractor().
        encoding  : Transcript text encoding; undecodable bytes are replaced.
    """

    def __init__(
        self,
        context: SessionContext,
        extractor: Optional[CommandBlockExtractor] = None,
        encoding: str = "utf-8",
    ) -> None:
        self._context = context
        self._extractor = extractor or CommandBlockExtractor()
        self._encoding = encoding

    def chain_for(self, variant: Variant) -> ResolutionChain:
        if variant == Variant.SANITIZED:
            return sanitized_chain(self._context)
        return original_chain(self._context)

    def query(self, count_spec: CountSpec = ALL, variant: Variant = Variant.ORIGINAL) -> HistoryResult:
        """
        Return the selected command blocks, oldest first.

        Raises:
            InvalidArgumentError    : malformed count_spec (no file is read).
            TranscriptNotFoundError : nothing resolved for `variant`.
            TranscriptReadError     : the resolved file could not be read.
        """
        count = parse_count(count_spec)

        resolved = resolve(self.chain_for(variant))
        if resolved is None:
            raise TranscriptNotFoundError(variant)

        fell_back = variant == Variant.SANITIZED and resolved.label in _RAW_LABELS
        if fell_back:
            logger.warning(
                "Sanitized transcript unavailable; serving unredacted content from %s",
                resolved.path,
            )

        content = self._read_snapshot(resolved.path)
        parsed = self._extractor.parse_snapshot(content)
        blocks = parsed.blocks
        selected = blocks if count is None else blocks[len(blocks) - min(count, len(blocks)):]

        logger.info(
            "History query | variant=%s source=%s total=%d returned=%d",
            variant.value, resolved.label, len(blocks), len(selected),
        )
        return HistoryResult(
            blocks=list(selected),
            variant=variant,
            path=resolved.path,
            source=resolved.label,
            fell_back=fell_back,
            total=len(blocks),
            partial_tail=parsed.trailing_block_open,
        )

    def _read_snapshot(self, path: str) -> str:
        try:
            with open(path, "r", encoding=self._encoding, errors="replace") as f:
                return f.read()
        except OSError as exc:
            logger.error("Failed to read transcript %s: %s", path, exc)
            raise TranscriptReadError(path, exc) from exc
