"""
command_history/extractor.py

CommandBlockExtractor — splits transcript text into command blocks.
────────────────────────────────────────────────────────────────────
A transcript is a concatenation of blocks, each introduced by two lines:

    Command start time: 20260118093012
    **********************
    <command line>
    <captured output …>

Design notes:
    • Detection runs over the whole snapshot with one compiled MULTILINE
      pattern, not line-by-line. A block starts only where a marker line is
      IMMEDIATELY followed by a separator line of 20–22 asterisks; a bare
      separator inside command output (or the recorder's header) never
      splits a block.
    • The body runs until the next marker line or end of input. When the
      snapshot was taken while the writer was mid-block the last body may be
      incomplete; it is still returned and ParseResult.trailing_block_open
      flags the situation.
    • Parsing is pure: the same content always yields the same blocks.
"""

import logging
import re
from typing import Iterator, List, Optional, Pattern

from .models import CommandBlock, ParseResult

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Patterns
# ─────────────────────────────────────────────────────────────────────────────

# What the recorder writes; readers accept 20–22 asterisks.
SEPARATOR_LINE = "*" * 22

_BLOCK_HEADER = re.compile(
    r"""
    ^[ \t]*command[ \t]+start[ \t]+time:[ \t]*(?P<start_time>\d+)[ \t]*\n   # marker line
    [ \t]*\*{20,22}[ \t]*(?:\n|\Z)                                         # separator line
    """,
    re.VERBOSE | re.IGNORECASE | re.MULTILINE,
)

# A body whose command line is itself a history query. Including these would
# nest earlier query output inside later query output without bound.
HISTORY_QUERY_PATTERN = re.compile(
    r"""
    ^(?:sudo\s+)?
    (?:python3?\s+(?:-m\s+)?)?          # python termscribe.py / python -m termscribe
    (?:\S*/)?(?:termscribe(?:\.py)?\s+)?
    history\b
    """,
    re.VERBOSE | re.IGNORECASE,
)

# Written by the recorder when its own proxy loop dies; never user history.
TERMINATION_ERROR_MARKER = "TerminatingError("


class CommandBlockExtractor:
    """
    Parses transcript snapshots into ordered CommandBlocks, dropping noise.

    Args:
        history_query_pattern : Regex matched against each body's first line;
                                matching blocks are treated as self-queries.
        termination_marker    : Substring identifying the recorder's own
                                failure reports.
    """

    def __init__(
        self,
        history_query_pattern: Optional[Pattern[str]] = None,
        termination_marker: str = TERMINATION_ERROR_MARKER,
    ) -> None:
        self._history_query = history_query_pattern or HISTORY_QUERY_PATTERN
        self._termination_marker = termination_marker

    def parse(self, content: str) -> List[CommandBlock]:
        """Return every surviving block of `content`, in source order."""
        return list(self.iter_blocks(content))

    def parse_snapshot(self, content: str) -> ParseResult:
        """
        Like parse(), but also reports how many blocks were dropped and
        whether the final block may still be being written.
        """
        result = ParseResult()
        for start_time, body in self._iter_raw(content):
            if self._is_noise(body):
                result.dropped += 1
                continue
            result.blocks.append(CommandBlock(start_time=start_time, body=body))
        result.trailing_block_open = bool(result.blocks) and not content.endswith("\n")
        return result

    def iter_blocks(self, content: str) -> Iterator[CommandBlock]:
        """Lazily yield surviving blocks."""
        for start_time, body in self._iter_raw(content):
            if not self._is_noise(body):
                yield CommandBlock(start_time=start_time, body=body)

    # ── Private helpers ───────────────────────────────────────────────────────

    @staticmethod
    def _iter_raw(content: str) -> Iterator[tuple[int, str]]:
        """Yield (start_time, trimmed body) for every block, noise included."""
        if not content:
            return
        text = content.replace("\r\n", "\n")
        headers = list(_BLOCK_HEADER.finditer(text))
        logger.debug("Found %d block header(s) in %d chars", len(headers), len(text))

        for index, header in enumerate(headers):
            body_end = headers[index + 1].start() if index + 1 < len(headers) else len(text)
            yield int(header.group("start_time")), text[header.end():body_end].strip()

    def _is_noise(self, body: str) -> bool:
        if not body:
            return True
        first_line = body.split("\n", 1)[0].strip()
        if self._history_query.match(first_line):
            logger.debug("Dropping self-referential history block: %r", first_line)
            return True
        if self._termination_marker in body:
            logger.debug("Dropping block with termination error marker")
            return True
        return False
