"""
command_history/models.py

Data structures for transcript parsing and history queries.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Variant(Enum):
    """Which copy of the transcript a query targets."""
    ORIGINAL = "original"
    SANITIZED = "sanitized"


@dataclass(frozen=True)
class CommandBlock:
    """
    One command-plus-output unit extracted from a transcript.

    Attributes:
        start_time : Integer from the "Command start time:" marker line, as
                     written by the session writer (YYYYMMDDHHMMSS for
                     TermScribe's own recorder).
        body       : Command line followed by its captured output, trimmed.
    """
    start_time: int
    body: str

    @property
    def command(self) -> str:
        """First line of the body, i.e. the command as it was submitted."""
        return self.body.split("\n", 1)[0].strip()


@dataclass
class ParseResult:
    """
    Output of CommandBlockExtractor.parse_snapshot().

    Attributes:
        blocks             : Surviving blocks in source order.
        dropped            : Number of blocks removed as empty or noise.
        trailing_block_open: True when the snapshot does not end on a newline,
                             i.e. the last block may still be being written.
    """
    blocks: list[CommandBlock] = field(default_factory=list)
    dropped: int = 0
    trailing_block_open: bool = False


@dataclass
class HistoryResult:
    """
    Answer to a history query.

    Attributes:
        blocks      : Selected blocks, oldest first.
        variant     : Variant that was requested.
        path        : Transcript file the blocks were read from.
        source      : Label of the resolution candidate that matched.
        fell_back   : True when a SANITIZED query was served from raw content.
        total       : Number of surviving blocks before count selection.
        partial_tail: True when the last block may be incomplete.
    """
    blocks: list[CommandBlock]
    variant: Variant
    path: str
    source: str
    fell_back: bool = False
    total: int = 0
    partial_tail: bool = False

    @property
    def message(self) -> Optional[str]:
        """Informational note for the empty case; None otherwise."""
        return None if self.blocks else "No commands found"
