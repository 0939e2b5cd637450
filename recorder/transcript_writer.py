"""
recorder/transcript_writer.py

TranscriptWriter — append-only writer for the session transcript format.

Every write is flushed immediately: the redaction engine tails this file and
history queries snapshot it while the session is still running, so nothing
may sit in a userspace buffer. The file is opened in append mode and never
truncated or rewritten.
"""

import logging
import time
from typing import IO, Optional

from command_history.extractor import SEPARATOR_LINE, TERMINATION_ERROR_MARKER

logger = logging.getLogger(__name__)


def start_time_marker(when: Optional[float] = None) -> int:
    """Integer start time in YYYYMMDDHHMMSS form."""
    return int(time.strftime("%Y%m%d%H%M%S", time.localtime(when)))


class TranscriptWriter:
    def __init__(self, path: str, encoding: str = "utf-8") -> None:
        self._path = path
        self._encoding = encoding
        self._file: Optional[IO[str]] = None
        self._at_line_start = True

    @property
    def path(self) -> str:
        return self._path

    @property
    def closed(self) -> bool:
        return self._file is None

    def open(self) -> "TranscriptWriter":
        if self._file is None:
            self._file = open(self._path, "a", encoding=self._encoding, errors="replace")
            logger.debug("Transcript opened for append: %s", self._path)
        return self

    def __enter__(self) -> "TranscriptWriter":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def write_header(self, shell: str) -> None:
        """
        Session preamble. It is not introduced by a marker line, so it never
        forms a command block.
        """
        self._write(
            f"{SEPARATOR_LINE}\n"
            f"TermScribe transcript start\n"
            f"Start time: {start_time_marker()}\n"
            f"Shell: {shell}\n"
            f"{SEPARATOR_LINE}\n"
        )

    def begin_block(self, command: str, start_time: Optional[int] = None) -> None:
        """Open a new command block with `command` as its first body line."""
        marker = start_time if start_time is not None else start_time_marker()
        prefix = "" if self._at_line_start else "\n"
        self._write(f"{prefix}Command start time: {marker}\n{SEPARATOR_LINE}\n{command}\n")

    def write_output(self, text: str) -> None:
        """Append captured output to the current block."""
        if text:
            self._write(text)

    def write_termination_error(self, exc: BaseException) -> None:
        """Record a recorder failure so history queries can recognise and skip it."""
        prefix = "" if self._at_line_start else "\n"
        self._write(f"{prefix}{TERMINATION_ERROR_MARKER}{type(exc).__name__}): {exc}\n")

    def close(self) -> None:
        """Flush and close. Safe to call more than once."""
        if self._file is None:
            return
        try:
            self._file.flush()
            self._file.close()
        finally:
            self._file = None
            logger.debug("Transcript closed: %s", self._path)

    def _write(self, text: str) -> None:
        if self._file is None:
            raise ValueError(f"Transcript {self._path} is not open")
        self._file.write(text)
        self._file.flush()
        self._at_line_start = text.endswith("\n")
