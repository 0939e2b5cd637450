"""
recorder — TermScribe's session capture layer.

Public API:
    TranscriptRecorder : PTY proxy that records a shell session.
    TranscriptWriter   : Append-only writer for the transcript format.
    LineEditor         : Rebuilds submitted command lines from keystrokes.
"""

from .transcript_writer import TranscriptWriter
from .tty_recorder import LineEditor, TranscriptRecorder, clean_output

__all__ = [
    "LineEditor",
    "TranscriptRecorder",
    "TranscriptWriter",
    "clean_output",
]
