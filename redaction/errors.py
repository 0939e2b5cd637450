"""
redaction/errors.py

Start-time failures raised by RedactionSupervisor.

None of these are fatal to the hosting session: the caller logs the error,
leaves raw capture running, and sanitized queries fall back to the raw
transcript.
"""

from typing import Optional, Sequence


class RedactionError(Exception):
    """Base class for every redaction-engine lifecycle failure."""


class EngineNotFoundError(RedactionError):
    """The redaction engine script does not exist on disk."""

    def __init__(self, engine_path: str) -> None:
        super().__init__(f"Redaction engine not found: {engine_path}")
        self.engine_path = engine_path


class InterpreterUnavailableError(RedactionError):
    """None of the interpreter candidates resolves to an executable."""

    def __init__(self, candidates: Sequence[str]) -> None:
        names = ", ".join(candidates) if candidates else "<none>"
        super().__init__(f"No interpreter available to run the redaction engine (tried: {names})")
        self.candidates = list(candidates)


class SpawnFailedError(RedactionError):
    """The OS refused to launch the redaction engine process."""

    def __init__(self, command: Sequence[str], os_error: Optional[OSError]) -> None:
        super().__init__(f"Failed to spawn redaction engine {list(command)!r}: {os_error}")
        self.command = list(command)
        self.os_error = os_error
