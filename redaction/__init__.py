"""
redaction — supervision of the external secret-redaction engine.

Public API:
    RedactionSupervisor : Starts, polls and stops the engine subprocess.
    SubprocessHandle    : Reference to one running engine.
    SanitizerState      : Engine lifecycle enum.
    RedactionError      : Base of the start-time errors below.
"""

from .errors import (
    EngineNotFoundError,
    InterpreterUnavailableError,
    RedactionError,
    SpawnFailedError,
)
from .models import SanitizerState, SubprocessHandle
from .supervisor import RedactionSupervisor

__all__ = [
    "EngineNotFoundError",
    "InterpreterUnavailableError",
    "RedactionError",
    "RedactionSupervisor",
    "SanitizerState",
    "SpawnFailedError",
    "SubprocessHandle",
]
