"""
redaction/models.py

Data structures describing a supervised redaction-engine process.
"""

import subprocess
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import IO, Optional


class SanitizerState(Enum):
    """
    Lifecycle of the redaction engine as last observed by the supervisor.
    """
    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"   # Exited cleanly, or terminated by stop().
    FAILED = "failed"     # Could not spawn, or exited on its own with a non-zero code.


@dataclass
class SubprocessHandle:
    """
    Reference to one running redaction engine.

    Attributes:
        process        : The underlying Popen object, or a signal-only stand-in
                         for an adopted engine. Owned by the supervisor.
        command        : Full argv used to launch the engine.
        raw_path       : Transcript the engine tails (input).
        sanitized_path : File the engine writes the redacted copy to (output).
        log_path       : Engine stdout/stderr destination.
        state          : Last known SanitizerState.
        started_at     : Unix timestamp of the spawn.
        exit_code      : Return code once the process has been reaped.
        state_path     : Session state file recording this engine's PID, so
                         other processes in the session can find it.
        adopted        : True when the engine was started by another process
                         and found through its state file.
    """
    process: subprocess.Popen
    command: list[str]
    raw_path: str
    sanitized_path: str
    log_path: Optional[str] = None
    state: SanitizerState = SanitizerState.RUNNING
    started_at: float = field(default_factory=time.time)
    exit_code: Optional[int] = None
    state_path: Optional[str] = None
    adopted: bool = False
    # Closed by the supervisor on stop().
    log_file: Optional[IO[bytes]] = field(default=None, repr=False)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def is_live(self) -> bool:
        return self.state == SanitizerState.RUNNING
