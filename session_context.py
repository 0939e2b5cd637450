"""
session_context.py — session-scoped state for TermScribe.
──────────────────────────────────────────────────────────
Everything that lives for the duration of one recorded session is held by a
single SessionContext value:

    raw_path       : the append-only transcript being captured.
    sanitized_path : where the redaction engine writes its redacted copy.
    override_path  : an explicit transcript chosen by the user (--transcript).
    supervisor     : the RedactionSupervisor owning the engine handle.

Only the raw path crosses process boundaries, through the
TERMSCRIBE_TRANSCRIPT environment variable exported to the recorded shell.
Processes inside the shell derive the rest from it: the sanitized path by
the same naming rule create_session_paths() uses, and the engine through
the supervisor's state file next to the sanitized log.

Teardown runs exactly once from an atexit handler: stop capture first, then
stop the redaction engine, so the engine is not killed mid-write. Errors
during teardown are logged at DEBUG and never propagate.
"""

import atexit
import logging
import os
import tempfile
import time
from dataclasses import dataclass, field
from typing import Callable, List, Mapping, MutableMapping, Optional, Tuple

from redaction import RedactionSupervisor, SanitizerState

logger = logging.getLogger(__name__)

# The single environment variable used for cross-process discovery.
ENV_TRANSCRIPT_VAR = "TERMSCRIBE_TRANSCRIPT"

_LOG_SUBDIR = "termscribe"

STORAGE_NOTE = (
    "Transcripts are stored in the system temporary directory and are "
    "cleared on reboot."
)


def default_log_dir() -> str:
    return os.path.join(tempfile.gettempdir(), _LOG_SUBDIR)


def create_session_paths(log_dir: Optional[str] = None) -> Tuple[str, str]:
    """
    Choose (raw_path, sanitized_path) for a new session and make sure the
    directory exists. Neither file is created here.
    """
    directory = os.path.abspath(log_dir or default_log_dir())
    os.makedirs(directory, exist_ok=True)
    stem = f"session-{time.strftime('%Y%m%d-%H%M%S')}-{os.getpid()}"
    raw_path = os.path.join(directory, f"{stem}.log")
    return raw_path, sanitized_path_for(raw_path)


def sanitized_path_for(raw_path: str) -> str:
    """`<stem>.log` -> `<stem>.sanitized.log`."""
    stem, ext = os.path.splitext(raw_path)
    return f"{stem}.sanitized{ext or '.log'}"


@dataclass
class SessionContext:
    raw_path: Optional[str] = None
    sanitized_path: Optional[str] = None
    override_path: Optional[str] = None
    supervisor: RedactionSupervisor = field(default_factory=RedactionSupervisor)

    _capture_stoppers: List[Callable[[], None]] = field(default_factory=list, repr=False)
    _shutdown_registered: bool = field(default=False, repr=False)
    _shut_down: bool = field(default=False, repr=False)

    @classmethod
    def from_environment(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        override_path: Optional[str] = None,
        sanitized_path: Optional[str] = None,
    ) -> "SessionContext":
        """
        Build the context of a process running inside a recorded shell: the
        raw path comes from TERMSCRIBE_TRANSCRIPT. Unless given explicitly,
        the sanitized path is derived from it, and the supervisor is
        attached to the engine recorded next to the sanitized log.
        """
        env = os.environ if environ is None else environ
        raw_path = env.get(ENV_TRANSCRIPT_VAR) or None
        if sanitized_path is None and raw_path:
            sanitized_path = sanitized_path_for(raw_path)

        context = cls(
            raw_path=raw_path,
            sanitized_path=sanitized_path,
            override_path=override_path,
        )
        if sanitized_path:
            context.supervisor.attach(sanitized_path)
        return context

    # ── Discovery variable ────────────────────────────────────────────────────

    def export_transcript_path(self, environ: Optional[MutableMapping[str, str]] = None) -> None:
        """Publish raw_path to child processes via TERMSCRIBE_TRANSCRIPT."""
        if not self.raw_path:
            return
        env = os.environ if environ is None else environ
        env[ENV_TRANSCRIPT_VAR] = self.raw_path

    @staticmethod
    def discovery_value(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
        env = os.environ if environ is None else environ
        return env.get(ENV_TRANSCRIPT_VAR) or None

    # ── Info ──────────────────────────────────────────────────────────────────

    @property
    def redaction_state(self) -> SanitizerState:
        return self.supervisor.status()

    def info(self) -> dict:
        """Snapshot of the session for the `info` surfaces."""
        raw = self.override_path or self.raw_path
        return {
            "raw_path": raw if raw and os.path.exists(raw) else None,
            "sanitized_path": (
                self.sanitized_path
                if self.sanitized_path and os.path.exists(self.sanitized_path)
                else None
            ),
            "redaction_state": self.redaction_state.value,
            "storage_note": STORAGE_NOTE,
        }

    # ── Teardown ──────────────────────────────────────────────────────────────

    def register_shutdown(self, stop_capture: Optional[Callable[[], None]] = None) -> None:
        """
        Register the session teardown with atexit (once per context).

        `stop_capture` callbacks run before the redaction engine is stopped.
        """
        if stop_capture is not None:
            self._capture_stoppers.append(stop_capture)
        if not self._shutdown_registered:
            atexit.register(self.shutdown)
            self._shutdown_registered = True

    def shutdown(self) -> None:
        """Stop capture, then stop redaction. Runs once; never raises."""
        if self._shut_down:
            return
        self._shut_down = True

        for stop_capture in self._capture_stoppers:
            try:
                stop_capture()
            except Exception as exc:
                logger.debug("Ignoring error while stopping capture: %s", exc, exc_info=True)

        try:
            self.supervisor.stop()
        except Exception as exc:
            logger.debug("Ignoring error while stopping redaction: %s", exc, exc_info=True)
