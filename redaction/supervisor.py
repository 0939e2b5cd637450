"""
redaction/supervisor.py

RedactionSupervisor — lifecycle manager for the external redaction engine.
──────────────────────────────────────────────────────────────────────────
The redaction engine is a separate script that tails the raw transcript and
incrementally writes a secret-redacted copy next to it. From here it is
untrusted, opaque code: it may be missing, may crash, may never exit. The
supervisor therefore:

  1. Validates the engine path and resolves an interpreter before spawning.
  2. Spawns the engine without blocking the caller (fire-and-forget Popen)
     in its own session so terminal signals aimed at the recorded shell
     never reach it.
  3. Records the engine's PID in a state file next to the sanitized log
     (`<sanitized>.engine.json`).
  4. Reports liveness with a non-blocking poll().
  5. Stops it with SIGTERM, a bounded wait, then SIGKILL. Stopping twice, or
     stopping nothing, is a no-op.

Commands run inside the recorded shell are separate processes. They call
attach(sanitized_path) and the supervisor adopts the engine listed in the
state file, so status() and stop() act on the session's real engine. An
adopted engine is not our child: its exit code cannot be observed, so an
adopted engine that has gone away is reported as STOPPED.

Usage:
    supervisor = RedactionSupervisor()
    try:
        handle = supervisor.start("redact.py", ["python3", "python"],
                                  "/tmp/termscribe/s.log",
                                  "/tmp/termscribe/s.sanitized.log")
    except RedactionError as exc:
        logger.warning("Redaction disabled: %s", exc)
    ...
    supervisor.stop()
"""

import json
import logging
import os
import shutil
import signal
import subprocess
import time
from typing import IO, Optional, Sequence

from .errors import EngineNotFoundError, InterpreterUnavailableError, SpawnFailedError
from .models import SanitizerState, SubprocessHandle

logger = logging.getLogger(__name__)

# Grace period between SIGTERM and SIGKILL. Internal; not user-configurable.
_STOP_GRACE_SECONDS = 5.0

# Suffix of the file that receives the engine's stdout/stderr.
_ENGINE_LOG_SUFFIX = ".engine.log"

# Suffix of the session state file holding the engine's PID and argv.
_STATE_FILE_SUFFIX = ".engine.json"


def state_file_path(sanitized_path: str) -> str:
    return sanitized_path + _STATE_FILE_SUFFIX


def _engine_alive(pid: int, command: Sequence[str]) -> bool:
    """
    True if `pid` is a live (non-zombie) process running `command`.

    Without procfs only the signal-0 check is available.
    """
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True

    proc_dir = os.path.join("/proc", str(pid))
    try:
        with open(os.path.join(proc_dir, "stat"), encoding="utf-8", errors="replace") as f:
            if f.read().rpartition(")")[2].split()[0] == "Z":
                return False
        with open(os.path.join(proc_dir, "cmdline"), "rb") as f:
            argv = [arg.decode("utf-8", "replace") for arg in f.read().split(b"\0") if arg]
    except (OSError, IndexError):
        return True

    # The interpreter may re-exec itself (pyenv shims), so only the engine
    # arguments are compared. A mismatch means the PID was reused.
    tail = list(command[1:])
    return not tail or argv[-len(tail):] == tail


class _AdoptedProcess:
    """
    Popen-like view of an engine spawned by another process.

    Supports what stop() and status() need: poll, wait, terminate, kill.
    """

    _WAIT_INTERVAL = 0.05

    def __init__(self, pid: int, command: Sequence[str]) -> None:
        self.pid = pid
        self.args = list(command)
        self.returncode: Optional[int] = None

    def poll(self) -> Optional[int]:
        if self.returncode is None and not _engine_alive(self.pid, self.args):
            # A non-child's exit status is not observable.
            self.returncode = 0
        return self.returncode

    def wait(self, timeout: Optional[float] = None) -> int:
        deadline = None if timeout is None else time.monotonic() + timeout
        while self.poll() is None:
            if deadline is not None and time.monotonic() >= deadline:
                raise subprocess.TimeoutExpired(self.args, timeout)
            time.sleep(self._WAIT_INTERVAL)
        return self.returncode

    def terminate(self) -> None:
        os.kill(self.pid, signal.SIGTERM)

    def kill(self) -> None:
        os.kill(self.pid, signal.SIGKILL)


class RedactionSupervisor:
    """
    Owns at most one live redaction-engine process.

    Args:
        stop_grace_seconds : Seconds to wait after SIGTERM before escalating
                             to SIGKILL.
    """

    def __init__(self, stop_grace_seconds: float = _STOP_GRACE_SECONDS) -> None:
        self._stop_grace = stop_grace_seconds
        self._handle: Optional[SubprocessHandle] = None
        # State reported when there is no handle (never started, or spawn failed).
        self._state = SanitizerState.NOT_STARTED
        # State file of an engine owned by another process, see attach().
        self._attach_path: Optional[str] = None

    # ── Public API ────────────────────────────────────────────────────────────

    @property
    def handle(self) -> Optional[SubprocessHandle]:
        return self._handle

    @property
    def state(self) -> SanitizerState:
        return self.status()

    def attach(self, sanitized_path: str) -> None:
        """
        Look for the session's engine in the state file next to
        `sanitized_path`. The file is read lazily by status() and stop().
        """
        self._attach_path = state_file_path(sanitized_path)

    def start(
        self,
        engine_path: str,
        interpreter_candidates: Sequence[str],
        raw_path: str,
        sanitized_path: str,
    ) -> SubprocessHandle:
        """
        Spawn the redaction engine bound to (raw_path → sanitized_path).

        Returns immediately after the process is created.

        Raises:
            EngineNotFoundError         : engine_path does not exist.
            InterpreterUnavailableError : no candidate resolves on PATH.
            SpawnFailedError            : the OS refused to launch the process.
        """
        if not engine_path or not os.path.exists(engine_path):
            logger.warning("Redaction engine not found at %r", engine_path)
            raise EngineNotFoundError(engine_path)

        interpreter = self._resolve_interpreter(interpreter_candidates)
        if interpreter is None:
            logger.warning(
                "No interpreter found for the redaction engine (tried %s)",
                list(interpreter_candidates),
            )
            raise InterpreterUnavailableError(interpreter_candidates)

        if self._handle is not None:
            # Also releases the log file of an engine that already exited.
            if self.status(self._handle) == SanitizerState.RUNNING:
                logger.info(
                    "Replacing running redaction engine (PID %d)", self._handle.pid,
                )
            self.stop(self._handle)

        command = self.build_command(interpreter, engine_path, raw_path, sanitized_path)
        log_path = sanitized_path + _ENGINE_LOG_SUFFIX
        log_file = self._open_engine_log(log_path)

        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=log_file if log_file is not None else subprocess.DEVNULL,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as exc:
            if log_file is not None:
                log_file.close()
            self._handle = None
            self._state = SanitizerState.FAILED
            logger.error("Failed to spawn redaction engine: %s", exc)
            raise SpawnFailedError(command, exc) from exc

        self._handle = SubprocessHandle(
            process=process,
            command=command,
            raw_path=raw_path,
            sanitized_path=sanitized_path,
            log_path=log_path if log_file is not None else None,
            log_file=log_file,
        )
        self._handle.state_path = self._write_state_file(self._handle)
        self._state = SanitizerState.RUNNING
        logger.info(
            "Redaction engine started (PID %d) | input=%s output=%s",
            process.pid, raw_path, sanitized_path,
        )
        return self._handle

    def stop(self, handle: Optional[SubprocessHandle] = None) -> None:
        """
        Terminate the engine and reap it. Never raises.

        With no argument the supervisor's own (or attached) handle is
        stopped. A None handle, or one that was already stopped, is a no-op.
        """
        if handle is None:
            handle = self._current_handle()
        if handle is None:
            return

        # A crash noticed here stays FAILED rather than being reported as a clean stop.
        self.status(handle)

        if handle.state == SanitizerState.RUNNING:
            process = handle.process
            try:
                process.terminate()
                try:
                    process.wait(timeout=self._stop_grace)
                    logger.info("Redaction engine terminated (PID %d)", process.pid)
                except subprocess.TimeoutExpired:
                    process.kill()
                    logger.warning("Redaction engine killed (PID %d)", process.pid)
                    process.wait(timeout=self._stop_grace)
                handle.exit_code = process.returncode
            except ProcessLookupError:
                logger.debug("Redaction engine (PID %d) already exited", process.pid)
            except (OSError, subprocess.TimeoutExpired) as exc:
                logger.debug("Error while stopping redaction engine: %s", exc)
            handle.state = SanitizerState.STOPPED

        if handle.log_file is not None:
            try:
                handle.log_file.close()
            except OSError as exc:
                logger.debug("Could not close engine log %s: %s", handle.log_path, exc)
            handle.log_file = None

        if handle.state_path is not None and not handle.adopted:
            self._remove_state_file(handle.state_path)
            handle.state_path = None

        if handle is self._handle:
            self._state = handle.state

    def status(self, handle: Optional[SubprocessHandle] = None) -> SanitizerState:
        """Non-blocking liveness check; refreshes the handle's state."""
        if handle is None:
            handle = self._current_handle()
        if handle is None:
            return self._state

        if handle.state == SanitizerState.RUNNING:
            code = handle.process.poll()
            if code is not None:
                handle.exit_code = code
                handle.state = SanitizerState.STOPPED if code == 0 else SanitizerState.FAILED
                log = logger.info if code == 0 else logger.warning
                log("Redaction engine (PID %d) exited with code %d", handle.pid, code)

        if handle is self._handle:
            self._state = handle.state
        return handle.state

    # ── Helpers ───────────────────────────────────────────────────────────────

    @staticmethod
    def build_command(
        interpreter: str, engine_path: str, raw_path: str, sanitized_path: str,
    ) -> list[str]:
        """argv passed to the engine: it tails --input and writes --output."""
        return [interpreter, engine_path, "--input", raw_path, "--output", sanitized_path]

    @staticmethod
    def _resolve_interpreter(candidates: Sequence[str]) -> Optional[str]:
        """Return the absolute path of the first candidate found on PATH."""
        for name in candidates:
            if not name:
                continue
            resolved = shutil.which(name)
            if resolved:
                logger.debug("Redaction interpreter: %s → %s", name, resolved)
                return resolved
        return None

    @staticmethod
    def _open_engine_log(log_path: str) -> Optional[IO[bytes]]:
        try:
            return open(log_path, "ab")
        except OSError as exc:
            logger.warning("Cannot open engine log %s (%s); discarding engine output", log_path, exc)
            return None

    def _current_handle(self) -> Optional[SubprocessHandle]:
        if self._handle is None and self._attach_path is not None:
            self._handle = self._adopt(self._attach_path)
        return self._handle

    # ── State file ────────────────────────────────────────────────────────────

    @staticmethod
    def _write_state_file(handle: SubprocessHandle) -> Optional[str]:
        path = state_file_path(handle.sanitized_path)
        record = {
            "pid": handle.pid,
            "command": handle.command,
            "raw_path": handle.raw_path,
            "sanitized_path": handle.sanitized_path,
            "log_path": handle.log_path,
            "started_at": handle.started_at,
        }
        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(record, f)
        except OSError as exc:
            logger.warning(
                "Cannot write engine state file %s (%s); other processes will not see the engine",
                path, exc,
            )
            return None
        return path

    @staticmethod
    def _remove_state_file(path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.debug("Could not remove engine state file %s: %s", path, exc)

    @staticmethod
    def _adopt(path: str) -> Optional[SubprocessHandle]:
        try:
            with open(path, encoding="utf-8") as f:
                record = json.load(f)
            pid = int(record["pid"])
            command = [str(arg) for arg in record["command"]]
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.debug("Ignoring unreadable engine state file %s: %s", path, exc)
            return None

        logger.info("Attached to redaction engine (PID %d) via %s", pid, path)
        return SubprocessHandle(
            process=_AdoptedProcess(pid, command),
            command=command,
            raw_path=record.get("raw_path") or "",
            sanitized_path=record.get("sanitized_path") or "",
            log_path=record.get("log_path"),
            started_at=record.get("started_at") or time.time(),
            state_path=path,
            adopted=True,
        )
