"""
recorder/tty_recorder.py

TranscriptRecorder — PTY-based session capture.
────────────────────────────────────────────────
Forks a pseudo-terminal (PTY), launches the user's shell inside it, and acts
as a transparent proxy for all I/O between the real terminal and the shell,
copying the session into an append-only transcript on the way.

How it works
────────────
  1. `pty.fork()` creates a parent/child pair linked by a PTY.
  2. The child `exec`s the shell, so it sees a real terminal and behaves
     normally (prompt, colour, line editing).
  3. The parent runs a select()-based I/O loop:
       • stdin  → PTY fd : keystrokes are forwarded untouched and, in
                           parallel, fed to a small line editor. Each
                           submitted line opens a new command block.
       • PTY fd → stdout : output is forwarded untouched, then ANSI-stripped
                           and appended to the current block.
  4. If the proxy loop itself fails, a TerminatingError line is appended so
     history queries never surface the recorder's own failure as a command.

Limitations & known trade-offs
───────────────────────────────
  • The command text is reconstructed from keystrokes. Shell-side history
    recall (arrow keys) and tab completion are not visible to the line
    editor, so those blocks carry whatever was typed, not what ran.
  • Output includes the shell's echo of the next command line and prompt;
    blocks are best-effort, not a structured shell log.
  • Lines typed at a canonical-mode prompt with ECHO off (passwords) never
    open a block. Full-screen programs look like a line editor and their
    keystrokes are still recorded.
"""

import logging
import os
import pty
import re
import select
import sys
import termios
import tty
from typing import List, Optional

from colorama import Fore, Style, init as colorama_init

from .transcript_writer import TranscriptWriter

colorama_init(autoreset=True)
logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────────────────────

_PTY_READ_SIZE = 4096

_INFO  = f"{Fore.CYAN}{Style.BRIGHT}"
_RESET = Style.RESET_ALL
_TAG   = f"{_INFO}[TermScribe]{_RESET}"

# CSI / OSC sequences and single-character escapes emitted by shells and TUIs.
_ANSI_ESCAPE = re.compile(
    r"\x1b\[[0-?]*[ -/]*[@-~]"          # CSI … final byte
    r"|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"  # OSC … BEL / ST
    r"|\x1b[@-Z\\-_]"                   # two-byte escapes
)
# C0 controls except \t and \n.
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")

_BACKSPACES = ("\x7f", "\x08")
_KILL_LINE = ("\x03", "\x15")   # Ctrl+C, Ctrl+U


def clean_output(text: str) -> str:
    """Strip terminal control sequences, keeping printable text and newlines."""
    text = _ANSI_ESCAPE.sub("", text)
    text = text.replace("\r\n", "\n")
    return _CONTROL_CHARS.sub("", text)


class LineEditor:
    """
    Reconstructs submitted command lines from raw-mode keystrokes.

    Handles printable input, backspace, Ctrl+C / Ctrl+U (discard line) and
    skips escape sequences (arrow keys etc.).
    """

    def __init__(self) -> None:
        self._buffer: List[str] = []
        self._in_escape = False

    @property
    def pending(self) -> str:
        return "".join(self._buffer)

    def reset(self) -> None:
        self._buffer = []
        self._in_escape = False

    def feed(self, text: str) -> List[str]:
        """Consume keystrokes; return every line submitted with Enter."""
        submitted: List[str] = []
        for ch in text:
            if self._in_escape:
                # CSI sequences end on a letter or '~'; bare ESC+char ends at once.
                if ch.isalpha() or ch == "~":
                    self._in_escape = False
                continue
            if ch == "\x1b":
                self._in_escape = True
            elif ch in ("\r", "\n"):
                submitted.append("".join(self._buffer))
                self._buffer = []
            elif ch in _BACKSPACES:
                if self._buffer:
                    self._buffer.pop()
            elif ch in _KILL_LINE:
                self._buffer = []
            elif ch == "\t" or ch >= " ":
                self._buffer.append(ch)
        return submitted


class TranscriptRecorder:
    """
    Transparent PTY proxy that records a shell session.

    Args:
        writer : TranscriptWriter for the session's raw transcript.
        shell  : Shell binary to run. Defaults to $SHELL, then /bin/sh.
    """

    def __init__(self, writer: TranscriptWriter, shell: Optional[str] = None) -> None:
        self._writer = writer
        self._shell = shell or os.environ.get("SHELL") or "/bin/sh"
        self._editor = LineEditor()

        self._child_fd: Optional[int] = None
        self._child_pid: Optional[int] = None

    @property
    def shell(self) -> str:
        return self._shell

    # ── Public API ────────────────────────────────────────────────────────────

    def start(self) -> int:
        """
        Fork a PTY, launch the shell, and record until it exits.

        Returns:
            The exit code of the shell.
        """
        self._writer.open()
        self._writer.write_header(self._shell)

        try:
            self._child_pid, self._child_fd = pty.fork()
        except OSError as exc:
            logger.error("Failed to fork PTY: %s", exc)
            self._writer.write_termination_error(exc)
            raise

        if self._child_pid == 0:
            self._exec_shell()
            sys.exit(1)
        return self._run_proxy()

    def stop_capture(self) -> None:
        """Close the transcript. Idempotent; registered as a teardown step."""
        self._writer.close()

    # ── Core proxy loop ───────────────────────────────────────────────────────

    def _run_proxy(self) -> int:
        """
        Main I/O proxy loop. Saves and restores terminal state around the
        raw-mode session.
        """
        stdin_fd = sys.stdin.fileno()
        original_term_settings = termios.tcgetattr(stdin_fd)

        exit_code = 0
        try:
            tty.setraw(stdin_fd)
            exit_code = self._io_loop(stdin_fd)
        except Exception as exc:
            logger.error("Proxy loop error: %s", exc, exc_info=True)
            if not self._writer.closed:
                self._writer.write_termination_error(exc)
        finally:
            # Always restore terminal; failure here leaves the shell broken.
            try:
                termios.tcsetattr(stdin_fd, termios.TCSADRAIN, original_term_settings)
            except termios.error:
                pass  # stdin may have been closed already
            if self._child_fd is not None:
                try:
                    os.close(self._child_fd)
                except OSError:
                    pass

        return exit_code

    def _io_loop(self, stdin_fd: int) -> int:
        """
        select()-based bidirectional I/O loop. Returns when the child PTY
        closes (the shell has exited).
        """
        while True:
            try:
                read_fds, _, _ = select.select(
                    [stdin_fd, self._child_fd], [], [], 0.05
                )
            except (ValueError, OSError):
                break

            # ── User → shell ──────────────────────────────────────────────────
            if stdin_fd in read_fds:
                try:
                    user_input = os.read(stdin_fd, 1024)
                except OSError:
                    break
                if user_input:
                    os.write(self._child_fd, user_input)
                    self.handle_input(user_input)

            # ── Shell → user ──────────────────────────────────────────────────
            if self._child_fd in read_fds:
                try:
                    raw_data = os.read(self._child_fd, _PTY_READ_SIZE)
                except OSError:
                    break
                if not raw_data:
                    break

                sys.stdout.buffer.write(raw_data)
                sys.stdout.buffer.flush()
                self.handle_output(raw_data)

        return self._wait_for_child()

    def handle_input(self, data: bytes) -> None:
        """Open a block for each non-empty line the user submits."""
        if self._reading_hidden_input():
            # Password prompts (sudo, ssh, read -s) are never command lines.
            self._editor.reset()
            return
        text = data.decode("utf-8", errors="replace")
        for line in self._editor.feed(text):
            command = line.strip()
            if command:
                self._writer.begin_block(command)
                logger.debug("Recorded command: %s", command)

    def handle_output(self, data: bytes) -> None:
        """Append cleaned shell output to the current block."""
        self._writer.write_output(clean_output(data.decode("utf-8", errors="replace")))

    def _reading_hidden_input(self) -> bool:
        """
        True while the program on the PTY reads a line with echo off.

        Line editors (readline, zle) also clear ECHO but run non-canonical,
        so only canonical mode without ECHO counts as hidden input.
        """
        if self._child_fd is None:
            return False
        try:
            lflag = termios.tcgetattr(self._child_fd)[3]
        except termios.error:
            return False
        return bool(lflag & termios.ICANON) and not lflag & termios.ECHO

    def _exec_shell(self) -> None:
        """
        Replace the child process image with the shell.
        Called inside the forked child; never returns on success.
        """
        try:
            os.execvp(self._shell, [self._shell])
        except FileNotFoundError:
            sys.stderr.write(f"\n{_TAG} ERROR: shell '{self._shell}' not found.\n")
            sys.exit(127)

    def _wait_for_child(self) -> int:
        """Reap the child process and return its exit code."""
        try:
            _, status = os.waitpid(self._child_pid, 0)
            if os.WIFEXITED(status):
                return os.WEXITSTATUS(status)
            if os.WIFSIGNALED(status):
                return -os.WTERMSIG(status)
        except ChildProcessError:
            pass
        return 0
