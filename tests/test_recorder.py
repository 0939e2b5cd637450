"""
tests/test_recorder.py

Unit tests for the session capture layer: LineEditor, clean_output,
TranscriptWriter, and TranscriptRecorder's input/output handling.

No PTY is forked. The recorder's handlers are driven directly with the
bytes the proxy loop would have read, and the resulting transcript is parsed
back with CommandBlockExtractor.
"""

import os
import sys
import tempfile
import termios
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from command_history import CommandBlockExtractor
from command_history.extractor import SEPARATOR_LINE
from recorder import LineEditor, TranscriptRecorder, TranscriptWriter, clean_output
from recorder.transcript_writer import start_time_marker


# ─────────────────────────────────────────────────────────────────────────────
# Test: LineEditor
# ─────────────────────────────────────────────────────────────────────────────

class TestLineEditor(unittest.TestCase):

    def test_submits_on_enter(self):
        editor = LineEditor()
        self.assertEqual(editor.feed("ls -la"), [])
        self.assertEqual(editor.pending, "ls -la")
        self.assertEqual(editor.feed("\r"), ["ls -la"])
        self.assertEqual(editor.pending, "")

    def test_keystroke_by_keystroke(self):
        editor = LineEditor()
        submitted = []
        for ch in "pwd\r":
            submitted.extend(editor.feed(ch))
        self.assertEqual(submitted, ["pwd"])

    def test_backspace(self):
        editor = LineEditor()
        self.assertEqual(editor.feed("lss\x7f -a\r"), ["ls -a"])
        self.assertEqual(editor.feed("\x08\x08x\r"), ["x"])

    def test_ctrl_c_and_ctrl_u_discard_line(self):
        editor = LineEditor()
        self.assertEqual(editor.feed("rm -rf build\x03echo ok\r"), ["echo ok"])
        self.assertEqual(editor.feed("oops\x15date\r"), ["date"])

    def test_escape_sequences_are_skipped(self):
        editor = LineEditor()
        self.assertEqual(editor.feed("git\x1b[Dx status\x1b[3~\r"), ["gitx status"])

    def test_multiple_lines_in_one_chunk(self):
        editor = LineEditor()
        self.assertEqual(editor.feed("a\rb\nc"), ["a", "b"])
        self.assertEqual(editor.pending, "c")


# ─────────────────────────────────────────────────────────────────────────────
# Test: clean_output
# ─────────────────────────────────────────────────────────────────────────────

class TestCleanOutput(unittest.TestCase):

    def test_strips_colour_codes(self):
        self.assertEqual(clean_output("\x1b[1;32mok\x1b[0m\r\n"), "ok\n")

    def test_strips_osc_title(self):
        self.assertEqual(clean_output("\x1b]0;user@host: ~\x07$ "), "$ ")

    def test_drops_control_characters(self):
        self.assertEqual(clean_output("a\x07b\tc\rd\n"), "ab\tcd\n")


# ─────────────────────────────────────────────────────────────────────────────
# Test: TranscriptWriter
# ─────────────────────────────────────────────────────────────────────────────

class TestTranscriptWriter(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._tmp.name, "session.log")

    def tearDown(self):
        self._tmp.cleanup()

    def read(self) -> str:
        with open(self.path, encoding="utf-8") as f:
            return f.read()

    def test_start_time_marker_format(self):
        marker = start_time_marker(0)
        self.assertEqual(len(str(marker)), 14)

    def test_block_format(self):
        with TranscriptWriter(self.path) as writer:
            writer.begin_block("echo hi", start_time=20260101120000)
            writer.write_output("hi\n")
        self.assertEqual(
            self.read(),
            f"Command start time: 20260101120000\n{SEPARATOR_LINE}\necho hi\nhi\n",
        )

    def test_block_after_unterminated_output_starts_on_new_line(self):
        with TranscriptWriter(self.path) as writer:
            writer.begin_block("printf x", start_time=1)
            writer.write_output("x")
            writer.begin_block("id", start_time=2)
        blocks = CommandBlockExtractor().parse(self.read())
        self.assertEqual([b.body for b in blocks], ["printf x\nx", "id"])

    def test_header_is_not_a_block(self):
        with TranscriptWriter(self.path) as writer:
            writer.write_header("/bin/bash")
            writer.begin_block("ls", start_time=3)
        content = self.read()
        self.assertIn("Shell: /bin/bash", content)
        self.assertEqual(len(CommandBlockExtractor().parse(content)), 1)

    def test_termination_error_hides_block(self):
        with TranscriptWriter(self.path) as writer:
            writer.begin_block("ls", start_time=1)
            writer.begin_block("vim", start_time=2)
            writer.write_output("partial")
            writer.write_termination_error(OSError("[Errno 5] Input/output error"))
        blocks = CommandBlockExtractor().parse(self.read())
        self.assertEqual([b.start_time for b in blocks], [1])
        self.assertIn("TerminatingError(OSError):", self.read())

    def test_appends_never_truncates(self):
        with TranscriptWriter(self.path) as writer:
            writer.begin_block("one", start_time=1)
        with TranscriptWriter(self.path) as writer:
            writer.begin_block("two", start_time=2)
        self.assertEqual(len(CommandBlockExtractor().parse(self.read())), 2)

    def test_close_is_idempotent(self):
        writer = TranscriptWriter(self.path).open()
        writer.close()
        writer.close()
        self.assertTrue(writer.closed)

    def test_write_after_close_raises(self):
        writer = TranscriptWriter(self.path)
        with self.assertRaises(ValueError):
            writer.begin_block("ls")

    def test_writes_are_visible_immediately(self):
        writer = TranscriptWriter(self.path).open()
        try:
            writer.begin_block("make", start_time=1)
            self.assertIn("make", self.read())
        finally:
            writer.close()


# ─────────────────────────────────────────────────────────────────────────────
# Test: TranscriptRecorder handlers
# ─────────────────────────────────────────────────────────────────────────────

class TestTranscriptRecorder(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._tmp.name, "session.log")
        self.writer = TranscriptWriter(self.path).open()
        self.recorder = TranscriptRecorder(self.writer, shell="/bin/sh")

    def tearDown(self):
        self.recorder.stop_capture()
        self._tmp.cleanup()

    def transcript(self) -> str:
        with open(self.path, encoding="utf-8") as f:
            return f.read()

    def test_default_shell_from_environment(self):
        with patch.dict(os.environ, {"SHELL": "/usr/bin/zsh"}):
            self.assertEqual(TranscriptRecorder(self.writer).shell, "/usr/bin/zsh")

    def test_session_round_trip(self):
        # Prompt before any command is not part of a block.
        self.recorder.handle_output(b"\x1b[32m$\x1b[0m ")
        for ch in b"ls\r":
            self.recorder.handle_input(bytes([ch]))
        self.recorder.handle_output(b"ls\r\nREADME.md  setup.py\r\n$ ")
        self.recorder.handle_input(b"history 5\r")
        self.recorder.handle_output(b"history 5\r\n...\r\n$ ")
        self.recorder.handle_input(b"echo done\r")
        self.recorder.handle_output(b"echo done\r\ndone\r\n$ ")

        blocks = CommandBlockExtractor().parse(self.transcript())
        self.assertEqual([b.command for b in blocks], ["ls", "echo done"])
        self.assertIn("README.md  setup.py", blocks[0].body)
        self.assertNotIn("\x1b", blocks[0].body)

    def test_empty_enter_does_not_open_block(self):
        self.recorder.handle_input(b"\r\r   \r")
        self.assertNotIn("Command start time", self.transcript())

    def _pty_lflag(self, lflag: int):
        self.recorder._child_fd = 99
        return patch(
            "recorder.tty_recorder.termios.tcgetattr",
            return_value=[0, 0, 0, lflag, 0, 0, []],
        )

    def test_password_prompt_is_not_recorded(self):
        # readline at the prompt: non-canonical, echo off.
        with self._pty_lflag(0):
            self.recorder.handle_input(b"sudo apt update\r")
        # sudo's password prompt: canonical, echo off.
        with self._pty_lflag(termios.ICANON):
            self.recorder.handle_input(b"hunter2\r")
        with self._pty_lflag(termios.ICANON | termios.ECHO):
            self.recorder.handle_input(b"cat notes.txt\r")

        transcript = self.transcript()
        self.assertNotIn("hunter2", transcript)
        blocks = CommandBlockExtractor().parse(transcript)
        self.assertEqual([b.command for b in blocks], ["sudo apt update", "cat notes.txt"])

    def test_hidden_input_discards_pending_keystrokes(self):
        with self._pty_lflag(0):
            self.recorder.handle_input(b"half-typed")
        with self._pty_lflag(termios.ICANON):
            self.recorder.handle_input(b"s3cret")
        with self._pty_lflag(0):
            self.recorder.handle_input(b"\r")
        self.assertNotIn("Command start time", self.transcript())

    @unittest.skipUnless(sys.platform.startswith("linux"), "pty termios shared with master on Linux")
    def test_hidden_input_detected_on_real_pty(self):
        master, slave = os.openpty()
        try:
            attrs = termios.tcgetattr(slave)
            attrs[3] = (attrs[3] | termios.ICANON) & ~termios.ECHO
            termios.tcsetattr(slave, termios.TCSANOW, attrs)
            self.recorder._child_fd = master

            self.recorder.handle_input(b"hunter2\r")
        finally:
            self.recorder._child_fd = None
            os.close(slave)
            os.close(master)

        self.assertNotIn("hunter2", self.transcript())

    def test_stop_capture_is_idempotent(self):
        self.recorder.stop_capture()
        self.recorder.stop_capture()
        self.assertTrue(self.writer.closed)


if __name__ == "__main__":
    unittest.main()
