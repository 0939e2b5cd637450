"""
tests/test_session_context.py

Unit tests for SessionContext: path selection, discovery variable, info
snapshot, and the teardown ordering.
"""

import os
import sys
import tempfile
import unittest
from unittest.mock import MagicMock, call, patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from redaction import RedactionSupervisor, SanitizerState
from session_context import (
    ENV_TRANSCRIPT_VAR,
    STORAGE_NOTE,
    SessionContext,
    create_session_paths,
    sanitized_path_for,
)


class TestSessionPaths(unittest.TestCase):

    def test_paths_live_in_log_dir(self):
        with tempfile.TemporaryDirectory() as tmp:
            log_dir = os.path.join(tmp, "nested", "logs")
            raw, sanitized = create_session_paths(log_dir)

            self.assertTrue(os.path.isdir(log_dir))
            self.assertEqual(os.path.dirname(raw), os.path.abspath(log_dir))
            self.assertTrue(raw.endswith(".log"))
            self.assertTrue(sanitized.endswith(".sanitized.log"))
            self.assertNotEqual(raw, sanitized)
            self.assertFalse(os.path.exists(raw))

    def test_default_dir_is_under_tempdir(self):
        with tempfile.TemporaryDirectory() as tmp:
            with patch("session_context.tempfile.gettempdir", return_value=tmp):
                raw, _ = create_session_paths()
            self.assertTrue(raw.startswith(os.path.join(tmp, "termscribe")))


class TestDiscoveryVariable(unittest.TestCase):

    def test_from_environment_reads_raw_path(self):
        context = SessionContext.from_environment({ENV_TRANSCRIPT_VAR: "/tmp/x.log"})
        self.assertEqual(context.raw_path, "/tmp/x.log")
        self.assertEqual(context.sanitized_path, "/tmp/x.sanitized.log")
        self.assertIsNone(context.override_path)

    def test_from_environment_matches_session_naming(self):
        with tempfile.TemporaryDirectory() as tmp:
            raw, sanitized = create_session_paths(tmp)
        context = SessionContext.from_environment({ENV_TRANSCRIPT_VAR: raw})
        self.assertEqual(context.sanitized_path, sanitized)

    def test_explicit_sanitized_path_wins(self):
        context = SessionContext.from_environment(
            {ENV_TRANSCRIPT_VAR: "/tmp/x.log"}, sanitized_path="/elsewhere/s.log",
        )
        self.assertEqual(context.sanitized_path, "/elsewhere/s.log")

    def test_from_environment_attaches_supervisor(self):
        with patch.object(RedactionSupervisor, "attach") as mock_attach:
            SessionContext.from_environment({ENV_TRANSCRIPT_VAR: "/tmp/x.log"})
        mock_attach.assert_called_once_with("/tmp/x.sanitized.log")

    def test_sanitized_path_for(self):
        self.assertEqual(sanitized_path_for("/t/session-1.log"), "/t/session-1.sanitized.log")
        self.assertEqual(sanitized_path_for("/t/custom"), "/t/custom.sanitized.log")

    def test_from_environment_without_variable(self):
        context = SessionContext.from_environment({}, override_path="/o.log", sanitized_path="/s.log")
        self.assertIsNone(context.raw_path)
        self.assertEqual(context.override_path, "/o.log")
        self.assertEqual(context.sanitized_path, "/s.log")

    def test_export_only_publishes_raw_path(self):
        env = {}
        SessionContext(raw_path="/r.log", sanitized_path="/s.log").export_transcript_path(env)
        self.assertEqual(env, {ENV_TRANSCRIPT_VAR: "/r.log"})

    def test_export_without_raw_path_is_noop(self):
        env = {}
        SessionContext().export_transcript_path(env)
        self.assertEqual(env, {})

    def test_discovery_value(self):
        self.assertEqual(SessionContext.discovery_value({ENV_TRANSCRIPT_VAR: "/a"}), "/a")
        self.assertIsNone(SessionContext.discovery_value({ENV_TRANSCRIPT_VAR: ""}))
        self.assertIsNone(SessionContext.discovery_value({}))


class TestInfo(unittest.TestCase):

    def test_info_reports_existing_paths_only(self):
        with tempfile.TemporaryDirectory() as tmp:
            raw = os.path.join(tmp, "r.log")
            open(raw, "w").close()
            context = SessionContext(raw_path=raw, sanitized_path=os.path.join(tmp, "s.log"))
            info = context.info()

        self.assertEqual(info["raw_path"], raw)
        self.assertIsNone(info["sanitized_path"])
        self.assertEqual(info["redaction_state"], SanitizerState.NOT_STARTED.value)
        self.assertEqual(info["storage_note"], STORAGE_NOTE)


class TestShutdown(unittest.TestCase):

    def test_capture_stopped_before_redaction(self):
        order = MagicMock()
        supervisor = MagicMock()
        supervisor.stop.side_effect = lambda: order.stop_redaction()
        context = SessionContext(supervisor=supervisor)

        with patch("session_context.atexit.register"):
            context.register_shutdown(order.stop_capture)
        context.shutdown()

        self.assertEqual(order.mock_calls, [call.stop_capture(), call.stop_redaction()])

    def test_shutdown_runs_once(self):
        supervisor = MagicMock()
        stop_capture = MagicMock()
        context = SessionContext(supervisor=supervisor)
        with patch("session_context.atexit.register"):
            context.register_shutdown(stop_capture)

        context.shutdown()
        context.shutdown()

        stop_capture.assert_called_once()
        supervisor.stop.assert_called_once()

    def test_atexit_registered_once(self):
        context = SessionContext(supervisor=MagicMock())
        with patch("session_context.atexit.register") as mock_register:
            context.register_shutdown(MagicMock())
            context.register_shutdown(MagicMock())
        mock_register.assert_called_once_with(context.shutdown)

    def test_errors_are_suppressed(self):
        supervisor = MagicMock()
        supervisor.stop.side_effect = RuntimeError("engine gone")
        stop_capture = MagicMock(side_effect=OSError("disk full"))
        context = SessionContext(supervisor=supervisor)
        with patch("session_context.atexit.register"):
            context.register_shutdown(stop_capture)

        context.shutdown()  # must not raise

        stop_capture.assert_called_once()
        supervisor.stop.assert_called_once()


if __name__ == "__main__":
    unittest.main()
