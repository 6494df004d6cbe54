"""
Tests for runner/client.py - RunnerClient, NullClient and create_client.

These tests spawn real worker processes: the fixture application in
tests/fixtures/blog_app for the happy path, and small fake workers for
crashes and stalls.
"""

import os
import sys
import unittest
from pathlib import Path

from runprobe.core.configs import RunnerConfig
from runprobe.runner.client import ClientState, NullClient, RunnerClient, create_client
from runprobe.runner.errors import InitializationError, SpawnError
from runprobe.runner.records import ModelInfo, RouteInfo

FIXTURES = Path(__file__).resolve().parent.parent / "fixtures"


def _config(**overrides) -> RunnerConfig:
    settings = {
        "app_root": FIXTURES,
        "app_module": "blog_app",
        "boot_timeout": 60.0,
        "request_timeout": 30.0,
        "shutdown_timeout": 10.0,
    }
    settings.update(overrides)
    return RunnerConfig(**settings)


class TestRunnerClient(unittest.TestCase):
    """Test cases for a client backed by the fixture application."""

    def setUp(self):
        self.client = RunnerClient(_config())

    def tearDown(self):
        self.client.shutdown()

        handle = self.client.handle
        self.assertTrue(handle.stdin.closed)
        self.assertTrue(handle.stdout.closed)
        self.assertTrue(handle.stderr.closed)
        self.assertIsNotNone(handle.process.poll())

    def test_client_is_running_after_handshake(self):
        self.assertEqual(self.client.state, ClientState.RUNNING)
        self.assertFalse(self.client.is_stopped())

    def test_model_returns_information_for_the_requested_model(self):
        columns = [
            ("id", "integer"),
            ("first_name", "string"),
            ("last_name", "string"),
            ("age", "integer"),
            ("created_at", "datetime"),
            ("updated_at", "datetime"),
        ]
        info = self.client.model("User")

        self.assertIsInstance(info, ModelInfo)
        self.assertEqual(info.columns, columns)
        self.assertTrue(info.schema_file.endswith(os.path.join("db", "schema.sql")))

    def test_returns_none_if_model_doesnt_exist(self):
        self.assertIsNone(self.client.model("Foo"))

    def test_returns_none_if_class_is_not_a_model(self):
        self.assertIsNone(self.client.model("datetime"))

    def test_returns_none_if_class_is_an_abstract_model(self):
        self.assertIsNone(self.client.model("ApplicationRecord"))

    def test_route_returns_verb_path_and_source(self):
        info = self.client.route("users", "index")

        self.assertIsInstance(info, RouteInfo)
        self.assertEqual(info.verb, "GET")
        self.assertEqual(info.path, "/users")
        self.assertTrue(info.source_location[0].endswith("users.py"))

    def test_unknown_route_returns_none_and_keeps_worker(self):
        with self.assertLogs("runprobe.runner.client", level="WARNING"):
            self.assertIsNone(self.client.query("tables"))

        self.assertEqual(self.client.state, ClientState.RUNNING)
        self.assertIsNotNone(self.client.model("User"))

    def test_handler_error_returns_none(self):
        with self.assertLogs("runprobe.runner.client", level="WARNING") as logs:
            self.assertIsNone(self.client.query("model", {}))

        self.assertIn("name", "\n".join(logs.output))
        self.assertEqual(self.client.state, ClientState.RUNNING)

    def test_shutdown_stops_worker_and_is_idempotent(self):
        self.client.shutdown()

        self.assertTrue(self.client.is_stopped())
        self.assertEqual(self.client.state, ClientState.STOPPED)

        self.client.shutdown()
        self.assertTrue(self.client.is_stopped())

    def test_query_after_shutdown_returns_none(self):
        self.client.shutdown()
        self.assertIsNone(self.client.model("User"))


class TestWorkerFailures(unittest.TestCase):
    """Test cases for workers that die or stall after the handshake."""

    def test_worker_crash_during_query(self):
        client = RunnerClient(
            _config(entrypoint=[sys.executable, str(FIXTURES / "crashing_worker.py")])
        )

        with self.assertLogs("runprobe.runner.client", level="WARNING"):
            self.assertIsNone(client.model("User"))

        self.assertEqual(client.state, ClientState.STOPPED)
        self.assertTrue(client.is_stopped())
        self.assertIn("worker crashed", client.stderr_output())

        client.shutdown()
        self.assertIsNone(client.model("User"))

    def test_stalled_worker_times_out(self):
        client = RunnerClient(
            _config(
                entrypoint=[sys.executable, str(FIXTURES / "silent_worker.py")],
                request_timeout=0.5,
            )
        )

        with self.assertLogs("runprobe.runner.client", level="ERROR"):
            self.assertIsNone(client.model("User"))

        self.assertTrue(client.is_stopped())
        client.shutdown()


class TestWorkerOutput(unittest.TestCase):
    """Test cases for workers that write a lot outside the protocol."""

    def test_stderr_flood_does_not_stall_the_worker(self):
        client = RunnerClient(
            _config(
                entrypoint=[sys.executable, str(FIXTURES / "chatty_worker.py")],
                boot_timeout=10.0,
                request_timeout=10.0,
            )
        )
        try:
            info = client.model("User")

            self.assertEqual(info.columns, [("id", "integer")])
            self.assertEqual(client.state, ClientState.RUNNING)
            self.assertIn("www", client.stderr_output())
        finally:
            client.shutdown()
        self.assertTrue(client.is_stopped())

    def test_application_stdout_does_not_corrupt_frames(self):
        client = RunnerClient(_config(app_module="noisy_app", boot_timeout=30.0))
        try:
            self.assertEqual(client.state, ClientState.RUNNING)

            report = client.model("noisy_app.reports.Report")
            self.assertEqual(report.columns, [("id", "integer")])

            widget = client.model("Widget")
            self.assertEqual(widget.columns, [("id", "integer"), ("label", "string")])
            self.assertIn("booting", client.stderr_output())
        finally:
            client.shutdown()

    def test_shutdown_exits_despite_application_threads(self):
        client = RunnerClient(_config(app_module="noisy_app", shutdown_timeout=10.0))
        client.shutdown()

        self.assertTrue(client.is_stopped())
        self.assertEqual(client.handle.process.returncode, 0)


class TestClientStartup(unittest.TestCase):
    """Test cases for construction failures and the factory fallback."""

    def test_missing_entrypoint_raises_spawn_error(self):
        with self.assertRaises(SpawnError):
            RunnerClient(_config(entrypoint=["/nonexistent/runprobe-host"]))

    def test_worker_exiting_before_handshake_raises_initialization_error(self):
        with self.assertRaises(InitializationError):
            RunnerClient(_config(entrypoint=[sys.executable, "-c", "import sys; sys.exit(1)"]))

    def test_boot_failure_reports_worker_stderr(self):
        with self.assertRaises(InitializationError) as context:
            RunnerClient(_config(app_module="no_such_application"))

        self.assertIn("no_such_application", str(context.exception))

    def test_factory_falls_back_to_null_client_when_spawn_fails(self):
        with self.assertLogs("runprobe.runner.client", level="WARNING"):
            client = create_client(_config(entrypoint=["/nonexistent/runprobe-host"]))

        self.assertIsInstance(client, NullClient)
        self.assertTrue(client.is_stopped())
        self.assertIsNone(client.model("User"))
        self.assertIsNone(client.route("users", "index"))

    def test_factory_falls_back_to_null_client_when_handshake_fails(self):
        with self.assertLogs("runprobe.runner.client", level="WARNING"):
            client = create_client(_config(app_module="no_such_application"))

        self.assertIsInstance(client, NullClient)

    def test_factory_returns_runner_client(self):
        client = create_client(_config())
        try:
            self.assertIsInstance(client, RunnerClient)
            self.assertFalse(client.is_stopped())
        finally:
            client.shutdown()
        self.assertTrue(client.is_stopped())


class TestNullClient(unittest.TestCase):
    """Test cases for the no-op stand-in."""

    def test_null_client_does_nothing(self):
        client = NullClient()

        self.assertIsNone(client.query("model", {"name": "User"}))
        self.assertIsNone(client.model("User"))
        self.assertIsNone(client.route("users", "index"))
        self.assertTrue(client.is_stopped())

        client.shutdown()
        client.shutdown()
        self.assertTrue(client.is_stopped())


if __name__ == "__main__":
    unittest.main()
