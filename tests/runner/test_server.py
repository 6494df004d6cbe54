"""
Tests for runner/server.py - the request loop run inside the worker.

The loop is driven over in-memory streams with stub handlers, so no
application or subprocess is involved.
"""

import io
import unittest

from runprobe.runner.protocol import decode, encode, make_request
from runprobe.runner.server import RunnerServer


def _frames(*requests) -> io.BytesIO:
    return io.BytesIO(b"".join(encode(request) for request in requests))


def _responses(stdout: io.BytesIO) -> list:
    stdout.seek(0)
    responses = []
    while stdout.tell() < len(stdout.getvalue()):
        responses.append(decode(stdout))
    return responses


class TestRunnerServer(unittest.TestCase):
    """Test cases for RunnerServer."""

    def setUp(self):
        self.calls = []

        def echo(params):
            self.calls.append(params)
            return {"echo": params}

        def explode(params):
            raise LookupError("no such table")

        def nothing(params):
            return None

        self.handlers = {"echo": echo, "explode": explode, "nothing": nothing}

    def _serve(self, stdin: io.BytesIO) -> list:
        stdout = io.BytesIO()
        RunnerServer(self.handlers, stdin, stdout).start()
        return _responses(stdout)

    def test_handshake_is_written_first(self):
        responses = self._serve(_frames(make_request("shutdown")))
        self.assertEqual(responses, [{"result": {"message": "ok"}}])

    def test_request_is_dispatched_by_method(self):
        responses = self._serve(
            _frames(make_request("echo", {"name": "User"}), make_request("shutdown"))
        )

        self.assertEqual(responses[1], {"result": {"echo": {"name": "User"}}})
        self.assertEqual(self.calls, [{"name": "User"}])

    def test_route_key_is_accepted(self):
        responses = self._serve(
            _frames({"route": "echo", "params": {"a": 1}}, {"route": "shutdown"})
        )
        self.assertEqual(responses[1], {"result": {"echo": {"a": 1}}})

    def test_missing_params_become_empty_mapping(self):
        self._serve(_frames(make_request("echo"), make_request("shutdown")))
        self.assertEqual(self.calls, [{}])

    def test_none_result_is_sent_as_null(self):
        responses = self._serve(_frames(make_request("nothing"), make_request("shutdown")))
        self.assertEqual(responses[1], {"result": None})

    def test_unknown_route(self):
        responses = self._serve(_frames(make_request("tables"), make_request("shutdown")))
        self.assertEqual(responses[1], {"error": "unknown route"})

    def test_handler_failure_does_not_stop_the_loop(self):
        responses = self._serve(
            _frames(
                make_request("explode"),
                make_request("echo", {"after": True}),
                make_request("shutdown"),
            )
        )

        self.assertEqual(responses[1], {"error": "no such table"})
        self.assertEqual(responses[2], {"result": {"echo": {"after": True}}})

    def test_unserializable_result_becomes_error(self):
        self.handlers["echo"] = lambda params: {"value": object()}
        responses = self._serve(_frames(make_request("echo"), make_request("shutdown")))

        self.assertIn("error", responses[1])
        self.assertNotIn("result", responses[1])

    def test_malformed_body_gets_error_response(self):
        stdin = io.BytesIO(b"Content-Length: 4\r\n\r\nnope" + encode(make_request("shutdown")))
        responses = self._serve(stdin)

        self.assertEqual(len(responses), 2)
        self.assertIn("error", responses[1])

    def test_shutdown_ends_loop_without_reply(self):
        stdin = _frames(make_request("shutdown"), make_request("echo"))
        responses = self._serve(stdin)

        self.assertEqual(len(responses), 1)
        self.assertEqual(self.calls, [])

    def test_end_of_input_ends_loop(self):
        responses = self._serve(_frames(make_request("echo", {"x": 1})))
        self.assertEqual(len(responses), 2)


if __name__ == "__main__":
    unittest.main()
