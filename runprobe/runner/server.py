"""Request loop run inside the worker process.

This script is executed by the host entrypoint after the application has
booted:

    python -m runprobe.host runner path/to/server.py start

It writes one handshake frame, then answers one request at a time on
stdin/stdout until it receives ``shutdown`` or stdin closes. Diagnostics go
to stderr.
"""

import logging
import os
import sys
from typing import Any, Callable, Dict, Optional

from runprobe.runner.errors import IncompleteMessage, MalformedMessage
from runprobe.runner.protocol import (
    MAX_CONTENT_LENGTH,
    SHUTDOWN,
    UNKNOWN_ROUTE,
    decode,
    encode,
    error_response,
    request_name,
    result_response,
)

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], Any]


class RunnerServer:
    """
    Single-threaded, blocking request/response loop.

    A failing handler produces an error response; it never ends the loop.
    """

    def __init__(
        self,
        handlers: Dict[str, Handler],
        stdin,
        stdout,
        max_content_length: int = MAX_CONTENT_LENGTH,
    ):
        """
        Args:
            handlers: Query handlers keyed by method name
            stdin: Binary stream requests are read from
            stdout: Binary stream responses are written to
            max_content_length: Largest request body accepted
        """
        self.handlers = dict(handlers)
        self.stdin = stdin
        self.stdout = stdout
        self.max_content_length = max_content_length

    def start(self) -> None:
        """Send the handshake and serve until shutdown or end of input."""
        self._write(result_response({"message": "ok"}))

        while True:
            try:
                request = decode(self.stdin, self.max_content_length)
            except IncompleteMessage as e:
                logger.info("Input closed, stopping: %s", e)
                return
            except MalformedMessage as e:
                self._write(error_response(str(e)))
                continue

            name = request_name(request)
            if name == SHUTDOWN:
                logger.info("Shutdown requested")
                return

            self._write(self.handle(name, request.get("params")))

    def handle(self, name: Optional[str], params: Any) -> Dict[str, Any]:
        handler = self.handlers.get(name) if isinstance(name, str) else None
        if handler is None:
            logger.warning("Unknown route: %r", name)
            return error_response(UNKNOWN_ROUTE)

        try:
            return result_response(handler(params if isinstance(params, dict) else {}))
        except Exception as e:
            logger.exception("Error in %s handler: %s", name, e)
            return error_response(str(e) or e.__class__.__name__)

    def _write(self, body: Dict[str, Any]) -> None:
        try:
            frame = encode(body)
        except (TypeError, ValueError) as e:
            logger.error("Response is not JSON serializable: %s", e)
            frame = encode(error_response(f"Response is not JSON serializable: {e}"))
        self.stdout.write(frame)
        self.stdout.flush()


def main() -> None:
    logging.basicConfig(
        level=os.environ.get("RUNPROBE_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    from runprobe.runner import application
    from runprobe.runner.state import RuntimeState

    state = RuntimeState(application.current())
    output = application.protocol_output()
    server = RunnerServer(state.handlers(), sys.stdin.buffer, output)
    server.start()

    # Threads left running by the application must not keep the worker alive
    output.flush()
    sys.stdout.flush()
    sys.stderr.flush()
    logging.shutdown()
    os._exit(0)


if __name__ == "__main__":
    if sys.argv[1:] != ["start"]:
        print(f"usage: {sys.argv[0]} start", file=sys.stderr)
        sys.exit(2)
    main()
