"""Client side of the runner protocol.

Usage:
    client = create_client()
    info = client.model("User")
    if info:
        ...
    client.shutdown()

``create_client`` never raises: when the worker cannot be started it returns
a NullClient, which answers every query with None. Callers never need to
check whether the worker is available.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from runprobe.core.configs import RunnerConfig, get_runner_config
from runprobe.runner.errors import (
    IncompleteMessage,
    InitializationError,
    MalformedMessage,
    RemoteError,
    ResponseTimeout,
    UnknownRoute,
)
from runprobe.runner.protocol import SHUTDOWN, UNKNOWN_ROUTE, decode, encode, make_request
from runprobe.runner.records import ModelInfo, RouteInfo
from runprobe.runner.streams import DeadlineReader, read_available
from runprobe.runner.supervisor import Supervisor, WorkerHandle

logger = logging.getLogger(__name__)

SERVER_SCRIPT = Path(__file__).resolve().parent / "server.py"


class ClientState(Enum):
    CREATED = "created"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class BaseClient(ABC):
    """Query interface shared by the worker-backed client and its stand-in."""

    @abstractmethod
    def query(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Send one request; return its result, or None on any failure."""

    @abstractmethod
    def shutdown(self) -> None:
        """Stop the worker. Safe to call more than once."""

    @abstractmethod
    def is_stopped(self) -> bool:
        """True once no worker process or stream is left."""

    def model(self, name: str) -> Optional[ModelInfo]:
        """Columns and schema file of a model, or None if it is not a model."""
        return ModelInfo.from_result(self.query("model", {"name": name}))

    def route(self, controller: str, action: str) -> Optional[RouteInfo]:
        """Path, verb and source location of a controller action."""
        return RouteInfo.from_result(
            self.query("route", {"controller": controller, "action": action})
        )


class RunnerClient(BaseClient):
    """
    Talks to one worker subprocess over its stdin/stdout.

    Requests are strictly sequential: a lock keeps at most one request in
    flight, and each call blocks until its response (or a failure) is read.
    """

    def __init__(self, config: RunnerConfig, supervisor: Optional[Supervisor] = None):
        """
        Spawn the worker and wait for its handshake.

        Raises:
            SpawnError: If the worker cannot be launched
            InitializationError: If the worker dies or stalls before the
                handshake
        """
        self.config = config
        self.supervisor = supervisor or Supervisor()
        self.state = ClientState.CREATED
        self._lock = threading.Lock()
        self._stderr_tail: deque = deque(maxlen=80)

        self.handle: WorkerHandle = self.supervisor.start(
            config.entrypoint,
            ["runner", str(SERVER_SCRIPT), "start"],
            cwd=config.app_root,
            env=config.worker_env(),
        )
        self._reader = DeadlineReader(
            self.handle.stdout, drain=self.handle.stderr, on_drain=self._record_stderr
        )

        logger.info("Booting runner worker (pid %s)", self.handle.pid)
        try:
            self._read_response(self.config.boot_timeout)
        except (IncompleteMessage, MalformedMessage, RemoteError, OSError) as e:
            self._reap(force=True)
            raise InitializationError(
                f"Worker failed to start: {e}\n{self.stderr_output()}"
            ) from e

        self.state = ClientState.RUNNING
        logger.info("Runner worker ready")

    def query(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        with self._lock:
            if self.state is not ClientState.RUNNING:
                logger.debug("Ignoring %s query: client is %s", method, self.state.value)
                return None

            try:
                self._send(method, params)
                return self._read_response(self.config.request_timeout)
            except RemoteError as e:
                logger.warning("Runner error for %s: %s", method, e)
                return None
            except MalformedMessage as e:
                logger.warning(
                    "Failed to get %s information: %s\n%s", method, e, self.stderr_output()
                )
                return None
            except (IncompleteMessage, BrokenPipeError) as e:
                # The stream is closed or out of sync; the worker is of no further use.
                self._reap(force=True)
                if isinstance(e, ResponseTimeout):
                    logger.error(
                        "Runner %s query timed out after %.1fs, worker stopped\n%s",
                        method,
                        self.config.request_timeout,
                        self.stderr_output(),
                    )
                else:
                    logger.warning(
                        "Failed to get %s information: %s\n%s", method, e, self.stderr_output()
                    )
                return None

    def shutdown(self) -> None:
        with self._lock:
            if self.state in (ClientState.SHUTTING_DOWN, ClientState.STOPPED):
                return
            self.state = ClientState.SHUTTING_DOWN

            try:
                self._send(SHUTDOWN)
            except (BrokenPipeError, OSError) as e:
                logger.debug("Worker already gone while sending shutdown: %s", e)

            exited = self.supervisor.wait_for_exit(self.handle, self.config.shutdown_timeout)
            if not exited:
                logger.warning(
                    "Worker did not exit within %.1fs of shutdown", self.config.shutdown_timeout
                )
            self._reap(force=not exited)

    def is_stopped(self) -> bool:
        return self.handle.streams_closed and not self.supervisor.is_alive(self.handle)

    def stderr_output(self) -> str:
        """Diagnostics the worker has written to stderr so far (tail only)."""
        self._collect_stderr()
        return "\n".join(self._stderr_tail)

    def _send(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        frame = encode(make_request(method, params))
        view = memoryview(frame)
        while view:
            written = self.handle.stdin.write(view)
            view = view[written:]

    def _read_response(self, timeout: float) -> Any:
        self._reader.arm(timeout)
        try:
            response = decode(self._reader, self.config.max_content_length)
        finally:
            self._collect_stderr()

        if "error" in response:
            if response["error"] == UNKNOWN_ROUTE:
                raise UnknownRoute(UNKNOWN_ROUTE)
            raise RemoteError(str(response["error"]))
        return response.get("result")

    def _collect_stderr(self) -> None:
        data = read_available(self.handle.stderr)
        if data:
            self._record_stderr(data)

    def _record_stderr(self, data: bytes) -> None:
        text = data.decode("utf-8", errors="replace")
        self._stderr_tail.extend(text.splitlines())

    def _reap(self, force: bool) -> None:
        """Make sure the process has exited, then close its streams."""
        if force:
            self.supervisor.kill(self.handle)
        else:
            self.supervisor.wait_for_exit(self.handle)
        self._collect_stderr()
        self.handle.close_streams()
        self.state = ClientState.STOPPED


class NullClient(BaseClient):
    """Stand-in used when the worker is unavailable; performs no I/O."""

    def query(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return None

    def shutdown(self) -> None:
        pass

    def is_stopped(self) -> bool:
        return True


def create_client(config: Optional[RunnerConfig] = None) -> BaseClient:
    """
    Start a worker-backed client, falling back to a NullClient.

    Args:
        config: Runner settings (default: loaded from the current directory)

    Returns:
        RunnerClient if the worker booted, NullClient otherwise
    """
    try:
        return RunnerClient(config or get_runner_config())
    except Exception as e:
        logger.warning("Failed to initialize runner worker: %s", e, exc_info=True)
        logger.warning("Runner dependent features will not be available")
        return NullClient()
