"""Spawning, observing and reaping the worker subprocess."""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from runprobe.runner.errors import SpawnError

logger = logging.getLogger(__name__)


@dataclass
class WorkerHandle:
    """A running worker and the three pipes wired to it."""
    process: subprocess.Popen

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def stdin(self):
        return self.process.stdin

    @property
    def stdout(self):
        return self.process.stdout

    @property
    def stderr(self):
        return self.process.stderr

    @property
    def streams_closed(self) -> bool:
        return all(stream.closed for stream in (self.stdin, self.stdout, self.stderr))

    def close_streams(self) -> None:
        # Unbuffered pipes: closing never flushes, so it cannot hit a broken pipe
        for stream in (self.stdin, self.stdout, self.stderr):
            stream.close()


class Supervisor:
    """
    Owns worker process spawn and termination.

    Orderly shutdown is requested through the protocol by the client;
    ``kill`` is only for workers that stopped answering.
    """

    def start(
        self,
        entrypoint: Sequence[str],
        args: Sequence[str],
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> WorkerHandle:
        """
        Launch the worker with its stdio wired to unbuffered pipes.

        The worker is placed in its own session when the platform allows it;
        if not, it inherits ours.

        Raises:
            SpawnError: If the executable cannot be launched
        """
        argv = [*entrypoint, *args]
        try:
            process = self._spawn(argv, cwd, env, detach=True)
        except PermissionError as e:
            if e.filename is not None:
                # The executable itself is not runnable; no session fallback applies
                raise SpawnError(f"Failed to launch {argv[0]!r}: {e}") from e
            logger.warning("Could not detach worker into its own session (%s), continuing", e)
            try:
                process = self._spawn(argv, cwd, env, detach=False)
            except (OSError, subprocess.SubprocessError) as e:
                raise SpawnError(f"Failed to launch {argv[0]!r}: {e}") from e
        except (OSError, subprocess.SubprocessError) as e:
            raise SpawnError(f"Failed to launch {argv[0]!r}: {e}") from e

        logger.debug("Started worker pid=%s: %s", process.pid, " ".join(argv))
        return WorkerHandle(process)

    def is_alive(self, handle: WorkerHandle) -> bool:
        return handle.process.poll() is None

    def wait_for_exit(self, handle: WorkerHandle, timeout: Optional[float] = None) -> bool:
        """Block until the worker exits; False if ``timeout`` elapsed first."""
        try:
            handle.process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return False
        return True

    def kill(self, handle: WorkerHandle, grace: float = 2.0) -> None:
        """Terminate the worker, escalating to SIGKILL after ``grace`` seconds."""
        if not self.is_alive(handle):
            handle.process.wait()
            return
        logger.warning("Terminating worker pid=%s", handle.pid)
        handle.process.terminate()
        if not self.wait_for_exit(handle, grace):
            handle.process.kill()
            handle.process.wait()

    @staticmethod
    def _spawn(
        argv: List[str],
        cwd: Optional[Path],
        env: Optional[Dict[str, str]],
        detach: bool,
    ) -> subprocess.Popen:
        return subprocess.Popen(
            argv,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            bufsize=0,
            cwd=str(cwd) if cwd is not None else None,
            env=env,
            start_new_session=detach,
        )
