"""The application loaded inside the worker process.

The host entrypoint boots the application once; the server script and the
query handlers reach it through ``current()``.
"""

import importlib
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import BinaryIO, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_current: Optional["Application"] = None
_protocol_output: Optional[BinaryIO] = None


@dataclass
class Application:
    module: ModuleType
    root: Path

    @property
    def name(self) -> str:
        return self.module.__name__

    @property
    def schema_file(self) -> Path:
        """The application's SCHEMA_FILE, or db/schema.sql under its root."""
        configured = getattr(self.module, "SCHEMA_FILE", None)
        if configured:
            return (self.root / Path(configured)).resolve()
        return (self.root / "db" / "schema.sql").resolve()


def boot(module_name: str, root: Optional[Path] = None) -> Application:
    """
    Import the application module and make it the current application.

    The root is put first on ``sys.path`` and its ``.env`` file, if any, is
    loaded without overriding variables already set.

    Raises:
        ValueError: If no module name is given
        ImportError: If the module cannot be imported
    """
    global _current

    if not module_name:
        raise ValueError("No application module configured (set RUNPROBE_APP)")

    app_root = Path(root or Path.cwd()).resolve()
    if str(app_root) not in sys.path:
        sys.path.insert(0, str(app_root))

    env_file = app_root / ".env"
    if env_file.exists():
        load_dotenv(env_file, override=False)

    logger.info("Booting application %s from %s", module_name, app_root)
    module = importlib.import_module(module_name)
    _current = Application(module=module, root=app_root)
    return _current


def current() -> Application:
    if _current is None:
        raise RuntimeError("Application has not been booted")
    return _current


def reserve_stdout() -> BinaryIO:
    """
    Keep the process's stdout for protocol frames only.

    A private duplicate of fd 1 is returned for the frames, and fd 1 is
    pointed at stderr, so ``print`` and stdout logging from the application
    (or any child it spawns) land in the diagnostics instead of the stream.
    Must run before the application is imported.
    """
    global _protocol_output

    if _protocol_output is None:
        sys.stdout.flush()
        _protocol_output = os.fdopen(os.dup(1), "wb", buffering=0)
        os.dup2(2, 1)
    return _protocol_output


def protocol_output() -> BinaryIO:
    """The stream protocol frames are written to."""
    if _protocol_output is not None:
        return _protocol_output
    return sys.stdout.buffer
