"""Configuration management for runprobe.

Loads settings from ``.runprobe.cfg`` in the application root and lets
environment variables override them. Provides RunnerConfig, the settings
needed to spawn and talk to the worker.
"""

import configparser
import os
import shlex
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from runprobe.runner.protocol import MAX_CONTENT_LENGTH

CONFIG_FILENAME = ".runprobe.cfg"

DEFAULT_BOOT_TIMEOUT = 60.0
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_SHUTDOWN_TIMEOUT = 10.0


def default_entrypoint() -> List[str]:
    """Host runtime used when the application configures none."""
    return [sys.executable, "-m", "runprobe.host"]


@dataclass
class RunnerConfig:
    app_root: Path
    app_module: str = ""
    entrypoint: List[str] = field(default_factory=default_entrypoint)
    boot_timeout: float = DEFAULT_BOOT_TIMEOUT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT
    max_content_length: int = MAX_CONTENT_LENGTH

    def worker_env(self) -> Dict[str, str]:
        """
        Environment for the worker process.

        When PYTHONPATH is unset, it points at the directory this package was
        imported from so the worker can import runprobe even if the caller
        found it through ``sys.path`` manipulation.
        """
        env = dict(os.environ)
        if self.app_module:
            env["RUNPROBE_APP"] = self.app_module
        if not env.get("PYTHONPATH", "").strip():
            import runprobe

            env["PYTHONPATH"] = str(Path(runprobe.__file__).resolve().parent.parent)
        return env


def load_raw_config(path: Path) -> Dict[str, str]:
    """
    Load configuration values from a config file.
    Values are returned with lowercase keys for convenience.
    """
    cfg = configparser.ConfigParser()
    data: Dict[str, str] = {}

    if path.exists():
        cfg.read(path)
        if "DEFAULT" in cfg:
            data.update({k.lower(): v for k, v in cfg["DEFAULT"].items()})

    return data


def _get_float(raw: Dict[str, str], key: str, env_name: str, default: float) -> float:
    value = os.environ.get(env_name)
    if value is None or str(value).strip() == "":
        value = raw.get(key, "")
    if value is None or str(value).strip() == "":
        return default
    try:
        result = float(value)
    except ValueError:
        raise ValueError(f"Invalid value for '{key}': {value!r} is not a number")
    if result <= 0:
        raise ValueError(f"Invalid value for '{key}': must be positive, got {result}")
    return result


def get_runner_config(
    raw: Optional[Dict[str, str]] = None,
    app_root: Optional[Path] = None,
) -> RunnerConfig:
    """
    Build a RunnerConfig from raw configuration values.

    Args:
        raw: Values from load_raw_config(); read from ``app_root`` when None
        app_root: Application directory the worker runs in (default: cwd)

    Raises:
        ValueError: If a timeout or size setting is not a positive number
    """
    root = Path(app_root or Path.cwd()).resolve()
    if raw is None:
        raw = load_raw_config(root / CONFIG_FILENAME)

    app_module = os.environ.get("RUNPROBE_APP") or raw.get("app_module", "")

    entrypoint_value = os.environ.get("RUNPROBE_ENTRYPOINT") or raw.get("entrypoint", "")
    entrypoint = shlex.split(entrypoint_value) if entrypoint_value.strip() else default_entrypoint()

    max_content_length = int(
        _get_float(raw, "max_content_length", "RUNPROBE_MAX_CONTENT_LENGTH", MAX_CONTENT_LENGTH)
    )

    return RunnerConfig(
        app_root=root,
        app_module=app_module.strip(),
        entrypoint=entrypoint,
        boot_timeout=_get_float(raw, "boot_timeout", "RUNPROBE_BOOT_TIMEOUT_S", DEFAULT_BOOT_TIMEOUT),
        request_timeout=_get_float(
            raw, "request_timeout", "RUNPROBE_REQUEST_TIMEOUT_S", DEFAULT_REQUEST_TIMEOUT
        ),
        shutdown_timeout=_get_float(
            raw, "shutdown_timeout", "RUNPROBE_SHUTDOWN_TIMEOUT_S", DEFAULT_SHUTDOWN_TIMEOUT
        ),
        max_content_length=max_content_length,
    )
