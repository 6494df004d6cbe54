"""Runner protocol between a tooling process and an application worker.

Architecture:
- protocol: Content-Length framed JSON codec
- supervisor: spawns and reaps the worker subprocess
- client: RunnerClient / NullClient, issues one query at a time
- server: request loop executed inside the worker
- state: model and route introspection of the booted application
"""

from runprobe.runner.errors import (
    IncompleteMessage,
    InitializationError,
    MalformedMessage,
    RemoteError,
    ResponseTimeout,
    RunnerError,
    SpawnError,
    UnknownRoute,
)
from runprobe.runner.protocol import decode, encode, make_request
from runprobe.runner.records import ModelInfo, RouteInfo

__all__ = [
    "IncompleteMessage",
    "InitializationError",
    "MalformedMessage",
    "RemoteError",
    "ResponseTimeout",
    "RunnerError",
    "SpawnError",
    "UnknownRoute",
    "decode",
    "encode",
    "make_request",
    "ModelInfo",
    "RouteInfo",
]
