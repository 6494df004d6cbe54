"""Exceptions raised by the runner client, codec and worker."""


class RunnerError(Exception):
    """Base class for all runner failures."""


class SpawnError(RunnerError):
    """Raised when the worker subprocess could not be launched."""


class InitializationError(RunnerError):
    """Raised when the worker fails its handshake or exits before it."""


class IncompleteMessage(RunnerError):
    """Raised when a stream closes or is truncated mid-frame."""


class ResponseTimeout(IncompleteMessage):
    """Raised when a frame does not arrive before its deadline."""


class MalformedMessage(RunnerError):
    """Raised when a complete frame does not carry a JSON object."""


class RemoteError(RunnerError):
    """Raised when the worker answers with an ``error`` field."""


class UnknownRoute(RemoteError):
    """Raised worker-side when no handler matches the requested name."""
