"""Fixed-shape results for the queries the client exposes."""

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple


@dataclass(frozen=True)
class ModelInfo:
    """Columns of a mapped model, in declaration order."""
    columns: List[Tuple[str, str]]
    schema_file: str

    @classmethod
    def from_result(cls, payload: Any) -> Optional["ModelInfo"]:
        if not isinstance(payload, dict):
            return None
        try:
            columns = [(str(name), str(type_)) for name, type_ in payload["columns"]]
            return cls(columns=columns, schema_file=str(payload["schema_file"]))
        except (KeyError, TypeError, ValueError):
            return None


@dataclass(frozen=True)
class RouteInfo:
    """Where a controller action is mounted and where it is defined."""
    path: str
    verb: str
    source_location: Tuple[str, int]

    @classmethod
    def from_result(cls, payload: Any) -> Optional["RouteInfo"]:
        if not isinstance(payload, dict):
            return None
        try:
            file, line = payload["source_location"]
            return cls(
                path=str(payload["path"]),
                verb=str(payload["verb"]),
                source_location=(str(file), int(line)),
            )
        except (KeyError, TypeError, ValueError):
            return None
