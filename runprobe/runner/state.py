"""Introspection of the live application inside the worker.

RuntimeState answers the queries the client sends:

- model: columns of a SQLAlchemy mapped class and the schema file path
- route: HTTP verb, path and source location of a FastAPI endpoint

Handlers take the request ``params`` and return a JSON-serializable result,
or None when nothing matches. Exceptions are converted into error responses
by the server loop.
"""

import importlib
import inspect
from typing import Any, Callable, Dict, Iterator, List, Optional

from fastapi import FastAPI
from fastapi.routing import APIRoute
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Mapper, registry
from sqlalchemy.types import TypeDecorator, TypeEngine

from runprobe.runner.application import Application

Handler = Callable[[Dict[str, Any]], Any]


def _required(params: Dict[str, Any], key: str) -> str:
    value = params.get(key)
    if not isinstance(value, str) or not value:
        raise ValueError(f"Missing '{key}' parameter")
    return value


def _type_name(type_: TypeEngine) -> str:
    if isinstance(type_, TypeDecorator):
        type_ = type_.impl
    return str(getattr(type_, "__visit_name__", type(type_).__name__)).lower()


def _controller_names(endpoint: Callable) -> set:
    """Names a caller may use to refer to the controller of an endpoint."""
    module = getattr(endpoint, "__module__", "") or ""
    names = {module, module.rpartition(".")[2]}
    qualname = getattr(endpoint, "__qualname__", "")
    parts = qualname.split(".")
    if len(parts) > 1 and parts[-2] != "<locals>":
        names.add(parts[-2])
    names.discard("")
    return names


class RuntimeState:
    """Query handlers bound to one booted application."""

    def __init__(self, application: Application):
        self.application = application

    def handlers(self) -> Dict[str, Handler]:
        return {
            "model": self.model,
            "route": self.route,
        }

    def model(self, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Describe a mapped model.

        Abstract bases, unmapped classes and unknown names all give None.

        Returns:
            {"columns": [[name, type], ...], "schema_file": str}
        """
        target = self.resolve(_required(params, "name"))
        if not isinstance(target, type):
            return None

        mapper = sa_inspect(target, raiseerr=False)
        if not isinstance(mapper, Mapper):
            return None

        return {
            "columns": [[column.name, _type_name(column.type)] for column in mapper.columns],
            "schema_file": str(self.application.schema_file),
        }

    def route(self, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Find the route served by ``controller``/``action``.

        Returns:
            {"path": str, "verb": str, "source_location": [file, line]}
        """
        controller = _required(params, "controller")
        action = _required(params, "action")

        for app in self._web_apps():
            for route in app.routes:
                if not isinstance(route, APIRoute):
                    continue
                endpoint = inspect.unwrap(route.endpoint)
                if getattr(endpoint, "__name__", None) != action:
                    continue
                if controller not in _controller_names(endpoint):
                    continue
                return {
                    "path": route.path,
                    "verb": "|".join(sorted(route.methods or ())),
                    "source_location": self._source_location(endpoint),
                }
        return None

    def resolve(self, name: str) -> Any:
        """
        Look up a name in the application.

        Dotted names are imported; bare names are read from the application
        module, then matched against classes in its declarative registries.
        """
        if "." in name:
            module_name, _, attr = name.rpartition(".")
            try:
                module = importlib.import_module(module_name)
            except (ImportError, TypeError, ValueError):
                # Unknown module, or a relative name such as ".User"
                return None
            return getattr(module, attr, None)

        found = getattr(self.application.module, name, None)
        if found is not None:
            return found

        for mapper in self._mappers():
            if mapper.class_.__name__ == name:
                return mapper.class_
        return None

    def _mappers(self) -> Iterator[Mapper]:
        seen: List[int] = []
        for value in list(vars(self.application.module).values()):
            reg = getattr(value, "registry", None)
            if isinstance(reg, registry) and id(reg) not in seen:
                seen.append(id(reg))
                yield from reg.mappers

    def _web_apps(self) -> List[FastAPI]:
        namespace = vars(self.application.module)
        apps = [value for value in namespace.values() if isinstance(value, FastAPI)]
        # Conventional name first
        apps.sort(key=lambda app: app is not namespace.get("app"))
        return apps

    @staticmethod
    def _source_location(endpoint: Callable) -> List[Any]:
        file = inspect.getsourcefile(endpoint) or inspect.getfile(endpoint)
        code = getattr(endpoint, "__code__", None)
        line = code.co_firstlineno if code is not None else 0
        return [file, line]
