"""Describe a handler object's public methods as registry endpoints."""

from __future__ import annotations

import collections.abc
import inspect
import types
import typing
from typing import Any, Callable

from stark.registry import Endpoint, Value

_STREAM_ORIGINS = (
    collections.abc.Iterator,
    collections.abc.Iterable,
    collections.abc.AsyncIterator,
    collections.abc.AsyncIterable,
)

_STREAM_NAMES = ("Iterator", "Iterable", "AsyncIterator", "AsyncIterable", "Generator")

_MISSING = object()


def _unwrap_optional(annotation: Any) -> Any:
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def extract_value(annotation: Any) -> Value | None:
    """Describe a type annotation; None when there is no annotation."""
    if annotation is None or annotation is inspect.Parameter.empty or annotation is _MISSING:
        return None
    if isinstance(annotation, str):
        return Value(name=annotation, type="")
    annotation = _unwrap_optional(annotation)
    base = typing.get_origin(annotation) or annotation
    name = getattr(annotation, "__name__", None) or str(annotation)
    if isinstance(base, type):
        kind = base.__name__ if base.__module__ == "builtins" else "class"
    else:
        kind = "object"
    return Value(name=name, type=kind)


def _function(method: Callable[..., Any]) -> Any:
    return getattr(method, "__func__", method)


def _annotations(method: Callable[..., Any]) -> dict[str, Any]:
    annotations = getattr(_function(method), "__annotations__", None)
    return dict(annotations) if isinstance(annotations, dict) else {}


def _parameter_names(method: Callable[..., Any]) -> list[str]:
    code = getattr(_function(method), "__code__", None)
    if code is None:
        return []
    names = list(code.co_varnames[: code.co_argcount + code.co_kwonlyargcount])
    if names and (inspect.ismethod(method) or names[0] in ("self", "cls")):
        names = names[1:]
    return names


def _is_stream_annotation(annotation: Any) -> bool:
    if isinstance(annotation, str):
        head = annotation.split("[", 1)[0].rsplit(".", 1)[-1].strip()
        return head in _STREAM_NAMES
    return typing.get_origin(annotation) in _STREAM_ORIGINS


def _is_stream(method: Callable[..., Any], annotations: list[Any]) -> bool:
    function = _function(method)
    if inspect.isgeneratorfunction(function) or inspect.isasyncgenfunction(function):
        return True
    return any(_is_stream_annotation(a) for a in annotations)


def extract_endpoint(name: str, method: Callable[..., Any]) -> Endpoint | None:
    """Describe one method; None for names that are not public.

    A method that yields results or takes an iterator of requests is marked
    with the metadata ``stream: true``.
    """
    if name.startswith("_"):
        return None

    hints = _annotations(method)
    in_annotations = [hints.get(p, _MISSING) for p in _parameter_names(method)]
    request = Value(name="in parameter")
    request.values = [v for v in map(extract_value, in_annotations) if v is not None]

    response = Value(name="out parameter")
    returned = hints.get("return", _MISSING)
    if returned is not _MISSING:
        if typing.get_origin(returned) is tuple:
            outs = list(typing.get_args(returned))
        else:
            outs = [returned]
        response.values = [v for v in map(extract_value, outs) if v is not None]

    metadata = {"stream": "true"} if _is_stream(method, in_annotations) else {}
    return Endpoint(name=name, request=request, response=response, metadata=metadata)


def extract_endpoints(handler: object) -> list[Endpoint]:
    """Describe every public method of a handler as ``ClassName.method``."""
    owner = handler.__name__ if isinstance(handler, type) else type(handler).__name__
    endpoints = []
    for name, method in inspect.getmembers(handler, predicate=inspect.isroutine):
        endpoint = extract_endpoint(name, method)
        if endpoint is not None:
            endpoint.name = f"{owner}.{endpoint.name}"
            endpoints.append(endpoint)
    return endpoints