"""Flatten a nested routing declaration into ordered route entries.

Keys may hold several segments and path parameters in any of these spellings::

    {"v1": {"user/:id": endpoint}}       -> /v1/user/{id}
    {"v1": {"user/{id}": endpoint}}      -> /v1/user/{id}
    {"v1": {"user": {"[id]": endpoint}}} -> /v1/user/{id}
"""
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable, Mapping

from contractgen.endpoints import HTTP_METHODS, Endpoint, Middleware, SecurityAlternative
from contractgen.errors import RoutingConflictError, RoutingError
from contractgen.naming import join_path, path_shape, split_path
from contractgen.schema import IntersectionNode, ObjectNode, SchemaNode, intersection, object_, resolve_references, unwrap
from contractgen.walker import merge_intersection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Router:
    """Nested routes sharing middlewares."""
    routes: Mapping[str, Any]
    middlewares: tuple[Middleware, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "middlewares", tuple(self.middlewares))


@dataclass(frozen=True)
class ByMethod:
    """One path served by a different endpoint per method."""
    endpoints: Mapping[str, Endpoint]


@dataclass(frozen=True)
class RouteEntry:
    """A terminal route; ``endpoint`` already carries inherited input and security."""
    path: str
    method: str
    endpoint: Endpoint
    source: str = field(default="", compare=False)


RouteVisitor = Callable[[Endpoint, str, str], None]


# ============================================================
# Middleware merging
# ============================================================

def _object_fields(node: SchemaNode, source: str) -> ObjectNode:
    concrete = resolve_references(unwrap(resolve_references(node))[0])
    if isinstance(concrete, IntersectionNode):
        merged = merge_intersection(concrete)
        if merged is not None:
            return merged
    if isinstance(concrete, ObjectNode):
        return concrete
    raise RoutingError(
        "Middleware input must be an object schema.\n"
        f"Found {concrete.kind.value} at {source}"
    )


def merge_middleware_input(middlewares: Iterable[Middleware], endpoint_input: SchemaNode, source: str = "") -> SchemaNode:
    """
    Merge middleware fields top-down into the endpoint input.

    A later (closer) declaration replaces an earlier field with the same name.
    Non-object endpoint inputs are intersected with the middleware object.
    """
    middleware_list = list(middlewares)
    if not middleware_list:
        return endpoint_input

    shape: dict[str, SchemaNode] = {}
    required: dict[str, bool] = {}

    def absorb(fields: ObjectNode) -> None:
        for name, child in fields.shape.items():
            shape.pop(name, None)
            shape[name] = child
            required[name] = name in fields.required

    for middleware in middleware_list:
        absorb(_object_fields(middleware.input, source))

    concrete = resolve_references(unwrap(resolve_references(endpoint_input))[0])
    if isinstance(concrete, IntersectionNode):
        concrete = merge_intersection(concrete) or concrete

    if not isinstance(concrete, ObjectNode):
        if not shape:
            return endpoint_input
        return intersection(object_(shape, required=[name for name, flag in required.items() if flag]), endpoint_input)

    absorb(concrete)
    return object_(
        shape,
        required=[name for name, flag in required.items() if flag],
        description=concrete.metadata.description,
        examples=concrete.metadata.examples or None,
    )


def merge_security(levels: Iterable[tuple[SecurityAlternative, ...]]) -> tuple[SecurityAlternative, ...]:
    """Every level must be satisfied: the result is the product of the alternatives."""
    non_empty_levels = [level for level in levels if level]
    if not non_empty_levels:
        return ()

    merged: list[SecurityAlternative] = []
    for combination in itertools.product(*non_empty_levels):
        requirements: list[Any] = []
        seen_names: set[str] = set()
        for alternative in combination:
            for requirement in alternative:
                if requirement.scheme.name in seen_names:
                    continue
                seen_names.add(requirement.scheme.name)
                requirements.append(requirement)
        merged.append(tuple(requirements))
    return tuple(merged)


# ============================================================
# Traversal
# ============================================================

def _source_label(keys: list[str]) -> str:
    return "routing" + "".join(f"[{key!r}]" for key in keys)


def _effective_endpoint(endpoint: Endpoint, middlewares: tuple[Middleware, ...], source: str) -> Endpoint:
    chain = middlewares + endpoint.middlewares
    if not chain:
        return endpoint
    return replace(
        endpoint,
        input=merge_middleware_input(chain, endpoint.input, source),
        security=merge_security([middleware.security for middleware in chain] + [endpoint.security]),
        middlewares=(),
    )


def _collect(
    value: Any,
    segments: list[str],
    middlewares: tuple[Middleware, ...],
    keys: list[str],
    collected: list[RouteEntry],
) -> None:
    if isinstance(value, Endpoint):
        source = _source_label(keys)
        path = join_path(segments)
        effective = _effective_endpoint(value, middlewares, source)
        for method in value.methods:
            collected.append(RouteEntry(path=path, method=method, endpoint=effective, source=source))
        return

    if isinstance(value, ByMethod):
        path = join_path(segments)
        for method, endpoint in value.endpoints.items():
            if not isinstance(endpoint, Endpoint):
                raise RoutingError(
                    f"ByMethod values must be endpoints.\nFound {type(endpoint).__name__} at {_source_label(keys + [method])}"
                )
            if method.lower() not in HTTP_METHODS:
                raise RoutingError(
                    f"Unknown HTTP method {method!r} in ByMethod at {_source_label(keys + [method])}\n"
                    f"Expected one of: {', '.join(HTTP_METHODS)}"
                )
            source = _source_label(keys + [method])
            collected.append(
                RouteEntry(
                    path=path,
                    method=method.lower(),
                    endpoint=_effective_endpoint(endpoint, middlewares, source),
                    source=source,
                )
            )
        return

    if isinstance(value, Router):
        routes: Mapping[str, Any] = value.routes
        inherited = middlewares + value.middlewares
    elif isinstance(value, Mapping):
        routes = value
        inherited = middlewares
    else:
        raise RoutingError(
            "Unexpected value in routing declaration.\n"
            f"Found {type(value).__name__} at {_source_label(keys)}\n"
            "Expected an Endpoint, ByMethod, Router or mapping."
        )

    for key, child in routes.items():
        if not isinstance(key, str):
            raise RoutingError(f"Routing keys must be strings, got {key!r} at {_source_label(keys)}")
        _collect(child, segments + split_path(key), inherited, keys + [key], collected)


def collect_routes(routing: Any) -> list[RouteEntry]:
    """
    Flatten ``routing`` in declaration order.

    Raises RoutingConflictError when two entries share a method and a path
    (parameter names are ignored when comparing paths).
    """
    collected: list[RouteEntry] = []
    _collect(routing, [], (), [], collected)

    first_by_key: dict[tuple[str, str], RouteEntry] = {}
    for entry in collected:
        conflict_key = (entry.method, path_shape(entry.path))
        previous = first_by_key.get(conflict_key)
        if previous is not None:
            raise RoutingConflictError(entry.method, entry.path, previous.source, entry.source)
        first_by_key[conflict_key] = entry

    logger.debug("collected %d route(s)", len(collected))
    return collected


def traverse(routing: Any, visitor: RouteVisitor) -> None:
    """Call ``visitor(endpoint, path, method)`` per route; nothing is visited on conflict."""
    for entry in collect_routes(routing):
        visitor(entry.endpoint, entry.path, entry.method)
