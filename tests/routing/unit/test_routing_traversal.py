"""Routing traversal tests."""

from __future__ import annotations

import pytest

from contractgen.endpoints import Endpoint, Middleware, SecurityScheme
from contractgen.errors import RoutingConflictError, RoutingError
from contractgen.routing import ByMethod, Router, collect_routes, traverse
from contractgen.schema import IntersectionNode, ObjectNode, array, integer, object_, string


def _endpoint(methods: tuple[str, ...] = ("get",), **fields) -> Endpoint:
    return Endpoint(
        input=object_(fields or {}),
        positive=object_({"ok": string()}),
        negative=object_({"message": string()}),
        methods=methods,
    )


def test_traverse_visits_in_declaration_order() -> None:
    routing = {
        "v1": {
            "user": {
                "retrieve": _endpoint(),
                ":id": _endpoint(("post",)),
            },
            "status": _endpoint(),
        }
    }
    visited: list[tuple[str, str]] = []

    traverse(routing, lambda endpoint, path, method: visited.append((method, path)))

    assert visited == [
        ("get", "/v1/user/retrieve"),
        ("post", "/v1/user/{id}"),
        ("get", "/v1/status"),
    ]


def test_multi_segment_keys_and_multiple_methods() -> None:
    entries = collect_routes({"v1/items/[id]": _endpoint(("get", "DELETE"))})

    assert [(entry.method, entry.path) for entry in entries] == [
        ("get", "/v1/items/{id}"),
        ("delete", "/v1/items/{id}"),
    ]


def test_by_method_routes_each_method_to_its_endpoint() -> None:
    read = _endpoint()
    write = _endpoint(("post",))
    entries = collect_routes({"items": ByMethod({"get": read, "post": write})})

    assert [(entry.method, entry.endpoint) for entry in entries] == [("get", read), ("post", write)]


def test_conflict_is_raised_before_any_visit() -> None:
    routing = {
        "users": {":id": _endpoint()},
        "users/{user_id}": _endpoint(),
    }
    visited: list[str] = []

    with pytest.raises(RoutingConflictError) as exc_info:
        traverse(routing, lambda endpoint, path, method: visited.append(path))

    assert visited == []
    assert exc_info.value.method == "get"
    assert "routing['users'][':id']" in str(exc_info.value)
    assert "routing['users/{user_id}']" in str(exc_info.value)


def test_same_path_different_methods_do_not_conflict() -> None:
    entries = collect_routes({"users": _endpoint(("get", "post"))})

    assert len(entries) == 2


def test_unexpected_value_is_a_routing_error() -> None:
    with pytest.raises(RoutingError, match="Unexpected value"):
        collect_routes({"v1": {"broken": 42}})


def test_by_method_rejects_unknown_methods() -> None:
    with pytest.raises(RoutingError, match="Unknown HTTP method 'fetch'"):
        collect_routes({"x": ByMethod({"fetch": _endpoint()})})


def test_empty_routing_yields_nothing() -> None:
    assert collect_routes({}) == []


def test_middleware_fields_merge_with_last_writer_winning() -> None:
    auth = Middleware(input=object_({"token": string(), "locale": string()}))
    closer = Middleware(input=object_({"locale": integer()}))
    endpoint = _endpoint(name=string())
    routing = Router({"v1": Router({"user": endpoint}, middlewares=[closer])}, middlewares=[auth])

    (entry,) = collect_routes(routing)

    effective_input = entry.endpoint.input
    assert isinstance(effective_input, ObjectNode)
    assert list(effective_input.shape) == ["token", "locale", "name"]
    assert effective_input.shape["locale"].type == "integer"
    assert effective_input.required == frozenset({"token", "locale", "name"})
    assert entry.endpoint.middlewares == ()


def test_endpoint_field_overrides_middleware_field() -> None:
    middleware = Middleware(input=object_({"id": string()}))
    endpoint = _endpoint(id=integer())

    (entry,) = collect_routes(Router({"thing": endpoint}, middlewares=[middleware]))

    assert entry.endpoint.input.shape["id"].type == "integer"


def test_non_object_input_is_intersected_with_middleware_fields() -> None:
    middleware = Middleware(input=object_({"token": string()}))
    endpoint = Endpoint(input=array(string()), positive=string(), negative=string(), methods="post")

    (entry,) = collect_routes(Router({"bulk": endpoint}, middlewares=[middleware]))

    assert isinstance(entry.endpoint.input, IntersectionNode)


def test_middleware_security_is_combined_with_endpoint_security() -> None:
    api_key = SecurityScheme("apiKey", parameter_name="X-Key")
    bearer = SecurityScheme("bearer", type="http", scheme="bearer")
    endpoint = Endpoint(
        input=object_({}),
        positive=string(),
        negative=string(),
        security=[bearer],
    )

    (entry,) = collect_routes(Router({"secure": endpoint}, middlewares=[Middleware(security=[api_key])]))

    assert len(entry.endpoint.security) == 1
    assert [requirement.scheme.name for requirement in entry.endpoint.security[0]] == ["apiKey", "bearer"]


def test_non_object_middleware_input_is_rejected() -> None:
    middleware = Middleware(input=string())

    with pytest.raises(RoutingError, match="must be an object"):
        collect_routes(Router({"x": _endpoint()}, middlewares=[middleware]))
