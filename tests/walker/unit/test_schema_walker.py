"""Schema walker tests, rendered with the document renderer table."""

from __future__ import annotations

import json
import sys

import pytest

from contractgen.document import build_document_renderers
from contractgen.errors import (
    ContractError,
    IntersectionConflictError,
    SchemaDepthExceededError,
    UnrenderableCycleError,
    UnsupportedSchemaError,
)
from contractgen.registry import ReferenceRegistry
from contractgen.schema import (
    SchemaNode,
    array,
    integer,
    intersection,
    lazy,
    object_,
    record,
    string,
    transformed,
    union,
)
from contractgen.walker import RendererTable, SchemaWalker, WalkContext

REF = "#/components/schemas/"


class OpaqueNode(SchemaNode):
    """A node type no renderer table knows about."""


def _walker(max_depth: int = 256) -> SchemaWalker:
    return SchemaWalker(build_document_renderers(), ReferenceRegistry(), max_depth)


def _category_schema() -> SchemaNode:
    category = object_(
        {
            "name": string(),
            "children": array(lazy(lambda: category)),
        }
    )
    return category


def test_primitive_renders_constraints_without_components() -> None:
    fragment = _walker().render(string(min_length=1, pattern=r"^\d+$"))

    assert fragment.value == {"type": "string", "minLength": 1, "pattern": r"^\d+$"}
    assert fragment.declarations == ()


def test_shared_node_becomes_component_on_second_use() -> None:
    address = object_({"city": string()})
    user = object_({"home": address, "work": address})
    walker = _walker()

    fragment = walker.render(user, WalkContext(hint="User"))

    address_body = {"type": "object", "properties": {"city": {"type": "string"}}, "required": ["city"]}
    assert fragment.value["properties"]["home"] == address_body
    assert fragment.value["properties"]["work"] == {"$ref": f"{REF}UserHome"}
    assert fragment.declarations == ("UserHome",)
    assert walker.registry.components() == {"UserHome": address_body}


def test_recursive_schema_uses_first_occurrence_as_component() -> None:
    walker = _walker()

    fragment = walker.render(_category_schema(), WalkContext(hint="Category"))

    expected = {
        "type": "object",
        "properties": {
            "name": {"type": "string"},
            "children": {"type": "array", "items": {"$ref": f"{REF}Category"}},
        },
        "required": ["name", "children"],
    }
    assert fragment.value == expected
    assert walker.registry.components() == {"Category": expected}
    assert fragment.declarations == ("Category",)


def test_every_reference_resolves_to_a_component() -> None:
    walker = _walker()
    walker.render(object_({"a": _category_schema(), "b": _category_schema()}), WalkContext(hint="Tree"))

    components = walker.registry.components()
    dumped = json.dumps(components)
    for name in components:
        assert f"{REF}{name}" in dumped
    assert walker.registry.pending_names() == []


def test_explicit_ref_name_always_renders_as_reference() -> None:
    pet = object_({"id": integer()}).named("Pet")
    walker = _walker()

    fragment = walker.render(object_({"pet": pet}))

    assert fragment.value["properties"]["pet"] == {"$ref": f"{REF}Pet"}
    assert walker.registry.components()["Pet"] == {
        "type": "object",
        "properties": {"id": {"type": "integer", "format": "int64"}},
        "required": ["id"],
    }


def test_cycle_without_boundary_is_unrenderable() -> None:
    looping = union(string(), lazy(lambda: looping))

    with pytest.raises(UnrenderableCycleError):
        _walker().render(looping)


def test_self_reference_is_unrenderable() -> None:
    looping = lazy(lambda: looping)

    with pytest.raises(UnrenderableCycleError):
        _walker().render(looping)


def test_depth_limit_reports_path() -> None:
    node: SchemaNode = string()
    for _ in range(10):
        node = array(node)

    with pytest.raises(SchemaDepthExceededError) as exc_info:
        _walker(max_depth=5).render(node)

    assert isinstance(exc_info.value, UnsupportedSchemaError)
    assert exc_info.value.schema_path[0] == "[]"


def _nested_objects(levels: int) -> SchemaNode:
    node: SchemaNode = string()
    for _ in range(levels):
        node = object_({"child": node})
    return node


def test_default_depth_renders_deeply_nested_objects() -> None:
    fragment = SchemaWalker(build_document_renderers()).render(_nested_objects(200))

    assert fragment.value["properties"]["child"]["type"] == "object"


def test_default_depth_limit_trips_before_recursion_error() -> None:
    with pytest.raises(SchemaDepthExceededError) as exc_info:
        SchemaWalker(build_document_renderers()).render(_nested_objects(300))

    assert set(exc_info.value.schema_path) == {"child"}


def test_recursion_limit_is_restored_after_render() -> None:
    limit_before = sys.getrecursionlimit()

    SchemaWalker(build_document_renderers()).render(_nested_objects(50))

    assert sys.getrecursionlimit() == limit_before


def test_unknown_node_kind_is_unsupported() -> None:
    with pytest.raises(UnsupportedSchemaError) as exc_info:
        _walker().render(object_({"mystery": OpaqueNode()}, required=["mystery"]))

    assert exc_info.value.schema_path == ("mystery",)


def test_non_schema_value_is_unsupported() -> None:
    with pytest.raises(UnsupportedSchemaError):
        _walker().render(object_({"raw": "string"}, required=["raw"]))  # type: ignore[dict-item]


def test_incomplete_renderer_table_is_rejected() -> None:
    table = build_document_renderers()
    partial = RendererTable(renderers={}, reference=table.reference, wrap=table.wrap)

    with pytest.raises(ContractError, match="incomplete"):
        SchemaWalker(partial)


def test_wrappers_outside_objects_use_wrap_hook() -> None:
    fragment = _walker().render(string().nullable())

    assert fragment.value == {"type": "string", "nullable": True}


def test_defaulted_field_is_not_required_and_keeps_default() -> None:
    fragment = _walker().render(object_({"limit": integer().default(0)}))

    assert fragment.value == {
        "type": "object",
        "properties": {"limit": {"type": "integer", "format": "int64", "default": 0}},
    }


def test_intersection_of_objects_merges_fields() -> None:
    merged = intersection(object_({"a": string()}), object_({"b": integer()}))

    fragment = _walker().render(merged)

    assert fragment.value == {
        "type": "object",
        "properties": {"a": {"type": "string"}, "b": {"type": "integer", "format": "int64"}},
        "required": ["a", "b"],
    }


def test_intersection_merges_nested_objects() -> None:
    merged = intersection(
        object_({"meta": object_({"x": string()})}),
        object_({"meta": object_({"y": string()})}),
    )

    fragment = _walker().render(merged)

    assert list(fragment.value["properties"]["meta"]["properties"]) == ["x", "y"]


def test_intersection_conflict_names_field_and_kinds() -> None:
    conflicting = intersection(object_({"a": string()}), object_({"a": integer()}))

    with pytest.raises(IntersectionConflictError) as exc_info:
        _walker().render(conflicting)

    assert exc_info.value.field_name == "a"
    assert exc_info.value.first_kind == "string"
    assert exc_info.value.second_kind == "integer"


def test_intersection_with_non_object_member_uses_all_of() -> None:
    fragment = _walker().render(intersection(object_({"a": string()}), record(string())))

    assert [member["type"] for member in fragment.value["allOf"]] == ["object", "object"]
    assert "additionalProperties" in fragment.value["allOf"][1]


def test_union_keeps_member_order() -> None:
    fragment = _walker().render(union(integer(), string()))

    assert fragment.value == {"oneOf": [{"type": "integer", "format": "int64"}, {"type": "string"}]}


def test_transformed_selects_side() -> None:
    node = transformed(string(), output_hint=integer())
    walker = _walker()

    assert walker.render(node, WalkContext(is_response=False)).value == {"type": "string"}
    assert walker.render(node, WalkContext(is_response=True)).value == {"type": "integer", "format": "int64"}


def test_rendering_is_deterministic_across_runs() -> None:
    schema = object_({"a": _category_schema(), "b": array(string())})

    first = _walker().render(schema, WalkContext(hint="Root"))
    second = _walker().render(schema, WalkContext(hint="Root"))

    assert json.dumps(first.value, sort_keys=False) == json.dumps(second.value, sort_keys=False)
    assert first.declarations == second.declarations
