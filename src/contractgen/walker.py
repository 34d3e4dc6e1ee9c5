"""Depth-first schema walker parameterized by a renderer table.

The walker owns the traversal concerns that both targets share:

  - wrapper peeling (Optional / Nullable / Default folded into field metadata)
  - cycle detection and deferred component bodies for recursive schemas
  - shared-node promotion to named components
  - intersection merging and its conflict checks
  - recursion depth bounding

Renderers only turn one node plus its already rendered children into a value.
"""
from __future__ import annotations

import sys
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Generic, TypeVar

from contractgen.errors import (
    ContractError,
    IntersectionConflictError,
    SchemaDepthExceededError,
    UnrenderableCycleError,
    UnsupportedSchemaError,
)
from contractgen.naming import to_pascal_case
from contractgen.registry import Identity, ReferenceRegistry
from contractgen.schema import (
    ArrayNode,
    IntersectionNode,
    ObjectNode,
    PrimitiveNode,
    RecordNode,
    ReferenceNode,
    SchemaKind,
    SchemaNode,
    TransformedNode,
    UnionNode,
    Wrapping,
    describe_kind,
    object_,
    resolve_references,
    unwrap,
)

V = TypeVar("V")

DEFAULT_MAX_DEPTH = 256

# Upper bound of interpreter frames spent per depth unit (field -> dispatch -> kind -> fields).
FRAMES_PER_LEVEL = 8
RECURSION_HEADROOM = 500

# Nodes worth naming when they are reused or recursive.
TRACKED_KINDS = frozenset(
    {
        SchemaKind.OBJECT,
        SchemaKind.ARRAY,
        SchemaKind.RECORD,
        SchemaKind.UNION,
        SchemaKind.INTERSECTION,
        SchemaKind.ENUM,
        SchemaKind.REFERENCE,
    }
)

# A recursive definition needs one of these between the two occurrences.
BOUNDARY_KINDS = frozenset({SchemaKind.OBJECT, SchemaKind.ARRAY, SchemaKind.RECORD})

# Kinds a renderer table must provide; wrappers and references are handled here.
DISPATCHED_KINDS = frozenset(
    {
        SchemaKind.PRIMITIVE,
        SchemaKind.OBJECT,
        SchemaKind.ARRAY,
        SchemaKind.RECORD,
        SchemaKind.UNION,
        SchemaKind.INTERSECTION,
        SchemaKind.ENUM,
        SchemaKind.TRANSFORMED,
    }
)


# ============================================================
# Context + results
# ============================================================

@dataclass(frozen=True)
class WalkContext:
    """Where the walker currently is: route hint, side and path from the root."""
    hint: str = ""
    is_response: bool = False
    path: tuple[str, ...] = ()

    def child(self, segment: str) -> "WalkContext":
        return replace(self, path=self.path + (segment,))

    @property
    def nearest_field(self) -> str:
        """Closest field name above the current node, if any."""
        for segment in reversed(self.path):
            if not segment.startswith(("[", "|", "&", "{")):
                return segment
        return ""

    @property
    def name_hint(self) -> str:
        return f"{to_pascal_case(self.hint)}{to_pascal_case(self.nearest_field)}"


@dataclass(frozen=True)
class FieldResult(Generic[V]):
    """One rendered object field plus the wrapper effect folded into it."""
    name: str
    value: V
    required: bool
    wrapping: Wrapping
    node: SchemaNode | None = None


@dataclass(frozen=True)
class RenderedFragment(Generic[V]):
    """Rendered value plus the component names registered while producing it."""
    value: V
    declarations: tuple[str, ...] = ()


Renderer = Callable[[SchemaNode, Any, WalkContext], Any]
ReferenceRenderer = Callable[[str, WalkContext], Any]
WrapRenderer = Callable[[Any, Wrapping, WalkContext], Any]


@dataclass(frozen=True)
class RendererTable:
    """
    Target-specific renderers.

    ``renderers`` maps each dispatched kind to ``(node, children, context) -> value``:
      PRIMITIVE / ENUM : children is None
      OBJECT           : children is list[FieldResult]
      ARRAY / RECORD   : children is the element/value rendering
      UNION            : children is the list of member renderings (in order)
      INTERSECTION     : children is the list of member renderings (non-object members present)
      TRANSFORMED      : children is the rendering of the side-appropriate schema
    """
    renderers: dict[SchemaKind, Renderer]
    reference: ReferenceRenderer
    wrap: WrapRenderer

    def missing_kinds(self) -> set[SchemaKind]:
        return set(DISPATCHED_KINDS) - set(self.renderers)


# ============================================================
# Walker
# ============================================================

@dataclass
class SchemaWalker:
    """Render schema trees with one renderer table and one registry."""
    table: RendererTable
    registry: ReferenceRegistry = field(default_factory=ReferenceRegistry)
    max_depth: int = DEFAULT_MAX_DEPTH

    # (identity, kind) of every tracked node currently being rendered
    _stack: list[tuple[Identity, SchemaKind]] = field(default_factory=list, init=False, repr=False)
    # name hint of the first occurrence of every tracked node
    _first_hints: dict[Identity, str] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        missing = self.table.missing_kinds()
        if missing:
            raise ContractError(
                "Renderer table is incomplete, missing: " + ", ".join(sorted(kind.value for kind in missing))
            )

    def render(self, node: SchemaNode, context: WalkContext | None = None) -> RenderedFragment:
        """Render ``node`` and report the components it caused to be registered."""
        walk_context = context or WalkContext()
        defined_before = set(self.registry.component_bodies)

        # max_depth has to trip before the interpreter's own recursion limit does.
        previous_limit = sys.getrecursionlimit()
        required_limit = self.max_depth * FRAMES_PER_LEVEL + RECURSION_HEADROOM
        if required_limit > previous_limit:
            sys.setrecursionlimit(required_limit)
        try:
            value = self._visit(node, walk_context, 0)
        finally:
            if required_limit > previous_limit:
                sys.setrecursionlimit(previous_limit)

        declarations = tuple(name for name in self.registry.component_bodies if name not in defined_before)
        return RenderedFragment(value=value, declarations=declarations)

    # ---- traversal

    def _check_node(self, node: Any, context: WalkContext, depth: int) -> None:
        if depth > self.max_depth:
            raise SchemaDepthExceededError(self.max_depth, context.path)
        if not isinstance(node, SchemaNode):
            raise UnsupportedSchemaError(type(node).__name__, context.path)
        kind = getattr(type(node), "kind", None)
        if not isinstance(kind, SchemaKind):
            raise UnsupportedSchemaError(kind if kind is not None else type(node).__name__, context.path)

    def _visit(self, node: SchemaNode, context: WalkContext, depth: int) -> Any:
        """Render a node in a non-field position (wrappers applied by the table)."""
        self._check_node(node, context, depth)
        inner, wrapping = unwrap(node)
        value = self._dispatch(inner, context, depth + 1)
        if wrapping.is_empty:
            return value
        return self.table.wrap(value, wrapping, context)

    def _visit_field(self, name: str, node: SchemaNode, required: bool, context: WalkContext, depth: int) -> FieldResult:
        """Render an object field; optionality is expressed by ``required`` only."""
        field_context = context.child(name)
        self._check_node(node, field_context, depth)
        inner, wrapping = unwrap(node)
        value = self._dispatch(inner, field_context, depth + 1)
        field_wrapping = wrapping.for_field()
        if not field_wrapping.is_empty:
            value = self.table.wrap(value, field_wrapping, field_context)
        return FieldResult(name=name, value=value, required=required, wrapping=wrapping, node=inner)

    def _dispatch(self, node: SchemaNode, context: WalkContext, depth: int) -> Any:
        self._check_node(node, context, depth)
        kind = node.kind
        explicit_name = node.metadata.ref_name

        if kind not in TRACKED_KINDS and explicit_name is None:
            return self._render_kind(node, context, depth)

        registry = self.registry
        identity = registry.identity_of(node)

        if registry.is_in_flight(identity):
            self._check_cycle(identity, context)
            name = self._component_name(identity, explicit_name, context)
            return self.table.reference(name, context)

        if registry.is_completed(identity):
            name = self._component_name(identity, explicit_name, context)
            registry.define(name, registry.completed_body(identity))
            return self.table.reference(name, context)

        registry.mark_in_flight(identity)
        self._first_hints.setdefault(identity, context.name_hint)
        self._stack.append((identity, kind))
        try:
            value = self._render_kind(node, context, depth)
        finally:
            self._stack.pop()
            registry.clear_in_flight(identity)

        # A plain lazy reference is transparent; it is only remembered once it closed a cycle.
        if kind is not SchemaKind.REFERENCE or explicit_name is not None or registry.name_of(identity) is not None:
            registry.complete(identity, value)

        if explicit_name is not None:
            name = registry.claim(identity, explicit_name)
            registry.define(name, value)
            return self.table.reference(name, context)

        # Re-entered while rendering: this first occurrence's body becomes the component.
        name = registry.name_of(identity)
        if name is not None:
            registry.define(name, value)
        return value

    def _component_name(self, identity: Identity, explicit_name: str | None, context: WalkContext) -> str:
        if explicit_name:
            return self.registry.claim(identity, explicit_name)
        return self.registry.reserve(identity, self._first_hints.get(identity, context.name_hint))

    def _check_cycle(self, identity: Identity, context: WalkContext) -> None:
        start = next(index for index, (entry, _) in enumerate(self._stack) if entry == identity)
        cycle_kinds = [kind for _, kind in self._stack[start:]]
        if not any(kind in BOUNDARY_KINDS for kind in cycle_kinds):
            raise UnrenderableCycleError(
                "Cyclic schema without an object or array boundary: "
                + " -> ".join(kind.value for kind in cycle_kinds),
                context.path,
            )

    def _render_kind(self, node: SchemaNode, context: WalkContext, depth: int) -> Any:
        kind = node.kind
        renderers = self.table.renderers

        if isinstance(node, ReferenceNode):
            return self._visit(node.resolve(), context, depth)

        renderer = renderers.get(kind)
        if renderer is None:
            raise UnsupportedSchemaError(kind, context.path)

        if kind in (SchemaKind.PRIMITIVE, SchemaKind.ENUM):
            return renderer(node, None, context)

        if isinstance(node, ObjectNode):
            return renderer(node, self._render_fields(node, context, depth), context)

        if isinstance(node, ArrayNode):
            return renderer(node, self._visit(node.element, context.child("[]"), depth), context)

        if isinstance(node, RecordNode):
            return renderer(node, self._visit(node.value, context.child("{}"), depth), context)

        if isinstance(node, UnionNode):
            members = [
                self._visit(member, context.child(f"|{index}"), depth)
                for index, member in enumerate(node.members)
            ]
            return renderer(node, members, context)

        if isinstance(node, IntersectionNode):
            merged = merge_intersection(node, context.path)
            if merged is not None:
                return renderers[SchemaKind.OBJECT](merged, self._render_fields(merged, context, depth), context)
            members = [
                self._visit(member, context.child(f"&{index}"), depth)
                for index, member in enumerate(node.members)
            ]
            return renderer(node, members, context)

        if isinstance(node, TransformedNode):
            selected = node.output_hint if (context.is_response and node.output_hint is not None) else node.inner
            return renderer(node, self._visit(selected, context, depth), context)

        raise UnsupportedSchemaError(kind, context.path)

    def _render_fields(self, node: ObjectNode, context: WalkContext, depth: int) -> list[FieldResult]:
        return [
            self._visit_field(name, child, name in node.required, context, depth)
            for name, child in node.shape.items()
        ]


# ============================================================
# Intersection merging
# ============================================================

def _flatten_object_members(node: IntersectionNode) -> list[ObjectNode] | None:
    """Collect object members (through references and nested intersections) or None."""
    collected: list[ObjectNode] = []
    for member in node.members:
        concrete, wrapping = unwrap(resolve_references(member))
        concrete = resolve_references(concrete)
        if wrapping.optional or wrapping.nullable:
            return None
        if isinstance(concrete, ObjectNode):
            collected.append(concrete)
        elif isinstance(concrete, IntersectionNode):
            nested = _flatten_object_members(concrete)
            if nested is None:
                return None
            collected.extend(nested)
        else:
            return None
    return collected


def _kinds_compatible(first: SchemaNode, second: SchemaNode) -> bool:
    if first.kind != second.kind:
        return False
    if isinstance(first, PrimitiveNode) and isinstance(second, PrimitiveNode):
        return first.type == second.type
    return True


def merge_intersection(node: IntersectionNode, schema_path: tuple[str, ...] = ()) -> ObjectNode | None:
    """
    Merge intersected objects field by field.

    Returns None when a member is not an object. The same field declared twice
    must have compatible kinds: nested objects merge recursively, otherwise the
    later declaration wins. Incompatible kinds raise IntersectionConflictError.
    """
    members = _flatten_object_members(node)
    if members is None:
        return None

    merged_shape: dict[str, SchemaNode] = {}
    required_names: set[str] = set()
    for member in members:
        for field_name, field_node in member.shape.items():
            existing_node = merged_shape.get(field_name)
            if existing_node is None or existing_node is field_node:
                merged_shape[field_name] = field_node
                continue

            existing_concrete = resolve_references(unwrap(existing_node)[0])
            incoming_concrete = resolve_references(unwrap(field_node)[0])
            if not _kinds_compatible(existing_concrete, incoming_concrete):
                raise IntersectionConflictError(
                    field_name,
                    describe_kind(existing_concrete),
                    describe_kind(incoming_concrete),
                    schema_path + (field_name,),
                )
            if isinstance(existing_concrete, ObjectNode) and isinstance(incoming_concrete, ObjectNode):
                nested = merge_intersection(
                    IntersectionNode((existing_concrete, incoming_concrete)),
                    schema_path + (field_name,),
                )
                merged_shape[field_name] = nested if nested is not None else field_node
            else:
                merged_shape[field_name] = field_node
        required_names.update(member.required)

    return object_(
        merged_shape,
        required=required_names & set(merged_shape),
        description=node.metadata.description,
        examples=node.metadata.examples or None,
    )
