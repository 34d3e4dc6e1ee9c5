"""Validation-schema tree consumed by the document and client renderers.

Every node kind is listed in ``SchemaKind`` and every node gets a
process-unique ``identity`` when it is constructed. The walker uses that
identity (never the rendered output) to detect shared and recursive nodes.

Builders mirror the usual validation-library vocabulary::

    user = object_({
        "id": integer(minimum=0),
        "name": string(min_length=1),
        "nickname": string().optional(),
        "tags": array(string()).default([]),
    })
"""
from __future__ import annotations

import itertools
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, ClassVar, Iterable, Mapping


class SchemaKind(str, Enum):
    """Closed set of schema node kinds."""
    PRIMITIVE = "primitive"
    OBJECT = "object"
    ARRAY = "array"
    RECORD = "record"
    UNION = "union"
    INTERSECTION = "intersection"
    ENUM = "enum"
    OPTIONAL = "optional"
    NULLABLE = "nullable"
    DEFAULT = "default"
    TRANSFORMED = "transformed"
    REFERENCE = "reference"


WRAPPER_KINDS = frozenset({SchemaKind.OPTIONAL, SchemaKind.NULLABLE, SchemaKind.DEFAULT})

PRIMITIVE_TYPES = frozenset({"string", "number", "integer", "boolean", "null", "any", "datetime", "binary"})

PARAMETER_LOCATIONS = frozenset({"query", "path", "header", "cookie", "body"})

_IDENTITY_COUNTER = itertools.count(1)


def _next_identity() -> int:
    return next(_IDENTITY_COUNTER)


# ============================================================
# Metadata + constraints
# ============================================================

@dataclass(frozen=True)
class Constraints:
    """Validation constraints carried by primitive nodes."""
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    minimum: float | None = None
    maximum: float | None = None
    exclusive_minimum: bool = False
    exclusive_maximum: bool = False
    multiple_of: float | None = None
    format: str | None = None


@dataclass(frozen=True)
class Metadata:
    """Documentation metadata that may be attached to any node."""
    description: str | None = None
    examples: tuple[Any, ...] = ()
    format: str | None = None
    # Forces the node into a named component/type with exactly this name.
    ref_name: str | None = None
    # Source of a top-level input field: query, path, header, cookie or body.
    location: str | None = None

    def merged_over(self, base: "Metadata") -> "Metadata":
        """Overlay the set values of this metadata on top of ``base``."""
        return Metadata(
            description=self.description if self.description is not None else base.description,
            examples=self.examples or base.examples,
            format=self.format if self.format is not None else base.format,
            ref_name=self.ref_name if self.ref_name is not None else base.ref_name,
            location=self.location if self.location is not None else base.location,
        )

    @property
    def is_empty(self) -> bool:
        """True when nothing is set."""
        return self == Metadata()


# ============================================================
# Nodes
# ============================================================

@dataclass(frozen=True, eq=False)
class SchemaNode:
    """Base class of every schema node (compared by identity)."""
    kind: ClassVar[SchemaKind]

    metadata: Metadata = field(default_factory=Metadata, kw_only=True)
    identity: int = field(default_factory=_next_identity, init=False, repr=False)

    # ---- wrappers

    def optional(self) -> "OptionalNode":
        return OptionalNode(self)

    def nullable(self) -> "NullableNode":
        return NullableNode(self)

    def default(self, value: Any) -> "DefaultNode":
        return DefaultNode(self, value)

    def transform(self, output_hint: "SchemaNode | None" = None) -> "TransformedNode":
        return TransformedNode(self, output_hint)

    # ---- metadata (each call returns a new node with a new identity)

    def describe(self, description: str) -> "SchemaNode":
        return replace(self, metadata=replace(self.metadata, description=description))

    def example(self, value: Any) -> "SchemaNode":
        return replace(self, metadata=replace(self.metadata, examples=self.metadata.examples + (value,)))

    def formatted(self, format_hint: str) -> "SchemaNode":
        return replace(self, metadata=replace(self.metadata, format=format_hint))

    def named(self, ref_name: str) -> "SchemaNode":
        return replace(self, metadata=replace(self.metadata, ref_name=ref_name))

    def located(self, location: str) -> "SchemaNode":
        if location not in PARAMETER_LOCATIONS:
            raise ValueError(f"Unknown parameter location {location!r}, expected one of {sorted(PARAMETER_LOCATIONS)}")
        return replace(self, metadata=replace(self.metadata, location=location))


@dataclass(frozen=True, eq=False)
class PrimitiveNode(SchemaNode):
    """Leaf value: string, number, integer, boolean, null, any, datetime or binary."""
    kind: ClassVar[SchemaKind] = SchemaKind.PRIMITIVE

    type: str
    constraints: Constraints = field(default_factory=Constraints)

    def __post_init__(self) -> None:
        if self.type not in PRIMITIVE_TYPES:
            raise ValueError(f"Unknown primitive type {self.type!r}")


@dataclass(frozen=True, eq=False)
class ObjectNode(SchemaNode):
    """Object with an ordered field mapping and a set of required names."""
    kind: ClassVar[SchemaKind] = SchemaKind.OBJECT

    shape: Mapping[str, SchemaNode]
    required: frozenset[str] = frozenset()

    def extend(self, shape: Mapping[str, SchemaNode]) -> "ObjectNode":
        """
        Return a new object with ``shape`` merged on top (later names win).

        Kept fields keep their required flag; added or replaced fields are required
        unless optional or defaulted. Metadata carries over except the component name.
        """
        required_names = {name for name in self.required if name not in shape}
        required_names.update(name for name, child in shape.items() if is_required_field(child))
        return ObjectNode(
            {**self.shape, **shape},
            frozenset(required_names),
            metadata=replace(self.metadata, ref_name=None),
        )


@dataclass(frozen=True, eq=False)
class ArrayNode(SchemaNode):
    kind: ClassVar[SchemaKind] = SchemaKind.ARRAY

    element: SchemaNode
    min_items: int | None = None
    max_items: int | None = None


@dataclass(frozen=True, eq=False)
class RecordNode(SchemaNode):
    """String-keyed map with homogeneous values."""
    kind: ClassVar[SchemaKind] = SchemaKind.RECORD

    value: SchemaNode


@dataclass(frozen=True, eq=False)
class UnionNode(SchemaNode):
    """Ordered alternatives; order matters for matching."""
    kind: ClassVar[SchemaKind] = SchemaKind.UNION

    members: tuple[SchemaNode, ...]
    discriminator: str | None = None


@dataclass(frozen=True, eq=False)
class IntersectionNode(SchemaNode):
    kind: ClassVar[SchemaKind] = SchemaKind.INTERSECTION

    members: tuple[SchemaNode, ...]


@dataclass(frozen=True, eq=False)
class EnumNode(SchemaNode):
    """Ordered literal values, kept verbatim."""
    kind: ClassVar[SchemaKind] = SchemaKind.ENUM

    values: tuple[Any, ...]


@dataclass(frozen=True, eq=False)
class OptionalNode(SchemaNode):
    kind: ClassVar[SchemaKind] = SchemaKind.OPTIONAL

    inner: SchemaNode


@dataclass(frozen=True, eq=False)
class NullableNode(SchemaNode):
    kind: ClassVar[SchemaKind] = SchemaKind.NULLABLE

    inner: SchemaNode


@dataclass(frozen=True, eq=False)
class DefaultNode(SchemaNode):
    kind: ClassVar[SchemaKind] = SchemaKind.DEFAULT

    inner: SchemaNode
    value: Any


@dataclass(frozen=True, eq=False)
class TransformedNode(SchemaNode):
    """Input schema whose parsed value is transformed; ``output_hint`` describes the result."""
    kind: ClassVar[SchemaKind] = SchemaKind.TRANSFORMED

    inner: SchemaNode
    output_hint: SchemaNode | None = None


@dataclass(frozen=True, eq=False)
class ReferenceNode(SchemaNode):
    """Lazily resolved node, the building block for recursive schemas."""
    kind: ClassVar[SchemaKind] = SchemaKind.REFERENCE

    getter: Callable[[], SchemaNode]

    def resolve(self) -> SchemaNode:
        target = self.getter()
        if not isinstance(target, SchemaNode):
            raise TypeError(f"Lazy schema resolved to {type(target).__name__}, expected a SchemaNode")
        return target


# ============================================================
# Wrapper peeling
# ============================================================

@dataclass(frozen=True)
class Wrapping:
    """Effect of the Optional/Nullable/Default wrappers around a node."""
    optional: bool = False
    nullable: bool = False
    has_default: bool = False
    default: Any = None
    metadata: Metadata = field(default_factory=Metadata)

    @property
    def is_empty(self) -> bool:
        return not (self.optional or self.nullable or self.has_default) and self.metadata.is_empty

    def for_field(self) -> "Wrapping":
        """Wrapping with optionality removed: fields express it through ``required``."""
        return replace(self, optional=False)


def unwrap(node: SchemaNode) -> tuple[SchemaNode, Wrapping]:
    """Peel wrapper nodes, returning the first non-wrapper node and the folded effect."""
    optional = nullable = has_default = False
    default: Any = None
    metadata = Metadata()
    current = node
    while current.kind in WRAPPER_KINDS:
        # Outer wrappers win over inner ones.
        if not current.metadata.is_empty:
            metadata = metadata.merged_over(current.metadata)
        if isinstance(current, OptionalNode):
            optional = True
        elif isinstance(current, NullableNode):
            nullable = True
        elif isinstance(current, DefaultNode):
            if not has_default:
                has_default = True
                default = current.value
        current = current.inner  # type: ignore[attr-defined]
    return current, Wrapping(
        optional=optional,
        nullable=nullable,
        has_default=has_default,
        default=default,
        metadata=metadata,
    )


def is_required_field(node: SchemaNode) -> bool:
    """A field is required unless it is optional or carries a default."""
    _, wrapping = unwrap(node)
    return not (wrapping.optional or wrapping.has_default)


def resolve_references(node: SchemaNode, *, limit: int = 64) -> SchemaNode:
    """Follow lazy references until a concrete node is reached."""
    current = node
    for _ in range(limit):
        if not isinstance(current, ReferenceNode):
            return current
        current = current.resolve()
    return current


def describe_kind(node: SchemaNode) -> str:
    """Short human readable kind, used in diagnostics."""
    if isinstance(node, PrimitiveNode):
        return node.type
    return node.kind.value


# ============================================================
# Builders
# ============================================================

def _with_metadata(description: str | None, examples: Iterable[Any] | None, format_hint: str | None = None) -> Metadata:
    return Metadata(
        description=description,
        examples=tuple(examples) if examples is not None else (),
        format=format_hint,
    )


def string(
    *,
    min_length: int | None = None,
    max_length: int | None = None,
    pattern: str | None = None,
    format: str | None = None,
    description: str | None = None,
    examples: Iterable[Any] | None = None,
) -> PrimitiveNode:
    return PrimitiveNode(
        "string",
        Constraints(min_length=min_length, max_length=max_length, pattern=pattern, format=format),
        metadata=_with_metadata(description, examples),
    )


def number(
    *,
    minimum: float | None = None,
    maximum: float | None = None,
    exclusive_minimum: bool = False,
    exclusive_maximum: bool = False,
    multiple_of: float | None = None,
    description: str | None = None,
    examples: Iterable[Any] | None = None,
) -> PrimitiveNode:
    return PrimitiveNode(
        "number",
        Constraints(
            minimum=minimum,
            maximum=maximum,
            exclusive_minimum=exclusive_minimum,
            exclusive_maximum=exclusive_maximum,
            multiple_of=multiple_of,
        ),
        metadata=_with_metadata(description, examples),
    )


def integer(
    *,
    minimum: float | None = None,
    maximum: float | None = None,
    exclusive_minimum: bool = False,
    exclusive_maximum: bool = False,
    multiple_of: float | None = None,
    description: str | None = None,
    examples: Iterable[Any] | None = None,
) -> PrimitiveNode:
    return PrimitiveNode(
        "integer",
        Constraints(
            minimum=minimum,
            maximum=maximum,
            exclusive_minimum=exclusive_minimum,
            exclusive_maximum=exclusive_maximum,
            multiple_of=multiple_of,
        ),
        metadata=_with_metadata(description, examples),
    )


def boolean(*, description: str | None = None) -> PrimitiveNode:
    return PrimitiveNode("boolean", metadata=_with_metadata(description, None))


def null() -> PrimitiveNode:
    return PrimitiveNode("null")


def any_(*, description: str | None = None) -> PrimitiveNode:
    return PrimitiveNode("any", metadata=_with_metadata(description, None))


def datetime(*, description: str | None = None, examples: Iterable[Any] | None = None) -> PrimitiveNode:
    """ISO 8601 timestamp carried as a string."""
    return PrimitiveNode("datetime", metadata=_with_metadata(description, examples))


def binary(*, description: str | None = None) -> PrimitiveNode:
    """File or raw byte content."""
    return PrimitiveNode("binary", metadata=_with_metadata(description, None))


def literal(value: Any, *, description: str | None = None) -> EnumNode:
    return EnumNode((value,), metadata=_with_metadata(description, None))


def enum(values: Iterable[Any], *, description: str | None = None) -> EnumNode:
    literal_values = tuple(values)
    if not literal_values:
        raise ValueError("enum() requires at least one value")
    return EnumNode(literal_values, metadata=_with_metadata(description, None))


def object_(
    shape: Mapping[str, SchemaNode],
    *,
    required: Iterable[str] | None = None,
    description: str | None = None,
    examples: Iterable[Any] | None = None,
) -> ObjectNode:
    """Object schema; required names default to every non-optional, non-defaulted field."""
    ordered_shape = dict(shape)
    if required is None:
        required_names = frozenset(name for name, child in ordered_shape.items() if is_required_field(child))
    else:
        required_names = frozenset(required)
        unknown = required_names - set(ordered_shape)
        if unknown:
            raise ValueError(f"Required names not in shape: {sorted(unknown)}")
    return ObjectNode(ordered_shape, required_names, metadata=_with_metadata(description, examples))


def array(
    element: SchemaNode,
    *,
    min_items: int | None = None,
    max_items: int | None = None,
    description: str | None = None,
    examples: Iterable[Any] | None = None,
) -> ArrayNode:
    return ArrayNode(element, min_items, max_items, metadata=_with_metadata(description, examples))


def record(value: SchemaNode, *, description: str | None = None) -> RecordNode:
    return RecordNode(value, metadata=_with_metadata(description, None))


def union(*members: SchemaNode, discriminator: str | None = None, description: str | None = None) -> UnionNode:
    if len(members) < 2:
        raise ValueError("union() requires at least two members")
    return UnionNode(tuple(members), discriminator, metadata=_with_metadata(description, None))


def intersection(*members: SchemaNode, description: str | None = None) -> IntersectionNode:
    if len(members) < 2:
        raise ValueError("intersection() requires at least two members")
    return IntersectionNode(tuple(members), metadata=_with_metadata(description, None))


def optional(inner: SchemaNode) -> OptionalNode:
    return OptionalNode(inner)


def nullable(inner: SchemaNode) -> NullableNode:
    return NullableNode(inner)


def with_default(inner: SchemaNode, value: Any) -> DefaultNode:
    return DefaultNode(inner, value)


def transformed(inner: SchemaNode, output_hint: SchemaNode | None = None) -> TransformedNode:
    return TransformedNode(inner, output_hint)


def lazy(getter: Callable[[], SchemaNode]) -> ReferenceNode:
    """Deferred node for recursive declarations: ``tree = lazy(lambda: node)``."""
    return ReferenceNode(getter)
