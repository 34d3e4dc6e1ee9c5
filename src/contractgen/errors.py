"""Errors raised while flattening routes and rendering schemas."""
from __future__ import annotations

from typing import Any, Sequence


def format_schema_path(schema_path: Sequence[str]) -> str:
    """Render a walk path as a dotted display string."""
    if not schema_path:
        return "<root>"
    rendered = ""
    for segment in schema_path:
        if segment.startswith(("[", "|", "&", "{")) or not rendered:
            rendered += segment
        else:
            rendered += f".{segment}"
    return rendered


class ContractError(RuntimeError):
    """Base class for every contract generation failure."""


# ============================================================
# Routing
# ============================================================

class RoutingError(ContractError):
    """The routing declaration is malformed."""


class RoutingConflictError(RoutingError):
    """Two endpoints resolve to the same method and path."""

    def __init__(self, method: str, path: str, first_source: str, second_source: str) -> None:
        self.method = method
        self.path = path
        self.first_source = first_source
        self.second_source = second_source
        super().__init__(
            "Route collision detected.\n"
            f"Both endpoints resolve to {method.upper()} {path}\n"
            f" - {first_source}\n"
            f" - {second_source}\n"
            "Keep only one. (Parameter names inside a path do not differentiate routes.)"
        )


# ============================================================
# Schema rendering
# ============================================================

class SchemaRenderError(ContractError):
    """A schema tree could not be rendered."""

    def __init__(self, message: str, schema_path: Sequence[str] = ()) -> None:
        self.schema_path = tuple(schema_path)
        self.route: tuple[str, str, str] | None = None
        self.reason = message
        super().__init__(f"{message} (at {format_schema_path(self.schema_path)})")


class UnsupportedSchemaError(SchemaRenderError):
    """The walker met a schema kind the renderer table cannot handle."""

    def __init__(self, kind: Any, schema_path: Sequence[str] = (), *, message: str | None = None) -> None:
        self.kind = kind
        super().__init__(message or f"Unsupported schema kind: {kind!r}", schema_path)


class SchemaDepthExceededError(UnsupportedSchemaError):
    """The schema is nested deeper than the configured limit."""

    def __init__(self, max_depth: int, schema_path: Sequence[str] = ()) -> None:
        self.max_depth = max_depth
        super().__init__(
            None,
            schema_path,
            message=f"Schema nesting exceeds the maximum depth of {max_depth}",
        )


class UnrenderableCycleError(SchemaRenderError):
    """A cycle that never crosses an object or array boundary."""


class IntersectionConflictError(SchemaRenderError):
    """Intersected objects declare one field with incompatible kinds."""

    def __init__(self, field_name: str, first_kind: str, second_kind: str, schema_path: Sequence[str] = ()) -> None:
        self.field_name = field_name
        self.first_kind = first_kind
        self.second_kind = second_kind
        super().__init__(
            f"Intersection conflict on field {field_name!r}: {first_kind} vs {second_kind}",
            schema_path,
        )


# ============================================================
# Naming
# ============================================================

class OperationIdCollisionError(ContractError):
    """Two operations share one operation id."""

    def __init__(self, operation_id: str, first_route: str, second_route: str) -> None:
        self.operation_id = operation_id
        self.first_route = first_route
        self.second_route = second_route
        super().__init__(
            "Operation id collision detected.\n"
            f"Operation id: {operation_id}\n"
            f" - {first_route}\n"
            f" - {second_route}\n"
            "Fix: set an explicit operation_id on one of the endpoints."
        )


class ComponentNameCollisionError(ContractError):
    """Two different definitions claim the same component name."""

    def __init__(self, name: str, first: Any, second: Any) -> None:
        self.name = name
        self.first = first
        self.second = second
        super().__init__(
            "Component name collision detected.\n"
            f"Name: {name}\n"
            f" - {first}\n"
            f" - {second}"
        )


def annotate_route(error: SchemaRenderError, *, method: str, path: str, is_response: bool) -> None:
    """Attach the failing route to a render error without changing its type."""
    side = "response" if is_response else "input"
    error.route = (method, path, side)
    error.add_note(
        f"Caused by {side} schema of an Endpoint assigned to {method.upper()} method of {path} path."
    )
