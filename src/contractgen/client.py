"""TypeScript client artifact: per-route input/response types plus the client aggregates."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable

from contractgen.endpoints import HTTP_METHODS
from contractgen.errors import SchemaRenderError, annotate_route
from contractgen.naming import route_identifier, to_identifier
from contractgen.registry import ReferenceRegistry
from contractgen.routing import RouteEntry
from contractgen.schema import EnumNode, PrimitiveNode, SchemaKind, Wrapping
from contractgen.typescript import (
    ANY,
    BOOLEAN,
    NULL,
    NUMBER,
    STRING,
    UNDEFINED,
    ArrayType,
    ClassDeclaration,
    ClassProperty,
    CommentBlock,
    ConstDeclaration,
    Declaration,
    FunctionType,
    IndexedAccessType,
    InterfaceDeclaration,
    IntersectionType,
    LiteralType,
    ObjectType,
    Parameter,
    PropertySignature,
    TemplateLiteralType,
    TypeAliasDeclaration,
    TypeExpression,
    TypeParameter,
    TypeReference,
    print_declarations,
    union_of,
)
from contractgen.walker import DEFAULT_MAX_DEPTH, FieldResult, RendererTable, SchemaWalker, WalkContext

logger = logging.getLogger(__name__)

JSON_MIME_TYPE = "application/json"

# Routes with these methods get aliases but stay out of the aggregates.
EXCLUDED_AGGREGATE_METHODS = frozenset({"options"})

METHOD_PATH_SEPARATOR = " "


# ============================================================
# Type renderers
# ============================================================

def render_primitive(node: PrimitiveNode, _children: Any, context: WalkContext) -> TypeExpression:
    if node.type == "string" or node.type == "datetime":
        return STRING
    if node.type in ("number", "integer"):
        return NUMBER
    if node.type == "boolean":
        return BOOLEAN
    if node.type == "null":
        return NULL
    if node.type == "binary":
        return STRING if context.is_response else TypeReference("Blob")
    return ANY


def render_enum(node: EnumNode, _children: Any, _context: WalkContext) -> TypeExpression:
    return union_of([NULL if value is None else LiteralType(value) for value in node.values])


def _field_comment(result: FieldResult) -> tuple[str, ...]:
    lines: list[str] = []
    description = result.wrapping.metadata.description
    if description is None and result.node is not None:
        description = result.node.metadata.description
    if description:
        lines.append(description)
    if result.wrapping.has_default:
        lines.append(f"@default {json.dumps(result.wrapping.default, default=str)}")
    return tuple(lines)


def render_object(node: Any, fields: list[FieldResult], _context: WalkContext) -> TypeExpression:
    return ObjectType(
        tuple(
            PropertySignature(
                name=result.name,
                type=result.value,
                optional=not result.required,
                comment=_field_comment(result),
            )
            for result in fields
        )
    )


def render_array(_node: Any, element: TypeExpression, _context: WalkContext) -> TypeExpression:
    return ArrayType(element)


def render_record(_node: Any, value: TypeExpression, _context: WalkContext) -> TypeExpression:
    return TypeReference("Record", (STRING, value))


def render_union(_node: Any, members: list[TypeExpression], _context: WalkContext) -> TypeExpression:
    return union_of(members)


def render_intersection(_node: Any, members: list[TypeExpression], _context: WalkContext) -> TypeExpression:
    return IntersectionType(tuple(members))


def render_transformed(_node: Any, selected: TypeExpression, _context: WalkContext) -> TypeExpression:
    return selected


def render_reference(name: str, _context: WalkContext) -> TypeExpression:
    return TypeReference(name)


def render_wrapping(value: TypeExpression, wrapping: Wrapping, _context: WalkContext) -> TypeExpression:
    members = [value]
    if wrapping.nullable:
        members.append(NULL)
    if wrapping.optional:
        members.append(UNDEFINED)
    return union_of(members)


def build_type_renderers() -> RendererTable:
    return RendererTable(
        renderers={
            SchemaKind.PRIMITIVE: render_primitive,
            SchemaKind.OBJECT: render_object,
            SchemaKind.ARRAY: render_array,
            SchemaKind.RECORD: render_record,
            SchemaKind.UNION: render_union,
            SchemaKind.INTERSECTION: render_intersection,
            SchemaKind.ENUM: render_enum,
            SchemaKind.TRANSFORMED: render_transformed,
        },
        reference=render_reference,
        wrap=render_wrapping,
    )


# ============================================================
# Artifact
# ============================================================

@dataclass(frozen=True)
class ClientConfig:
    class_name: str = "ApiClient"
    max_depth: int = DEFAULT_MAX_DEPTH


@dataclass(frozen=True)
class ClientRoute:
    """One ``"get /v1/user"`` key with its alias names."""
    method: str
    path: str
    input_name: str
    response_name: str
    is_json: bool

    @property
    def key(self) -> str:
        return f"{self.method}{METHOD_PATH_SEPARATOR}{self.path}"


@dataclass(frozen=True)
class ClientArtifact:
    declarations: tuple[Declaration, ...]
    routes: tuple[ClientRoute, ...]

    @property
    def method_paths(self) -> tuple[str, ...]:
        return tuple(route.key for route in self.routes if route.method not in EXCLUDED_AGGREGATE_METHODS)

    def declaration_names(self) -> list[str]:
        return [declaration.name for declaration in self.declarations if hasattr(declaration, "name")]

    def print(self) -> str:
        return print_declarations(self.declarations)


DEFAULT_PROVIDER_USAGE = (
    "export const createDefaultProvider =",
    "  (host: string): Provider =>",
    "  async (method, path, params) => {",
    "    const hasBody = ![\"get\", \"delete\"].includes(method);",
    "    const searchParams = hasBody ? \"\" : `?${new URLSearchParams(params)}`;",
    "    const response = await fetch(`${host}${path}${searchParams}`, {",
    "      method: method.toUpperCase(),",
    "      headers: hasBody ? { \"Content-Type\": \"application/json\" } : undefined,",
    "      body: hasBody ? JSON.stringify(params) : undefined,",
    "    });",
    "    if (`${method} ${path}` in jsonEndpoints) {",
    "      return response.json();",
    "    }",
    "    return response.text();",
    "  };",
    "",
    "const client = new {class_name}(createDefaultProvider(\"https://example.com\"));",
)


class ClientGenerator:
    """Emit TypeScript declarations for a set of route entries."""

    def __init__(self, config: ClientConfig | None = None) -> None:
        self.config = config or ClientConfig()
        self.class_name = to_identifier(self.config.class_name, fallback="ApiClient")
        self.renderers = build_type_renderers()

    def generate(self, route_entries: Iterable[RouteEntry]) -> ClientArtifact:
        entries = list(route_entries)
        registry = ReferenceRegistry(fallback_hint="Type")
        walker = SchemaWalker(self.renderers, registry, self.config.max_depth)

        # Aggregate names first so no schema type can take them.
        aggregate_names = ("Method", "Path", "MethodPath", "Input", "Response", "Provider", "jsonEndpoints")
        for name in aggregate_names + (self.class_name,):
            registry.reserve_export_name(name)

        planned: list[tuple[RouteEntry, str, str]] = []
        for entry in entries:
            input_name = registry.reserve_export_name(route_identifier(entry.method, entry.path, "input"))
            response_name = registry.reserve_export_name(route_identifier(entry.method, entry.path, "response"))
            planned.append((entry, input_name, response_name))

        declarations: list[Declaration] = []
        routes: list[ClientRoute] = []
        for entry, input_name, response_name in planned:
            declarations.extend(self._route_declarations(walker, entry, input_name, response_name))
            is_json = JSON_MIME_TYPE in entry.endpoint.positive_mime_types
            routes.append(ClientRoute(entry.method, entry.path, input_name, response_name, is_json))

        declarations.extend(self._aggregate_declarations(routes))
        logger.debug("client has %d route(s) and %d declaration(s)", len(routes), len(declarations))
        return ClientArtifact(declarations=tuple(declarations), routes=tuple(routes))

    # ---- per route

    def _route_declarations(
        self,
        walker: SchemaWalker,
        entry: RouteEntry,
        input_name: str,
        response_name: str,
    ) -> list[Declaration]:
        endpoint = entry.endpoint
        shared: list[Declaration] = []

        def collect(fragment: Any) -> TypeExpression:
            for name in fragment.declarations:
                shared.append(TypeAliasDeclaration(name, walker.registry.component_bodies[name]))
            return fragment.value

        try:
            input_type = collect(walker.render(endpoint.input, WalkContext(hint=input_name, is_response=False)))
        except SchemaRenderError as error:
            annotate_route(error, method=entry.method, path=entry.path, is_response=False)
            raise

        try:
            response_members = [
                collect(walker.render(spec.schema, WalkContext(hint=response_name, is_response=True)))
                for spec in endpoint.responses
            ]
        except SchemaRenderError as error:
            annotate_route(error, method=entry.method, path=entry.path, is_response=True)
            raise

        return shared + [
            TypeAliasDeclaration(input_name, input_type),
            TypeAliasDeclaration(response_name, union_of(response_members)),
        ]

    # ---- aggregates

    def _aggregate_declarations(self, routes: list[ClientRoute]) -> list[Declaration]:
        aggregated = [route for route in routes if route.method not in EXCLUDED_AGGREGATE_METHODS]

        used_methods = {route.method for route in aggregated}
        methods = [method for method in HTTP_METHODS if method in used_methods]
        paths: list[str] = []
        for route in aggregated:
            if route.path not in paths:
                paths.append(route.path)

        method_path = TypeReference("MethodPath")
        record_base = TypeReference("Record", (method_path, ANY))
        m_type = TypeReference("M")
        p_type = TypeReference("P")
        key_type = TemplateLiteralType((m_type, METHOD_PATH_SEPARATOR, p_type))

        provider = FunctionType(
            type_parameters=(
                TypeParameter("M", TypeReference("Method")),
                TypeParameter("P", TypeReference("Path")),
            ),
            parameters=(
                Parameter("method", m_type),
                Parameter("path", p_type),
                Parameter("params", IndexedAccessType(TypeReference("Input"), key_type)),
            ),
            returns=TypeReference("Promise", (IndexedAccessType(TypeReference("Response"), key_type),)),
        )

        class_name = self.class_name
        usage = tuple(line.replace("{class_name}", class_name) for line in DEFAULT_PROVIDER_USAGE)

        return [
            TypeAliasDeclaration("Method", union_of([LiteralType(method) for method in methods])),
            TypeAliasDeclaration("Path", union_of([LiteralType(path) for path in paths])),
            TypeAliasDeclaration(
                "MethodPath",
                TemplateLiteralType((TypeReference("Method"), METHOD_PATH_SEPARATOR, TypeReference("Path"))),
            ),
            InterfaceDeclaration(
                "Input",
                tuple(PropertySignature(route.key, TypeReference(route.input_name)) for route in aggregated),
                extends=(record_base,),
            ),
            InterfaceDeclaration(
                "Response",
                tuple(PropertySignature(route.key, TypeReference(route.response_name)) for route in aggregated),
                extends=(record_base,),
            ),
            ConstDeclaration("jsonEndpoints", tuple((route.key, True) for route in aggregated if route.is_json)),
            TypeAliasDeclaration("Provider", provider),
            CommentBlock(usage),
            ClassDeclaration(
                class_name,
                constructor_parameters=(Parameter("provider", TypeReference("Provider"), ("protected", "readonly")),),
                properties=(ClassProperty("provide", "this.provider"),),
            ),
        ]
