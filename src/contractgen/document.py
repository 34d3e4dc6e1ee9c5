"""OpenAPI 3.0 document assembly from route entries."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import yaml

from contractgen.endpoints import BODYLESS_METHODS, Endpoint, ResponseSpec, SecurityAlternative
from contractgen.errors import (
    ComponentNameCollisionError,
    ContractError,
    OperationIdCollisionError,
    SchemaRenderError,
    annotate_route,
)
from contractgen.naming import extract_path_parameters, route_identifier
from contractgen.registry import ReferenceRegistry
from contractgen.routing import RouteEntry
from contractgen.schema import (
    EnumNode,
    IntersectionNode,
    Metadata,
    ObjectNode,
    PrimitiveNode,
    SchemaKind,
    SchemaNode,
    Wrapping,
    object_,
    resolve_references,
    unwrap,
)
from contractgen.walker import (
    DEFAULT_MAX_DEPTH,
    FieldResult,
    RendererTable,
    SchemaWalker,
    WalkContext,
    merge_intersection,
)

logger = logging.getLogger(__name__)

OPENAPI_VERSION = "3.0.0"
COMPONENT_REF_PREFIX = "#/components/schemas/"
SUMMARY_LIMIT = 50

JSON_MIME_TYPE = "application/json"
MULTIPART_MIME_TYPE = "multipart/form-data"
OCTET_STREAM_MIME_TYPE = "application/octet-stream"


# ============================================================
# Schema renderers
# ============================================================

def _apply_metadata(schema: dict[str, Any], metadata: Metadata) -> dict[str, Any]:
    if metadata.description is not None:
        schema["description"] = metadata.description
    if metadata.format is not None:
        schema["format"] = metadata.format
    if metadata.examples:
        schema["example"] = metadata.examples[0]
    return schema


def render_primitive(node: PrimitiveNode, _children: Any, _context: WalkContext) -> dict[str, Any]:
    constraints = node.constraints
    schema: dict[str, Any]
    if node.type == "integer":
        schema = {"type": "integer", "format": "int64"}
    elif node.type == "datetime":
        schema = {"type": "string", "format": "date-time"}
    elif node.type == "binary":
        schema = {"type": "string", "format": "binary"}
    elif node.type == "null":
        schema = {"type": "string", "nullable": True, "format": "null"}
    elif node.type == "any":
        schema = {"format": "any"}
    else:
        schema = {"type": node.type}

    if constraints.format is not None:
        schema["format"] = constraints.format
    if constraints.min_length is not None:
        schema["minLength"] = constraints.min_length
    if constraints.max_length is not None:
        schema["maxLength"] = constraints.max_length
    if constraints.pattern is not None:
        schema["pattern"] = constraints.pattern
    if constraints.minimum is not None:
        schema["minimum"] = constraints.minimum
        schema["exclusiveMinimum"] = constraints.exclusive_minimum
    if constraints.maximum is not None:
        schema["maximum"] = constraints.maximum
        schema["exclusiveMaximum"] = constraints.exclusive_maximum
    if constraints.multiple_of is not None:
        schema["multipleOf"] = constraints.multiple_of
    return _apply_metadata(schema, node.metadata)


def render_object(node: ObjectNode, fields: list[FieldResult], _context: WalkContext) -> dict[str, Any]:
    schema: dict[str, Any] = {
        "type": "object",
        "properties": {result.name: result.value for result in fields},
    }
    required = [result.name for result in fields if result.required]
    if required:
        schema["required"] = required
    return _apply_metadata(schema, node.metadata)


def render_array(node: Any, items: Any, _context: WalkContext) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "array", "items": items}
    if node.min_items is not None:
        schema["minItems"] = node.min_items
    if node.max_items is not None:
        schema["maxItems"] = node.max_items
    return _apply_metadata(schema, node.metadata)


def render_record(node: Any, values: Any, _context: WalkContext) -> dict[str, Any]:
    return _apply_metadata({"type": "object", "additionalProperties": values}, node.metadata)


def render_union(node: Any, members: list[Any], _context: WalkContext) -> dict[str, Any]:
    schema: dict[str, Any] = {"oneOf": members}
    if node.discriminator is not None:
        schema["discriminator"] = {"propertyName": node.discriminator}
    return _apply_metadata(schema, node.metadata)


def render_intersection(node: Any, members: list[Any], _context: WalkContext) -> dict[str, Any]:
    return _apply_metadata({"allOf": members}, node.metadata)


def _enum_type(values: tuple[Any, ...]) -> str | None:
    if all(isinstance(value, bool) for value in values):
        return "boolean"
    if all(isinstance(value, str) for value in values):
        return "string"
    if all(isinstance(value, (int, float)) and not isinstance(value, bool) for value in values):
        return "number"
    return None


def render_enum(node: EnumNode, _children: Any, _context: WalkContext) -> dict[str, Any]:
    schema: dict[str, Any] = {}
    enum_type = _enum_type(node.values)
    if enum_type is not None:
        schema["type"] = enum_type
    schema["enum"] = list(node.values)
    return _apply_metadata(schema, node.metadata)


def render_transformed(node: Any, selected: Any, _context: WalkContext) -> dict[str, Any]:
    return _apply_metadata(dict(selected), node.metadata)


def render_reference(name: str, _context: WalkContext) -> dict[str, Any]:
    return {"$ref": f"{COMPONENT_REF_PREFIX}{name}"}


def render_wrapping(value: dict[str, Any], wrapping: Wrapping, _context: WalkContext) -> dict[str, Any]:
    # Siblings of $ref are ignored by OpenAPI 3.0 readers.
    schema = {"allOf": [value]} if "$ref" in value else dict(value)
    if wrapping.nullable:
        schema["nullable"] = True
    if wrapping.has_default:
        schema["default"] = wrapping.default
    _apply_metadata(schema, wrapping.metadata)
    if schema.keys() == {"allOf"}:
        return value
    return schema


def build_document_renderers() -> RendererTable:
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
# Document
# ============================================================

@dataclass(frozen=True)
class ApiInfo:
    """Top-level document information; ``tags`` maps a tag name to its description."""
    title: str = "API"
    version: str = "0.1.0"
    description: str | None = None
    servers: tuple[str, ...] = ()
    tags: Mapping[str, str | None] = field(default_factory=dict)


class _NoAliasDumper(yaml.SafeDumper):
    """Shared component bodies must be written out in full, never as YAML anchors."""

    def ignore_aliases(self, data: Any) -> bool:
        return True


@dataclass(frozen=True)
class Document:
    content: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        """Independent JSON-compatible copy of the document."""
        return json.loads(self.to_json(indent=None))

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.content, indent=indent, default=str)

    def to_yaml(self) -> str:
        return yaml.dump(self.to_dict(), Dumper=_NoAliasDumper, sort_keys=False, allow_unicode=True)

    @property
    def paths(self) -> dict[str, Any]:
        return self.content["paths"]

    @property
    def schemas(self) -> dict[str, Any]:
        return self.content.get("components", {}).get("schemas", {})


def _shorten(text: str, limit: int = SUMMARY_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def _unique_operation_id(preferred: str, taken: Mapping[str, str]) -> str:
    """Derived ids get numeric suffixes starting at 2, like exported type names."""
    if preferred not in taken:
        return preferred
    suffix_number = 2
    while f"{preferred}{suffix_number}" in taken:
        suffix_number += 1
    return f"{preferred}{suffix_number}"


def _numbered_examples(values: Iterable[Any]) -> dict[str, Any]:
    return {f"example{index}": {"value": value} for index, value in enumerate(values, start=1)}


def _iter_refs(value: Any) -> Iterable[str]:
    if isinstance(value, dict):
        for key, child in value.items():
            if key == "$ref" and isinstance(child, str):
                yield child
            else:
                yield from _iter_refs(child)
    elif isinstance(value, list):
        for child in value:
            yield from _iter_refs(child)


def _concrete(node: SchemaNode) -> SchemaNode:
    concrete = resolve_references(unwrap(resolve_references(node))[0])
    if isinstance(concrete, IntersectionNode):
        merged = merge_intersection(concrete)
        if merged is not None:
            return merged
    return concrete


def _is_binary(node: SchemaNode) -> bool:
    concrete = _concrete(node)
    return isinstance(concrete, PrimitiveNode) and concrete.type == "binary"


def _examples_of(node: SchemaNode) -> tuple[Any, ...]:
    _, wrapping = unwrap(resolve_references(node))
    if wrapping.metadata.examples:
        return wrapping.metadata.examples
    return _concrete(node).metadata.examples


def _field_location(node: SchemaNode) -> str | None:
    inner, wrapping = unwrap(resolve_references(node))
    return wrapping.metadata.location or resolve_references(inner).metadata.location


# ============================================================
# Assembler
# ============================================================

@dataclass
class _AssemblyRun:
    """State of one assemble() call."""
    walker: SchemaWalker
    paths: dict[str, dict[str, Any]] = field(default_factory=dict)
    operation_routes: dict[str, str] = field(default_factory=dict)
    security_schemes: dict[str, dict[str, Any]] = field(default_factory=dict)
    security_scheme_routes: dict[str, str] = field(default_factory=dict)
    used_tags: list[str] = field(default_factory=list)


class DocumentAssembler:
    """Build an OpenAPI document; every call to ``assemble`` uses a fresh registry."""

    def __init__(self, info: ApiInfo | None = None, *, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self.info = info or ApiInfo()
        self.max_depth = max_depth
        self.renderers = build_document_renderers()

    def assemble(self, route_entries: Iterable[RouteEntry]) -> Document:
        registry = ReferenceRegistry(fallback_hint="Schema")
        run = _AssemblyRun(walker=SchemaWalker(self.renderers, registry, self.max_depth))

        for entry in route_entries:
            operation = self._build_operation(run, entry)
            run.paths.setdefault(entry.path, {})[entry.method] = operation
            logger.debug("documented %s %s as %s", entry.method.upper(), entry.path, operation["operationId"])

        pending = registry.pending_names()
        if pending:
            raise ContractError("Components were referenced but never defined: " + ", ".join(pending))

        content: dict[str, Any] = {
            "openapi": OPENAPI_VERSION,
            "info": self._render_info(),
        }
        if self.info.servers:
            content["servers"] = [{"url": url} for url in self.info.servers]
        tags = self._render_tags(run.used_tags)
        if tags:
            content["tags"] = tags
        content["paths"] = run.paths

        components: dict[str, Any] = {}
        schemas = registry.components()
        if schemas:
            components["schemas"] = schemas
        if run.security_schemes:
            components["securitySchemes"] = run.security_schemes
        if components:
            content["components"] = components

        self._check_references(content)
        logger.debug("document has %d path(s) and %d component(s)", len(run.paths), len(schemas))
        return Document(content)

    # ---- document level

    def _render_info(self) -> dict[str, Any]:
        info: dict[str, Any] = {"title": self.info.title, "version": self.info.version}
        if self.info.description:
            info["description"] = self.info.description
        return info

    def _render_tags(self, used_tags: list[str]) -> list[dict[str, Any]]:
        rendered: list[dict[str, Any]] = []
        for name, description in self.info.tags.items():
            tag: dict[str, Any] = {"name": name}
            if description:
                tag["description"] = description
            rendered.append(tag)
        declared = set(self.info.tags)
        rendered.extend({"name": name} for name in used_tags if name not in declared)
        return rendered

    @staticmethod
    def _check_references(content: dict[str, Any]) -> None:
        defined = set(content.get("components", {}).get("schemas", {}))
        for reference in _iter_refs(content):
            name = reference.removeprefix(COMPONENT_REF_PREFIX)
            if name not in defined:
                raise ContractError(f"Dangling reference {reference} in generated document")

    # ---- operations

    def _build_operation(self, run: _AssemblyRun, entry: RouteEntry) -> dict[str, Any]:
        endpoint = entry.endpoint
        method = entry.method
        path = entry.path
        route_label = f"{method.upper()} {path}"

        if endpoint.operation_id:
            operation_id = endpoint.operation_id
            previous_route = run.operation_routes.get(operation_id)
            if previous_route is not None:
                raise OperationIdCollisionError(operation_id, previous_route, route_label)
        else:
            operation_id = _unique_operation_id(route_identifier(method, path), run.operation_routes)
        run.operation_routes[operation_id] = route_label

        operation: dict[str, Any] = {"operationId": operation_id}
        summary = endpoint.summary or (_shorten(endpoint.description) if endpoint.description else None)
        if summary:
            operation["summary"] = summary
        if endpoint.description:
            operation["description"] = endpoint.description
        if endpoint.tags:
            operation["tags"] = list(endpoint.tags)
            for tag in endpoint.tags:
                if tag not in run.used_tags:
                    run.used_tags.append(tag)

        try:
            parameters, request_body = self._render_input(run, endpoint, method, path, operation_id)
        except SchemaRenderError as error:
            annotate_route(error, method=method, path=path, is_response=False)
            raise
        if parameters:
            operation["parameters"] = parameters
        if request_body is not None:
            operation["requestBody"] = request_body

        try:
            operation["responses"] = self._render_responses(run, endpoint, route_label, operation_id)
        except SchemaRenderError as error:
            annotate_route(error, method=method, path=path, is_response=True)
            raise

        if endpoint.security:
            operation["security"] = self._render_security(run, endpoint.security, route_label)
        if endpoint.deprecated:
            operation["deprecated"] = True
        return operation

    def _render_schema(self, run: _AssemblyRun, node: SchemaNode, *, hint: str, is_response: bool, segment: str = "") -> dict[str, Any]:
        context = WalkContext(hint=hint, is_response=is_response)
        if segment:
            context = context.child(segment)
        return run.walker.render(node, context).value

    def _render_input(
        self,
        run: _AssemblyRun,
        endpoint: Endpoint,
        method: str,
        path: str,
        operation_id: str,
    ) -> tuple[list[dict[str, Any]], dict[str, Any] | None]:
        route_label = f"{method.upper()} {path}"
        path_parameter_names = extract_path_parameters(path)
        input_node = endpoint.input
        input_object = _concrete(input_node)
        input_examples = _examples_of(input_node)

        parameters: list[dict[str, Any]] = []
        body_node: SchemaNode | None = None

        if isinstance(input_object, ObjectNode):
            body_shape: dict[str, SchemaNode] = {}
            for name, field_node in input_object.shape.items():
                location = _field_location(field_node)
                if name in path_parameter_names:
                    location = "path"
                elif location is None:
                    location = "query" if method in BODYLESS_METHODS else "body"

                if location == "body":
                    body_shape[name] = field_node
                    continue

                schema = self._render_schema(run, field_node, hint=operation_id, is_response=False, segment=name)
                parameter: dict[str, Any] = {
                    "name": name,
                    "in": location,
                    "required": location == "path" or name in input_object.required,
                    "description": schema.get("description") or f"{route_label} parameter",
                    "schema": schema,
                }
                field_examples = [example[name] for example in input_examples if isinstance(example, dict) and name in example]
                if field_examples:
                    parameter["examples"] = _numbered_examples(field_examples)
                parameters.append(parameter)

            if body_shape and len(body_shape) == len(input_object.shape):
                body_node = input_node
            elif body_shape:
                body_examples = [
                    {key: value for key, value in example.items() if key in body_shape}
                    for example in input_examples
                    if isinstance(example, dict)
                ]
                body_node = object_(
                    body_shape,
                    required=[name for name in body_shape if name in input_object.required],
                    description=input_object.metadata.description,
                    examples=[example for example in body_examples if example] or None,
                )
        else:
            body_node = input_node

        declared = {parameter["name"] for parameter in parameters if parameter["in"] == "path"}
        for name in path_parameter_names:
            if name not in declared:
                parameters.append(
                    {
                        "name": name,
                        "in": "path",
                        "required": True,
                        "description": f"{route_label} parameter",
                        "schema": {"type": "string"},
                    }
                )

        if body_node is None:
            return parameters, None

        body_schema = self._render_schema(run, body_node, hint=operation_id, is_response=False)
        media: dict[str, Any] = {"schema": body_schema}
        body_examples = _examples_of(body_node)
        if body_examples:
            media["examples"] = _numbered_examples(body_examples)
        request_body = {
            "description": f"{route_label} request body",
            "content": {self._body_mime_type(body_node): media},
        }
        return parameters, request_body

    @staticmethod
    def _body_mime_type(body_node: SchemaNode) -> str:
        if _is_binary(body_node):
            return OCTET_STREAM_MIME_TYPE
        concrete = _concrete(body_node)
        if isinstance(concrete, ObjectNode) and any(_is_binary(child) for child in concrete.shape.values()):
            return MULTIPART_MIME_TYPE
        return JSON_MIME_TYPE

    def _render_responses(self, run: _AssemblyRun, endpoint: Endpoint, route_label: str, operation_id: str) -> dict[str, Any]:
        responses: dict[str, Any] = {}

        def add(spec: ResponseSpec, description: str, hint: str) -> None:
            schema = self._render_schema(run, spec.schema, hint=hint, is_response=True)
            examples = _examples_of(spec.schema)
            for status_code in spec.status_codes:
                response = responses.setdefault(str(status_code), {"description": f"{route_label} {description}"})
                if not spec.mime_types:
                    continue
                content = response.setdefault("content", {})
                for mime_type in spec.mime_types:
                    media: dict[str, Any] = {"schema": schema}
                    if examples:
                        media["examples"] = _numbered_examples(examples)
                    content[mime_type] = media

        for index, spec in enumerate(endpoint.positive):
            suffix = "Response" if index == 0 else f"Response{index + 1}"
            add(spec, "Successful response", f"{operation_id}{suffix}")
        add(endpoint.negative, "Error response", f"{operation_id}Error")
        return responses

    @staticmethod
    def _render_security(run: _AssemblyRun, alternatives: tuple[SecurityAlternative, ...], route_label: str) -> list[dict[str, list[str]]]:
        rendered: list[dict[str, list[str]]] = []
        for alternative in alternatives:
            requirement_map: dict[str, list[str]] = {}
            for requirement in alternative:
                scheme = requirement.scheme
                scheme_body = scheme.to_dict()
                existing = run.security_schemes.get(scheme.name)
                if existing is None:
                    run.security_schemes[scheme.name] = scheme_body
                    run.security_scheme_routes[scheme.name] = route_label
                elif existing != scheme_body:
                    raise ComponentNameCollisionError(
                        scheme.name,
                        f"security scheme used by {run.security_scheme_routes[scheme.name]}",
                        f"different security scheme used by {route_label}",
                    )
                requirement_map[scheme.name] = list(requirement.scopes)
            rendered.append(requirement_map)
        return rendered
