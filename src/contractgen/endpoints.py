"""Endpoint declarations: the contract of one operation, independent of any server."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from contractgen.schema import SchemaNode, object_

HTTP_METHODS = ("get", "post", "put", "delete", "patch", "head", "options")

# Methods whose inputs are read from the query string instead of a body.
BODYLESS_METHODS = frozenset({"get", "delete", "head", "options"})

SECURITY_SCHEME_TYPES = frozenset({"apiKey", "http", "oauth2", "openIdConnect"})


def _normalize_methods(methods: Iterable[str]) -> tuple[str, ...]:
    normalized: list[str] = []
    for method in methods:
        lowered = method.lower()
        if lowered not in HTTP_METHODS:
            raise ValueError(f"Unknown HTTP method {method!r}, expected one of {', '.join(HTTP_METHODS)}")
        if lowered not in normalized:
            normalized.append(lowered)
    if not normalized:
        raise ValueError("An endpoint needs at least one method")
    return tuple(normalized)


# ============================================================
# Security
# ============================================================

@dataclass(frozen=True)
class SecurityScheme:
    """Named security scheme, rendered into components.securitySchemes."""
    name: str
    type: str = "apiKey"
    in_: str | None = "header"
    parameter_name: str | None = None
    scheme: str | None = None
    bearer_format: str | None = None
    description: str | None = None
    flows: Mapping[str, Any] | None = None
    open_id_connect_url: str | None = None

    def __post_init__(self) -> None:
        if self.type not in SECURITY_SCHEME_TYPES:
            raise ValueError(f"Unknown security scheme type {self.type!r}")

    def to_dict(self) -> dict[str, Any]:
        rendered: dict[str, Any] = {"type": self.type}
        if self.description:
            rendered["description"] = self.description
        if self.type == "apiKey":
            rendered["in"] = self.in_ or "header"
            rendered["name"] = self.parameter_name or self.name
        elif self.type == "http":
            rendered["scheme"] = self.scheme or "bearer"
            if self.bearer_format:
                rendered["bearerFormat"] = self.bearer_format
        elif self.type == "oauth2":
            rendered["flows"] = dict(self.flows or {})
        elif self.type == "openIdConnect":
            rendered["openIdConnectUrl"] = self.open_id_connect_url or ""
        return rendered


@dataclass(frozen=True)
class SecurityRequirement:
    scheme: SecurityScheme
    scopes: tuple[str, ...] = ()


# One alternative is a set of requirements that must all hold.
SecurityAlternative = tuple[SecurityRequirement, ...]


def normalize_security(raw: Any) -> tuple[SecurityAlternative, ...]:
    """
    Accepts a scheme, a requirement, a list of alternatives or a list of lists.

      api_key                      -> ((api_key,),)
      [api_key, bearer]            -> ((api_key,), (bearer,))      either one
      [[api_key, bearer]]          -> ((api_key, bearer),)         both
    """
    if raw is None:
        return ()
    if isinstance(raw, (SecurityScheme, SecurityRequirement)):
        raw = [raw]

    alternatives: list[SecurityAlternative] = []
    for alternative in raw:
        if isinstance(alternative, (SecurityScheme, SecurityRequirement)):
            alternative = [alternative]
        requirements: list[SecurityRequirement] = []
        for item in alternative:
            if isinstance(item, SecurityScheme):
                requirements.append(SecurityRequirement(item))
            elif isinstance(item, SecurityRequirement):
                requirements.append(item)
            else:
                raise TypeError(f"Expected SecurityScheme or SecurityRequirement, got {type(item).__name__}")
        if requirements:
            alternatives.append(tuple(requirements))
    return tuple(alternatives)


# ============================================================
# Responses + endpoints
# ============================================================

@dataclass(frozen=True)
class ResponseSpec:
    """One outcome: schema, status codes and MIME types it is served with."""
    schema: SchemaNode
    status_codes: tuple[int, ...] = (200,)
    mime_types: tuple[str, ...] = ("application/json",)

    def __post_init__(self) -> None:
        object.__setattr__(self, "status_codes", tuple(self.status_codes))
        object.__setattr__(self, "mime_types", tuple(self.mime_types))
        if not self.status_codes:
            raise ValueError("A response needs at least one status code")


def _as_response(value: Any, default_status: int) -> ResponseSpec:
    if isinstance(value, ResponseSpec):
        return value
    if isinstance(value, SchemaNode):
        return ResponseSpec(value, (default_status,))
    raise TypeError(f"Expected ResponseSpec or SchemaNode, got {type(value).__name__}")


@dataclass(frozen=True)
class Middleware:
    """Contributes input fields and security to every endpoint below it."""
    input: SchemaNode = field(default_factory=lambda: object_({}))
    security: Any = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "security", normalize_security(self.security))


@dataclass(frozen=True)
class Endpoint:
    """
    Contract of one operation.

    ``positive`` accepts a ResponseSpec, a bare schema (status 200) or a list of
    either; ``negative`` a ResponseSpec or a bare schema (status 400).
    """
    input: SchemaNode
    positive: Any
    negative: Any
    methods: tuple[str, ...] = ("get",)
    security: Any = ()
    summary: str | None = None
    description: str | None = None
    tags: tuple[str, ...] = ()
    operation_id: str | None = None
    deprecated: bool = False
    middlewares: tuple[Middleware, ...] = ()

    def __post_init__(self) -> None:
        positive = self.positive
        if isinstance(positive, (ResponseSpec, SchemaNode)):
            positive = [positive]
        positive_specs = tuple(_as_response(item, 200) for item in positive)
        if not positive_specs:
            raise ValueError("An endpoint needs at least one positive response")

        object.__setattr__(self, "positive", positive_specs)
        object.__setattr__(self, "negative", _as_response(self.negative, 400))
        object.__setattr__(self, "methods", _normalize_methods((self.methods,) if isinstance(self.methods, str) else self.methods))
        object.__setattr__(self, "security", normalize_security(self.security))
        object.__setattr__(self, "tags", (self.tags,) if isinstance(self.tags, str) else tuple(self.tags))
        object.__setattr__(self, "middlewares", tuple(self.middlewares))

    @property
    def responses(self) -> tuple[ResponseSpec, ...]:
        """Positive outcomes followed by the negative one."""
        return self.positive + (self.negative,)

    @property
    def positive_mime_types(self) -> tuple[str, ...]:
        seen: list[str] = []
        for spec in self.positive:
            for mime_type in spec.mime_types:
                if mime_type not in seen:
                    seen.append(mime_type)
        return tuple(seen)
