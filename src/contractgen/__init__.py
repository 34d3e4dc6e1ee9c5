"""Generate OpenAPI documents and TypeScript clients from endpoint contracts."""
from contractgen.client import ClientArtifact, ClientConfig, ClientGenerator
from contractgen.document import ApiInfo, Document, DocumentAssembler
from contractgen.endpoints import Endpoint, Middleware, ResponseSpec, SecurityRequirement, SecurityScheme
from contractgen.envelope import array_result_handler, build_endpoint, default_result_handler, list_of
from contractgen.errors import (
    ComponentNameCollisionError,
    ContractError,
    IntersectionConflictError,
    OperationIdCollisionError,
    RoutingConflictError,
    RoutingError,
    SchemaDepthExceededError,
    SchemaRenderError,
    UnrenderableCycleError,
    UnsupportedSchemaError,
)
from contractgen.routing import ByMethod, RouteEntry, Router, collect_routes, traverse
from contractgen.schema import (
    SchemaKind,
    SchemaNode,
    any_,
    array,
    binary,
    boolean,
    datetime,
    enum,
    integer,
    intersection,
    lazy,
    literal,
    null,
    nullable,
    number,
    object_,
    optional,
    record,
    string,
    transformed,
    union,
    with_default,
)
from contractgen.walker import RendererTable, SchemaWalker, WalkContext

__version__ = "0.1.0"
