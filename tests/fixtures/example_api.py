"""Example routing declaration used by the CLI and integration tests."""
from __future__ import annotations

from contractgen import (
    ByMethod,
    Endpoint,
    Middleware,
    ResponseSpec,
    Router,
    SecurityScheme,
    array,
    binary,
    boolean,
    build_endpoint,
    datetime,
    enum,
    integer,
    lazy,
    list_of,
    array_result_handler,
    object_,
    string,
    union,
)
from contractgen.cli import ContractSpec
from contractgen.document import ApiInfo

api_key = SecurityScheme("APIKEY_1", parameter_name="key", description="API key")
token = SecurityScheme("APIKEY_2", parameter_name="token")

auth = Middleware(
    input=object_({"key": string().located("query"), "token": string().located("header")}),
    security=[[api_key, token]],
)

user = object_(
    {
        "id": integer(minimum=0),
        "name": string(min_length=1),
        "createdAt": datetime(),
        "role": enum(["admin", "member"]),
    }
).named("User")

feature = object_(
    {
        "title": string(),
        "features": array(lazy(lambda: feature)),
    }
)

retrieve_user = build_endpoint(
    object_({"id": string(pattern=r"\d+")}, examples=[{"id": "1234"}]),
    object_({"name": string(), "features": array(feature)}),
    description="Example user retrieval endpoint.",
    tags=("users",),
)

update_user = build_endpoint(
    object_(
        {
            "id": string(),
            "name": string(min_length=1),
            "notify": boolean().optional().default(False),
        }
    ),
    object_({"name": string(), "updatedAt": datetime()}),
    methods=("post",),
    description="Changes the user record. Example user update endpoint.",
    tags=("users",),
)

list_users = build_endpoint(
    object_({"limit": integer().optional().default(20)}),
    list_of(user),
    result_handler=array_result_handler,
    tags=("users",),
)

upload_avatar = Endpoint(
    input=object_({"avatar": binary()}),
    positive=object_({"size": integer(), "hash": string()}),
    negative=string(),
    methods=("post",),
    tags=("files",),
)

search = Endpoint(
    input=object_({"q": string()}),
    positive=ResponseSpec(union(user, object_({"missing": boolean()})), (200,)),
    negative=ResponseSpec(object_({"message": string()}), (404, 422)),
)

routing = {
    "v1": Router(
        {
            "user": {
                "retrieve": retrieve_user,
                ":id": update_user,
                "list": list_users,
            },
            "avatar/upload": upload_avatar,
            "search": ByMethod({"get": search}),
        },
        middlewares=[auth],
    ),
}

contract = ContractSpec(
    routing=routing,
    info=ApiInfo(
        title="Example API",
        version="2.0.0",
        servers=("https://example.com",),
        tags={"users": "Everything about users", "files": "Everything about files"},
    ),
    client_class_name="ExampleClient",
)
