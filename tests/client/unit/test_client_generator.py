"""Client type generator tests."""

from __future__ import annotations

from contractgen.client import ClientArtifact, ClientConfig, ClientGenerator
from contractgen.endpoints import Endpoint, ResponseSpec
from contractgen.envelope import build_endpoint
from contractgen.routing import collect_routes
from contractgen.schema import (
    array,
    binary,
    datetime,
    enum,
    integer,
    lazy,
    number,
    object_,
    record,
    string,
)
from contractgen.typescript import TypeAliasDeclaration, print_declaration, print_type


def _generate(routing: object, config: ClientConfig | None = None) -> ClientArtifact:
    return ClientGenerator(config).generate(collect_routes(routing))


def _alias(artifact: ClientArtifact, name: str) -> TypeAliasDeclaration:
    for declaration in artifact.declarations:
        if isinstance(declaration, TypeAliasDeclaration) and declaration.name == name:
            return declaration
    raise AssertionError(f"No type alias named {name}")


def _plain_endpoint(input_schema=None, **options) -> Endpoint:
    return Endpoint(
        input=input_schema if input_schema is not None else object_({}),
        positive=object_({"ok": string()}),
        negative=object_({"message": string()}),
        **options,
    )


def test_route_aliases_are_named_after_method_and_path() -> None:
    endpoint = build_endpoint(object_({"id": string()}), object_({"name": string()}))

    artifact = _generate({"v1": {"user": {"retrieve": endpoint}}})

    assert print_declaration(_alias(artifact, "GetV1UserRetrieveInput")) == (
        "export type GetV1UserRetrieveInput = {\n    id: string;\n};"
    )
    response = print_type(_alias(artifact, "GetV1UserRetrieveResponse").type)
    assert 'status: "success";' in response
    assert 'status: "error";' in response
    assert " | " in response


def test_optional_field_with_default_is_optional_and_documented() -> None:
    endpoint = _plain_endpoint(object_({"limit": integer().optional().default(0)}))

    text = _generate({"items": endpoint}).print()

    assert "    /** @default 0 */\n    limit?: number;" in text


def test_field_description_becomes_jsdoc() -> None:
    endpoint = _plain_endpoint(object_({"name": string(description="Display name")}))

    text = _generate({"items": endpoint}).print()

    assert "    /** Display name */\n    name: string;" in text


def test_primitive_mappings() -> None:
    endpoint = _plain_endpoint(
        object_(
            {
                "file": binary(),
                "created": datetime(),
                "ratio": number(),
                "kind": enum(["a", "b"]),
                "scores": record(integer()),
                "tags": array(string().nullable()),
                "maybe": string().nullable().optional(),
            }
        ),
        methods=("post",),
    )

    text = print_type(_alias(_generate({"items": endpoint}), "PostItemsInput").type)

    assert "file: Blob;" in text
    assert "created: string;" in text
    assert "ratio: number;" in text
    assert 'kind: "a" | "b";' in text
    assert "scores: Record<string, number>;" in text
    assert "tags: (string | null)[];" in text
    assert "maybe?: string | null;" in text


def test_mixed_enum_literals_are_all_kept() -> None:
    endpoint = _plain_endpoint(object_({"flag": enum([1, True, 0, False])}))

    text = print_type(_alias(_generate({"flags": endpoint}), "GetFlagsInput").type)

    assert "flag: 1 | true | 0 | false;" in text


def test_optional_outside_object_adds_undefined() -> None:
    endpoint = Endpoint(input=object_({}), positive=string().optional(), negative=string())

    response = _alias(_generate({"x": endpoint}), "GetXResponse")

    assert print_type(response.type) == "string | undefined"


def test_recursive_type_is_declared_once() -> None:
    node = object_({"name": string(), "children": array(lazy(lambda: node))})
    endpoint = Endpoint(input=object_({}), positive=node, negative=string())

    artifact = _generate({"tree": endpoint})

    alias = _alias(artifact, "GetTreeResponse2")
    assert print_type(alias.type) == "{\n    name: string;\n    children: GetTreeResponse2[];\n}"
    assert artifact.declaration_names().count("GetTreeResponse2") == 1


def test_aggregates_cover_routes_except_options() -> None:
    routing = {
        "users": _plain_endpoint(methods=("post", "get")),
        "health": _plain_endpoint(methods=("options",)),
        "text": Endpoint(
            input=object_({}),
            positive=ResponseSpec(string(), mime_types=("text/plain",)),
            negative=string(),
        ),
    }

    artifact = _generate(routing)
    text = artifact.print()

    assert _alias(artifact, "OptionsHealthInput")
    assert artifact.method_paths == ("post /users", "get /users", "get /text")
    assert 'export type Method = "get" | "post";' in text
    assert 'export type Path = "/users" | "/text";' in text
    assert "export type MethodPath = `${Method} ${Path}`;" in text
    assert "export interface Input extends Record<MethodPath, any> {" in text
    assert '    "post /users": PostUsersInput;' in text
    assert "options /health" not in text
    assert 'export const jsonEndpoints = {\n    "post /users": true,\n    "get /users": true,\n};' in text
    assert (
        "export type Provider = <M extends Method, P extends Path>"
        "(method: M, path: P, params: Input[`${M} ${P}`]) => Promise<Response[`${M} ${P}`]>;"
    ) in text
    assert "public constructor(protected readonly provider: Provider) {}" in text
    assert "public readonly provide = this.provider;" in text
    assert "createDefaultProvider" in text


def test_colliding_route_names_get_suffixes() -> None:
    routing = {"user-info": _plain_endpoint(), "user_info": _plain_endpoint()}

    artifact = _generate(routing)

    assert [route.input_name for route in artifact.routes] == ["GetUserInfoInput", "GetUserInfoInput2"]


def test_client_class_name_is_configurable() -> None:
    text = _generate({"x": _plain_endpoint()}, ClientConfig(class_name="PetStore")).print()

    assert "export class PetStore {" in text
    assert "new PetStore(createDefaultProvider" in text


def test_generation_is_deterministic() -> None:
    node = object_({"name": string(), "children": array(lazy(lambda: node))})
    entries = collect_routes({"tree": build_endpoint(object_({"q": string()}), node)})
    generator = ClientGenerator()

    assert generator.generate(entries).print() == generator.generate(entries).print()
