import json

import pytest

from openapi_docgen.config import DocumentSettings
from openapi_docgen.errors import (
    ConfigurationError,
    ConflictingSchemaError,
    InvalidSchemaError,
    MissingSchemaError,
    ParseError,
    RouteConflictError,
)
from openapi_docgen.generator.assembler import (
    DocumentAssembler,
    Route,
    RouteTable,
    collect_references,
)
from openapi_docgen.parser.base import HandlerShape
from openapi_docgen.registry import Registry
from openapi_docgen.schema.openapi import Document, Reference, SecurityScheme, TagObject

USER_SCHEMA = {
    "type": "object",
    "properties": {"id": {"type": "integer"}, "name": {"type": "string"}},
    "required": ["id", "name"],
}
API_ERROR_SCHEMA = {"type": "object", "properties": {"error": {"type": "string"}}}


def _settings(**kwargs) -> DocumentSettings:
    settings = DocumentSettings.create("Users API", "1.0.0")
    return settings.model_copy(update=kwargs) if kwargs else settings


def _registry() -> Registry:
    registry = Registry()
    registry.register_handler(
        "get_user",
        doc="Get user by ID\n\n# Parameters\n- id (path): User ID\n\n# Responses\n- 404: User not found",
        tags=["users"],
    )
    registry.register_handler(
        "list_users",
        doc="List users\n\n# Responses\n- 200:\n  description: Users\n  content:\n    application/json:\n      schema: User",
    )
    registry.register_schema("User", USER_SCHEMA)
    registry.register_schema("ApiError", json.dumps(API_ERROR_SCHEMA))
    return registry


def _routes() -> RouteTable:
    return (
        RouteTable()
        .add("/users/{id}", "GET", "get_user", HandlerShape(success_type="User", error_type="ApiError"))
        .add("/users", "get", "list_users")
    )


class TestRoutes:
    def test_method_is_lowercased(self):
        assert Route(path="/users", method="GET", handler="h").method == "get"

    def test_colon_segments_become_placeholders(self):
        assert Route(path="/users/:id/posts/:post_id", method="get", handler="h").path == "/users/{id}/posts/{post_id}"

    def test_route_conflict_names_both_handlers(self):
        registry = _registry()
        routes = _routes().add("/users", "GET", "get_user")
        with pytest.raises(RouteConflictError) as exc:
            DocumentAssembler(registry, _settings()).generate(routes)
        assert exc.value.handlers == ("list_users", "get_user")
        assert "list_users" in str(exc.value) and "get_user" in str(exc.value)

    def test_unsupported_method(self):
        routes = RouteTable().add("/users", "TRACE", "list_users")
        with pytest.raises(ConfigurationError):
            DocumentAssembler(_registry(), _settings()).generate(routes)

    def test_accepts_plain_route_list(self):
        routes = [Route(path="/users", method="get", handler="list_users")]
        result = DocumentAssembler(_registry(), _settings()).generate(routes)
        assert list(result.document.paths) == ["/users"]


class TestOperations:
    def test_builds_paths_and_operations(self):
        result = DocumentAssembler(_registry(), _settings()).generate(_routes())
        document = result.document
        assert list(document.paths) == ["/users", "/users/{id}"]

        operation = document.paths["/users/{id}"].get
        assert operation.summary == "Get user by ID"
        assert operation.handler_function == "get_user"
        assert operation.tags == ["users"]
        assert operation.parameters[0].name == "id"
        assert operation.parameters[0].required is True
        assert list(operation.responses) == ["200", "400", "404", "500"]
        not_found = operation.responses["404"].content["application/json"].schema_
        assert isinstance(not_found, Reference)
        assert not_found.target_name == "ApiError"

    def test_synthesized_responses(self):
        result = DocumentAssembler(_registry(), _settings()).generate(_routes())
        responses = result.document.paths["/users/{id}"].get.responses
        targets = {status: r.content["application/json"].schema_.target_name for status, r in responses.items()}
        assert targets == {"200": "User", "400": "ApiError", "404": "ApiError", "500": "ApiError"}

    def test_handler_parsed_once_for_multiple_routes(self, monkeypatch):
        from openapi_docgen.generator import assembler as assembler_module

        calls = []
        original = assembler_module.parse_handler_doc

        def counting(identifier, *args, **kwargs):
            calls.append(identifier)
            return original(identifier, *args, **kwargs)

        monkeypatch.setattr(assembler_module, "parse_handler_doc", counting)
        routes = _routes().add("/people", "get", "list_users").add("/members", "get", "list_users")
        DocumentAssembler(_registry(), _settings()).generate(routes)
        assert sorted(calls) == ["get_user", "list_users"]

    def test_undocumented_handler_gets_fallback(self):
        routes = _routes().add("/health", "get", "health")
        result = DocumentAssembler(_registry(), _settings()).generate(routes)
        operation = result.document.paths["/health"].get
        assert operation.summary == "GET /health"
        assert operation.description == "No description available"
        assert list(operation.responses) == ["200"]
        assert [(w.kind, w.subject) for w in result.warnings if w.kind == "undocumented-handler"] == [
            ("undocumented-handler", "health")
        ]

    def test_handler_without_responses_gets_default_200(self):
        registry = Registry()
        registry.register_handler("ping", doc="Ping")
        result = DocumentAssembler(registry, _settings()).generate(RouteTable().add("/ping", "get", "ping"))
        operation = result.document.paths["/ping"].get
        assert operation.responses["200"].description == "Successful response"
        assert operation.responses["200"].content is None

    def test_request_body_inline_fields(self):
        registry = Registry()
        registry.register_handler(
            "create",
            doc="Create\n\n# Request Body\nContent-Type: application/json\nNew user\n- name (string): Full name",
        )
        result = DocumentAssembler(registry, _settings()).generate(RouteTable().add("/users", "post", "create"))
        body = result.document.paths["/users"].post.request_body
        assert body.description == "New user"
        assert body.required is True
        schema = body.content["application/json"].schema_
        assert schema.type == "object"
        assert schema.properties["name"].type == "string"

    def test_parameter_metadata_in_schema(self):
        registry = Registry()
        registry.register_handler(
            "list", doc="List\n\n# Parameters\n- limit (query): Page size [example: 10, default: 20]"
        )
        result = DocumentAssembler(registry, _settings()).generate(RouteTable().add("/items", "get", "list"))
        parameter = result.document.paths["/items"].get.parameters[0].to_dict()
        assert parameter == {
            "name": "limit",
            "in": "query",
            "description": "Page size",
            "required": False,
            "schema": {"type": "string", "example": "10", "default": "20"},
        }

    def test_parse_error_propagates(self):
        registry = Registry()
        registry.register_handler("bad", doc="Bad\n\n# Parameters\n- id (body): nope")
        with pytest.raises(ParseError):
            DocumentAssembler(registry, _settings()).generate(RouteTable().add("/bad", "get", "bad"))

    def test_conflicting_handler_registrations(self):
        registry = _registry()
        registry.register_handler("get_user", doc="Something else")
        with pytest.raises(ConfigurationError):
            DocumentAssembler(registry, _settings()).generate(_routes())

    def test_identical_handler_registrations_are_merged(self):
        registry = _registry()
        registry.register_handler("list_users", doc=registry.all_handlers()[1].doc)
        result = DocumentAssembler(registry, _settings()).generate(_routes())
        assert "/users" in result.document.paths


class TestSchemas:
    def test_only_referenced_schemas_are_emitted(self):
        registry = _registry()
        registry.register_schema("LegacyUser", {"type": "object"})
        result = DocumentAssembler(registry, _settings()).generate(_routes())
        assert list(result.document.components.schemas) == ["ApiError", "User"]
        assert result.unused_schemas == ["LegacyUser"]
        assert "LegacyUser" not in result.document.to_json()

    def test_schema_registered_once_appears_once(self):
        result = DocumentAssembler(_registry(), _settings()).generate(_routes())
        data = json.loads(result.document.to_json())
        assert list(data["components"]["schemas"]).count("User") == 1

    def test_transitive_references_are_included(self):
        registry = _registry()
        registry.register_schema("Page", {"type": "object", "properties": {"items": {"type": "array", "items": {"$ref": "#/components/schemas/User"}}}})
        registry.register_handler(
            "page",
            doc="Page\n\n# Responses\n- 200:\n  description: Page\n  content:\n    application/json:\n      schema: Page",
        )
        routes = RouteTable().add("/page", "get", "page")
        result = DocumentAssembler(registry, _settings()).generate(routes)
        assert list(result.document.components.schemas) == ["Page", "User"]
        assert result.unused_schemas == ["ApiError"]

    def test_missing_schema_is_fatal(self):
        registry = Registry()
        registry.register_handler("h", doc="H")
        routes = RouteTable().add("/h", "get", "h", HandlerShape(success_type="Ghost"))
        with pytest.raises(MissingSchemaError) as exc:
            DocumentAssembler(registry, _settings()).generate(routes)
        assert exc.value.name == "Ghost"
        assert exc.value.referenced_by == "GET /h"

    def test_missing_transitive_schema_is_fatal(self):
        registry = Registry()
        registry.register_handler("h", doc="H")
        registry.register_schema("User", {"type": "object", "properties": {"team": {"$ref": "#/components/schemas/Team"}}})
        routes = RouteTable().add("/h", "get", "h", HandlerShape(success_type="User"))
        with pytest.raises(MissingSchemaError) as exc:
            DocumentAssembler(registry, _settings()).generate(routes)
        assert exc.value.name == "Team"
        assert exc.value.referenced_by == "schema 'User'"

    def test_conflicting_schemas_name_both_definitions(self):
        registry = _registry()
        registry.register_schema("User", {"type": "object", "properties": {"email": {"type": "string"}}})
        with pytest.raises(ConflictingSchemaError) as exc:
            DocumentAssembler(registry, _settings()).generate(_routes())
        assert exc.value.name == "User"
        assert len(exc.value.definitions) == 2
        assert "email" in str(exc.value)
        assert "name" in str(exc.value)

    def test_identical_duplicate_schemas_are_accepted(self):
        registry = _registry()
        reordered = {"required": ["name", "id"], "properties": USER_SCHEMA["properties"], "type": "object"}
        registry.register_schema("User", reordered)
        result = DocumentAssembler(registry, _settings()).generate(_routes())
        assert "User" in result.document.components.schemas

    def test_invalid_schema_json(self):
        registry = _registry()
        registry.register_schema("ApiError", "{not json")
        with pytest.raises(InvalidSchemaError):
            DocumentAssembler(registry, _settings()).generate(_routes())

    def test_component_may_be_a_reference(self):
        registry = _registry()
        registry.register_schema("Member", {"$ref": "#/components/schemas/User"})
        registry.register_handler("member", doc="Member")
        routes = RouteTable().add("/member", "get", "member", HandlerShape(success_type="Member"))
        result = DocumentAssembler(registry, _settings()).generate(routes)
        schemas = result.document.components.schemas
        assert isinstance(schemas["Member"], Reference)
        assert "User" in schemas

    def test_collect_references_walks_extras(self):
        registry = Registry()
        registry.register_schema("Map", {"type": "object", "additionalProperties": {"$ref": "#/components/schemas/Value"}})
        from openapi_docgen.generator.assembler import decode_schema

        schema = decode_schema(registry.all_schemas()[0])
        assert [r.target_name for r in collect_references(schema)] == ["Value"]


class TestWarnings:
    def test_query_location_for_path_placeholder_is_a_warning(self):
        registry = Registry()
        registry.register_handler("get_user", doc="Get user\n\n# Parameters\n- id (query): User ID")
        routes = RouteTable().add("/users/{id}", "get", "get_user")
        result = DocumentAssembler(registry, _settings()).generate(routes)
        kinds = [w.kind for w in result.warnings]
        assert kinds == ["parameter-location"]
        assert result.document.paths["/users/{id}"].get.parameters[0].location == "query"

    def test_path_parameter_without_placeholder(self):
        registry = Registry()
        registry.register_handler("list", doc="List\n\n# Parameters\n- id (path): Id")
        result = DocumentAssembler(registry, _settings()).generate(RouteTable().add("/items", "get", "list"))
        assert [w.kind for w in result.warnings] == ["parameter-location"]

    def test_undocumented_placeholder(self):
        registry = Registry()
        registry.register_handler("get", doc="Get")
        result = DocumentAssembler(registry, _settings()).generate(RouteTable().add("/items/{id}", "get", "get"))
        assert [(w.kind, w.subject) for w in result.warnings] == [("undocumented-path-parameter", "GET /items/{id} id")]


class TestDocumentMetadata:
    def test_tags_and_info(self):
        settings = _settings(tags=[TagObject(name="users", description="User management")])
        result = DocumentAssembler(_registry(), settings).generate(_routes())
        data = result.document.to_dict()
        assert data["openapi"] == "3.0.0"
        assert data["info"] == {"title": "Users API", "version": "1.0.0"}
        assert data["tags"] == [{"name": "users", "description": "User management"}]

    def test_security_schemes_only_when_used(self):
        settings = _settings(security_schemes={"sessionAuth": SecurityScheme.api_key("x-session-secret", "header")})
        registry = _registry()
        result = DocumentAssembler(registry, settings).generate(_routes())
        assert result.document.components.security_schemes is None

        registry.register_handler("secret", doc="Secret", security=["sessionAuth"])
        result = DocumentAssembler(registry, settings).generate(_routes().add("/secret", "get", "secret"))
        assert list(result.document.components.security_schemes) == ["sessionAuth"]
        assert result.document.paths["/secret"].get.security == [{"sessionAuth": []}]
        assert "401" in result.document.paths["/secret"].get.responses

    def test_unknown_security_scheme(self):
        registry = _registry()
        registry.register_handler("secret", doc="Secret", security=["oauth"])
        with pytest.raises(ConfigurationError):
            DocumentAssembler(registry, _settings()).generate(RouteTable().add("/secret", "get", "secret"))

    def test_no_components_when_nothing_referenced(self):
        registry = Registry()
        registry.register_handler("ping", doc="Ping")
        result = DocumentAssembler(registry, _settings()).generate(RouteTable().add("/ping", "get", "ping"))
        assert result.document.components is None


class TestDeterminism:
    def test_byte_identical_output(self):
        first = DocumentAssembler(_registry(), _settings()).generate(_routes()).serialize("json")
        second = DocumentAssembler(_registry(), _settings()).generate(_routes()).serialize("json")
        assert first == second

    def test_output_independent_of_registration_and_route_order(self):
        forward = _registry()
        backward = Registry()
        for handler in reversed(forward.all_handlers()):
            backward.register_handler(handler.identifier, doc=handler.doc, tags=handler.tags)
        for schema in reversed(forward.all_schemas()):
            backward.register_schema(schema.name, schema.definition)
        reversed_routes = RouteTable(routes=list(reversed(_routes().routes)), shapes=_routes().shapes)

        a = DocumentAssembler(forward, _settings()).generate(_routes()).serialize("yaml")
        b = DocumentAssembler(backward, _settings()).generate(reversed_routes).serialize("yaml")
        assert a == b

    def test_equivalent_definitions_in_either_order(self):
        declared = {
            "type": "object",
            "properties": {"id": {"type": "integer"}, "name": {"type": "string"}},
            "required": ["id", "name"],
        }
        reordered = {
            "type": "object",
            "properties": {"name": {"type": "string"}, "id": {"type": "integer"}},
            "required": ["name", "id"],
        }

        def build(definitions):
            registry = Registry()
            registry.register_handler("get_user", doc="Get user")
            for definition in definitions:
                registry.register_schema("User", definition)
            routes = RouteTable().add("/users/{id}", "get", "get_user", HandlerShape(success_type="User"))
            return DocumentAssembler(registry, _settings()).generate(routes).serialize("json")

        assert build([declared, reordered]) == build([reordered, declared])

    def test_json_roundtrip_of_generated_document(self):
        document = DocumentAssembler(_registry(), _settings()).generate(_routes()).document
        assert Document.from_json(document.to_json()) == document
