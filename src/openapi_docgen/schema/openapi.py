"""OpenAPI 3.0 document models.

Every schema-bearing field is typed ``ReferenceOr[Schema]``: in memory it holds
either a :class:`Reference` or an inline :class:`Schema`, while on the wire the
two are told apart only by the presence of the ``$ref`` key.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    ValidationError,
    model_serializer,
)
from pydantic.alias_generators import to_camel

from openapi_docgen.errors import SerializationError

OPENAPI_VERSION = "3.0.0"
REF_KEY = "$ref"
SCHEMA_REF_PREFIX = "#/components/schemas/"
HTTP_METHODS = ("get", "put", "post", "delete", "patch")
# Schema keys whose explicit null is kept on output.
NULL_VALUE_KEYS = ("example", "default")


class OpenApiModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Reference(OpenApiModel):
    """A pointer into the component table."""

    ref: str = Field(alias=REF_KEY)

    @classmethod
    def to_schema(cls, name: str) -> Reference:
        return cls(ref=f"{SCHEMA_REF_PREFIX}{name}")

    @property
    def target_name(self) -> str:
        return self.ref.rsplit("/", 1)[-1]

    @property
    def is_local_schema(self) -> bool:
        return self.ref.startswith(SCHEMA_REF_PREFIX)

    def is_reference(self) -> bool:
        return True


def _reference_or_item(value: Any) -> str:
    # $ref must be checked first: an item may itself be a single-key object.
    if isinstance(value, dict):
        return "reference" if REF_KEY in value else "item"
    return "reference" if isinstance(value, Reference) else "item"


class ReferenceOr:
    """``ReferenceOr[T]`` builds the untagged Reference-or-T field type."""

    def __class_getitem__(cls, item_type):
        return Annotated[
            Union[
                Annotated[Reference, Tag("reference")],
                Annotated[item_type, Tag("item")],
            ],
            Discriminator(_reference_or_item),
        ]


def is_reference(value: Any) -> bool:
    return isinstance(value, Reference)


class Schema(OpenApiModel):
    """A JSON schema; keys without a dedicated field are kept verbatim."""

    model_config = ConfigDict(extra="allow")

    type: str | None = None
    title: str | None = None
    description: str | None = None
    format: str | None = None
    properties: dict[str, ReferenceOr[Schema]] | None = None
    required: list[str] | None = None
    items: ReferenceOr[Schema] | None = None
    enum: list[Any] | None = None
    nullable: bool | None = None
    example: Any = None
    default: Any = None
    one_of: list[ReferenceOr[Schema]] | None = None

    @model_serializer(mode="wrap")
    def _keep_explicit_nulls(self, handler):
        # `example: null` and `default: null` are values, not absent keys.
        data = handler(self)
        if isinstance(data, dict):
            for name in NULL_VALUE_KEYS:
                if name in self.model_fields_set and getattr(self, name) is None:
                    data.setdefault(name, None)
        return data

    def is_reference(self) -> bool:
        return False


def fingerprint(value: Reference | Schema) -> str:
    """Canonical text used to compare two definitions structurally.

    Key order and the order of ``required`` names do not matter.
    """
    data = value.to_dict()
    _sort_required(data)
    return json.dumps(data, sort_keys=True)


def _sort_required(data: Any) -> None:
    if isinstance(data, dict):
        if isinstance(data.get("required"), list):
            data["required"] = sorted(data["required"])
        for value in data.values():
            _sort_required(value)
    elif isinstance(data, list):
        for value in data:
            _sort_required(value)


class Contact(OpenApiModel):
    name: str | None = None
    url: str | None = None
    email: str | None = None


class License(OpenApiModel):
    name: str
    url: str | None = None


class Info(OpenApiModel):
    title: str
    version: str
    description: str | None = None
    terms_of_service: str | None = None
    contact: Contact | None = None
    license: License | None = None


class ExternalDocs(OpenApiModel):
    url: str
    description: str | None = None


class TagObject(OpenApiModel):
    name: str
    description: str | None = None
    external_docs: ExternalDocs | None = None


class Parameter(OpenApiModel):
    name: str
    location: str = Field(alias="in")  # path / query / header / cookie
    description: str | None = None
    required: bool
    schema_: ReferenceOr[Schema] = Field(alias="schema")


class MediaType(OpenApiModel):
    schema_: ReferenceOr[Schema] | None = Field(default=None, alias="schema")


class RequestBody(OpenApiModel):
    description: str | None = None
    content: dict[str, MediaType]
    required: bool = True


class Response(OpenApiModel):
    description: str
    content: dict[str, MediaType] | None = None


class Operation(OpenApiModel):
    summary: str | None = None
    description: str | None = None
    handler_function: str | None = Field(default=None, alias="x-handler-function")
    tags: list[str] | None = None
    parameters: list[Parameter] | None = None
    request_body: RequestBody | None = None
    responses: dict[str, Response]
    security: list[dict[str, list[str]]] | None = None


class PathItem(OpenApiModel):
    get: Operation | None = None
    put: Operation | None = None
    post: Operation | None = None
    delete: Operation | None = None
    patch: Operation | None = None

    def operations(self) -> list[tuple[str, Operation]]:
        return [(m, getattr(self, m)) for m in HTTP_METHODS if getattr(self, m) is not None]


class SecurityScheme(OpenApiModel):
    """Security scheme (apiKey, http, oauth2, openIdConnect)."""

    type: str
    description: str | None = None
    name: str | None = None
    location: str | None = Field(default=None, alias="in")
    scheme: str | None = None
    bearer_format: str | None = None

    @classmethod
    def api_key(cls, name: str, location: str, description: str | None = None) -> SecurityScheme:
        return cls(type="apiKey", name=name, location=location, description=description)

    @classmethod
    def bearer(cls, bearer_format: str | None = None) -> SecurityScheme:
        return cls(type="http", scheme="bearer", bearer_format=bearer_format)


class Components(OpenApiModel):
    schemas: dict[str, ReferenceOr[Schema]] | None = None
    security_schemes: dict[str, SecurityScheme] | None = None


class Document(OpenApiModel):
    """Root of an OpenAPI document."""

    openapi: str = OPENAPI_VERSION
    info: Info
    tags: list[TagObject] | None = None
    paths: dict[str, PathItem] = {}
    components: Components | None = None

    def to_json(self, indent: int | None = 2) -> str:
        try:
            return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"cannot encode document as JSON: {e}") from e

    def to_yaml(self) -> str:
        try:
            return yaml.safe_dump(
                self.to_dict(), sort_keys=False, allow_unicode=True, default_flow_style=False
            )
        except yaml.YAMLError as e:
            raise SerializationError(f"cannot encode document as YAML: {e}") from e

    @classmethod
    def from_json(cls, text: str) -> Document:
        try:
            return cls.model_validate_json(text)
        except ValidationError as e:
            raise SerializationError(f"cannot decode document: {e}") from e


Schema.model_rebuild()
