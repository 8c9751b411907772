"""Manifest loader.

A manifest is a YAML or JSON file describing everything a generation pass
needs when the router and type system are not available in-process::

    info: {title: Users API, version: 1.0.0}
    defaultErrorSchema: ApiError
    schemas:
      User: {type: object, properties: {id: {type: integer}}}
    handlers:
      get_user:
        doc: |
          Get a user
        tags: [users]
        returns: {success: User, error: ApiError}
    routes:
      - [GET, "/users/{id}", get_user]
"""

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from openapi_docgen.config import DocumentSettings
from openapi_docgen.errors import ManifestError
from openapi_docgen.generator.assembler import Route, RouteTable
from openapi_docgen.parser.base import HandlerShape
from openapi_docgen.registry import Registry


class ReturnsEntry(BaseModel):
    success: str | None = None
    error: str | None = None
    fallible: bool = False
    request: str | None = None

    def to_shape(self) -> HandlerShape:
        return HandlerShape(
            success_type=self.success,
            error_type=self.error,
            fallible=self.fallible,
            request_type=self.request,
        )


class HandlerEntry(BaseModel):
    doc: str = ""
    tags: list[str] = []
    security: list[str] = []
    returns: ReturnsEntry | None = None


class SchemaEntry(BaseModel):
    name: str
    schema_: Any = Field(alias="schema")


class Manifest(BaseModel):
    """Parsed manifest file."""

    model_config = ConfigDict(populate_by_name=True)

    settings: DocumentSettings
    handlers: dict[str, HandlerEntry] = {}
    schemas: list[SchemaEntry] = []
    routes: list[Route] = []

    @field_validator("schemas", mode="before")
    @classmethod
    def _schemas_as_list(cls, value: Any) -> Any:
        # A mapping is shorthand for one registration per name.
        if isinstance(value, dict):
            return [{"name": name, "schema": schema} for name, schema in value.items()]
        return value

    @field_validator("routes", mode="before")
    @classmethod
    def _routes_as_mappings(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        routes = []
        for item in value:
            if isinstance(item, (list, tuple)) and len(item) == 3:
                method, path, handler = item
                routes.append({"method": method, "path": path, "handler": handler})
            else:
                routes.append(item)
        return routes

    def populate(self, registry: Registry) -> Registry:
        for identifier, handler in self.handlers.items():
            registry.register_handler(
                identifier, doc=handler.doc, tags=handler.tags, security=handler.security
            )
        for entry in self.schemas:
            registry.register_schema(entry.name, entry.schema_)
        return registry

    def route_table(self) -> RouteTable:
        shapes = {
            identifier: handler.returns.to_shape()
            for identifier, handler in self.handlers.items()
            if handler.returns is not None
        }
        return RouteTable(routes=list(self.routes), shapes=shapes)


def detect_format(file_path: Path) -> str:
    """Detect whether a manifest is JSON or YAML.

    Returns: 'json' or 'yaml'.
    """
    if file_path.suffix.lower() == ".json":
        return "json"
    if file_path.suffix.lower() in (".yaml", ".yml"):
        return "yaml"
    text = file_path.read_text(encoding="utf-8")
    try:
        json.loads(text)
        return "json"
    except (json.JSONDecodeError, ValueError):
        return "yaml"


def load_manifest(file_path: Path) -> Manifest:
    """Read and validate a manifest file."""
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ManifestError(f"cannot read {file_path}: {e}") from e

    try:
        if detect_format(file_path) == "json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ManifestError(f"{file_path} is not valid: {e}") from e

    if not isinstance(data, dict):
        raise ManifestError(f"{file_path} must contain a mapping at the top level")
    return parse_manifest(data, source=str(file_path))


def parse_manifest(data: dict, source: str = "<manifest>") -> Manifest:
    settings_keys = {"openapi", "info", "tags", "securitySchemes", "defaultErrorSchema"}
    settings = {key: value for key, value in data.items() if key in settings_keys}
    rest = {key: value for key, value in data.items() if key not in settings_keys}
    try:
        return Manifest.model_validate({**rest, "settings": settings})
    except ValidationError as e:
        raise ManifestError(f"{source} is not a valid manifest:\n{e}") from e


def build_registry(manifest: Manifest) -> Registry:
    """Create a registry populated from the manifest and freeze it."""
    registry = manifest.populate(Registry())
    registry.freeze()
    return registry
