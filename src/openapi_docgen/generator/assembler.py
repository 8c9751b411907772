"""Document assembler: builds one OpenAPI document from registry and routes.

Generation is a pure function of the registry contents, the route table and
the document settings: each handler's documentation is parsed once, routes
are grouped by path, every schema reference is resolved against the
registered definitions, and only referenced schemas are emitted. Paths,
responses and components are ordered lexicographically so repeated runs
produce byte-identical output.
"""

import json
import logging
import re
from collections import deque

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError, field_validator

from openapi_docgen.config import DocumentSettings
from openapi_docgen.errors import (
    ConfigurationError,
    ConflictingSchemaError,
    InvalidSchemaError,
    MissingSchemaError,
    RouteConflictError,
)
from openapi_docgen.generator.validator import GenerationWarning, validate_path_parameters
from openapi_docgen.parser.base import HandlerDescriptor, HandlerShape, ParameterDescriptor
from openapi_docgen.parser.docs import parse_handler_doc
from openapi_docgen.registry import HandlerRegistration, Registry, SchemaRegistration
from openapi_docgen.schema.openapi import (
    HTTP_METHODS,
    REF_KEY,
    Components,
    Document,
    MediaType,
    Operation,
    Parameter,
    PathItem,
    Reference,
    ReferenceOr,
    RequestBody,
    Response,
    Schema,
    fingerprint,
)

logger = logging.getLogger(__name__)

_schema_adapter = TypeAdapter(ReferenceOr[Schema])
_COLON_SEGMENT_RE = re.compile(r"^:(\w+)$")


class Route(BaseModel):
    """One (path, method, handler) binding supplied by the router."""

    model_config = ConfigDict(frozen=True)

    path: str
    method: str
    handler: str

    @field_validator("method")
    @classmethod
    def _lowercase_method(cls, value: str) -> str:
        return value.lower()

    @field_validator("path")
    @classmethod
    def _openapi_path(cls, value: str) -> str:
        # /users/:id -> /users/{id}
        segments = []
        for segment in value.split("/"):
            match = _COLON_SEGMENT_RE.match(segment)
            segments.append(f"{{{match.group(1)}}}" if match else segment)
        return "/".join(segments)


class RouteTable(BaseModel):
    """Routes plus the declared request/success/error types of each handler."""

    routes: list[Route] = []
    shapes: dict[str, HandlerShape] = {}

    def add(self, path: str, method: str, handler: str, shape: HandlerShape | None = None) -> "RouteTable":
        self.routes.append(Route(path=path, method=method, handler=handler))
        if shape is not None:
            self.shapes[handler] = shape
        return self


class GenerationResult(BaseModel):
    """A successfully assembled document plus the non-fatal findings."""

    document: Document
    warnings: list[GenerationWarning] = []

    @property
    def unused_schemas(self) -> list[str]:
        return [w.subject for w in self.warnings if w.kind == "unused-schema"]

    def serialize(self, fmt: str = "json") -> str:
        if fmt == "yaml":
            return self.document.to_yaml()
        return self.document.to_json()


class DocumentAssembler:
    """Assembles OpenAPI documents from a registry."""

    def __init__(self, registry: Registry, settings: DocumentSettings):
        self.registry = registry
        self.settings = settings

    def generate(self, routes: RouteTable | list[Route]) -> GenerationResult:
        if not isinstance(routes, RouteTable):
            routes = RouteTable(routes=list(routes))
        for route in routes.routes:
            if route.method not in HTTP_METHODS:
                raise ConfigurationError(
                    f"unsupported HTTP method '{route.method}' for {route.path} "
                    f"(handler '{route.handler}')"
                )

        warnings: list[GenerationWarning] = []
        registrations = self._index_handlers()
        descriptors = self._parse_handlers(routes, registrations)
        paths = self._build_paths(routes.routes, descriptors, warnings)

        schemas = self._resolve_schemas(paths)
        unused = sorted({s.name for s in self.registry.all_schemas()} - set(schemas))
        for name in unused:
            warnings.append(
                GenerationWarning(
                    kind="unused-schema",
                    subject=name,
                    message=f"schema '{name}' is registered but never referenced",
                )
            )

        security_schemes = self._security_schemes(descriptors.values())
        components = None
        if schemas or security_schemes:
            components = Components(
                schemas={name: schemas[name] for name in sorted(schemas)} or None,
                security_schemes=security_schemes or None,
            )

        document = Document(
            openapi=self.settings.openapi,
            info=self.settings.info,
            tags=list(self.settings.tags) or None,
            paths=paths,
            components=components,
        )
        for warning in warnings:
            logger.warning("%s", warning)
        logger.info(
            "Generated %d paths, %d schemas, %d warnings",
            len(paths), len(schemas), len(warnings),
        )
        return GenerationResult(document=document, warnings=warnings)

    def _index_handlers(self) -> dict[str, HandlerRegistration]:
        index: dict[str, HandlerRegistration] = {}
        for registration in self.registry.all_handlers():
            existing = index.get(registration.identifier)
            if existing is not None and existing != registration:
                raise ConfigurationError(
                    f"handler '{registration.identifier}' is registered twice with different documentation"
                )
            index[registration.identifier] = registration
        return index

    def _parse_handlers(
        self, routes: RouteTable, registrations: dict[str, HandlerRegistration]
    ) -> dict[str, HandlerDescriptor]:
        descriptors: dict[str, HandlerDescriptor] = {}
        for route in routes.routes:
            if route.handler in descriptors or route.handler not in registrations:
                continue
            registration = registrations[route.handler]
            descriptors[route.handler] = parse_handler_doc(
                registration.identifier,
                registration.doc,
                routes.shapes.get(route.handler),
                default_error_schema=self.settings.default_error_schema,
                tags=registration.tags,
                security=registration.security,
            )
        return descriptors

    def _build_paths(
        self,
        routes: list[Route],
        descriptors: dict[str, HandlerDescriptor],
        warnings: list[GenerationWarning],
    ) -> dict[str, PathItem]:
        bound: dict[tuple[str, str], str] = {}
        grouped: dict[str, dict[str, Operation]] = {}
        for route in routes:
            key = (route.path, route.method)
            if key in bound:
                raise RouteConflictError(route.path, route.method, bound[key], route.handler)
            bound[key] = route.handler

            descriptor = descriptors.get(route.handler)
            if descriptor is None:
                warnings.append(
                    GenerationWarning(
                        kind="undocumented-handler",
                        subject=route.handler,
                        message=f"{route.method.upper()} {route.path}: handler '{route.handler}' has no documentation",
                    )
                )
                operation = _fallback_operation(route)
            else:
                warnings.extend(validate_path_parameters(route.path, route.method, descriptor))
                operation = _build_operation(route, descriptor)
            grouped.setdefault(route.path, {})[route.method] = operation

        return {path: PathItem(**grouped[path]) for path in sorted(grouped)}

    def _resolve_schemas(self, paths: dict[str, PathItem]) -> dict[str, Reference | Schema]:
        registered: dict[str, list[SchemaRegistration]] = {}
        for registration in self.registry.all_schemas():
            registered.setdefault(registration.name, []).append(registration)

        pending: deque[tuple[str, str]] = deque()
        for path, item in paths.items():
            for method, operation in item.operations():
                for name in sorted({r.target_name for r in collect_references(operation) if r.is_local_schema}):
                    pending.append((name, f"{method.upper()} {path}"))

        resolved: dict[str, Reference | Schema] = {}
        while pending:
            name, referrer = pending.popleft()
            if name in resolved:
                continue
            entries = registered.get(name)
            if not entries:
                raise MissingSchemaError(name, referrer)
            schema = _unique_definition(name, entries)
            resolved[name] = schema
            for reference in collect_references(schema):
                if reference.is_local_schema and reference.target_name not in resolved:
                    pending.append((reference.target_name, f"schema '{name}'"))
        return resolved

    def _security_schemes(self, descriptors) -> dict:
        available = self.settings.security_schemes
        used: set[str] = set()
        for descriptor in descriptors:
            for name in descriptor.security:
                if name not in available:
                    raise ConfigurationError(
                        f"handler '{descriptor.identifier}' requires unknown security scheme '{name}'"
                    )
                used.add(name)
        return {name: available[name] for name in sorted(used)}


def decode_schema(registration: SchemaRegistration) -> Reference | Schema:
    """Decode a registered definition into a Reference or a Schema."""
    definition = registration.definition
    if isinstance(definition, (Reference, Schema)):
        return definition
    if isinstance(definition, (str, bytes)):
        try:
            definition = json.loads(definition)
        except json.JSONDecodeError as e:
            raise InvalidSchemaError(registration.name, f"invalid JSON: {e}") from e
    try:
        return _schema_adapter.validate_python(definition)
    except ValidationError as e:
        raise InvalidSchemaError(registration.name, str(e)) from e


def _unique_definition(name: str, entries: list[SchemaRegistration]) -> Reference | Schema:
    decoded = [decode_schema(entry) for entry in entries]
    distinct: dict[str, Reference | Schema] = {}
    for schema in decoded:
        distinct.setdefault(fingerprint(schema), schema)
    if len(distinct) > 1:
        raise ConflictingSchemaError(name, [schema.to_dict() for schema in distinct.values()])
    # Equivalent definitions may differ in key order; the emitted one must not
    # depend on registration order.
    return min(decoded, key=lambda schema: json.dumps(schema.to_dict()))


def collect_references(node) -> list[Reference]:
    """Return every Reference reachable from a model, mapping or list."""
    found: list[Reference] = []
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, Reference):
            found.append(current)
        elif isinstance(current, BaseModel):
            stack.extend(getattr(current, name) for name in type(current).model_fields)
            stack.extend((current.__pydantic_extra__ or {}).values())
        elif isinstance(current, dict):
            if isinstance(current.get(REF_KEY), str):
                found.append(Reference(ref=current[REF_KEY]))
            else:
                stack.extend(current.values())
        elif isinstance(current, (list, tuple)):
            stack.extend(current)
    return found


def _build_operation(route: Route, descriptor: HandlerDescriptor) -> Operation:
    parameters = [
        Parameter(
            name=p.name,
            location=p.location,
            description=p.description or None,
            required=p.required,
            schema_=_parameter_schema(p),
        )
        for p in descriptor.parameters
    ]

    request_body = None
    body = descriptor.request_body
    if body is not None:
        if body.schema_name:
            body_schema = Reference.to_schema(body.schema_name)
        elif body.fields:
            body_schema = Schema(
                type="object",
                properties={
                    f.name: Schema(type=f.field_type, description=f.description or None)
                    for f in body.fields
                },
            )
        else:
            body_schema = Schema(type="object")
        request_body = RequestBody(
            description=body.description or None,
            content={body.media_type: MediaType(schema_=body_schema)},
            required=body.required,
        )

    responses = {}
    for response in sorted(descriptor.responses, key=lambda r: r.status):
        content = None
        if response.content:
            content = {
                media: MediaType(schema_=Reference.to_schema(response.content[media]))
                for media in sorted(response.content)
            }
        responses[response.status] = Response(description=response.description, content=content)
    if not responses:
        responses["200"] = Response(description="Successful response")

    return Operation(
        summary=descriptor.summary or None,
        description=descriptor.description or None,
        handler_function=descriptor.identifier,
        tags=list(descriptor.tags) or None,
        parameters=parameters or None,
        request_body=request_body,
        responses=responses,
        security=[{name: []} for name in descriptor.security] or None,
    )


def _parameter_schema(parameter: ParameterDescriptor) -> Schema:
    # Only documented values are set; an explicit None would serialize as null.
    values = {}
    if parameter.example is not None:
        values["example"] = parameter.example
    if parameter.default is not None and parameter.location != "path":
        values["default"] = parameter.default
    return Schema(type="string", **values)


def _fallback_operation(route: Route) -> Operation:
    return Operation(
        summary=f"{route.method.upper()} {route.path}",
        description="No description available",
        handler_function=route.handler,
        responses={"200": Response(description="Successful response")},
    )
