"""Typed descriptors produced from handler documentation text.

The documentation parser turns each handler's raw text into these models;
the assembler projects them onto OpenAPI operations.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict

PARAMETER_LOCATIONS = ("path", "query", "header", "cookie")
DEFAULT_MEDIA_TYPE = "application/json"


class Descriptor(BaseModel):
    model_config = ConfigDict(frozen=True)


class HandlerShape(Descriptor):
    """Declared request/success/error type names of one handler."""

    success_type: str | None = None
    error_type: str | None = None
    fallible: bool = False  # reports an error variant without naming its schema
    request_type: str | None = None

    def effective_error(self, default_error_schema: str | None) -> str | None:
        if self.error_type:
            return self.error_type
        if self.fallible:
            return default_error_schema
        return None


class ParameterDescriptor(Descriptor):
    """A single documented parameter."""

    name: str
    location: Literal["path", "query", "header", "cookie"]
    description: str = ""
    required: bool = False
    example: str | None = None
    default: str | None = None


class FieldDescriptor(Descriptor):
    """A request body field documented inline as ``- name (type): text``."""

    name: str
    field_type: str
    description: str = ""


class RequestBodyDescriptor(Descriptor):
    media_type: str = DEFAULT_MEDIA_TYPE
    description: str = ""
    required: bool = True
    schema_name: str | None = None
    fields: tuple[FieldDescriptor, ...] = ()


class ResponseDescriptor(Descriptor):
    """One response status; ``content`` maps media type to schema name."""

    status: str
    description: str
    content: dict[str, str] | None = None
    form: Literal["terse", "elaborate", "synthesized"] = "terse"


class HandlerDescriptor(Descriptor):
    """Parsed documentation of one handler."""

    identifier: str
    summary: str = ""
    description: str = ""
    parameters: tuple[ParameterDescriptor, ...] = ()
    request_body: RequestBodyDescriptor | None = None
    responses: tuple[ResponseDescriptor, ...] = ()
    tags: tuple[str, ...] = ()
    security: tuple[str, ...] = ()

    def schema_names(self) -> set[str]:
        """Schema names this handler refers to by name."""
        names = set()
        if self.request_body and self.request_body.schema_name:
            names.add(self.request_body.schema_name)
        for response in self.responses:
            names.update((response.content or {}).values())
        return names
