"""Handler documentation parser.

Parses the structured text written above a handler into a
:class:`HandlerDescriptor`. The grammar is line oriented::

    Get user by ID

    Longer description, possibly several paragraphs.

    # Parameters
    - id (path): The unique identifier of the user
    - verbose (query): Include audit fields [example: true, default: false]

    # Request Body
    Content-Type: application/json
    Schema: UpdateUserRequest

    # Responses
    - 404: User not found
    - 200:
      description: The user
      content:
        application/json:
          schema: UserResponse

Responses come in two tiers: terse ``- <status>: <text>`` lines and elaborate
``- <status>:`` items followed by an indented YAML block. Responses derived
from the handler's declared success and error types, and a 401 for handlers
that require a security scheme, are synthesized for every status the text
does not list explicitly.
"""

import re
import textwrap

import yaml

from openapi_docgen.errors import ParseError
from openapi_docgen.parser.base import (
    DEFAULT_MEDIA_TYPE,
    PARAMETER_LOCATIONS,
    FieldDescriptor,
    HandlerDescriptor,
    HandlerShape,
    ParameterDescriptor,
    RequestBodyDescriptor,
    ResponseDescriptor,
)

SECTION_PARAMETERS = "Parameters"
SECTION_REQUEST_BODY = "Request Body"
SECTION_RESPONSES = "Responses"

_SECTION_RE = re.compile(r"^#{1,2}\s+(Parameters|Request Body|Responses)\s*$")
_ITEM_RE = re.compile(r"^-\s+(?P<name>[^\s(]+)\s*\((?P<kind>[^)]*)\)\s*:\s*(?P<description>.*)$")
_RESPONSE_RE = re.compile(r"^-\s+(?P<status>[^:\s]+)\s*:\s*(?P<description>.*)$")
_STATUS_RE = re.compile(r"^\d{3}$")
_CONTENT_TYPE_RE = re.compile(r"^Content-Type:\s*(?P<media>\S+)\s*$")
_SCHEMA_LINE_RE = re.compile(r"^Schema:\s*(?P<name>\S+)\s*$")
_REQUIRED_LINE_RE = re.compile(r"^Required:\s*(?P<value>\S+)\s*$")
_METADATA_RE = re.compile(r"\s*\[(?P<metadata>[^\[\]]*)\]\s*$")

METADATA_KEYS = ("example", "default")
ELABORATE_KEYS = {"description", "content"}
UNAUTHORIZED_DESCRIPTION = "Authentication token required or invalid"

Line = tuple[int, str]


def parse_handler_doc(
    identifier: str,
    text: str,
    shape: HandlerShape | None = None,
    *,
    default_error_schema: str | None = None,
    tags: tuple[str, ...] | list[str] = (),
    security: tuple[str, ...] | list[str] = (),
) -> HandlerDescriptor:
    """Parse one handler's documentation text.

    Raises ParseError carrying the handler identifier and the 1-based line
    number of the offending line.
    """
    shape = shape or HandlerShape()
    preamble, sections = _split_sections(identifier, _dedent(text))

    summary = ""
    body = preamble
    for index, (_, line) in enumerate(preamble):
        if line.strip():
            summary = line.strip()
            body = preamble[index + 1:]
            break

    parameters: tuple[ParameterDescriptor, ...] = ()
    if SECTION_PARAMETERS in sections:
        parameters = _parse_parameters(identifier, sections[SECTION_PARAMETERS])

    request_body = None
    if SECTION_REQUEST_BODY in sections:
        request_body = _parse_request_body(identifier, sections[SECTION_REQUEST_BODY])
    if shape.request_type:
        if request_body is None:
            request_body = RequestBodyDescriptor(schema_name=shape.request_type)
        elif request_body.schema_name is None and not request_body.fields:
            request_body = request_body.model_copy(update={"schema_name": shape.request_type})

    error_schema = shape.effective_error(default_error_schema)
    explicit: list[ResponseDescriptor] = []
    if SECTION_RESPONSES in sections:
        explicit = _parse_responses(
            identifier, sections[SECTION_RESPONSES], shape.success_type, error_schema
        )

    synthesized = _synthesize(shape.success_type, error_schema, authenticated=bool(security))
    return HandlerDescriptor(
        identifier=identifier,
        summary=summary,
        description=_join_paragraphs(body),
        parameters=parameters,
        request_body=request_body,
        responses=_merge_responses(explicit, synthesized),
        tags=tuple(tags),
        security=tuple(security),
    )


def _dedent(text: str) -> list[Line]:
    """Strip the first line and the common margin of the rest, keeping line numbers."""
    lines = text.expandtabs().splitlines()
    margins = [len(line) - len(line.lstrip()) for line in lines[1:] if line.strip()]
    margin = min(margins, default=0)
    result = []
    for number, line in enumerate(lines, start=1):
        if number == 1:
            result.append((number, line.strip()))
        else:
            result.append((number, line[margin:].rstrip()))
    return result


def _split_sections(identifier: str, lines: list[Line]) -> tuple[list[Line], dict[str, list[Line]]]:
    preamble: list[Line] = []
    sections: dict[str, list[Line]] = {}
    headers: dict[str, int] = {}
    current = preamble
    for number, line in lines:
        match = _SECTION_RE.match(line)
        if match:
            name = match.group(1)
            if name in sections:
                raise ParseError(
                    identifier, number,
                    f"section '# {name}' repeated (first at line {headers[name]})",
                )
            headers[name] = number
            current = sections[name] = []
        else:
            current.append((number, line))

    for name, section_lines in sections.items():
        if not any(line.strip() for _, line in section_lines):
            raise ParseError(identifier, headers[name], f"section '# {name}' has no content")
    return preamble, sections


def _join_paragraphs(lines: list[Line]) -> str:
    """Join lines, collapsing runs of blank lines into one paragraph break."""
    out: list[str] = []
    for _, line in lines:
        if line.strip():
            out.append(line)
        elif out and out[-1] != "":
            out.append("")
    while out and out[-1] == "":
        out.pop()
    return "\n".join(out)


def split_metadata(description: str) -> tuple[str, str | None, str | None]:
    """Split ``text [example: x, default: y]`` into text, example and default."""
    match = _METADATA_RE.search(description)
    if not match:
        return description, None, None
    values: dict[str, str] = {}
    for part in match.group("metadata").split(","):
        key, sep, value = part.partition(":")
        key = key.strip()
        if not sep or key not in METADATA_KEYS:
            # Brackets that are not metadata belong to the description.
            return description, None, None
        values[key] = value.strip()
    return description[: match.start()].strip(), values.get("example"), values.get("default")


def _parse_parameters(identifier: str, lines: list[Line]) -> tuple[ParameterDescriptor, ...]:
    parameters = []
    seen: set[tuple[str, str]] = set()
    for number, line in lines:
        text = line.strip()
        if not text:
            continue
        match = _ITEM_RE.match(text)
        if not match:
            raise ParseError(
                identifier, number,
                f"malformed parameter {text!r}, expected '- <name> (<location>): <description>'",
            )
        name = match.group("name")
        location = match.group("kind").strip()
        if location not in PARAMETER_LOCATIONS:
            raise ParseError(
                identifier, number,
                f"unknown location '{location}' for parameter '{name}', "
                f"expected one of {', '.join(PARAMETER_LOCATIONS)}",
            )
        if (name, location) in seen:
            raise ParseError(identifier, number, f"duplicate {location} parameter '{name}'")
        seen.add((name, location))

        description, example, default = split_metadata(match.group("description").strip())
        parameters.append(
            ParameterDescriptor(
                name=name,
                location=location,
                description=description,
                required=location == "path",
                example=example,
                default=default,
            )
        )
    return tuple(parameters)


def _parse_request_body(identifier: str, lines: list[Line]) -> RequestBodyDescriptor:
    content = list(lines)
    while content and not content[0][1].strip():
        content.pop(0)
    number, first = content[0]
    match = _CONTENT_TYPE_RE.match(first.strip())
    if not match:
        raise ParseError(
            identifier, number,
            f"request body must start with 'Content-Type: <media-type>', got {first.strip()!r}",
        )
    media_type = match.group("media")

    schema_name = None
    required = True
    fields: list[FieldDescriptor] = []
    description: list[Line] = []
    for number, line in content[1:]:
        text = line.strip()
        schema_match = _SCHEMA_LINE_RE.match(text)
        required_match = _REQUIRED_LINE_RE.match(text)
        field_match = _ITEM_RE.match(text)
        if schema_match:
            if schema_name is not None:
                raise ParseError(identifier, number, "request body names more than one schema")
            schema_name = schema_match.group("name")
        elif required_match:
            value = required_match.group("value").lower()
            if value not in ("true", "false"):
                raise ParseError(identifier, number, f"'Required:' expects true or false, got {value!r}")
            required = value == "true"
        elif field_match:
            fields.append(
                FieldDescriptor(
                    name=field_match.group("name"),
                    field_type=field_match.group("kind").strip(),
                    description=field_match.group("description").strip(),
                )
            )
        else:
            description.append((number, line))
            continue
        if schema_name is not None and fields:
            raise ParseError(
                identifier, number, "request body cannot have both a schema and inline fields"
            )

    return RequestBodyDescriptor(
        media_type=media_type,
        description=_join_paragraphs(description),
        required=required,
        schema_name=schema_name,
        fields=tuple(fields),
    )


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())


def _parse_responses(
    identifier: str,
    lines: list[Line],
    success_type: str | None,
    error_schema: str | None,
) -> list[ResponseDescriptor]:
    responses: list[ResponseDescriptor] = []
    seen: dict[str, int] = {}
    index = 0
    while index < len(lines):
        number, line = lines[index]
        index += 1
        if not line.strip():
            continue
        match = _RESPONSE_RE.match(line.strip())
        if not match:
            raise ParseError(
                identifier, number,
                f"malformed response {line.strip()!r}, expected '- <status>: <description>'",
            )
        status = match.group("status")
        if not _STATUS_RE.match(status):
            raise ParseError(identifier, number, f"invalid status code '{status}', expected 3 digits")
        if status in seen:
            raise ParseError(
                identifier, number, f"duplicate response status {status} (first at line {seen[status]})"
            )
        seen[status] = number

        item_indent = _indent(line)
        block: list[Line] = []
        while index < len(lines):
            next_number, next_line = lines[index]
            if next_line.strip() and _indent(next_line) <= item_indent:
                break
            block.append((next_number, next_line))
            index += 1
        while block and not block[-1][1].strip():
            block.pop()

        description = match.group("description").strip()
        if description:
            if block:
                raise ParseError(
                    identifier, block[0][0],
                    f"response {status} mixes terse and elaborate forms",
                )
            responses.append(
                ResponseDescriptor(
                    status=status,
                    description=description,
                    content=_terse_content(status, success_type, error_schema),
                    form="terse",
                )
            )
        else:
            responses.append(_parse_elaborate(identifier, number, status, block))
    return responses


def _terse_content(
    status: str, success_type: str | None, error_schema: str | None
) -> dict[str, str] | None:
    code = int(status)
    if 200 <= code < 300 and code != 204 and success_type:
        return {DEFAULT_MEDIA_TYPE: success_type}
    if code >= 400 and error_schema:
        return {DEFAULT_MEDIA_TYPE: error_schema}
    return None


def _parse_elaborate(
    identifier: str, number: int, status: str, block: list[Line]
) -> ResponseDescriptor:
    if not block:
        raise ParseError(
            identifier, number,
            f"response {status} has neither a description nor an indented block",
        )
    first_line = block[0][0]
    try:
        data = yaml.safe_load(textwrap.dedent("\n".join(line for _, line in block)))
    except yaml.YAMLError as e:
        line = first_line
        mark = getattr(e, "problem_mark", None)
        if mark is not None:
            line += mark.line
        raise ParseError(identifier, line, f"invalid block for response {status}: {e}") from e

    if not isinstance(data, dict):
        raise ParseError(identifier, first_line, f"response {status} block must be a mapping")
    unknown = set(data) - ELABORATE_KEYS
    if unknown:
        raise ParseError(
            identifier, first_line,
            f"response {status} has unknown keys: {', '.join(sorted(map(str, unknown)))}",
        )
    description = data.get("description")
    if not isinstance(description, str) or not description.strip():
        raise ParseError(identifier, number, f"response {status} is missing 'description:'")

    content = data.get("content")
    if not isinstance(content, dict) or not content:
        raise ParseError(identifier, number, f"response {status} is missing a 'schema:' line")
    resolved: dict[str, str] = {}
    for media_type, media in content.items():
        if not isinstance(media, dict) or "schema" not in media:
            raise ParseError(
                identifier, number,
                f"response {status} media type '{media_type}' is missing a 'schema:' line",
            )
        if set(media) != {"schema"}:
            raise ParseError(
                identifier, number,
                f"response {status} media type '{media_type}' only accepts 'schema:'",
            )
        schema = media["schema"]
        if not isinstance(schema, str) or not schema.strip():
            raise ParseError(identifier, number, f"response {status} schema must be a type name")
        resolved[str(media_type)] = schema.strip()

    return ResponseDescriptor(
        status=status, description=description.strip(), content=resolved, form="elaborate"
    )


def _synthesize(
    success_type: str | None, error_schema: str | None, authenticated: bool = False
) -> list[ResponseDescriptor]:
    responses = []
    if success_type:
        responses.append(
            ResponseDescriptor(
                status="200",
                description="Successful response",
                content={DEFAULT_MEDIA_TYPE: success_type},
                form="synthesized",
            )
        )
    if error_schema:
        for status, description in (("400", "Bad request"), ("500", "Internal server error")):
            responses.append(
                ResponseDescriptor(
                    status=status,
                    description=description,
                    content={DEFAULT_MEDIA_TYPE: error_schema},
                    form="synthesized",
                )
            )
    if authenticated:
        responses.append(
            ResponseDescriptor(
                status="401",
                description=UNAUTHORIZED_DESCRIPTION,
                content={DEFAULT_MEDIA_TYPE: error_schema} if error_schema else None,
                form="synthesized",
            )
        )
    return responses


def _merge_responses(
    explicit: list[ResponseDescriptor], synthesized: list[ResponseDescriptor]
) -> tuple[ResponseDescriptor, ...]:
    """Explicit responses replace synthesized ones status by status."""
    listed = {response.status for response in explicit}
    merged = explicit + [r for r in synthesized if r.status not in listed]
    return tuple(sorted(merged, key=lambda r: r.status))
