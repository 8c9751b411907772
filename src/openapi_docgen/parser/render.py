"""Render a HandlerDescriptor back to canonical documentation text.

Synthesized responses are left out: parsing the rendered text with the same
handler shape synthesizes them again.
"""

import yaml

from openapi_docgen.parser.base import HandlerDescriptor, ParameterDescriptor, ResponseDescriptor


def render_handler_doc(descriptor: HandlerDescriptor) -> str:
    """Return canonical documentation text for a parsed handler."""
    lines: list[str] = []
    if descriptor.summary:
        lines.append(descriptor.summary)
    if descriptor.description:
        lines.extend(["", descriptor.description])

    if descriptor.parameters:
        lines.extend(["", "# Parameters"])
        lines.extend(_render_parameter(p) for p in descriptor.parameters)

    body = descriptor.request_body
    if body is not None:
        lines.extend(["", "# Request Body", f"Content-Type: {body.media_type}"])
        if body.schema_name:
            lines.append(f"Schema: {body.schema_name}")
        if not body.required:
            lines.append("Required: false")
        for field in body.fields:
            lines.append(f"- {field.name} ({field.field_type}): {field.description}".rstrip())
        if body.description:
            lines.append(body.description)

    explicit = [r for r in descriptor.responses if r.form != "synthesized"]
    if explicit:
        lines.extend(["", "# Responses"])
        for response in explicit:
            lines.extend(_render_response(response))

    return "\n".join(lines).strip("\n") + "\n"


def _render_parameter(parameter: ParameterDescriptor) -> str:
    text = f"- {parameter.name} ({parameter.location}): {parameter.description}"
    metadata = [
        f"{key}: {value}"
        for key, value in (("example", parameter.example), ("default", parameter.default))
        if value is not None
    ]
    if metadata:
        text += f" [{', '.join(metadata)}]"
    return text.rstrip()


def _render_response(response: ResponseDescriptor) -> list[str]:
    if response.form == "terse":
        return [f"- {response.status}: {response.description}"]

    block = {
        "description": response.description,
        "content": {media: {"schema": name} for media, name in (response.content or {}).items()},
    }
    dumped = yaml.safe_dump(block, sort_keys=False, default_flow_style=False, allow_unicode=True)
    return [f"- {response.status}:"] + [f"  {line}" for line in dumped.splitlines()]
