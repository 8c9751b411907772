"""Non-fatal consistency checks between routes and handler documentation."""

import re

from pydantic import BaseModel, ConfigDict

from openapi_docgen.parser.base import HandlerDescriptor

_PLACEHOLDER_RE = re.compile(r"\{([^{}]+)\}")


class GenerationWarning(BaseModel):
    """A finding that does not stop generation."""

    model_config = ConfigDict(frozen=True)

    kind: str  # unused-schema / parameter-location / undocumented-path-parameter / undocumented-handler
    subject: str
    message: str

    def __str__(self) -> str:
        return f"[{self.kind}] {self.message}"


def path_placeholders(path: str) -> list[str]:
    """Return the ``{name}`` placeholders of a path template, in order."""
    return _PLACEHOLDER_RE.findall(path)


def validate_path_parameters(
    path: str, method: str, descriptor: HandlerDescriptor
) -> list[GenerationWarning]:
    """Compare a route template against the handler's documented parameters.

    A placeholder documented under another location, a documented path
    parameter missing from the template, and an undocumented placeholder are
    all reported; none of them is fatal.
    """
    route = f"{method.upper()} {path}"
    placeholders = path_placeholders(path)
    warnings = []

    by_name: dict[str, list[str]] = {}
    for parameter in descriptor.parameters:
        by_name.setdefault(parameter.name, []).append(parameter.location)

    for name in placeholders:
        locations = by_name.get(name, [])
        if not locations:
            warnings.append(
                GenerationWarning(
                    kind="undocumented-path-parameter",
                    subject=f"{route} {name}",
                    message=f"{route}: placeholder '{{{name}}}' is not documented by '{descriptor.identifier}'",
                )
            )
        elif "path" not in locations:
            warnings.append(
                GenerationWarning(
                    kind="parameter-location",
                    subject=f"{route} {name}",
                    message=(
                        f"{route}: '{name}' appears in the path template but "
                        f"'{descriptor.identifier}' documents it as {', '.join(locations)}"
                    ),
                )
            )

    for parameter in descriptor.parameters:
        if parameter.location == "path" and parameter.name not in placeholders:
            warnings.append(
                GenerationWarning(
                    kind="parameter-location",
                    subject=f"{route} {parameter.name}",
                    message=(
                        f"{route}: path parameter '{parameter.name}' documented by "
                        f"'{descriptor.identifier}' has no placeholder in the template"
                    ),
                )
            )
    return warnings
