"""Exception hierarchy for document generation.

Every error below is fatal to one generation pass. Non-fatal findings are
reported as warnings on the generation result instead.
"""


class DocgenError(Exception):
    """Base class for all openapi-docgen errors."""


class ParseError(DocgenError):
    """Malformed handler documentation text."""

    def __init__(self, handler_id: str, line: int, message: str):
        self.handler_id = handler_id
        self.line = line
        self.message = message
        super().__init__(f"{handler_id}:{line}: {message}")


class ConfigurationError(DocgenError):
    """Invalid route table, handler registration or document settings."""


class RouteConflictError(ConfigurationError):
    """Two handlers bound to the same path and method."""

    def __init__(self, path: str, method: str, first: str, second: str):
        self.path = path
        self.method = method
        self.handlers = (first, second)
        super().__init__(
            f"{method.upper()} {path} is bound to both '{first}' and '{second}'"
        )


class SchemaError(DocgenError):
    """Base class for schema resolution failures."""


class MissingSchemaError(SchemaError):
    """A referenced schema name was never registered."""

    def __init__(self, name: str, referenced_by: str):
        self.name = name
        self.referenced_by = referenced_by
        super().__init__(f"schema '{name}' referenced by {referenced_by} is not registered")


class ConflictingSchemaError(SchemaError):
    """One schema name registered with structurally different definitions."""

    def __init__(self, name: str, definitions: list[dict]):
        self.name = name
        self.definitions = definitions
        rendered = "\n".join(f"  - {d}" for d in definitions)
        super().__init__(
            f"schema '{name}' has {len(definitions)} conflicting definitions:\n{rendered}"
        )


class InvalidSchemaError(SchemaError):
    """A schema registration could not be decoded."""

    def __init__(self, name: str, reason: str):
        self.name = name
        super().__init__(f"schema '{name}' is not a valid schema definition: {reason}")


class SerializationError(DocgenError):
    """The document could not be encoded."""


class RegistryFrozenError(DocgenError):
    """Registration attempted after the registry was frozen."""


class ManifestError(DocgenError):
    """A manifest file could not be read or validated."""
