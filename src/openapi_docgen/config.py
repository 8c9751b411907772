"""Document-level settings: metadata, tags, security schemes and defaults."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from openapi_docgen.schema.openapi import OPENAPI_VERSION, Info, SecurityScheme, TagObject


class DocumentSettings(BaseModel):
    """Settings shared by every generation pass."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    openapi: str = OPENAPI_VERSION
    info: Info
    tags: list[TagObject] = []
    security_schemes: dict[str, SecurityScheme] = {}
    # Schema used for error responses of handlers that report an error
    # variant without naming its type.
    default_error_schema: str | None = None

    @classmethod
    def create(cls, title: str, version: str, description: str | None = None) -> "DocumentSettings":
        return cls(info=Info(title=title, version=version, description=description))

    def with_overrides(self, title: str | None = None, version: str | None = None) -> "DocumentSettings":
        updates = {}
        if title:
            updates["title"] = title
        if version:
            updates["version"] = version
        if not updates:
            return self
        return self.model_copy(update={"info": self.info.model_copy(update=updates)})
