"""Descriptor registry.

Collects handler documentation and schema definitions submitted from any
number of independent call sites. The registry never validates what it is
given: conflicting or unused schemas are the assembler's concern.
"""

import logging
import threading
from typing import Any

from pydantic import BaseModel, ConfigDict

from openapi_docgen.errors import RegistryFrozenError

logger = logging.getLogger(__name__)


class HandlerRegistration(BaseModel):
    """Raw documentation of one handler, as extracted at its definition site."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    doc: str = ""
    tags: tuple[str, ...] = ()
    security: tuple[str, ...] = ()


class SchemaRegistration(BaseModel):
    """A named schema definition: JSON text, a mapping, or a schema model."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    definition: Any


class Registry:
    """Append-only store read once, in full, by the assembler."""

    def __init__(self):
        self._lock = threading.Lock()
        self._handlers: list[HandlerRegistration] = []
        self._schemas: list[SchemaRegistration] = []
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register_handler(
        self,
        identifier: str,
        doc: str = "",
        tags: list[str] | tuple[str, ...] = (),
        security: list[str] | tuple[str, ...] = (),
    ) -> HandlerRegistration:
        entry = HandlerRegistration(
            identifier=identifier, doc=doc, tags=tuple(tags), security=tuple(security)
        )
        self._append(self._handlers, entry)
        return entry

    def register_schema(self, name: str, definition: Any) -> SchemaRegistration:
        entry = SchemaRegistration(name=name, definition=definition)
        self._append(self._schemas, entry)
        return entry

    def _append(self, target: list, entry: BaseModel) -> None:
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(f"registry is frozen; cannot register {entry!r}")
            target.append(entry)

    def freeze(self) -> None:
        """Mark the quiescent point: no registrations are accepted afterwards."""
        with self._lock:
            self._frozen = True
        logger.debug(
            "Registry frozen with %d handlers and %d schemas",
            len(self._handlers),
            len(self._schemas),
        )

    def all_handlers(self) -> list[HandlerRegistration]:
        with self._lock:
            return list(self._handlers)

    def all_schemas(self) -> list[SchemaRegistration]:
        with self._lock:
            return list(self._schemas)
