"""Process-local cache shared by the source tree and the composer.

Holds two maps: parsed modules keyed by module name, and completed schema
trees keyed by the fully-qualified subject name. Reads and writes are single
dict operations; two threads racing on the same key both compute and one
result is kept, which is harmless because inference is deterministic for a
given source tree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from schemascope.inference.schema import SchemaNode
    from schemascope.inference.source_parser import ParsedModule

logger = logging.getLogger(__name__)


@dataclass
class CacheStatistics:
    """Hit/miss counters."""

    schema_hits: int = 0
    schema_misses: int = 0
    module_hits: int = 0
    module_misses: int = 0


class InferenceCache:
    """Read-through cache for parsed modules and inferred schemas."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.statistics = CacheStatistics()
        self._schemas: dict[str, SchemaNode] = {}
        self._modules: dict[str, ParsedModule] = {}

    # -------------------------------------------------------------------------
    # Schemas
    # -------------------------------------------------------------------------

    def get_schema(self, key: str) -> Optional["SchemaNode"]:
        if not self.enabled:
            return None
        node = self._schemas.get(key)
        if node is None:
            self.statistics.schema_misses += 1
        else:
            self.statistics.schema_hits += 1
        return node

    def put_schema(self, key: str, node: "SchemaNode") -> None:
        if self.enabled:
            self._schemas[key] = node

    # -------------------------------------------------------------------------
    # Modules
    # -------------------------------------------------------------------------

    def get_module(self, module_name: str) -> Optional["ParsedModule"]:
        module = self._modules.get(module_name)
        if module is None:
            self.statistics.module_misses += 1
        else:
            self.statistics.module_hits += 1
        return module

    def put_module(self, module_name: str, module: "ParsedModule") -> None:
        self._modules[module_name] = module

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    def invalidate(self, name: str) -> None:
        """Drop the cached schemas of a subject, or a parsed module.

        Schema keys are the subject name, optionally suffixed with
        ``#<direction>``. Dropping a module also drops every cached schema,
        since any tree may embed a type declared in it.
        """
        for key in [key for key in self._schemas if key.split("#", 1)[0] == name]:
            del self._schemas[key]
        if self._modules.pop(name, None) is not None:
            self._schemas.clear()
        logger.debug(f"Invalidated {name}")

    def clear(self) -> None:
        self._schemas.clear()
        self._modules.clear()

    def __len__(self) -> int:
        return len(self._schemas)
