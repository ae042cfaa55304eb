"""Dotted and wildcard field paths -> one nested schema tree.

``{"items.*.name": X}`` becomes an object whose ``items`` property is an
array of objects carrying ``name``. Paths may arrive in any order and may
skip levels; missing levels are synthesized as optional wrappers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Union

from schemascope.inference.schema import SchemaKind, SchemaNode

logger = logging.getLogger(__name__)

WILDCARD = "*"

Fragments = Union[Mapping[str, SchemaNode], Iterable[tuple[str, SchemaNode]]]


@dataclass
class _BuildNode:
    """Mutable tree used while paths are being inserted."""

    fragment: Optional[SchemaNode] = None
    children: dict[str, "_BuildNode"] = field(default_factory=dict)
    element: Optional["_BuildNode"] = None

    def child(self, segment: str) -> "_BuildNode":
        if segment == WILDCARD:
            if self.element is None:
                self.element = _BuildNode()
            return self.element
        if segment not in self.children:
            self.children[segment] = _BuildNode()
        return self.children[segment]


class PathExpander:
    """Rebuilds the nested tree described by a flat path -> fragment map."""

    def expand(self, fragments: Fragments) -> SchemaNode:
        """Expand fragments into a root node.

        The root is an object, or an array when paths start with ``*``.
        The last fragment written for a path wins.
        """
        items = fragments.items() if isinstance(fragments, Mapping) else fragments
        root = _BuildNode()
        for path, fragment in items:
            segments = [segment.strip() for segment in path.split(".") if segment.strip()]
            if not segments:
                logger.debug(f"Skipping empty field path {path!r}")
                continue
            current = root
            for segment in segments:
                current = current.child(segment)
            current.fragment = fragment
        return self._freeze(root, path="")

    def _freeze(self, node: _BuildNode, path: str) -> SchemaNode:
        if node.children:
            if node.element is not None:
                logger.debug(f"Wildcard and named children both declared under {path or '<root>'}; keeping named")
            properties = {
                name: self._freeze(child, f"{path}.{name}" if path else name)
                for name, child in node.children.items()
            }
            return self._wrap(node.fragment, SchemaKind.OBJECT, properties=properties)

        if node.element is not None:
            items = self._freeze(node.element, f"{path}.*" if path else "*")
            return self._wrap(node.fragment, SchemaKind.ARRAY, items=items)

        if node.fragment is not None:
            return node.fragment
        return SchemaNode.object()

    def _wrap(self, fragment: Optional[SchemaNode], kind: SchemaKind, **structure) -> SchemaNode:
        """Container node whose structure comes from children and facets from ``fragment``."""
        if fragment is None:
            return SchemaNode(kind=kind, required=False, **structure)
        constraints = fragment.constraints if fragment.kind == kind else None
        return SchemaNode(
            kind=kind,
            nullable=fragment.nullable,
            required=fragment.required,
            deprecated=fragment.deprecated,
            conditional=fragment.conditional,
            description=fragment.description,
            constraints=constraints,
            conditional_requirements=fragment.conditional_requirements,
            source_type=fragment.source_type,
            **structure,
        )


def expand_paths(fragments: Fragments) -> SchemaNode:
    """Expand with a default :class:`PathExpander`."""
    return PathExpander().expand(fragments)
