"""Schema tree produced by the inference engine.

This module provides:
- SchemaKind enum for the node kinds the engine emits
- Constraints and ConditionalRequirement value objects
- SchemaNode, the immutable tree every component composes
- OpenAPI-flavoured dict rendering for the document layer
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Iterator, Optional


# =============================================================================
# Exceptions
# =============================================================================


class InferenceError(Exception):
    """Base class for errors raised inside the inference engine.

    None of these escape the public API; they mark "no information here"
    for the component that catches them.
    """

    pass


class SchemaInvariantError(ValueError):
    """Raised when a SchemaNode is built with facets that contradict its kind."""

    pass


# =============================================================================
# Enums
# =============================================================================


class SchemaKind(str, Enum):
    """Kinds of schema nodes."""

    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    UNION = "union"

    @property
    def is_scalar(self) -> bool:
        return self not in (SchemaKind.ARRAY, SchemaKind.OBJECT, SchemaKind.UNION)

    @property
    def is_numeric(self) -> bool:
        return self in (SchemaKind.INTEGER, SchemaKind.NUMBER)


CIRCULAR_REFERENCE_PREFIX = "circular reference to"
DEPTH_LIMIT_PREFIX = "maximum nesting depth reached at"


# =============================================================================
# Value Objects
# =============================================================================


@dataclass(frozen=True)
class Constraints:
    """Numeric, length and pattern constraints of a node."""

    minimum: Optional[float] = None
    maximum: Optional[float] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min_items: Optional[int] = None
    max_items: Optional[int] = None
    pattern: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def merged(self, other: Optional["Constraints"]) -> "Constraints":
        """Return constraints where every facet set on ``other`` wins."""
        if other is None:
            return self
        changes = {
            f.name: getattr(other, f.name)
            for f in fields(other)
            if getattr(other, f.name) is not None
        }
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        keys = {
            "minimum": "minimum",
            "maximum": "maximum",
            "min_length": "minLength",
            "max_length": "maxLength",
            "min_items": "minItems",
            "max_items": "maxItems",
            "pattern": "pattern",
        }
        return {
            out_key: getattr(self, attr)
            for attr, out_key in keys.items()
            if getattr(self, attr) is not None
        }


@dataclass(frozen=True)
class ConditionalRequirement:
    """A requirement that only applies when another field satisfies a predicate."""

    kind: str
    fields: tuple[str, ...]
    value: Optional[str] = None
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.kind, "description": self.description}
        if len(self.fields) == 1 and self.value is not None:
            data["field"] = self.fields[0]
            data["value"] = self.value
        else:
            data["fields"] = list(self.fields)
        return data


# =============================================================================
# Schema Node
# =============================================================================


@dataclass(frozen=True)
class SchemaNode:
    """An inferred data shape.

    Exactly one of ``properties``/``items``/``variants`` is populated and only
    for the matching kind. Nodes are never mutated; use :meth:`evolve`.
    """

    kind: SchemaKind
    format: Optional[str] = None
    nullable: bool = False
    required: bool = False
    deprecated: bool = False
    conditional: bool = False
    enum_values: Optional[tuple[Any, ...]] = None
    properties: Optional[dict[str, "SchemaNode"]] = None
    items: Optional["SchemaNode"] = None
    variants: Optional[tuple["SchemaNode", ...]] = None
    example: Any = None
    description: Optional[str] = None
    constraints: Optional[Constraints] = None
    conditional_requirements: tuple[ConditionalRequirement, ...] = field(default_factory=tuple)
    source_type: Optional[str] = None
    circular_ref: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.kind, SchemaKind):
            object.__setattr__(self, "kind", SchemaKind(self.kind))
        if self.enum_values is not None and not isinstance(self.enum_values, tuple):
            object.__setattr__(self, "enum_values", tuple(self.enum_values))
        if self.variants is not None and not isinstance(self.variants, tuple):
            object.__setattr__(self, "variants", tuple(self.variants))

        if self.kind == SchemaKind.OBJECT:
            if self.properties is None:
                object.__setattr__(self, "properties", {})
            if self.items is not None or self.variants is not None:
                raise SchemaInvariantError("object nodes carry properties only")
        elif self.kind == SchemaKind.ARRAY:
            if self.items is None:
                raise SchemaInvariantError("array nodes must carry items")
            if self.properties is not None or self.variants is not None:
                raise SchemaInvariantError("array nodes carry items only")
        elif self.kind == SchemaKind.UNION:
            if not self.variants:
                raise SchemaInvariantError("union nodes must carry variants")
            if self.properties is not None or self.items is not None:
                raise SchemaInvariantError("union nodes carry variants only")
        elif self.properties is not None or self.items is not None or self.variants is not None:
            raise SchemaInvariantError(f"{self.kind.value} nodes cannot carry children")

    # -------------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------------

    @classmethod
    def string(cls, format: Optional[str] = None, **facets: Any) -> "SchemaNode":
        return cls(kind=SchemaKind.STRING, format=format, **facets)

    @classmethod
    def integer(cls, format: Optional[str] = None, **facets: Any) -> "SchemaNode":
        return cls(kind=SchemaKind.INTEGER, format=format, **facets)

    @classmethod
    def number(cls, format: Optional[str] = None, **facets: Any) -> "SchemaNode":
        return cls(kind=SchemaKind.NUMBER, format=format, **facets)

    @classmethod
    def boolean(cls, **facets: Any) -> "SchemaNode":
        return cls(kind=SchemaKind.BOOLEAN, **facets)

    @classmethod
    def object(cls, properties: Optional[dict[str, "SchemaNode"]] = None, **facets: Any) -> "SchemaNode":
        return cls(kind=SchemaKind.OBJECT, properties=dict(properties or {}), **facets)

    @classmethod
    def array(cls, items: Optional["SchemaNode"] = None, **facets: Any) -> "SchemaNode":
        return cls(kind=SchemaKind.ARRAY, items=items or cls.string(), **facets)

    @classmethod
    def union(cls, variants: list["SchemaNode"], **facets: Any) -> "SchemaNode":
        return cls(kind=SchemaKind.UNION, variants=tuple(variants), **facets)

    @classmethod
    def scalar(cls, kind: SchemaKind, format: Optional[str] = None, **facets: Any) -> "SchemaNode":
        """Build a node of any kind, filling in empty children for containers."""
        kind = SchemaKind(kind)
        if kind == SchemaKind.OBJECT:
            return cls.object(**facets)
        if kind == SchemaKind.ARRAY:
            return cls.array(**facets)
        return cls(kind=kind, format=format, **facets)

    @classmethod
    def circular(cls, type_name: str) -> "SchemaNode":
        """Terminal placeholder emitted when a type is already being expanded."""
        return cls.object(
            description=f"{CIRCULAR_REFERENCE_PREFIX} {type_name}",
            source_type=type_name,
            circular_ref=type_name,
        )

    @classmethod
    def depth_limited(cls, type_name: str) -> "SchemaNode":
        """Terminal placeholder emitted when the nesting budget is exhausted."""
        return cls.object(
            description=f"{DEPTH_LIMIT_PREFIX} {type_name}",
            source_type=type_name,
            circular_ref=type_name,
        )

    # -------------------------------------------------------------------------
    # Composition
    # -------------------------------------------------------------------------

    def evolve(self, **changes: Any) -> "SchemaNode":
        """Return a copy with ``changes`` applied."""
        if "properties" in changes and changes["properties"] is not None:
            changes["properties"] = dict(changes["properties"])
        return replace(self, **changes)

    def with_property(self, name: str, node: "SchemaNode") -> "SchemaNode":
        if self.kind != SchemaKind.OBJECT:
            raise SchemaInvariantError("only object nodes have properties")
        properties = dict(self.properties or {})
        properties[name] = node
        return self.evolve(properties=properties)

    def add_description(self, text: Optional[str]) -> "SchemaNode":
        """Append ``text`` to the description unless it is already there."""
        if not text:
            return self
        if not self.description:
            return self.evolve(description=text)
        if text in self.description:
            return self
        return self.evolve(description=f"{self.description} {text}")

    @property
    def is_placeholder(self) -> bool:
        return self.circular_ref is not None

    @property
    def required_properties(self) -> list[str]:
        if not self.properties:
            return []
        return [name for name, prop in self.properties.items() if prop.required]

    def children(self) -> Iterator["SchemaNode"]:
        if self.properties:
            yield from self.properties.values()
        if self.items is not None:
            yield self.items
        if self.variants:
            yield from self.variants

    def walk(self) -> Iterator["SchemaNode"]:
        """Yield this node and every descendant, depth first."""
        stack: list[SchemaNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(list(node.children())))

    def has_placeholder(self) -> bool:
        return any(node.is_placeholder for node in self.walk())

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Render as an OpenAPI 3 schema object."""
        data: dict[str, Any] = {}
        if self.kind == SchemaKind.UNION:
            data["oneOf"] = [variant.to_dict() for variant in self.variants or ()]
        else:
            data["type"] = self.kind.value
        if self.format:
            data["format"] = self.format
        if self.nullable:
            data["nullable"] = True
        if self.description:
            data["description"] = self.description
        if self.deprecated:
            data["deprecated"] = True
        if self.enum_values is not None:
            data["enum"] = list(self.enum_values)
        if self.constraints is not None:
            data.update(self.constraints.to_dict())
        if self.kind == SchemaKind.OBJECT:
            data["properties"] = {
                name: prop.to_dict() for name, prop in (self.properties or {}).items()
            }
            required = self.required_properties
            if required:
                data["required"] = required
        if self.kind == SchemaKind.ARRAY and self.items is not None:
            data["items"] = self.items.to_dict()
        if self.example is not None:
            data["example"] = self.example
        if self.conditional:
            data["x-conditional"] = True
        if self.conditional_requirements:
            data["x-conditional-required"] = [
                requirement.to_dict() for requirement in self.conditional_requirements
            ]
        return data
