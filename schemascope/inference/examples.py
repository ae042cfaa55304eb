"""Example synthesis.

Walks a finished schema tree bottom-up and gives every scalar leaf one
example value. Explicit examples are kept. Otherwise the first source that
applies wins: enum, format, field name, numeric bounds, kind. A value for a
field with a pattern must match it; failing that the regex library is asked,
and a pattern it cannot satisfy leaves the field without an example.
Arrays get a one-element example when their items have one; objects and
unions are left without a value of their own.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from schemascope.inference.regex_examples import RegexExampleLibrary, clean_pattern
from schemascope.inference.schema import SchemaKind, SchemaNode

DEFAULT_FORMAT_EXAMPLES: Mapping[str, Any] = {
    "email": "user@example.com",
    "uuid": "550e8400-e29b-41d4-a716-446655440000",
    "date": "2025-01-15",
    "date-time": "2025-01-15T10:30:00Z",
    "time": "10:30:00",
    "uri": "https://example.com",
    "url": "https://example.com",
    "ipv4": "192.168.1.1",
    "ipv6": "2001:0db8:85a3::8a2e:0370:7334",
    "ip": "192.168.1.1",
    "password": "password123",
    "ulid": "01ARZ3NDEKTSV4RRFFQ69G5FAV",
    "duration": "P1D",
}

DEFAULT_KIND_EXAMPLES: Mapping[SchemaKind, Any] = {
    SchemaKind.STRING: "string",
    SchemaKind.INTEGER: 1,
    SchemaKind.NUMBER: 0.0,
    SchemaKind.BOOLEAN: True,
}


@dataclass(frozen=True)
class NameHint:
    """Example for field names containing, equal to or ending with a marker."""

    value: Any
    contains: tuple[str, ...] = ()
    exact: tuple[str, ...] = ()
    suffixes: tuple[str, ...] = ()

    def matches(self, name: str) -> bool:
        lower = name.lower()
        return (
            lower in self.exact
            or any(marker in lower for marker in self.contains)
            or any(lower.endswith(suffix) for suffix in self.suffixes)
        )


# Order matters: "country" must be seen before "count", "_at" before "date".
DEFAULT_NAME_HINTS: tuple[NameHint, ...] = (
    NameHint("user@example.com", contains=("email",)),
    NameHint("password123", contains=("password",)),
    NameHint("abc123def456", contains=("token",)),
    NameHint("+1-555-555-5555", contains=("phone",)),
    NameHint("https://example.com/image.jpg", contains=("image", "avatar", "photo")),
    NameHint("https://example.com", contains=("url", "link", "href")),
    NameHint("example-slug", contains=("slug",)),
    NameHint("#3B82F6", contains=("color", "colour")),
    NameHint("2025-01-15T10:30:00Z", suffixes=("_at", "datetime")),
    NameHint("2025-01-15", contains=("date",)),
    NameHint("123 Main St", contains=("address",)),
    NameHint("New York", contains=("city",)),
    NameHint("US", contains=("country",)),
    NameHint("10001", contains=("zip", "postal")),
    NameHint(99.99, contains=("amount", "price", "cost")),
    NameHint(40.7128, contains=("latitude",), exact=("lat",)),
    NameHint(-74.006, contains=("longitude", "lng"), exact=("lon",)),
    NameHint(25, exact=("age",)),
    NameHint(1, exact=("page",)),
    NameHint(15, exact=("per_page", "limit")),
    NameHint(1, contains=("count", "quantity")),
    NameHint(1, exact=("id",), suffixes=("_id",)),
    NameHint("active", contains=("status",)),
    NameHint("default", exact=("type",)),
    NameHint("asc", contains=("sort", "order")),
    NameHint("Example title", contains=("title",)),
    NameHint("Example name", contains=("name",)),
    NameHint("A description", contains=("description",)),
)


def _fits(kind: SchemaKind, value: Any) -> bool:
    if kind == SchemaKind.STRING:
        return isinstance(value, str)
    if kind == SchemaKind.INTEGER:
        return isinstance(value, int) and not isinstance(value, bool)
    if kind == SchemaKind.NUMBER:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if kind == SchemaKind.BOOLEAN:
        return isinstance(value, bool)
    return False


def _matches(pattern: str, value: Any) -> bool:
    try:
        return re.fullmatch(clean_pattern(pattern), str(value)) is not None
    except re.error:
        return False


@dataclass(frozen=True)
class ExampleSynthesizer:
    """Fills in example values; every table can be replaced."""

    format_examples: Mapping[str, Any] = field(default_factory=lambda: dict(DEFAULT_FORMAT_EXAMPLES))
    kind_examples: Mapping[SchemaKind, Any] = field(default_factory=lambda: dict(DEFAULT_KIND_EXAMPLES))
    name_hints: tuple[NameHint, ...] = DEFAULT_NAME_HINTS
    regex_examples: RegexExampleLibrary = field(default_factory=RegexExampleLibrary)

    def synthesize(self, node: SchemaNode, field_name: Optional[str] = None) -> SchemaNode:
        """Return ``node`` with examples filled in."""
        if node.is_placeholder:
            return node
        if node.kind == SchemaKind.OBJECT:
            if not node.properties:
                return node
            properties = {name: self.synthesize(prop, name) for name, prop in node.properties.items()}
            return node.evolve(properties=properties)
        if node.kind == SchemaKind.ARRAY:
            items = self.synthesize(node.items, None)
            if node.example is None and items.example is not None:
                return node.evolve(items=items, example=[items.example])
            return node.evolve(items=items)
        if node.kind == SchemaKind.UNION:
            return node.evolve(variants=tuple(self.synthesize(variant, field_name) for variant in node.variants))
        if node.example is not None:
            return node
        value = self.value_for(node, field_name)
        return node if value is None else node.evolve(example=value)

    def value_for(self, node: SchemaNode, field_name: Optional[str]) -> Any:
        value = self._candidate(node, field_name)
        pattern = node.constraints.pattern if node.constraints is not None else None
        if not pattern or value is None or _matches(pattern, value):
            return value
        if node.kind == SchemaKind.STRING:
            return self.regex_examples.example_for(pattern)
        return None

    def _candidate(self, node: SchemaNode, field_name: Optional[str]) -> Any:
        if node.enum_values:
            return node.enum_values[0]
        if node.format and node.format in self.format_examples:
            value = self.format_examples[node.format]
            if _fits(node.kind, value):
                return value
        if node.format == "binary":
            return None
        if field_name:
            for hint in self.name_hints:
                if hint.matches(field_name):
                    if _fits(node.kind, hint.value):
                        return hint.value
                    break
        constraints = node.constraints
        if node.kind.is_numeric and constraints is not None:
            low, high = constraints.minimum, constraints.maximum
            if low is not None and high is not None:
                middle = (low + high) / 2
                return int(round(middle)) if node.kind == SchemaKind.INTEGER else round(middle, 2)
            bound = low if low is not None else high
            if bound is not None:
                return int(bound) if node.kind == SchemaKind.INTEGER else bound
        if node.kind == SchemaKind.STRING and constraints is not None and not constraints.pattern:
            if constraints.min_length or constraints.max_length:
                length = max(constraints.min_length or 0, 6)
                if constraints.max_length is not None:
                    length = min(length, constraints.max_length)
                return ("string" * (length // 6 + 1))[:length]
        return self.kind_examples.get(node.kind)
