"""Naming heuristics.

Field names, helper-call names and handler names are mapped to likely
schema types through ordered, immutable rule tables. The first matching rule
wins. Every table can be swapped through :meth:`NamingHeuristics.with_rules`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Callable, Optional

from schemascope.inference.schema import SchemaKind, SchemaNode

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def to_snake(name: str) -> str:
    """``createdAt`` -> ``created_at``, ``user-id`` -> ``user_id``."""
    return _CAMEL_BOUNDARY.sub("_", name).replace("-", "_").lower()


# =============================================================================
# Rules
# =============================================================================


@dataclass(frozen=True)
class NamingRule:
    """Maps a field name to a kind and format.

    A name matches when it equals one of ``exact``, starts with one of
    ``prefixes`` or ends with one of ``suffixes``. Names are compared in
    snake case.
    """

    kind: SchemaKind
    format: Optional[str] = None
    exact: tuple[str, ...] = ()
    prefixes: tuple[str, ...] = ()
    suffixes: tuple[str, ...] = ()

    def matches(self, name: str) -> bool:
        snake = to_snake(name)
        return (
            snake in self.exact
            or any(snake.startswith(prefix) for prefix in self.prefixes)
            or any(snake.endswith(suffix) for suffix in self.suffixes)
        )

    def node(self, **facets) -> SchemaNode:
        return SchemaNode.scalar(self.kind, format=self.format, **facets)


@dataclass(frozen=True)
class HelperRule:
    """Maps the callee of a value-producing call to a kind and format.

    ``names`` are compared against the full dotted callee and its last
    segment; ``prefixes`` against the last segment only.
    """

    kind: SchemaKind
    format: Optional[str] = None
    names: tuple[str, ...] = ()
    prefixes: tuple[str, ...] = ()
    suffixes: tuple[str, ...] = ()

    def matches(self, callee: str) -> bool:
        base = callee.rsplit(".", 1)[-1]
        return (
            callee in self.names
            or base in self.names
            or any(base.startswith(prefix) for prefix in self.prefixes)
            or any(base.endswith(suffix) for suffix in self.suffixes)
        )

    def node(self, **facets) -> SchemaNode:
        return SchemaNode.scalar(self.kind, format=self.format, **facets)


def _record_fields() -> dict[str, SchemaNode]:
    return {
        "id": SchemaNode.integer(required=True),
        "created_at": SchemaNode.string(format="date-time"),
        "updated_at": SchemaNode.string(format="date-time"),
    }


def _record_list() -> SchemaNode:
    return SchemaNode.array(items=SchemaNode.object(properties=_record_fields()))


def _record() -> SchemaNode:
    return SchemaNode.object(properties=_record_fields())


def _message() -> SchemaNode:
    return SchemaNode.object(properties={"message": SchemaNode.string(required=True)})


@dataclass(frozen=True)
class MethodShapeRule:
    """Stock response shape for handlers whose name starts with a verb."""

    verbs: tuple[str, ...]
    build: Callable[[], SchemaNode]

    def matches(self, method_name: str) -> bool:
        snake = to_snake(method_name)
        return any(snake == verb or snake.startswith(f"{verb}_") for verb in self.verbs)


# =============================================================================
# Default tables
# =============================================================================


DEFAULT_FIELD_RULES: tuple[NamingRule, ...] = (
    NamingRule(SchemaKind.INTEGER, exact=("id",), suffixes=("_id",)),
    NamingRule(SchemaKind.STRING, "date-time", suffixes=("_at",)),
    NamingRule(SchemaKind.STRING, "date", suffixes=("_date",), exact=("date",)),
    NamingRule(SchemaKind.STRING, "email", exact=("email",), suffixes=("_email",)),
    NamingRule(SchemaKind.STRING, "uuid", exact=("uuid",), suffixes=("_uuid",)),
    NamingRule(SchemaKind.STRING, "uri", exact=("url", "uri", "link"), suffixes=("_url", "_uri")),
    NamingRule(SchemaKind.STRING, "password", exact=("password",), suffixes=("_password",)),
    NamingRule(SchemaKind.BOOLEAN, prefixes=("is_", "has_", "can_", "should_")),
    NamingRule(
        SchemaKind.NUMBER,
        "double",
        exact=("price", "amount", "total", "balance", "cost"),
        suffixes=("_price", "_amount", "_total"),
    ),
    NamingRule(
        SchemaKind.INTEGER,
        exact=("count", "quantity", "age", "position", "order"),
        suffixes=("_count",),
    ),
)

DEFAULT_HELPER_RULES: tuple[HelperRule, ...] = (
    HelperRule(SchemaKind.STRING, "date-time", names=("isoformat", "to_iso", "to_iso_string", "to_datetime_string")),
    HelperRule(SchemaKind.STRING, "date", names=("to_date_string", "date_string")),
    HelperRule(SchemaKind.STRING, names=("strftime", "format", "str", "upper", "lower", "strip", "title", "join")),
    HelperRule(SchemaKind.STRING, names=("json.dumps", "dumps")),
    HelperRule(SchemaKind.INTEGER, names=("len", "count", "int", "sum"), suffixes=("_count",)),
    HelperRule(SchemaKind.NUMBER, names=("float", "round", "Decimal", "avg", "mean", "timestamp")),
    HelperRule(SchemaKind.BOOLEAN, names=("bool", "exists", "any", "all"), prefixes=("is_", "has_")),
    HelperRule(SchemaKind.ARRAY, names=("list", "sorted", "to_list", "tolist", "values_list", "split", "keys")),
    HelperRule(SchemaKind.OBJECT, names=("dict", "to_dict", "as_dict", "model_dump", "json.loads", "loads")),
)

DEFAULT_METHOD_RULES: tuple[MethodShapeRule, ...] = (
    MethodShapeRule(("list", "index", "search", "all"), _record_list),
    MethodShapeRule(("show", "get", "retrieve", "read", "create", "store", "update", "patch"), _record),
    MethodShapeRule(("delete", "destroy", "remove"), _message),
)

_IRREGULAR_PLURALS = {
    "children": "child",
    "people": "person",
    "men": "man",
    "women": "woman",
    "data": "datum",
    "media": "medium",
    "criteria": "criterion",
}

_UNCOUNTABLE = frozenset({"status", "address", "news", "series", "species", "info", "metadata"})


# =============================================================================
# Bundle
# =============================================================================


@dataclass(frozen=True)
class NamingHeuristics:
    """The rule tables used by the analyzers."""

    field_rules: tuple[NamingRule, ...] = DEFAULT_FIELD_RULES
    helper_rules: tuple[HelperRule, ...] = DEFAULT_HELPER_RULES
    method_rules: tuple[MethodShapeRule, ...] = DEFAULT_METHOD_RULES

    def with_rules(
        self,
        field_rules: Optional[tuple[NamingRule, ...]] = None,
        helper_rules: Optional[tuple[HelperRule, ...]] = None,
        method_rules: Optional[tuple[MethodShapeRule, ...]] = None,
    ) -> "NamingHeuristics":
        """Return heuristics with the given tables replaced."""
        changes = {}
        if field_rules is not None:
            changes["field_rules"] = tuple(field_rules)
        if helper_rules is not None:
            changes["helper_rules"] = tuple(helper_rules)
        if method_rules is not None:
            changes["method_rules"] = tuple(method_rules)
        return replace(self, **changes)

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def field_rule(self, name: str) -> Optional[NamingRule]:
        return next((rule for rule in self.field_rules if rule.matches(name)), None)

    def for_field(self, name: str, **facets) -> SchemaNode:
        """Node for a field name; plain ``string`` when no rule matches."""
        rule = self.field_rule(name)
        if rule is None:
            return SchemaNode.string(**facets)
        return rule.node(**facets)

    def helper_rule(self, callee: str) -> Optional[HelperRule]:
        return next((rule for rule in self.helper_rules if rule.matches(callee)), None)

    def for_helper(self, callee: str, **facets) -> Optional[SchemaNode]:
        rule = self.helper_rule(callee)
        return rule.node(**facets) if rule is not None else None

    def for_method(self, method_name: str) -> SchemaNode:
        """Stock shape for a handler name; an empty object when nothing matches."""
        for rule in self.method_rules:
            if rule.matches(method_name):
                return rule.build()
        return SchemaNode.object()

    # -------------------------------------------------------------------------
    # Plurals
    # -------------------------------------------------------------------------

    @staticmethod
    def is_plural(name: str) -> bool:
        """Best-effort check used to decide whether a relation is a collection."""
        word = to_snake(name).rsplit("_", 1)[-1]
        if word in _IRREGULAR_PLURALS:
            return True
        if word in _UNCOUNTABLE or len(word) < 3:
            return False
        return word.endswith("s") and not word.endswith(("ss", "us", "is"))

    @staticmethod
    def singularize(name: str) -> str:
        snake = to_snake(name)
        head, _, word = snake.rpartition("_")
        if word in _IRREGULAR_PLURALS:
            singular = _IRREGULAR_PLURALS[word]
        elif word.endswith("ies") and len(word) > 3:
            singular = f"{word[:-3]}y"
        elif word.endswith(("ches", "shes", "xes", "sses")):
            singular = word[:-2]
        elif word.endswith("s") and not word.endswith("ss"):
            singular = word[:-1]
        else:
            singular = word
        return f"{head}_{singular}" if head else singular
