"""Validation rule interpretation.

This module provides:
- RuleToken and parse_rules: raw rule declarations -> ordered tokens
- RuleTable: the swappable token -> type/format table
- RuleInterpreter: ordered tokens for one field -> SchemaNode fragment
- RuleSetExtractor: rule sets read out of ``rules()`` methods and inline
  ``validate(...)`` calls

Merge policy for one field: kind, format, enum values and bounds are
last-wins; required, nullable and deprecated only ever switch on.
Conditional requirements never set ``required``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from tree_sitter import Node

from schemascope.inference.regex_examples import RegexExampleLibrary, clean_pattern
from schemascope.inference.schema import (
    ConditionalRequirement,
    Constraints,
    SchemaKind,
    SchemaNode,
)
from schemascope.inference.source_parser import (
    ClassInfo,
    Expression,
    FunctionInfo,
    call_arguments,
    named_children,
    node_text,
    string_value,
    walk_scope,
)

logger = logging.getLogger(__name__)

RawRules = Union[str, "RuleToken", Iterable[Union[str, "RuleToken"]]]

# Rules whose single parameter may itself contain commas or pipes.
UNSPLIT_PARAM_RULES = frozenset({"regex", "not_regex", "date_format"})


# =============================================================================
# Tokens
# =============================================================================


@dataclass(frozen=True)
class RuleToken:
    """One validation directive: ``max:255`` -> ``RuleToken("max", ("255",))``."""

    name: str
    params: tuple[str, ...] = ()

    @classmethod
    def parse(cls, raw: str) -> "RuleToken":
        name, sep, rest = raw.strip().partition(":")
        name = name.strip().lower()
        if not sep:
            return cls(name)
        if name in UNSPLIT_PARAM_RULES:
            return cls(name, (rest,))
        return cls(name, tuple(param.strip() for param in rest.split(",")))

    @property
    def first(self) -> Optional[str]:
        return self.params[0] if self.params else None

    def __str__(self) -> str:
        if not self.params:
            return self.name
        return f"{self.name}:{','.join(self.params)}"


def _balanced(text: str) -> bool:
    depth = 0
    escaped = False
    for char in text:
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
        elif char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
    return depth <= 0


def _split_pipes(raw: str) -> list[str]:
    """Split a pipe string, keeping ``|`` inside an unbalanced regex parameter."""
    segments = raw.split("|")
    merged: list[str] = []
    index = 0
    while index < len(segments):
        segment = segments[index]
        index += 1
        if segment.strip().lower().startswith(("regex:", "not_regex:")):
            while not _balanced(segment.partition(":")[2]) and index < len(segments):
                segment = f"{segment}|{segments[index]}"
                index += 1
        merged.append(segment)
    return merged


def parse_rules(raw: Optional[RawRules]) -> list[RuleToken]:
    """Normalise a pipe string, a list of strings or tokens into tokens.

    Elements of a list are single rules and are not split on pipes.
    Non-string elements other than tokens are dropped.
    """
    if raw is None:
        return []
    if isinstance(raw, RuleToken):
        return [raw]
    if isinstance(raw, str):
        return [RuleToken.parse(segment) for segment in _split_pipes(raw) if segment.strip()]
    tokens: list[RuleToken] = []
    for item in raw:
        if isinstance(item, RuleToken):
            tokens.append(item)
        elif isinstance(item, str) and item.strip():
            tokens.append(RuleToken.parse(item))
        else:
            logger.debug(f"Ignoring non-string rule element {item!r}")
    return tokens


# =============================================================================
# Rule table
# =============================================================================


@dataclass(frozen=True)
class RuleEffect:
    """What a parameterless-type token contributes."""

    kind: Optional[SchemaKind] = None
    format: Optional[str] = None
    pattern: Optional[str] = None
    description: Optional[str] = None


DEFAULT_TYPE_RULES: Mapping[str, RuleEffect] = {
    "string": RuleEffect(SchemaKind.STRING),
    "integer": RuleEffect(SchemaKind.INTEGER),
    "int": RuleEffect(SchemaKind.INTEGER),
    "numeric": RuleEffect(SchemaKind.NUMBER),
    "decimal": RuleEffect(SchemaKind.NUMBER),
    "boolean": RuleEffect(SchemaKind.BOOLEAN),
    "bool": RuleEffect(SchemaKind.BOOLEAN),
    "accepted": RuleEffect(SchemaKind.BOOLEAN),
    "declined": RuleEffect(SchemaKind.BOOLEAN),
    "array": RuleEffect(SchemaKind.ARRAY),
    "list": RuleEffect(SchemaKind.ARRAY),
    "object": RuleEffect(SchemaKind.OBJECT),
    "json": RuleEffect(SchemaKind.OBJECT),
    "file": RuleEffect(SchemaKind.STRING, "binary"),
    "image": RuleEffect(SchemaKind.STRING, "binary", description="Must be an image."),
    "mimes": RuleEffect(SchemaKind.STRING, "binary", description="Must be a file of type: {params}."),
    "mimetypes": RuleEffect(SchemaKind.STRING, "binary", description="Must be a file with MIME type: {params}."),
    "date": RuleEffect(SchemaKind.STRING, "date"),
    "before": RuleEffect(SchemaKind.STRING, "date", description="Must be a date before {params}."),
    "after": RuleEffect(SchemaKind.STRING, "date", description="Must be a date after {params}."),
    "before_or_equal": RuleEffect(SchemaKind.STRING, "date", description="Must be a date before or equal to {params}."),
    "after_or_equal": RuleEffect(SchemaKind.STRING, "date", description="Must be a date after or equal to {params}."),
    "email": RuleEffect(SchemaKind.STRING, "email"),
    "url": RuleEffect(SchemaKind.STRING, "uri"),
    "active_url": RuleEffect(SchemaKind.STRING, "uri"),
    "ip": RuleEffect(SchemaKind.STRING, "ip"),
    "ipv4": RuleEffect(SchemaKind.STRING, "ipv4"),
    "ipv6": RuleEffect(SchemaKind.STRING, "ipv6"),
    "uuid": RuleEffect(SchemaKind.STRING, "uuid"),
    "ulid": RuleEffect(SchemaKind.STRING, "ulid"),
    "password": RuleEffect(SchemaKind.STRING, "password", description="Must be a valid password."),
    "current_password": RuleEffect(SchemaKind.STRING, "password"),
    "alpha": RuleEffect(SchemaKind.STRING, pattern=r"^[a-zA-Z]+$"),
    "alpha_num": RuleEffect(SchemaKind.STRING, pattern=r"^[a-zA-Z0-9]+$"),
    "alpha_dash": RuleEffect(SchemaKind.STRING, pattern=r"^[a-zA-Z0-9_-]+$"),
    "hash_id": RuleEffect(SchemaKind.STRING, description="Must be a valid hash ID."),
    "hashid": RuleEffect(SchemaKind.STRING, description="Must be a valid hash ID."),
    "timezone": RuleEffect(SchemaKind.STRING),
    "mac_address": RuleEffect(SchemaKind.STRING),
    "lowercase": RuleEffect(SchemaKind.STRING),
    "uppercase": RuleEffect(SchemaKind.STRING),
}

# Tokens that are valid but say nothing about the shape.
DEFAULT_SILENT_RULES = frozenset(
    {
        "bail", "exists", "unique", "present", "filled", "prohibited", "prohibited_if",
        "prohibited_unless", "prohibits", "missing", "exclude", "exclude_if", "exclude_unless",
        "not_in", "not_regex", "different", "same", "distinct", "starts_with", "ends_with",
        "doesnt_start_with", "doesnt_end_with", "multiple_of", "max_digits", "min_digits",
        "dimensions", "declined_if", "accepted_if", "in_array", "confirmed",
    }
)

CONDITIONAL_RULES = frozenset(
    {
        "required_if", "required_unless", "required_with", "required_with_all",
        "required_without", "required_without_all",
    }
)


@dataclass(frozen=True)
class RuleTable:
    """Swappable lookup tables for the interpreter."""

    types: Mapping[str, RuleEffect] = field(default_factory=lambda: dict(DEFAULT_TYPE_RULES))
    silent: frozenset = DEFAULT_SILENT_RULES

    def extend(self, types: Optional[Mapping[str, RuleEffect]] = None, silent: Iterable[str] = ()) -> "RuleTable":
        """Return a table with extra or replaced entries."""
        merged = dict(self.types)
        merged.update(types or {})
        return replace(self, types=merged, silent=self.silent | frozenset(silent))


# =============================================================================
# Interpreter
# =============================================================================


def _number(raw: Optional[str]) -> Optional[Union[int, float]]:
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return int(value) if value.is_integer() else value


def conditional_description(kind: str, params: tuple[str, ...]) -> str:
    fields = ", ".join(params)
    if kind == "required_if" and len(params) >= 2:
        return f"Required when {params[0]} is {', '.join(params[1:])}."
    if kind == "required_unless" and len(params) >= 2:
        return f"Required unless {params[0]} is {', '.join(params[1:])}."
    if kind == "required_with":
        return f"Required when any of these fields are present: {fields}."
    if kind == "required_with_all":
        return f"Required when all of these fields are present: {fields}."
    if kind == "required_without":
        return f"Required when any of these fields are missing: {fields}."
    if kind == "required_without_all":
        return f"Required when all of these fields are missing: {fields}."
    return f"Conditionally required ({kind})."


@dataclass
class _FieldState:
    """Mutable accumulator for one field; frozen into a SchemaNode at the end."""

    kind: Optional[SchemaKind] = None
    format: Optional[str] = None
    required: bool = False
    nullable: bool = False
    deprecated: bool = False
    enum_values: Optional[tuple[Any, ...]] = None
    lower: Optional[Union[int, float]] = None
    upper: Optional[Union[int, float]] = None
    pattern: Optional[str] = None
    example: Any = None
    descriptions: list[str] = field(default_factory=list)
    conditionals: list[ConditionalRequirement] = field(default_factory=list)

    def set_kind(self, kind: Optional[SchemaKind], fmt: Optional[str]) -> None:
        if kind is not None and kind != self.kind:
            self.kind = kind
            self.format = fmt
        elif fmt is not None:
            self.format = fmt

    def describe(self, text: Optional[str]) -> None:
        if text and text not in self.descriptions:
            self.descriptions.append(text)


class RuleInterpreter:
    """Turns the ordered rule tokens of one field into a schema fragment."""

    def __init__(
        self,
        table: Optional[RuleTable] = None,
        regex_examples: Optional[RegexExampleLibrary] = None,
        enum_resolver: Optional[Callable[[str], Optional[tuple[Any, ...]]]] = None,
    ):
        self.table = table or RuleTable()
        self.regex_examples = regex_examples or RegexExampleLibrary()
        self.enum_resolver = enum_resolver

    def interpret(self, rules: RawRules) -> SchemaNode:
        """Interpret one field's rules.

        Args:
            rules: Pipe string, list of strings or tokens, in declaration order.

        Returns:
            The field's fragment; an unconstrained ``string`` when no token
            says anything about the type.
        """
        state = _FieldState()
        for token in parse_rules(rules):
            self._apply(token, state)
        return self._freeze(state)

    def interpret_set(self, rule_set: Mapping[str, RawRules]) -> dict[str, SchemaNode]:
        """Interpret every path of a rule set, in declaration order.

        ``confirmed`` adds a ``<path>_confirmation`` sibling mirroring the field.
        """
        fragments: dict[str, SchemaNode] = {}
        for path, rules in rule_set.items():
            tokens = parse_rules(rules)
            node = self.interpret(tokens)
            fragments[path] = node
            if any(token.name == "confirmed" for token in tokens):
                fragments.setdefault(
                    f"{path}_confirmation",
                    SchemaNode.scalar(
                        node.kind,
                        format=node.format,
                        required=node.required,
                        description=f"Must match {path.rsplit('.', 1)[-1]}.",
                    ),
                )
        return fragments

    # -------------------------------------------------------------------------
    # Token handling
    # -------------------------------------------------------------------------

    def _apply(self, token: RuleToken, state: _FieldState) -> None:
        name = token.name
        if name == "required":
            state.required = True
        elif name == "nullable":
            state.nullable = True
        elif name == "deprecated":
            state.deprecated = True
        elif name == "sometimes":
            state.describe("Optional field that is validated only when present.")
        elif name in CONDITIONAL_RULES:
            if token.params:
                value = ", ".join(token.params[1:]) if name in ("required_if", "required_unless") else None
                fields = (token.params[0],) if value is not None else token.params
                state.conditionals.append(
                    ConditionalRequirement(
                        kind=name,
                        fields=tuple(fields),
                        value=value or None,
                        description=conditional_description(name, token.params),
                    )
                )
        elif name in ("min", "gt", "gte"):
            self._bound(token, state, lower=True)
        elif name in ("max", "lt", "lte"):
            self._bound(token, state, lower=False)
        elif name == "between" and len(token.params) >= 2:
            state.lower = _number(token.params[0])
            state.upper = _number(token.params[1])
        elif name == "size":
            state.lower = state.upper = _number(token.first)
        elif name == "in":
            state.enum_values = tuple(token.params)
        elif name == "enum":
            self._enum(token, state)
        elif name == "regex":
            self._regex(token, state)
        elif name == "digits" and token.first:
            state.set_kind(SchemaKind.STRING, None)
            state.pattern = rf"^\d{{{token.first}}}$"
            state.describe(f"Must be exactly {token.first} digits.")
        elif name == "digits_between" and len(token.params) >= 2:
            low, high = token.params[0], token.params[1]
            state.set_kind(SchemaKind.STRING, None)
            state.pattern = rf"^\d{{{low},{high}}}$"
            state.describe(f"Must be between {low} and {high} digits.")
        elif name == "date_format":
            fmt = token.first or ""
            has_time = any(marker in fmt for marker in ("H", "h", "i", "s", "%H", "%M", "%S", "T"))
            state.set_kind(SchemaKind.STRING, "date-time" if has_time else "date")
            state.describe(f"Must match the date format {fmt}.")
        elif name in self.table.types:
            effect = self.table.types[name]
            state.set_kind(effect.kind, effect.format)
            if effect.pattern:
                state.pattern = effect.pattern
            if effect.description:
                state.describe(effect.description.format(params=", ".join(token.params)))
        elif name in self.table.silent:
            return
        else:
            logger.debug(f"Ignoring unknown rule token {token}")

    def _bound(self, token: RuleToken, state: _FieldState, lower: bool) -> None:
        value = _number(token.first)
        if value is None:
            # gt:other_field and friends compare against another field
            return
        if lower:
            state.lower = value
        else:
            state.upper = value

    def _enum(self, token: RuleToken, state: _FieldState) -> None:
        if not token.first or self.enum_resolver is None:
            state.describe("Must be a valid enum value.")
            return
        values = self.enum_resolver(token.first)
        if values:
            state.enum_values = tuple(values)
            sample = values[0]
            if isinstance(sample, int) and not isinstance(sample, bool):
                state.set_kind(SchemaKind.INTEGER, None)
            elif state.kind is None:
                state.set_kind(SchemaKind.STRING, None)
        else:
            state.describe("Must be a valid enum value.")

    def _regex(self, token: RuleToken, state: _FieldState) -> None:
        if not token.first:
            return
        pattern = clean_pattern(token.first)
        state.pattern = pattern
        state.describe(self.regex_examples.description_for(pattern))
        example = self.regex_examples.example_for(pattern)
        if example is not None:
            state.example = example

    # -------------------------------------------------------------------------
    # Freezing
    # -------------------------------------------------------------------------

    def _freeze(self, state: _FieldState) -> SchemaNode:
        kind = state.kind or SchemaKind.STRING
        constraints = Constraints(pattern=state.pattern)
        if kind.is_numeric:
            constraints = replace(constraints, minimum=state.lower, maximum=state.upper)
        elif kind == SchemaKind.ARRAY:
            constraints = replace(
                constraints,
                min_items=_as_int(state.lower),
                max_items=_as_int(state.upper),
            )
        elif kind == SchemaKind.STRING and state.format == "binary":
            if state.upper is not None:
                state.describe(f"Maximum size: {state.upper} kilobytes.")
        elif kind == SchemaKind.STRING:
            constraints = replace(
                constraints,
                min_length=_as_int(state.lower),
                max_length=_as_int(state.upper),
            )

        enum_values = state.enum_values
        if enum_values is not None and kind.is_numeric:
            enum_values = tuple(_numeric_or_raw(value) for value in enum_values)

        facets: dict[str, Any] = {
            "required": state.required,
            "nullable": state.nullable,
            "deprecated": state.deprecated,
            "enum_values": enum_values,
            "constraints": None if constraints.is_empty else constraints,
            "description": " ".join(state.descriptions) or None,
            "conditional_requirements": tuple(state.conditionals),
        }
        if state.example is not None and kind == SchemaKind.STRING:
            facets["example"] = state.example
        if kind == SchemaKind.OBJECT:
            return SchemaNode.object(**facets)
        if kind == SchemaKind.ARRAY:
            return SchemaNode.array(**facets)
        return SchemaNode(kind=kind, format=state.format, **facets)


def _as_int(value: Optional[Union[int, float]]) -> Optional[int]:
    return int(value) if value is not None else None


def _numeric_or_raw(value: Any) -> Any:
    number = _number(str(value))
    return value if number is None else number


# =============================================================================
# Rule sets from source
# =============================================================================


RuleSet = dict[str, list[RuleToken]]
Bindings = dict[str, list[Node]]

_VALIDATE_CALLS = frozenset({"validate", "validate_request", "validate_data", "make", "validator"})


class RuleSetExtractor:
    """Reads rule sets declared in source.

    ``resolve`` qualifies names used in ``Rule.enum(Status)`` style elements
    so the interpreter's enum resolver can find them.
    """

    def __init__(self, rules_method: str = "rules", resolve: Optional[Callable[[str], str]] = None):
        self.rules_method = rules_method
        self.resolve = resolve or (lambda name: name)

    def from_class_chain(self, chain: list[ClassInfo]) -> Optional[RuleSet]:
        """Rule set of the first class in ``chain`` (nearest first) that declares one.

        ``**super().rules()`` splats merge the next declaring ancestor's rules.
        """
        for index, info in enumerate(chain):
            method = info.methods.get(self.rules_method)
            if method is not None:
                return self._from_method(method, chain[index + 1:])
            if self.rules_method in info.assignments:
                node = info.assignments[self.rules_method]
                if node.type == "dictionary":
                    return self._from_dictionary(node, {}, chain[index + 1:])
        return None

    def from_function(self, function: FunctionInfo) -> Optional[RuleSet]:
        """Rule set passed to an inline ``validate(...)`` style call in a handler body."""
        bindings = self._dict_bindings(function.body)
        for node in walk_scope(function.body):
            if node.type != "call":
                continue
            callee = node_text(node.child_by_field_name("function"))
            if callee.rsplit(".", 1)[-1] not in _VALIDATE_CALLS:
                continue
            positional, keywords = call_arguments(node)
            candidates = [keywords[key] for key in ("rules", "schema") if key in keywords] + positional
            for argument in candidates:
                if argument.type == "dictionary":
                    return self._from_dictionary(argument, bindings, [])
                bound = _binding_before(bindings, argument)
                if bound is not None:
                    return self._from_dictionary(bound, bindings, [])
        return None

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _from_method(self, method: FunctionInfo, ancestors: list[ClassInfo]) -> Optional[RuleSet]:
        bindings = self._dict_bindings(method.body)
        for node in walk_scope(method.body):
            if node.type != "return_statement":
                continue
            values = named_children(node)
            if not values:
                continue
            value = values[0]
            bound = _binding_before(bindings, value)
            if bound is not None:
                rule_set = self._from_dictionary(bound, bindings, ancestors)
                self._apply_updates(method.body, node_text(value), rule_set, bindings)
                return rule_set
            if value.type == "dictionary":
                return self._from_dictionary(value, bindings, ancestors)
        return None

    def _dict_bindings(self, body: Optional[Node]) -> Bindings:
        """Every ``name = {...}`` assignment in the body, in source order."""
        bindings: Bindings = {}
        for node in walk_scope(body):
            if node.type != "assignment":
                continue
            left = node.child_by_field_name("left")
            right = node.child_by_field_name("right")
            if left is not None and right is not None and left.type == "identifier" and right.type == "dictionary":
                bindings.setdefault(node_text(left), []).append(right)
        return bindings

    def _apply_updates(self, body: Optional[Node], variable: str, rule_set: RuleSet, bindings: Bindings) -> None:
        """Fold ``rules["k"] = ...`` and ``rules.update({...})`` into the set."""
        for node in walk_scope(body):
            if node.type == "assignment":
                left = node.child_by_field_name("left")
                if left is None or left.type != "subscript":
                    continue
                target = left.child_by_field_name("value")
                if node_text(target) != variable:
                    continue
                key = string_value(left.child_by_field_name("subscript"))
                if key is not None:
                    rule_set[key] = self._tokens(node.child_by_field_name("right"))
            elif node.type == "call":
                callee = node_text(node.child_by_field_name("function"))
                if callee != f"{variable}.update":
                    continue
                positional, _ = call_arguments(node)
                if positional and positional[0].type == "dictionary":
                    rule_set.update(self._from_dictionary(positional[0], bindings, []))

    def _from_dictionary(self, node: Node, bindings: Bindings, ancestors: list[ClassInfo]) -> RuleSet:
        rule_set: RuleSet = {}
        for entry in named_children(node):
            if entry.type == "dictionary_splat":
                inner = named_children(entry)
                target = inner[0] if inner else None
                if target is None:
                    continue
                text = node_text(target)
                if text.startswith("super()") and ancestors:
                    rule_set.update(self.from_class_chain(ancestors) or {})
                elif target.type == "identifier":
                    # rules = {**rules, ...} reads the assignment before this one
                    bound = _binding_before(bindings, target)
                    if bound is not None:
                        rule_set.update(self._from_dictionary(bound, bindings, ancestors))
                elif target.type == "dictionary":
                    rule_set.update(self._from_dictionary(target, bindings, ancestors))
                continue
            if entry.type != "pair":
                continue
            key = string_value(entry.child_by_field_name("key"))
            if key is None:
                logger.debug(f"Skipping non-literal rule key {node_text(entry.child_by_field_name('key'))}")
                continue
            rule_set[key] = self._tokens(entry.child_by_field_name("value"))
        return rule_set

    def _tokens(self, node: Optional[Node], element: bool = False) -> list[RuleToken]:
        if node is None:
            return []
        text = string_value(node)
        if text is not None:
            return [RuleToken.parse(text)] if element else parse_rules(text)
        if node.type in ("list", "tuple") and not element:
            tokens: list[RuleToken] = []
            for child in named_children(node):
                tokens.extend(self._tokens(child, element=True))
            return tokens
        if node.type == "call":
            return self._call_tokens(node)
        logger.debug(f"Ignoring rule expression {node_text(node)}")
        return []

    def _call_tokens(self, node: Node) -> list[RuleToken]:
        """Rule objects: ``Rule.in_([...])``, ``In([...])``, ``Rule.enum(Status)``, ``Password.min(8)``."""
        callee = node_text(node.child_by_field_name("function"))
        base = callee.rsplit(".", 1)[-1].rstrip("_").lower()
        positional, _ = call_arguments(node)
        first = positional[0] if positional else None

        if base == "in" and first is not None:
            values = [string_value(child) or node_text(child) for child in named_children(first)] \
                if first.type in ("list", "tuple") else [string_value(arg) or node_text(arg) for arg in positional]
            return [RuleToken("in", tuple(values))]
        if base == "enum" and first is not None:
            return [RuleToken("enum", (self.resolve(node_text(first)),))]
        if "password" in callee.lower():
            tokens = [RuleToken("password")]
            if base == "min" and first is not None:
                tokens.append(RuleToken("min", (node_text(first),)))
            return tokens
        logger.debug(f"Ignoring rule object {callee}")
        return []


def _binding_before(bindings: Bindings, reference: Node) -> Optional[Node]:
    """Latest dictionary bound to ``reference``'s name that ends before the reference."""
    if reference.type != "identifier":
        return None
    candidates = [
        bound for bound in bindings.get(node_text(reference), []) if bound.end_byte <= reference.start_byte
    ]
    return candidates[-1] if candidates else None


def literal_rule_set(raw: Mapping[str, Any]) -> RuleSet:
    """Tokenise an already-decoded ``{path: rules}`` mapping."""
    result: RuleSet = {}
    for path, rules in raw.items():
        if isinstance(rules, Expression):
            continue
        result[str(path)] = parse_rules(rules)
    return result
