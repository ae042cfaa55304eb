"""Shape analysis of handler and serializer bodies.

Finds the statements that produce a value (``return`` and ``yield``) and
reads the structure of the first one whose expression is a recognised
literal shape:

    return {"id": self.id, "tags": [t.name for t in self.tags]}
    return jsonify({"user": UserOut(user).to_dict()}), 201
    return [{"id": row.id} for row in rows]

Values inside the structure are typed from the declared attribute types of
the owning class when known, then by naming and helper heuristics;
conditional inclusion wrappers (``self.when(...)`` and friends) produce
optional nodes flagged ``conditional``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional

from tree_sitter import Node

from schemascope.inference.naming import NamingHeuristics
from schemascope.inference.schema import InferenceError, SchemaKind, SchemaNode
from schemascope.inference.source_parser import (
    FunctionInfo,
    call_arguments,
    named_children,
    node_text,
    string_value,
    walk_scope,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class UnsupportedShapeError(InferenceError):
    """Raised when a produced expression matches no known shape."""

    pass


# =============================================================================
# Tables
# =============================================================================


@dataclass(frozen=True)
class ConditionalWrapper:
    """A call that includes a value only when a runtime predicate holds.

    ``value_index`` is the positional argument holding the included value;
    ``subject_index`` names the relation or attribute the description
    refers to. ``merge`` wrappers include a whole dict of fields.
    """

    description: str
    value_index: Optional[int] = None
    subject_index: Optional[int] = None
    merge: bool = False
    fallback_kind: Optional[SchemaKind] = None


DEFAULT_CONDITIONAL_WRAPPERS: Mapping[str, ConditionalWrapper] = {
    "when": ConditionalWrapper("Included only when a runtime condition holds.", value_index=1),
    "merge_when": ConditionalWrapper("Included only when a runtime condition holds.", value_index=1, merge=True),
    "when_loaded": ConditionalWrapper(
        "Included only when the {subject} relation is loaded.", value_index=1, subject_index=0
    ),
    "when_appended": ConditionalWrapper(
        "Included only when the {subject} attribute is appended.", value_index=1, subject_index=0
    ),
    "when_has": ConditionalWrapper(
        "Included only when the {subject} attribute is present.", value_index=1, subject_index=0
    ),
    "when_not_null": ConditionalWrapper("Included only when the value is not null.", value_index=0),
    "when_counted": ConditionalWrapper(
        "Included only when the {subject} count is loaded.",
        subject_index=0,
        fallback_kind=SchemaKind.INTEGER,
    ),
}

SPLAT_CONDITION_DESCRIPTION = "Included only when a runtime condition holds."

DEFAULT_RESPONSE_WRAPPERS = frozenset(
    {
        "jsonify",
        "JSONResponse",
        "JsonResponse",
        "ORJSONResponse",
        "UJSONResponse",
        "Response",
        "make_response",
    }
)

# Resource(x).to_dict(), UserOut.model_validate(x).model_dump() and friends
RESOURCE_FACTORIES = frozenset({"model_validate", "from_orm", "parse_obj", "model_construct", "construct", "make"})
RESOURCE_RENDERERS = frozenset(
    {"to_dict", "to_representation", "serialize", "as_dict", "to_json", "dict", "model_dump", "resolve", "data"}
)
COLLECTION_FACTORIES = frozenset({"collection"})
SEQUENCE_CALLS = frozenset({"list", "tuple", "sorted", "set"})

_COMPREHENSIONS = frozenset({"list_comprehension", "generator_expression", "set_comprehension"})
_STRINGS = frozenset({"string", "concatenated_string"})

NestedResolver = Callable[[str], Optional[SchemaNode]]
AttributeResolver = Callable[[tuple[str, ...]], Optional[SchemaNode]]

_SELF_NAMES = ("self", "cls")


# =============================================================================
# Scope
# =============================================================================


@dataclass
class _Scope:
    """Local bindings of the analysed body."""

    body: Optional[Node]
    bindings: dict[str, Node] = field(default_factory=dict)
    resolve_nested: Optional[NestedResolver] = None
    resolve_attribute: Optional[AttributeResolver] = None
    expanding: set[str] = field(default_factory=set)

    def resolve(self, name: str) -> Optional[SchemaNode]:
        if self.resolve_nested is None or not _class_like(name):
            return None
        return self.resolve_nested(name)

    def attribute(self, node: Node) -> Optional[SchemaNode]:
        """Declared type of ``self.a`` or ``self.a.b``, when the owner declares one."""
        if self.resolve_attribute is None:
            return None
        parts = [part.strip() for part in node_text(node).split(".")]
        if len(parts) < 2 or parts[0] not in _SELF_NAMES or not all(part.isidentifier() for part in parts):
            return None
        return self.resolve_attribute(tuple(parts[1:]))


def _callee(node: Node) -> str:
    return node_text(node.child_by_field_name("function"))


def _base(callee: str) -> str:
    return callee.rsplit(".", 1)[-1]


def _lambda_body(node: Optional[Node]) -> Optional[Node]:
    if node is not None and node.type == "lambda":
        return node.child_by_field_name("body")
    return node


def _class_like(text: str) -> bool:
    return _base(text)[:1].isupper()


# =============================================================================
# Analyzer
# =============================================================================


class ShapeAnalyzer:
    """Reads literal shapes out of function bodies."""

    def __init__(
        self,
        naming: Optional[NamingHeuristics] = None,
        conditional_wrappers: Optional[Mapping[str, ConditionalWrapper]] = None,
        response_wrappers: Optional[frozenset] = None,
    ):
        self.naming = naming or NamingHeuristics()
        self.conditional_wrappers = dict(conditional_wrappers or DEFAULT_CONDITIONAL_WRAPPERS)
        self.response_wrappers = response_wrappers or DEFAULT_RESPONSE_WRAPPERS

    def analyze(
        self,
        function: FunctionInfo,
        resolve_nested: Optional[NestedResolver] = None,
        resolve_attribute: Optional[AttributeResolver] = None,
    ) -> Optional[SchemaNode]:
        """Shape of the first produce statement with a recognised expression.

        Args:
            function: The handler or serializer method.
            resolve_nested: Called with a class name used as a resource
                (``UserOut(x)``); returns that class's schema or None.
            resolve_attribute: Called with the attribute path of ``self.a.b``
                (``("a", "b")``); returns the declared type or None. Names
                are used when it gives nothing.

        Returns:
            The shape, or None when no produce statement has one.
        """
        scope = _Scope(body=function.body, resolve_nested=resolve_nested, resolve_attribute=resolve_attribute)
        scope.bindings = self._bindings(function.body)
        for expression in self.produced_expressions(function.body):
            try:
                return self.shape_of(expression, scope)
            except UnsupportedShapeError as e:
                logger.debug(f"No shape in {function.qualified_name}: {e}")
        return None

    def produced_expressions(self, body: Optional[Node]) -> list[Node]:
        """Expressions of ``return``/``yield`` statements, in source order."""
        expressions: list[Node] = []
        for node in walk_scope(body):
            if node.type == "return_statement":
                values = named_children(node)
                if values:
                    expressions.append(values[0])
            elif node.type == "yield":
                if any(child.type == "from" for child in node.children):
                    continue
                values = named_children(node)
                if values:
                    expressions.append(values[0])
        return expressions

    def _bindings(self, body: Optional[Node]) -> dict[str, Node]:
        bindings: dict[str, Node] = {}
        for node in walk_scope(body):
            if node.type != "assignment":
                continue
            left = node.child_by_field_name("left")
            right = node.child_by_field_name("right")
            if left is not None and right is not None and left.type == "identifier":
                bindings.setdefault(node_text(left), right)
        return bindings

    # -------------------------------------------------------------------------
    # Structural shapes
    # -------------------------------------------------------------------------

    def shape_of(self, node: Node, scope: _Scope) -> SchemaNode:
        """Structure of a produced expression.

        Raises:
            UnsupportedShapeError: If the expression is not a literal shape.
        """
        node_type = node.type
        if node_type in ("parenthesized_expression", "await"):
            inner = named_children(node)
            if inner:
                return self.shape_of(inner[0], scope)
        if node_type in ("tuple", "expression_list"):
            # (body, status) and (body, status, headers)
            inner = named_children(node)
            if inner:
                return self.shape_of(inner[0], scope)
        if node_type == "dictionary":
            return self._object(node, scope)
        if node_type == "identifier":
            return self._bound_shape(node_text(node), scope)
        if node_type in _COMPREHENSIONS:
            body = node.child_by_field_name("body")
            if body is not None:
                return SchemaNode.array(items=self.shape_of(body, scope))
        if node_type == "list":
            elements = named_children(node)
            if elements:
                return SchemaNode.array(items=self.shape_of(elements[0], scope))
        if node_type == "call":
            return self._call_shape(node, scope)
        raise UnsupportedShapeError(f"{node_type}: {node_text(node)[:60]}")

    def _bound_shape(self, name: str, scope: _Scope) -> SchemaNode:
        bound = scope.bindings.get(name)
        if bound is None or name in scope.expanding:
            raise UnsupportedShapeError(f"unbound name {name}")
        scope.expanding.add(name)
        try:
            if bound.type == "dictionary":
                return self._object(bound, scope, variable=name)
            return self.shape_of(bound, scope)
        finally:
            scope.expanding.discard(name)

    def _call_shape(self, node: Node, scope: _Scope) -> SchemaNode:
        callee = _callee(node)
        base = _base(callee)
        positional, keywords = call_arguments(node)

        if base in self.response_wrappers:
            content = next((keywords[key] for key in ("content", "data") if key in keywords), None)
            if content is None and positional:
                content = positional[0]
            if content is None:
                raise UnsupportedShapeError(f"{callee} without content")
            return self.shape_of(content, scope)
        if callee == "dict":
            return self._dict_call(positional, keywords, scope)
        if callee == "map" and positional:
            return SchemaNode.array(items=self._mapped(positional[0], scope, structural=True))
        if base == "map" and positional and positional[0].type == "lambda":
            return SchemaNode.array(items=self._mapped(positional[0], scope, structural=True))
        if callee in SEQUENCE_CALLS and positional:
            return self.shape_of(positional[0], scope)

        nested = self._resource(node, callee, positional, scope)
        if nested is not None:
            return nested
        raise UnsupportedShapeError(f"call to {callee}")

    def _mapped(self, function: Node, scope: _Scope, structural: bool) -> SchemaNode:
        body = _lambda_body(function)
        if body is function:
            # map(UserOut, users) / users.map(UserOut)
            resolved = scope.resolve(node_text(function)) if _class_like(node_text(function)) else None
            if resolved is not None:
                return resolved
            if structural:
                raise UnsupportedShapeError(f"map over {node_text(function)}")
            return SchemaNode.string()
        if structural:
            return self.shape_of(body, scope)
        return self.value_of(body, None, scope)

    def _resource(self, node: Node, callee: str, positional: list[Node], scope: _Scope) -> Optional[SchemaNode]:
        """Resource-style calls: ``UserOut(x)``, ``UserOut.collection(xs)``, ``UserOut(x).to_dict()``."""
        function = node.child_by_field_name("function")
        base = _base(callee)
        if function is not None and function.type == "attribute":
            target = function.child_by_field_name("object")
            if base in COLLECTION_FACTORIES and _class_like(node_text(target)):
                resolved = scope.resolve(node_text(target))
                return SchemaNode.array(items=resolved) if resolved is not None else None
            if base in RESOURCE_FACTORIES and _class_like(node_text(target)):
                return scope.resolve(node_text(target))
            if base in RESOURCE_RENDERERS and target is not None and target.type == "call":
                try:
                    return self.shape_of(target, scope)
                except UnsupportedShapeError:
                    return None
            return None
        if _class_like(callee):
            return scope.resolve(callee)
        return None

    def _dict_call(self, positional: list[Node], keywords: dict[str, Node], scope: _Scope) -> SchemaNode:
        node = SchemaNode.object()
        if positional:
            node = self.shape_of(positional[0], scope)
            if node.kind != SchemaKind.OBJECT:
                raise UnsupportedShapeError("dict() over a non-mapping")
        properties = dict(node.properties or {})
        for key, value in keywords.items():
            properties[key] = self._entry(key, value, scope)
        return SchemaNode.object(properties)

    # -------------------------------------------------------------------------
    # Objects
    # -------------------------------------------------------------------------

    def _object(self, node: Node, scope: _Scope, variable: Optional[str] = None) -> SchemaNode:
        properties: dict[str, SchemaNode] = {}
        self._collect_entries(node, scope, properties)
        if variable is not None:
            self._collect_updates(variable, scope, properties)
        return SchemaNode.object(properties)

    def _collect_entries(self, node: Node, scope: _Scope, properties: dict[str, SchemaNode]) -> None:
        for entry in named_children(node):
            if entry.type == "pair":
                key = string_value(entry.child_by_field_name("key"))
                if key is None:
                    logger.debug(f"Skipping non-literal key {node_text(entry.child_by_field_name('key'))}")
                    continue
                properties[key] = self._entry(key, entry.child_by_field_name("value"), scope)
            elif entry.type == "dictionary_splat":
                inner = named_children(entry)
                if inner:
                    self._splat(inner[0], scope, properties)

    def _collect_updates(self, variable: str, scope: _Scope, properties: dict[str, SchemaNode]) -> None:
        """Fold ``var["k"] = v`` and ``var.update(...)`` into the properties."""
        for node in walk_scope(scope.body):
            if node.type == "assignment":
                left = node.child_by_field_name("left")
                if left is None or left.type != "subscript":
                    continue
                if node_text(left.child_by_field_name("value")) != variable:
                    continue
                key = string_value(left.child_by_field_name("subscript"))
                if key is not None:
                    properties[key] = self._entry(key, node.child_by_field_name("right"), scope)
            elif node.type == "call" and _callee(node) == f"{variable}.update":
                positional, keywords = call_arguments(node)
                if positional and positional[0].type == "dictionary":
                    self._collect_entries(positional[0], scope, properties)
                for key, value in keywords.items():
                    properties[key] = self._entry(key, value, scope)

    def _splat(self, target: Node, scope: _Scope, properties: dict[str, SchemaNode]) -> None:
        if target.type == "parenthesized_expression":
            inner = named_children(target)
            if inner:
                self._splat(inner[0], scope, properties)
            return
        if target.type == "conditional_expression":
            # **({...} if cond else {})
            branches = named_children(target)
            if branches and branches[0].type == "dictionary":
                self._merge_conditional(branches[0], scope, properties, SPLAT_CONDITION_DESCRIPTION)
            return
        if target.type == "dictionary":
            self._collect_entries(target, scope, properties)
            return
        if target.type == "identifier" and scope.bindings.get(node_text(target)) is not None:
            name = node_text(target)
            bound = scope.bindings[name]
            if bound.type != "dictionary":
                return
            if name in scope.expanding:
                logger.debug(f"Skipping self-referencing splat of {name}")
                return
            scope.expanding.add(name)
            try:
                self._collect_entries(bound, scope, properties)
            finally:
                scope.expanding.discard(name)
            return
        if target.type == "call":
            wrapper = self.conditional_wrappers.get(_base(_callee(target)))
            if wrapper is not None and wrapper.merge:
                positional, _ = call_arguments(target)
                value = _lambda_body(positional[wrapper.value_index]) if len(positional) > wrapper.value_index else None
                if value is not None and value.type == "dictionary":
                    self._merge_conditional(value, scope, properties, wrapper.description)
                return
        logger.debug(f"Skipping unrecognised splat {node_text(target)[:60]}")

    def _merge_conditional(
        self,
        node: Node,
        scope: _Scope,
        properties: dict[str, SchemaNode],
        description: str,
    ) -> None:
        merged: dict[str, SchemaNode] = {}
        self._collect_entries(node, scope, merged)
        for key, value in merged.items():
            properties[key] = value.evolve(conditional=True, required=False).add_description(description)

    def _entry(self, key: str, value: Optional[Node], scope: _Scope) -> SchemaNode:
        if value is None:
            return SchemaNode.string(required=True)
        try:
            node = self.value_of(value, key, scope)
        except UnsupportedShapeError as e:
            logger.debug(f"Defaulting {key} to string: {e}")
            node = SchemaNode.string()
        if node.conditional:
            return node
        return node.evolve(required=True)

    # -------------------------------------------------------------------------
    # Values
    # -------------------------------------------------------------------------

    def value_of(self, node: Node, name: Optional[str], scope: _Scope) -> SchemaNode:
        """Type of a value expression.

        Raises:
            UnsupportedShapeError: If nothing is known about the expression.
        """
        node_type = node.type
        if node_type in ("parenthesized_expression", "await"):
            inner = named_children(node)
            if inner:
                return self.value_of(inner[0], name, scope)
        if node_type in _STRINGS:
            return SchemaNode.string()
        if node_type == "integer":
            return SchemaNode.integer()
        if node_type == "float":
            return SchemaNode.number()
        if node_type in ("true", "false", "not_operator", "comparison_operator", "boolean_operator"):
            return SchemaNode.boolean()
        if node_type == "none":
            return SchemaNode.string(nullable=True)
        if node_type == "unary_operator":
            operand = node.child_by_field_name("argument")
            if operand is not None:
                return self.value_of(operand, name, scope)
        if node_type == "binary_operator":
            return self._arithmetic(node, name, scope)
        if node_type == "dictionary":
            return self._object(node, scope)
        if node_type == "dictionary_comprehension":
            return SchemaNode.object()
        if node_type in ("list", "tuple", "set"):
            elements = named_children(node)
            items = self.value_of(elements[0], None, scope) if elements else SchemaNode.string()
            return SchemaNode.array(items=items)
        if node_type in _COMPREHENSIONS:
            body = node.child_by_field_name("body")
            items = self.value_of(body, None, scope) if body is not None else SchemaNode.string()
            return SchemaNode.array(items=items)
        if node_type == "conditional_expression":
            branches = named_children(node)
            result = self.value_of(branches[0], name, scope)
            if len(branches) > 2 and branches[2].type == "none" and not result.nullable:
                result = result.evolve(nullable=True)
            return result
        if node_type == "attribute":
            return self._attribute(node, name, scope)
        if node_type == "subscript":
            key = string_value(node.child_by_field_name("subscript"))
            if key is not None:
                return self._named(key, name)
            return self._named(None, name)
        if node_type == "identifier":
            return self._identifier(node_text(node), name, scope)
        if node_type == "call":
            return self._call_value(node, name, scope)
        raise UnsupportedShapeError(f"{node_type}: {node_text(node)[:60]}")

    def _attribute(self, node: Node, key: Optional[str], scope: _Scope) -> SchemaNode:
        named = self._named(node_text(node.child_by_field_name("attribute")), key)
        declared = scope.attribute(node)
        if declared is None:
            return named
        if declared.kind == SchemaKind.STRING and not declared.format and not declared.enum_values:
            # a plain str keeps the format its name implies
            if named.kind == SchemaKind.STRING and named.format:
                return named.evolve(nullable=declared.nullable or named.nullable)
        return declared

    def _named(self, accessed: Optional[str], key: Optional[str]) -> SchemaNode:
        """Naming rule on the accessed name, then on the key it is stored under."""
        for candidate in (accessed, key):
            if candidate and self.naming.field_rule(candidate) is not None:
                return self.naming.for_field(candidate)
        return SchemaNode.string()

    def _identifier(self, identifier: str, key: Optional[str], scope: _Scope) -> SchemaNode:
        bound = scope.bindings.get(identifier)
        if bound is not None and identifier not in scope.expanding:
            scope.expanding.add(identifier)
            try:
                if bound.type == "dictionary":
                    return self._object(bound, scope, variable=identifier)
                return self.value_of(bound, key or identifier, scope)
            except UnsupportedShapeError as e:
                logger.debug(f"Falling back to naming for {identifier}: {e}")
            finally:
                scope.expanding.discard(identifier)
        return self._named(identifier, key)

    def _arithmetic(self, node: Node, name: Optional[str], scope: _Scope) -> SchemaNode:
        operands = [node.child_by_field_name("left"), node.child_by_field_name("right")]
        if any(operand is not None and operand.type in _STRINGS for operand in operands):
            return SchemaNode.string()
        operator = node.child_by_field_name("operator")
        if operator is not None and node_text(operator) == "/":
            return SchemaNode.number()
        left = operands[0]
        if left is not None:
            try:
                left_node = self.value_of(left, name, scope)
            except UnsupportedShapeError:
                left_node = None
            if left_node is not None and left_node.kind.is_numeric:
                return SchemaNode.scalar(left_node.kind, format=left_node.format)
        return SchemaNode.number()

    def _call_value(self, node: Node, name: Optional[str], scope: _Scope) -> SchemaNode:
        callee = _callee(node)
        base = _base(callee)
        positional, keywords = call_arguments(node)

        wrapper = self.conditional_wrappers.get(base)
        if wrapper is not None and callee.startswith(("self.", "cls.", "this.")):
            return self._conditional(wrapper, positional, name, scope)

        if callee == "map" and positional:
            return SchemaNode.array(items=self._mapped(positional[0], scope, structural=False))
        if base == "map" and positional and positional[0].type == "lambda":
            return SchemaNode.array(items=self._mapped(positional[0], scope, structural=False))
        if callee == "dict":
            try:
                return self._dict_call(positional, keywords, scope)
            except UnsupportedShapeError:
                return SchemaNode.object()
        if callee in SEQUENCE_CALLS and positional and positional[0].type in _COMPREHENSIONS | {"call"}:
            inner = self.value_of(positional[0], name, scope)
            if inner.kind == SchemaKind.ARRAY:
                return inner

        nested = self._resource(node, callee, positional, scope)
        if nested is not None:
            return nested

        helper = self.naming.for_helper(callee)
        if helper is not None:
            return helper
        return self._named(base, name)

    def _conditional(
        self,
        wrapper: ConditionalWrapper,
        positional: list[Node],
        name: Optional[str],
        scope: _Scope,
    ) -> SchemaNode:
        subject = None
        if wrapper.subject_index is not None and len(positional) > wrapper.subject_index:
            subject = string_value(positional[wrapper.subject_index])
        description = wrapper.description.format(subject=subject or name or "value")

        value = None
        if wrapper.value_index is not None and len(positional) > wrapper.value_index:
            value = _lambda_body(positional[wrapper.value_index])

        if value is not None:
            try:
                node = self.value_of(value, name, scope)
            except UnsupportedShapeError as e:
                logger.debug(f"Defaulting conditional {name} to string: {e}")
                node = SchemaNode.string()
        elif wrapper.fallback_kind is not None:
            node = SchemaNode.scalar(wrapper.fallback_kind)
        elif wrapper.subject_index is not None and subject:
            node = self._relation(subject, name)
        else:
            node = self._named(None, name)
        return node.evolve(conditional=True, required=False).add_description(description)

    def _relation(self, relation: str, key: Optional[str]) -> SchemaNode:
        """Fallback for ``when_loaded("posts")`` style wrappers without a value."""
        if self.naming.field_rule(relation) is not None:
            return self.naming.for_field(relation)
        if self.naming.is_plural(relation):
            return SchemaNode.array(items=SchemaNode.object())
        if key and self.naming.field_rule(key) is not None:
            return self.naming.for_field(key)
        return SchemaNode.object()
