"""Declared type annotations -> schema nodes.

Annotations are kept as source text by the parser and parsed here into a
small :class:`TypeExpr` tree. Only the subset of the typing language that
matters for data shapes is understood: unions (``|``, ``Union``,
``Optional``), ``Literal``, ``Annotated``, collection and mapping generics,
primitives and the usual pydantic string types. Everything else is a named
type handed back to the caller to resolve.
"""

from __future__ import annotations

import ast as py_ast
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from schemascope.inference.schema import SchemaKind, SchemaNode

logger = logging.getLogger(__name__)


# =============================================================================
# Type expressions
# =============================================================================


@dataclass(frozen=True)
class TypeExpr:
    """A parsed annotation.

    ``name`` is the head as written (``Optional``, ``list``, ``app.User``);
    ``values`` carries the members of a ``Literal``.
    """

    name: str
    args: tuple["TypeExpr", ...] = ()
    values: tuple[Any, ...] = ()

    @property
    def base_name(self) -> str:
        return self.name.rsplit(".", 1)[-1]

    @property
    def is_none(self) -> bool:
        return self.name in ("None", "NoneType", "types.NoneType")

    def __str__(self) -> str:
        if self.base_name == "Literal":
            return f"Literal[{', '.join(repr(v) for v in self.values)}]"
        if self.name == "|":
            return " | ".join(str(arg) for arg in self.args)
        if self.args:
            return f"{self.name}[{', '.join(str(arg) for arg in self.args)}]"
        return self.name


class TypeSyntaxError(ValueError):
    """Raised by the annotation parser on text it cannot read."""

    pass


_TOKEN = re.compile(
    r"""\s*(?:
        (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
      | (?P<number>-?\d+(?:\.\d+)?)
      | (?P<ellipsis>\.\.\.)
      | (?P<name>[A-Za-z_][A-Za-z0-9_]*(?:\s*\.\s*[A-Za-z_][A-Za-z0-9_]*)*)
      | (?P<punct>[\[\],|()])
      | (?P<other>\S)
    )""",
    re.VERBOSE,
)


def _tokenize(text: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    position = 0
    text = text.strip()
    while position < len(text):
        match = _TOKEN.match(text, position)
        if match is None or match.end() == position:
            raise TypeSyntaxError(f"Unexpected character at {position} in {text!r}")
        kind = match.lastgroup or ""
        value = match.group(kind)
        if kind == "name":
            value = re.sub(r"\s+", "", value)
        tokens.append((kind, value))
        position = match.end()
        while position < len(text) and text[position].isspace():
            position += 1
    return tokens


class _TypeParser:
    def __init__(self, text: str):
        self.tokens = _tokenize(text)
        self.position = 0

    def peek(self) -> Optional[tuple[str, str]]:
        return self.tokens[self.position] if self.position < len(self.tokens) else None

    def take(self) -> tuple[str, str]:
        token = self.peek()
        if token is None:
            raise TypeSyntaxError("Unexpected end of annotation")
        self.position += 1
        return token

    def expect(self, value: str) -> None:
        kind, actual = self.take()
        if actual != value:
            raise TypeSyntaxError(f"Expected {value!r}, got {actual!r}")

    def parse(self) -> TypeExpr:
        expr = self.union()
        if self.peek() is not None:
            raise TypeSyntaxError(f"Trailing tokens after {expr}")
        return expr

    def union(self) -> TypeExpr:
        members = [self.primary()]
        while self.peek() == ("punct", "|"):
            self.take()
            members.append(self.primary())
        if len(members) == 1:
            return members[0]
        return TypeExpr("|", tuple(members))

    def primary(self) -> TypeExpr:
        kind, value = self.take()
        if kind == "string":
            # forward reference
            return parse_type(py_ast.literal_eval(value)) or TypeExpr("Any")
        if kind == "ellipsis":
            return TypeExpr("...")
        if kind == "number":
            return TypeExpr("Literal", values=(py_ast.literal_eval(value),))
        if kind == "punct" and value == "[":
            args = self.arguments()
            return TypeExpr("[]", tuple(args))
        if kind != "name":
            raise TypeSyntaxError(f"Unexpected {value!r}")

        if self.peek() == ("punct", "("):
            # constr(max_length=5) and friends
            self.skip_call()
            return TypeExpr(value)
        if self.peek() != ("punct", "["):
            return TypeExpr(value)
        self.take()
        if value.rsplit(".", 1)[-1] == "Literal":
            return TypeExpr(value, values=tuple(self.literal_values()))
        return TypeExpr(value, tuple(self.arguments()))

    def arguments(self) -> list[TypeExpr]:
        args: list[TypeExpr] = []
        while self.peek() not in (("punct", "]"), None):
            args.append(self.argument())
            if self.peek() == ("punct", ","):
                self.take()
        self.expect("]")
        return args

    def argument(self) -> TypeExpr:
        # Annotated metadata such as Field(gt=0) is skipped wholesale
        start = self.position
        try:
            expr = self.union()
        except TypeSyntaxError:
            self.position = start
            expr = TypeExpr("<metadata>")
        if self.peek() is None or self.peek()[1] in (",", "]"):
            return expr
        self.skip_to_boundary()
        return TypeExpr("<metadata>")

    def skip_to_boundary(self) -> None:
        """Advance to the next top-level ``,`` or ``]``."""
        depth = 0
        while self.peek() is not None:
            _, value = self.peek()
            if depth == 0 and value in (",", "]"):
                return
            if value in ("[", "("):
                depth += 1
            elif value in ("]", ")"):
                depth -= 1
            self.take()

    def skip_call(self) -> None:
        self.expect("(")
        depth = 1
        while depth:
            _, value = self.take()
            if value == "(":
                depth += 1
            elif value == ")":
                depth -= 1

    def literal_values(self) -> list[Any]:
        values: list[Any] = []
        while self.peek() != ("punct", "]"):
            kind, value = self.take()
            if kind in ("string", "number"):
                values.append(py_ast.literal_eval(value))
            elif kind == "name":
                values.append({"True": True, "False": False, "None": None}.get(value, value.rsplit(".", 1)[-1]))
            if self.peek() == ("punct", ","):
                self.take()
        self.expect("]")
        return values


def parse_type(text: Optional[str]) -> Optional[TypeExpr]:
    """Parse annotation text; None when it is empty or unreadable."""
    if not text or not text.strip():
        return None
    try:
        return _TypeParser(text).parse()
    except (TypeSyntaxError, ValueError, SyntaxError) as e:
        logger.debug(f"Unreadable annotation {text!r}: {e}")
        return None


# =============================================================================
# Tables
# =============================================================================


DEFAULT_PRIMITIVES: Mapping[str, tuple[SchemaKind, Optional[str]]] = {
    "str": (SchemaKind.STRING, None),
    "StrictStr": (SchemaKind.STRING, None),
    "constr": (SchemaKind.STRING, None),
    "int": (SchemaKind.INTEGER, None),
    "StrictInt": (SchemaKind.INTEGER, None),
    "PositiveInt": (SchemaKind.INTEGER, None),
    "NegativeInt": (SchemaKind.INTEGER, None),
    "NonNegativeInt": (SchemaKind.INTEGER, None),
    "conint": (SchemaKind.INTEGER, None),
    "float": (SchemaKind.NUMBER, "float"),
    "StrictFloat": (SchemaKind.NUMBER, "float"),
    "PositiveFloat": (SchemaKind.NUMBER, "float"),
    "confloat": (SchemaKind.NUMBER, "float"),
    "Decimal": (SchemaKind.NUMBER, None),
    "condecimal": (SchemaKind.NUMBER, None),
    "bool": (SchemaKind.BOOLEAN, None),
    "StrictBool": (SchemaKind.BOOLEAN, None),
    "bytes": (SchemaKind.STRING, "binary"),
    "datetime": (SchemaKind.STRING, "date-time"),
    "AwareDatetime": (SchemaKind.STRING, "date-time"),
    "NaiveDatetime": (SchemaKind.STRING, "date-time"),
    "date": (SchemaKind.STRING, "date"),
    "time": (SchemaKind.STRING, "time"),
    "timedelta": (SchemaKind.STRING, "duration"),
    "UUID": (SchemaKind.STRING, "uuid"),
    "UUID1": (SchemaKind.STRING, "uuid"),
    "UUID4": (SchemaKind.STRING, "uuid"),
    "EmailStr": (SchemaKind.STRING, "email"),
    "NameEmail": (SchemaKind.STRING, "email"),
    "AnyUrl": (SchemaKind.STRING, "uri"),
    "AnyHttpUrl": (SchemaKind.STRING, "uri"),
    "HttpUrl": (SchemaKind.STRING, "uri"),
    "SecretStr": (SchemaKind.STRING, "password"),
    "IPv4Address": (SchemaKind.STRING, "ipv4"),
    "IPv6Address": (SchemaKind.STRING, "ipv6"),
    "IPvAnyAddress": (SchemaKind.STRING, "ip"),
    "UploadFile": (SchemaKind.STRING, "binary"),
    "FileStorage": (SchemaKind.STRING, "binary"),
    "Path": (SchemaKind.STRING, None),
}

DEFAULT_COLLECTIONS = frozenset(
    {
        "list", "List", "Sequence", "MutableSequence", "Iterable", "Iterator", "Collection",
        "set", "Set", "frozenset", "FrozenSet", "AbstractSet", "tuple", "Tuple", "deque",
        "Generator", "AsyncIterator", "AsyncIterable", "Page", "QuerySet", "[]",
    }
)

DEFAULT_MAPPINGS = frozenset(
    {"dict", "Dict", "Mapping", "MutableMapping", "DefaultDict", "OrderedDict", "TypedDict", "Json", "JSON"}
)

# Annotations that say nothing about the produced data.
UNINFORMATIVE = frozenset(
    {
        "Any", "object", "None", "NoneType", "Response", "JSONResponse", "JsonResponse",
        "HttpResponse", "ORJSONResponse", "StreamingResponse", "ResponseReturnValue",
        "dict", "Dict", "Mapping", "<metadata>", "...",
    }
)

_WRAPPERS = frozenset({"Annotated", "Final", "Required", "NotRequired", "ReadOnly", "Awaitable", "Coroutine"})


# =============================================================================
# Mapper
# =============================================================================


@dataclass(frozen=True)
class TypeMapper:
    """Maps :class:`TypeExpr` trees onto schema nodes.

    Named types outside the primitive tables are passed to a resolver
    callback, which returns a node (for in-tree classes and enums) or None.
    """

    primitives: Mapping[str, tuple[SchemaKind, Optional[str]]] = field(default_factory=lambda: dict(DEFAULT_PRIMITIVES))
    collections: frozenset = DEFAULT_COLLECTIONS
    mappings: frozenset = DEFAULT_MAPPINGS

    # -------------------------------------------------------------------------
    # Shape predicates
    # -------------------------------------------------------------------------

    def unwrap(self, expr: TypeExpr) -> tuple[TypeExpr, bool]:
        """Strip Optional/None members and transparent wrappers.

        Returns the remaining expression and whether None was among the members.
        """
        nullable = False
        while True:
            base = expr.base_name
            if base in _WRAPPERS and expr.args:
                if base == "Coroutine" and len(expr.args) == 3:
                    expr = expr.args[2]
                else:
                    expr = expr.args[0]
                continue
            if base == "Optional" and expr.args:
                nullable = True
                expr = expr.args[0]
                continue
            if expr.name == "|" or base == "Union":
                members = [arg for arg in expr.args if not arg.is_none]
                if len(members) != len(expr.args):
                    nullable = True
                if len(members) == 1:
                    expr = members[0]
                    continue
                if not members:
                    return TypeExpr("None"), True
                return TypeExpr("Union", tuple(members)), nullable
            return expr, nullable

    def is_union(self, expr: TypeExpr) -> bool:
        return expr.base_name == "Union" and len(expr.args) > 1

    def is_collection(self, expr: TypeExpr) -> bool:
        return expr.base_name in self.collections

    def is_mapping(self, expr: TypeExpr) -> bool:
        return expr.base_name in self.mappings

    def is_literal(self, expr: TypeExpr) -> bool:
        return expr.base_name == "Literal"

    def is_class_var(self, expr: TypeExpr) -> bool:
        return expr.base_name in ("ClassVar", "InitVar")

    def element_type(self, expr: TypeExpr) -> Optional[TypeExpr]:
        """Element type of a collection, when declared."""
        args = [arg for arg in expr.args if arg.name != "..."]
        return args[0] if args else None

    def is_informative(self, expr: Optional[TypeExpr]) -> bool:
        """Whether a return annotation says something about the data shape."""
        if expr is None:
            return False
        inner, _ = self.unwrap(expr)
        if inner.base_name in UNINFORMATIVE and not (self.is_mapping(inner) and inner.args):
            return False
        if self.is_mapping(inner):
            value = inner.args[-1] if inner.args else None
            return value is not None and value.base_name not in UNINFORMATIVE
        if self.is_collection(inner):
            element = self.element_type(inner)
            return element is not None and self.is_informative(element)
        if self.is_union(inner):
            return all(self.is_informative(arg) for arg in inner.args)
        return True

    def primitive(self, expr: TypeExpr) -> Optional[tuple[SchemaKind, Optional[str]]]:
        return self.primitives.get(expr.base_name)

    # -------------------------------------------------------------------------
    # Mapping
    # -------------------------------------------------------------------------

    def to_schema(
        self,
        expr: Optional[TypeExpr],
        resolve_named: Optional[Callable[[str], Optional[SchemaNode]]] = None,
    ) -> SchemaNode:
        """Build the schema node for a type expression.

        Unknown lowercase names become ``string``; unknown capitalised names
        become an ``object`` labelled with the name.
        """
        if expr is None:
            return SchemaNode.string()
        inner, nullable = self.unwrap(expr)
        node = self._map(inner, resolve_named)
        if nullable and not node.nullable:
            node = node.evolve(nullable=True)
        return node

    def _map(
        self,
        expr: TypeExpr,
        resolve_named: Optional[Callable[[str], Optional[SchemaNode]]],
    ) -> SchemaNode:
        if expr.is_none:
            return SchemaNode.string(nullable=True)
        if self.is_union(expr):
            return SchemaNode.union([self.to_schema(arg, resolve_named) for arg in expr.args])
        if self.is_literal(expr):
            return self.literal_schema(expr.values)
        if self.is_collection(expr):
            element = self.element_type(expr)
            items = self.to_schema(element, resolve_named) if element is not None else SchemaNode.string()
            return SchemaNode.array(items=items)
        if self.is_mapping(expr):
            return SchemaNode.object()

        primitive = self.primitive(expr)
        if primitive is not None:
            kind, fmt = primitive
            return SchemaNode.scalar(kind, format=fmt)

        if resolve_named is not None:
            resolved = resolve_named(expr.name)
            if resolved is not None:
                return resolved

        if expr.base_name in ("Any", "object", "<metadata>", "..."):
            return SchemaNode.string()
        if expr.base_name[:1].isupper():
            return SchemaNode.object(source_type=expr.name)
        return SchemaNode.string()

    def literal_schema(self, values: tuple[Any, ...]) -> SchemaNode:
        """Enum node for Literal members; kind from the first non-None member."""
        present = [value for value in values if value is not None]
        nullable = len(present) != len(values)
        sample = present[0] if present else None
        if isinstance(sample, bool):
            kind = SchemaKind.BOOLEAN
        elif isinstance(sample, int):
            kind = SchemaKind.INTEGER
        elif isinstance(sample, float):
            kind = SchemaKind.NUMBER
        else:
            kind = SchemaKind.STRING
        return SchemaNode.scalar(kind, enum_values=tuple(present), nullable=nullable)
