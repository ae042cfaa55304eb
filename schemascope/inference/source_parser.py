"""Source parser built on Tree-sitter.

This module provides:
- SourceParser: Python source text -> ParsedModule
- Structural records for classes, functions, fields, parameters and decorators
- Literal decoding for decorator and Field(...) arguments
- Parse error tracking and statistics
"""

from __future__ import annotations

import ast as py_ast
import inspect
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Optional, Union

import tree_sitter_python as ts_python
from tree_sitter import Language as TSLanguage, Node, Parser, Tree

from schemascope.inference.schema import InferenceError
from schemascope.inference.symbol_table import ImportTable, resolve_relative_module

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


@dataclass(frozen=True)
class SyntaxIssue:
    """A syntax problem located in the parsed text."""

    line: int
    column: int
    message: str


class ParseError(InferenceError):
    """Raised when source text cannot be turned into a usable tree."""

    def __init__(self, message: str, issues: Optional[list[SyntaxIssue]] = None):
        super().__init__(message)
        self.issues = issues or []


# =============================================================================
# Literal values
# =============================================================================


@dataclass(frozen=True)
class Expression:
    """A non-literal expression kept as source text."""

    text: str


_LITERAL_NODE_TYPES = {"string", "concatenated_string", "integer", "float"}


def node_text(node: Optional[Node]) -> str:
    """Decode the source text spanned by ``node``."""
    if node is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def string_value(node: Optional[Node]) -> Optional[str]:
    """Value of a plain string literal, or None for anything else (f-strings included)."""
    if node is None or node.type not in ("string", "concatenated_string"):
        return None
    try:
        value = py_ast.literal_eval(node_text(node))
    except (ValueError, SyntaxError):
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value if isinstance(value, str) else None


def named_children(node: Node) -> list[Node]:
    """Named children without comments."""
    return [child for child in node.named_children if child.type != "comment"]


def literal_value(node: Optional[Node]) -> Any:
    """Decode a literal expression.

    Strings, numbers, booleans, None and containers of those decode to Python
    values; anything else becomes an :class:`Expression` holding its text.
    """
    if node is None:
        return None
    node_type = node.type
    if node_type == "parenthesized_expression":
        inner = named_children(node)
        return literal_value(inner[0]) if inner else None
    if node_type in _LITERAL_NODE_TYPES or node_type == "unary_operator":
        try:
            return py_ast.literal_eval(node_text(node))
        except (ValueError, SyntaxError):
            return Expression(node_text(node))
    if node_type == "true":
        return True
    if node_type == "false":
        return False
    if node_type == "none":
        return None
    if node_type == "ellipsis":
        return Ellipsis
    if node_type in ("list", "tuple", "set"):
        values = [literal_value(child) for child in named_children(node)]
        return tuple(values) if node_type == "tuple" else values
    if node_type == "dictionary":
        result: dict[Any, Any] = {}
        for pair in named_children(node):
            if pair.type != "pair":
                continue
            key = literal_value(pair.child_by_field_name("key"))
            if isinstance(key, Expression):
                key = key.text
            result[key] = literal_value(pair.child_by_field_name("value"))
        return result
    return Expression(node_text(node))


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class CallInfo:
    """A call expression reduced to its callee and decoded arguments."""

    name: str
    args: list[Any] = field(default_factory=list)
    kwargs: dict[str, Any] = field(default_factory=dict)
    node: Optional[Node] = None

    @property
    def base_name(self) -> str:
        """The last segment of the callee (``schema.response_field`` -> ``response_field``)."""
        return self.name.rsplit(".", 1)[-1]

    def argument(self, position: int, keyword: Optional[str] = None, default: Any = None) -> Any:
        if keyword is not None and keyword in self.kwargs:
            return self.kwargs[keyword]
        if position < len(self.args):
            return self.args[position]
        return default


DecoratorInfo = CallInfo


@dataclass
class ParameterInfo:
    """A function parameter."""

    name: str
    annotation: Optional[str] = None
    default: Optional[str] = None
    variadic: bool = False


@dataclass
class FieldInfo:
    """An annotated class-level declaration (``name: type [= default]``)."""

    name: str
    annotation: str
    line: int
    has_default: bool = False
    default: Any = None
    field_call: Optional[CallInfo] = None


@dataclass
class FunctionInfo:
    """A function or method definition."""

    name: str
    qualified_name: str
    parameters: list[ParameterInfo]
    body: Optional[Node]
    line_start: int
    line_end: int
    return_annotation: Optional[str] = None
    decorators: list[DecoratorInfo] = field(default_factory=list)
    docstring: Optional[str] = None
    owner: Optional[str] = None
    is_async: bool = False


@dataclass
class ClassInfo:
    """A class definition."""

    name: str
    qualified_name: str
    bases: list[str]
    line_start: int
    line_end: int
    decorators: list[DecoratorInfo] = field(default_factory=list)
    fields: list[FieldInfo] = field(default_factory=list)
    methods: dict[str, FunctionInfo] = field(default_factory=dict)
    assignments: dict[str, Node] = field(default_factory=dict)
    docstring: Optional[str] = None

    def assignment_call(self, name: str) -> Optional[CallInfo]:
        node = self.assignments.get(name)
        if node is not None and node.type == "call":
            return call_info(node)
        return None

    def enum_members(self) -> list[Any]:
        """Literal values of public class-level assignments, in declaration order.

        ``auto()`` members fall back to the member name.
        """
        values: list[Any] = []
        for name, node in self.assignments.items():
            if name.startswith("_"):
                continue
            value = literal_value(node)
            if isinstance(value, Expression):
                if node.type == "call" and node_text(node.child_by_field_name("function")).endswith("auto"):
                    values.append(name.lower())
                continue
            if isinstance(value, (list, dict)):
                continue
            values.append(value)
        return values


@dataclass
class ParsedModule:
    """Result of parsing one source file."""

    namespace: str
    path: Optional[Path]
    imports: ImportTable
    classes: dict[str, ClassInfo] = field(default_factory=dict)
    functions: dict[str, FunctionInfo] = field(default_factory=dict)
    issues: list[SyntaxIssue] = field(default_factory=list)
    tree: Optional[Tree] = None
    is_package: bool = False

    @property
    def is_partial(self) -> bool:
        return bool(self.issues)


@dataclass
class ParseStatistics:
    """Statistics for parse operations."""

    total_files: int = 0
    successful_files: int = 0
    partial_files: int = 0
    failed_files: int = 0

    @property
    def parse_error_rate(self) -> float:
        if self.total_files == 0:
            return 0.0
        return self.failed_files / self.total_files

    def record_success(self) -> None:
        self.total_files += 1
        self.successful_files += 1

    def record_partial(self) -> None:
        self.total_files += 1
        self.partial_files += 1

    def record_failure(self) -> None:
        self.total_files += 1
        self.failed_files += 1


@dataclass
class SourceParserConfig:
    """Configuration for the source parser."""

    max_file_size_bytes: int = 1_000_000  # 1MB default
    allow_partial: bool = False
    log_errors: bool = True


# =============================================================================
# Node helpers
# =============================================================================


def call_info(node: Node) -> Optional[CallInfo]:
    """Reduce a ``call`` node to a CallInfo; None for other nodes."""
    if node is None or node.type != "call":
        return None
    callee = node.child_by_field_name("function")
    info = CallInfo(name=node_text(callee), node=node)
    arguments = node.child_by_field_name("arguments")
    if arguments is None:
        return info
    for arg in named_children(arguments):
        if arg.type == "keyword_argument":
            key = node_text(arg.child_by_field_name("name"))
            info.kwargs[key] = literal_value(arg.child_by_field_name("value"))
        elif arg.type in ("list_splat", "dictionary_splat"):
            continue
        else:
            info.args.append(literal_value(arg))
    return info


def call_arguments(node: Node) -> tuple[list[Node], dict[str, Node]]:
    """Raw positional and keyword argument nodes of a ``call`` node."""
    positional: list[Node] = []
    keywords: dict[str, Node] = {}
    arguments = node.child_by_field_name("arguments") if node is not None else None
    if arguments is None:
        return positional, keywords
    if arguments.type == "generator_expression":
        return [arguments], keywords
    for arg in named_children(arguments):
        if arg.type == "keyword_argument":
            keywords[node_text(arg.child_by_field_name("name"))] = arg.child_by_field_name("value")
        elif arg.type not in ("list_splat", "dictionary_splat"):
            positional.append(arg)
    return positional, keywords


def iter_statements(block: Optional[Node]) -> Iterator[Node]:
    if block is None:
        return
    for child in block.named_children:
        if child.type != "comment":
            yield child


def docstring_of(body: Optional[Node]) -> Optional[str]:
    """Extract a docstring from the first statement of a block."""
    for statement in iter_statements(body):
        if statement.type == "expression_statement":
            inner = named_children(statement)
            if inner and inner[0].type == "string":
                value = string_value(inner[0])
                return inspect.cleandoc(value) if value else None
        return None
    return None


NESTED_SCOPES = frozenset(
    {"function_definition", "async_function_definition", "lambda", "class_definition", "decorated_definition"}
)


def walk_scope(node: Optional[Node]) -> Iterator[Node]:
    """Yield descendants of ``node`` in source order, skipping nested scopes."""
    if node is None:
        return
    stack = list(reversed(named_children(node)))
    while stack:
        current = stack.pop()
        yield current
        if current.type in NESTED_SCOPES:
            continue
        stack.extend(reversed(named_children(current)))


# =============================================================================
# Parser
# =============================================================================


class SourceParser:
    """Turns Python source text into a ParsedModule."""

    def __init__(self, config: Optional[SourceParserConfig] = None):
        self.config = config or SourceParserConfig()
        self.statistics = ParseStatistics()
        self._parser = Parser(TSLanguage(ts_python.language()))

    def parse_file(self, file_path: Path, namespace: str) -> ParsedModule:
        """Parse a file from disk."""
        file_path = Path(file_path)
        try:
            size = file_path.stat().st_size
            if size > self.config.max_file_size_bytes:
                self.statistics.record_failure()
                raise ParseError(
                    f"File size ({size} bytes) exceeds limit ({self.config.max_file_size_bytes} bytes)"
                )
            source = file_path.read_bytes()
        except OSError as e:
            self.statistics.record_failure()
            raise ParseError(f"Failed to read file {file_path}: {e}") from e
        return self.parse(
            source,
            namespace=namespace,
            path=file_path,
            is_package=file_path.name == "__init__.py",
        )

    def parse(
        self,
        source: Union[str, bytes],
        namespace: str = "",
        path: Optional[Path] = None,
        is_package: bool = False,
    ) -> ParsedModule:
        """Parse source text.

        Args:
            source: Python source as text or bytes.
            namespace: Dotted module name the text belongs to.
            path: Originating file, used in messages only.
            is_package: Whether the text is a package ``__init__`` module.

        Returns:
            The parsed module.

        Raises:
            ParseError: On binary input, or on syntax errors unless partial
                trees are allowed by the configuration.
        """
        if isinstance(source, str):
            source = source.encode("utf-8")
        if b"\x00" in source[:8192]:
            self.statistics.record_failure()
            raise ParseError(f"Binary content in {path or namespace or '<string>'}")

        tree = self._parser.parse(source)
        issues: list[SyntaxIssue] = []
        if tree.root_node.has_error:
            self._collect_issues(tree.root_node, issues)
            if not self.config.allow_partial:
                self.statistics.record_failure()
                if self.config.log_errors:
                    logger.warning(f"Failed to parse {path or namespace}: {issues[0].message if issues else 'syntax error'}")
                raise ParseError(f"Syntax error in {path or namespace or '<string>'}", issues)

        module = ParsedModule(
            namespace=namespace,
            path=Path(path) if path else None,
            imports=ImportTable(),
            issues=issues,
            tree=tree,
            is_package=is_package,
        )
        self._walk_module(tree.root_node, module)

        if issues:
            self.statistics.record_partial()
        else:
            self.statistics.record_success()
        return module

    def _collect_issues(self, node: Node, issues: list[SyntaxIssue]) -> None:
        if node.type == "ERROR" or node.is_missing:
            issues.append(
                SyntaxIssue(
                    line=node.start_point[0] + 1,
                    column=node.start_point[1],
                    message=f"Syntax error at line {node.start_point[0] + 1}",
                )
            )
        for child in node.children:
            self._collect_issues(child, issues)

    # -------------------------------------------------------------------------
    # Module level
    # -------------------------------------------------------------------------

    def _walk_module(self, node: Node, module: ParsedModule) -> None:
        for child in node.named_children:
            if child.type == "import_statement":
                self._extract_import(child, module)
            elif child.type == "import_from_statement":
                self._extract_import_from(child, module)
            elif child.type in ("if_statement", "try_statement", "block", "else_clause", "except_clause"):
                # imports guarded by TYPE_CHECKING or try/except ImportError
                self._walk_module(child, module)
            else:
                definition, decorators = self._unwrap_decorated(child)
                if definition is None:
                    continue
                if definition.type == "class_definition":
                    info = self._extract_class(definition, decorators, module.namespace)
                    if info:
                        module.classes[info.name] = info
                elif definition.type in ("function_definition", "async_function_definition"):
                    function = self._extract_function(definition, decorators, module.namespace, owner=None)
                    if function:
                        module.functions[function.name] = function

    def _extract_import(self, node: Node, module: ParsedModule) -> None:
        for child in node.named_children:
            if child.type == "dotted_name":
                target = node_text(child)
                module.imports.add(target.split(".")[0], target.split(".")[0])
            elif child.type == "aliased_import":
                target = node_text(child.child_by_field_name("name"))
                alias = node_text(child.child_by_field_name("alias"))
                module.imports.add(alias, target)

    def _extract_import_from(self, node: Node, module: ParsedModule) -> None:
        module_node = node.child_by_field_name("module_name")
        if module_node is None:
            return
        raw_module = node_text(module_node)
        if module_node.type == "relative_import":
            level = len(raw_module) - len(raw_module.lstrip("."))
            importer = f"{module.namespace}.__init__" if module.is_package else module.namespace
            source_module = resolve_relative_module(importer, raw_module.lstrip("."), level)
        else:
            source_module = raw_module

        for child in node.named_children:
            if child == module_node:
                continue
            if child.type == "dotted_name":
                name = node_text(child)
                module.imports.add(name, f"{source_module}.{name}" if source_module else name)
            elif child.type == "aliased_import":
                name = node_text(child.child_by_field_name("name"))
                alias = node_text(child.child_by_field_name("alias"))
                module.imports.add(alias, f"{source_module}.{name}" if source_module else name)
            elif child.type == "wildcard_import":
                module.imports.add_wildcard(source_module)

    def _unwrap_decorated(self, node: Node) -> tuple[Optional[Node], list[DecoratorInfo]]:
        if node.type != "decorated_definition":
            return node, []
        decorators: list[DecoratorInfo] = []
        for child in node.named_children:
            if child.type == "decorator":
                decorators.append(self._extract_decorator(child))
        return node.child_by_field_name("definition"), decorators

    def _extract_decorator(self, node: Node) -> DecoratorInfo:
        inner = named_children(node)
        expression = inner[0] if inner else None
        if expression is not None and expression.type == "call":
            info = call_info(expression)
            if info is not None:
                return info
        return DecoratorInfo(name=node_text(expression), node=expression)

    # -------------------------------------------------------------------------
    # Classes
    # -------------------------------------------------------------------------

    def _extract_class(
        self,
        node: Node,
        decorators: list[DecoratorInfo],
        namespace: str,
    ) -> Optional[ClassInfo]:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return None
        name = node_text(name_node)
        qualified_name = f"{namespace}.{name}" if namespace else name

        bases: list[str] = []
        superclasses = node.child_by_field_name("superclasses")
        if superclasses is not None:
            for base in named_children(superclasses):
                if base.type != "keyword_argument":
                    bases.append(node_text(base))

        body = node.child_by_field_name("body")
        info = ClassInfo(
            name=name,
            qualified_name=qualified_name,
            bases=bases,
            line_start=node.start_point[0] + 1,
            line_end=node.end_point[0] + 1,
            decorators=decorators,
            docstring=docstring_of(body),
        )

        for statement in iter_statements(body):
            if statement.type == "expression_statement":
                for expression in named_children(statement):
                    if expression.type == "assignment":
                        self._extract_class_assignment(expression, info)
                continue
            definition, method_decorators = self._unwrap_decorated(statement)
            if definition is not None and definition.type in ("function_definition", "async_function_definition"):
                method = self._extract_function(
                    definition, method_decorators, qualified_name, owner=qualified_name
                )
                if method:
                    info.methods[method.name] = method
        return info

    def _extract_class_assignment(self, node: Node, info: ClassInfo) -> None:
        left = node.child_by_field_name("left")
        if left is None or left.type != "identifier":
            return
        name = node_text(left)
        annotation = node.child_by_field_name("type")
        right = node.child_by_field_name("right")

        if annotation is None:
            if right is not None:
                info.assignments[name] = right
            return

        field_info = FieldInfo(
            name=name,
            annotation=node_text(annotation),
            line=node.start_point[0] + 1,
        )
        if right is not None:
            field_call = call_info(right) if right.type == "call" else None
            field_info.field_call = field_call
            field_info.default = literal_value(right)
            field_info.has_default = self._declares_default(field_call)
        info.fields.append(field_info)

    def _declares_default(self, field_call: Optional[CallInfo]) -> bool:
        """Whether a field's right-hand side gives it a default value."""
        if field_call is None or field_call.base_name not in ("Field", "field", "attrib", "ib"):
            return True
        if "default" in field_call.kwargs or "default_factory" in field_call.kwargs:
            return field_call.kwargs.get("default", None) is not Ellipsis
        if field_call.args:
            return field_call.args[0] is not Ellipsis
        return False

    # -------------------------------------------------------------------------
    # Functions
    # -------------------------------------------------------------------------

    def _extract_function(
        self,
        node: Node,
        decorators: list[DecoratorInfo],
        namespace: str,
        owner: Optional[str],
    ) -> Optional[FunctionInfo]:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return None
        name = node_text(name_node)
        body = node.child_by_field_name("body")
        return_type = node.child_by_field_name("return_type")
        is_async = node.type == "async_function_definition" or any(
            child.type == "async" for child in node.children
        )
        return FunctionInfo(
            name=name,
            qualified_name=f"{namespace}.{name}" if namespace else name,
            parameters=self._extract_parameters(node.child_by_field_name("parameters")),
            body=body,
            line_start=node.start_point[0] + 1,
            line_end=node.end_point[0] + 1,
            return_annotation=node_text(return_type) if return_type is not None else None,
            decorators=decorators,
            docstring=docstring_of(body),
            owner=owner,
            is_async=is_async,
        )

    def _extract_parameters(self, node: Optional[Node]) -> list[ParameterInfo]:
        parameters: list[ParameterInfo] = []
        if node is None:
            return parameters
        for child in named_children(node):
            if child.type == "identifier":
                parameters.append(ParameterInfo(name=node_text(child)))
            elif child.type in ("typed_parameter", "typed_default_parameter", "default_parameter"):
                name_node = child.child_by_field_name("name")
                if name_node is None:
                    name_node = next(iter(named_children(child)), None)
                variadic = name_node is not None and name_node.type in (
                    "list_splat_pattern",
                    "dictionary_splat_pattern",
                )
                name = node_text(name_node).lstrip("*")
                annotation = child.child_by_field_name("type")
                default = child.child_by_field_name("value")
                parameters.append(
                    ParameterInfo(
                        name=name,
                        annotation=node_text(annotation) if annotation is not None else None,
                        default=node_text(default) if default is not None else None,
                        variadic=variadic,
                    )
                )
            elif child.type in ("list_splat_pattern", "dictionary_splat_pattern"):
                parameters.append(ParameterInfo(name=node_text(child).lstrip("*"), variadic=True))
        return parameters


def create_parser(config: Optional[SourceParserConfig] = None) -> SourceParser:
    """Create a source parser with optional configuration."""
    return SourceParser(config=config)
