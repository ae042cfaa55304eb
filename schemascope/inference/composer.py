"""Schema composition and tiered fallback.

Output schemas are tried, in order:

1. Declarative: structured decorators, an informative return annotation,
   declared class fields, Enum members
2. Shape from body: the handler body, or a class's serializer method
3. Name default: the stock shape for the handler name (never fails)

Input schemas prefer an explicit rule set, then rule sets found in source,
then declarative fields, then request accessors read in the body.

Recursion into in-tree classes goes through one guarded entry point that
threads a ResolutionContext, so mutually-referencing classes end in a
placeholder node instead of recursing forever.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, TypeVar, Union

from tree_sitter import Node

from schemascope.inference.cache import InferenceCache
from schemascope.inference.examples import ExampleSynthesizer
from schemascope.inference.metadata import Direction, MetadataExtractor
from schemascope.inference.naming import NamingHeuristics
from schemascope.inference.path_expander import PathExpander
from schemascope.inference.rules import (
    RawRules,
    RuleInterpreter,
    RuleSet,
    RuleSetExtractor,
    RuleTable,
)
from schemascope.inference.schema import SchemaNode
from schemascope.inference.shape_analyzer import ShapeAnalyzer, UnsupportedShapeError
from schemascope.inference.source_parser import (
    ClassInfo,
    FunctionInfo,
    ParsedModule,
    ParseError,
    SourceParserConfig,
    call_arguments,
    create_parser,
    literal_value,
    node_text,
    string_value,
    walk_scope,
)
from schemascope.inference.symbol_resolver import SourceTree, Subject, UnresolvedTypeError
from schemascope.inference.symbol_table import ImportTable
from schemascope.inference.type_mapper import TypeMapper, parse_type
from schemascope.settings import InferenceSettings, get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

ABSORBED_ERRORS = (ParseError, UnresolvedTypeError, UnsupportedShapeError)

_SELF_NAMES = frozenset({"self", "cls"})

_REQUEST_HOLDER = re.compile(
    r"^(?:self\.)?(?:request|req)"
    r"(?:\.(?:json|form|args|data|values|POST|GET|FILES|files|query_params|query|get_json\(\)|json\(\)))?$"
)
_ACCESSOR_METHODS = frozenset({"get", "input", "getlist", "get_list"})
_FILE_SOURCES = ("files", "FILES")


# =============================================================================
# Context
# =============================================================================


@dataclass(frozen=True)
class ResolutionContext:
    """Namespace, imports and cycle guard of one branch of a recursive inference.

    Never mutated; :meth:`descend` returns the context for a child branch
    so siblings never see each other's guard entries.
    """

    namespace: str
    imports: ImportTable
    guard: frozenset = frozenset()
    depth: int = 0

    @classmethod
    def for_module(cls, module: ParsedModule) -> "ResolutionContext":
        return cls(namespace=module.namespace, imports=module.imports)

    def descend(self, qualified_name: str) -> "ResolutionContext":
        return replace(self, guard=self.guard | {qualified_name}, depth=self.depth + 1)

    def within(self, module: ParsedModule) -> "ResolutionContext":
        """Same guard, names resolved against ``module``."""
        return replace(self, namespace=module.namespace, imports=module.imports)


# =============================================================================
# Composer
# =============================================================================


class SchemaComposer:
    """Infers input and output schemas of subjects in a source tree."""

    def __init__(
        self,
        source_tree: SourceTree,
        settings: Optional[InferenceSettings] = None,
        cache: Optional[InferenceCache] = None,
        naming: Optional[NamingHeuristics] = None,
        rule_table: Optional[RuleTable] = None,
        type_mapper: Optional[TypeMapper] = None,
        synthesizer: Optional[ExampleSynthesizer] = None,
    ):
        self.tree = source_tree
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else source_tree.cache
        self.naming = naming or NamingHeuristics()
        self.type_mapper = type_mapper or TypeMapper()
        self.metadata = MetadataExtractor(source_tree, self.type_mapper)
        self.shapes = ShapeAnalyzer(self.naming)
        self.rules = RuleInterpreter(table=rule_table, enum_resolver=self.enum_values)
        self.expander = PathExpander()
        self.synthesizer = synthesizer or ExampleSynthesizer()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def infer_output_schema(self, subject: Union[Subject, str]) -> SchemaNode:
        """Schema of the data a class represents or a handler produces.

        Args:
            subject: A Subject, or the dotted name of a class, function or
                ``Class.method``.

        Returns:
            The inferred schema; a stock shape when nothing better is known,
            including when the subject's own module cannot be parsed.

        Raises:
            UnresolvedTypeError: If a dotted name does not name anything in the tree.
        """
        try:
            subject = self._subject(subject)
        except ParseError as e:
            logger.warning(f"Using the name default for {subject}: {e}")
            return self._finish(self._unparsed_output(subject))
        context = ResolutionContext.for_module(subject.module)
        if subject.is_class:
            node = self._class_node(subject.module, subject.class_info, context, Direction.OUTPUT)
        else:
            node = self._function_output(subject, context)
        return self._finish(node)

    def infer_input_schema(
        self,
        subject: Union[Subject, str],
        rule_set: Optional[Mapping[str, RawRules]] = None,
    ) -> SchemaNode:
        """Schema of the data a handler or request class accepts.

        Args:
            subject: A Subject or dotted name, as for :meth:`infer_output_schema`.
            rule_set: Validation rules per field path; when given they take
                priority over everything read from source.

        Raises:
            UnresolvedTypeError: If a dotted name does not name anything in the tree.
        """
        try:
            subject = self._subject(subject)
        except ParseError as e:
            if rule_set:
                return self._finish(self.from_rules(rule_set))
            logger.warning(f"No input known for {subject}: {e}")
            return self._finish(SchemaNode.object())
        if rule_set:
            return self._finish(self.from_rules(rule_set))
        context = ResolutionContext.for_module(subject.module)
        if subject.is_class:
            node = self._class_node(subject.module, subject.class_info, context, Direction.INPUT)
        else:
            node = self._function_input(subject, context)
        return self._finish(node)

    def resolve_type(self, short_name: str, context: Union[ResolutionContext, Subject]) -> str:
        """Best-guess fully-qualified name of ``short_name`` as used in ``context``."""
        if isinstance(context, Subject):
            context = ResolutionContext.for_module(context.module)
        return self.tree.resolver.resolve(
            short_name, context.imports, context.namespace, exists=self.tree.has_class
        )

    def from_rules(self, rule_set: Mapping[str, RawRules]) -> SchemaNode:
        """Interpret a rule set and expand its paths into one tree."""
        return self.expander.expand(self.rules.interpret_set(rule_set))

    def enum_values(self, qualified_name: str) -> Optional[tuple[Any, ...]]:
        """Members of an in-tree Enum class, for ``enum:`` rules."""
        found = self.tree.find_class(qualified_name)
        if found is None or not self.tree.is_enum(*found):
            return None
        return tuple(found[1].enum_members()) or None

    def _subject(self, subject: Union[Subject, str]) -> Subject:
        if isinstance(subject, Subject):
            return subject
        return self.tree.subject(subject)

    def _unparsed_output(self, qualified_name: str) -> SchemaNode:
        """Stock shape for a subject whose module cannot be parsed."""
        name = qualified_name.rsplit(".", 1)[-1]
        if name[:1].isupper():
            return SchemaNode.object(source_type=qualified_name)
        return self.naming.for_method(name)

    def _finish(self, node: SchemaNode) -> SchemaNode:
        if self.settings.synthesize_examples:
            return self.synthesizer.synthesize(node)
        return node

    def _attempt(self, label: str, build: Callable[[], Optional[T]]) -> Optional[T]:
        """Run one tier; analysis failures mean "no information"."""
        try:
            return build()
        except ABSORBED_ERRORS as e:
            logger.debug(f"{label} gave no information: {e}")
            return None

    # -------------------------------------------------------------------------
    # Guarded class recursion
    # -------------------------------------------------------------------------

    def _class_node(
        self,
        module: ParsedModule,
        info: ClassInfo,
        context: ResolutionContext,
        direction: Direction,
    ) -> SchemaNode:
        """The one entry point for recursing into a class."""
        qualified_name = info.qualified_name
        if qualified_name in context.guard:
            logger.debug(f"Cycle through {qualified_name}")
            return SchemaNode.circular(qualified_name)
        if context.depth >= self.settings.max_depth:
            logger.debug(f"Depth limit reached at {qualified_name}")
            return SchemaNode.depth_limited(qualified_name)

        key = qualified_name if direction == Direction.OUTPUT else f"{qualified_name}#input"
        cached = self.cache.get_schema(key)
        if cached is not None:
            return cached

        inner = context.descend(qualified_name).within(module)
        if direction == Direction.OUTPUT:
            node = self._compose_class_output(module, info, inner)
        else:
            node = self._compose_class_input(module, info, inner)

        if not node.has_placeholder():
            self.cache.put_schema(key, node)
        return node

    def _named_class(
        self,
        name: str,
        module: ParsedModule,
        context: ResolutionContext,
        direction: Direction,
    ) -> Optional[SchemaNode]:
        found = self.tree.resolve_class(name, module)
        if found is None:
            return None
        return self._class_node(found[0], found[1], context, direction)

    def _type_node(
        self,
        text: str,
        module: ParsedModule,
        context: ResolutionContext,
        direction: Direction,
    ) -> SchemaNode:
        """Map a type expression, recursing into in-tree classes."""
        return self.type_mapper.to_schema(
            parse_type(text),
            resolve_named=lambda name: self._named_class(name, module, context, direction),
        )

    def _field_type_node(
        self,
        module: ParsedModule,
        context: ResolutionContext,
        direction: Direction,
    ) -> Callable[[str, Optional[str]], SchemaNode]:
        def type_node(text: str, namespace: Optional[str]) -> SchemaNode:
            declaring = module
            if namespace and namespace != module.namespace:
                declaring = self._attempt(f"Module {namespace}", lambda: self.tree.module(namespace)) or module
            return self._type_node(text, declaring, context, direction)

        return type_node

    def _enum_node(self, module: ParsedModule, info: ClassInfo) -> Optional[SchemaNode]:
        if not self.tree.is_enum(module, info):
            return None
        members = tuple(info.enum_members())
        if not members:
            return SchemaNode.string(source_type=info.qualified_name)
        return replace(self.type_mapper.literal_schema(members), source_type=info.qualified_name)

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def _compose_class_output(
        self,
        module: ParsedModule,
        info: ClassInfo,
        context: ResolutionContext,
    ) -> SchemaNode:
        qualified_name = info.qualified_name
        enum_node = self._enum_node(module, info)
        if enum_node is not None:
            return enum_node

        subject = self.tree.class_subject(module, info)
        properties = self._attempt(
            f"Declared fields of {qualified_name}",
            lambda: self.metadata.extract(
                subject, Direction.OUTPUT, self._field_type_node(module, context, Direction.OUTPUT)
            ),
        )
        if properties:
            return SchemaNode.object(properties, source_type=qualified_name)

        shape = self._attempt(
            f"Serializer of {qualified_name}",
            lambda: self._serializer_shape(module, info, context),
        )
        if shape is not None:
            return shape if shape.source_type else replace(shape, source_type=qualified_name)

        return SchemaNode.object(source_type=qualified_name)

    def _serializer_shape(
        self,
        module: ParsedModule,
        info: ClassInfo,
        context: ResolutionContext,
    ) -> Optional[SchemaNode]:
        chain = self.tree.ancestor_chain(module, info)
        for method_name in self.settings.serializer_methods:
            for chain_module, chain_class in chain:
                method = chain_class.methods.get(method_name)
                if method is None:
                    continue
                shape = self._body_shape(method, chain_module, context, owner=(module, info))
                if shape is not None:
                    return shape
        return None

    def _body_shape(
        self,
        function: FunctionInfo,
        module: ParsedModule,
        context: ResolutionContext,
        owner: Optional[tuple[ParsedModule, ClassInfo]] = None,
    ) -> Optional[SchemaNode]:
        return self.shapes.analyze(
            function,
            resolve_nested=lambda name: self._named_class(name, module, context, Direction.OUTPUT),
            resolve_attribute=self._attribute_types(owner[0], owner[1], context) if owner is not None else None,
        )

    def _attribute_types(
        self,
        module: ParsedModule,
        info: ClassInfo,
        context: ResolutionContext,
    ) -> Callable[[tuple[str, ...]], Optional[SchemaNode]]:
        """Types ``self.a`` and ``self.a.b`` from the declared types of the owning class.

        Each intermediate attribute must be declared as an in-tree class; an
        Optional one along the way makes the result nullable.
        """

        def attribute_type(path: tuple[str, ...]) -> Optional[SchemaNode]:
            owner_module, owner = module, info
            nullable = False
            for name in path[:-1]:
                declared = self.metadata.attribute_annotation(owner_module, owner, name)
                expr = parse_type(declared[1]) if declared is not None else None
                if expr is None:
                    return None
                inner, optional = self.type_mapper.unwrap(expr)
                found = self.tree.resolve_class(inner.name, declared[0])
                if found is None:
                    return None
                owner_module, owner = found
                nullable = nullable or optional

            declared = self.metadata.attribute_annotation(owner_module, owner, path[-1])
            if declared is None or not self.type_mapper.is_informative(parse_type(declared[1])):
                return None
            node = self._type_node(declared[1], declared[0], context, Direction.OUTPUT)
            if nullable and not node.nullable:
                node = node.evolve(nullable=True)
            return node

        return attribute_type

    def _owner(self, subject: Subject) -> Optional[tuple[ParsedModule, ClassInfo]]:
        if subject.class_info is None:
            return None
        return self.tree.find_class(subject.class_info.qualified_name)

    def _function_output(self, subject: Subject, context: ResolutionContext) -> SchemaNode:
        function = subject.function
        module = subject.module

        properties = self._attempt(
            f"Decorators of {subject.qualified_name}",
            lambda: self.metadata.extract(
                subject, Direction.OUTPUT, self._field_type_node(module, context, Direction.OUTPUT)
            ),
        )
        if properties:
            return SchemaNode.object(properties)

        if self.type_mapper.is_informative(parse_type(function.return_annotation)):
            node = self._attempt(
                f"Return annotation of {subject.qualified_name}",
                lambda: self._type_node(function.return_annotation, module, context, Direction.OUTPUT),
            )
            if node is not None:
                return node

        shape = self._attempt(
            f"Body of {subject.qualified_name}",
            lambda: self._body_shape(function, module, context, self._owner(subject)),
        )
        if shape is not None:
            return shape

        logger.debug(f"Using the name default for {subject.qualified_name}")
        return self.naming.for_method(function.name)

    # -------------------------------------------------------------------------
    # Input
    # -------------------------------------------------------------------------

    def _rule_extractor(self, module: ParsedModule) -> RuleSetExtractor:
        return RuleSetExtractor(
            rules_method=self.settings.rules_method,
            resolve=lambda name: self.tree.resolve(name, module),
        )

    def _class_rule_set(self, module: ParsedModule, info: ClassInfo) -> Optional[RuleSet]:
        chain = self.tree.ancestor_chain(module, info)
        return self._rule_extractor(module).from_class_chain([chain_class for _, chain_class in chain])

    def _compose_class_input(
        self,
        module: ParsedModule,
        info: ClassInfo,
        context: ResolutionContext,
    ) -> SchemaNode:
        qualified_name = info.qualified_name
        rule_set = self._attempt(f"Rules of {qualified_name}", lambda: self._class_rule_set(module, info))
        if rule_set:
            return replace(self.from_rules(rule_set), source_type=qualified_name)

        enum_node = self._enum_node(module, info)
        if enum_node is not None:
            return enum_node

        subject = self.tree.class_subject(module, info)
        properties = self._attempt(
            f"Declared fields of {qualified_name}",
            lambda: self.metadata.extract(
                subject, Direction.INPUT, self._field_type_node(module, context, Direction.INPUT)
            ),
        )
        return SchemaNode.object(properties or {}, source_type=qualified_name)

    def _function_input(self, subject: Subject, context: ResolutionContext) -> SchemaNode:
        function = subject.function
        module = subject.module

        rule_set = self._attempt(
            f"Rules of {subject.qualified_name}",
            lambda: self._function_rule_set(function, module),
        )
        if rule_set:
            return self.from_rules(rule_set)

        properties = self._attempt(
            f"Body parameters of {subject.qualified_name}",
            lambda: self.metadata.extract(
                subject, Direction.INPUT, self._field_type_node(module, context, Direction.INPUT)
            ),
        )
        if properties:
            return SchemaNode.object(properties)

        for found in self._parameter_classes(function, module):
            node = self._class_node(found[0], found[1], context, Direction.INPUT)
            if node.properties or node.is_placeholder:
                return node

        fragments = self._attempt(
            f"Request accessors of {subject.qualified_name}",
            lambda: self.request_fields(function),
        )
        if fragments:
            return self.expander.expand(fragments)

        return SchemaNode.object()

    def _parameter_classes(
        self,
        function: FunctionInfo,
        module: ParsedModule,
    ) -> list[tuple[ParsedModule, ClassInfo]]:
        """In-tree classes annotated on the handler's parameters, in order."""
        found: list[tuple[ParsedModule, ClassInfo]] = []
        for parameter in function.parameters:
            if parameter.name in _SELF_NAMES or parameter.variadic or not parameter.annotation:
                continue
            expr = parse_type(parameter.annotation)
            if expr is None:
                continue
            inner, _ = self.type_mapper.unwrap(expr)
            if self.type_mapper.primitive(inner) is not None:
                continue
            resolved = self.tree.resolve_class(inner.name, module)
            if resolved is not None and not self.tree.is_enum(*resolved):
                found.append(resolved)
        return found

    def _function_rule_set(self, function: FunctionInfo, module: ParsedModule) -> Optional[RuleSet]:
        for parameter_module, parameter_class in self._parameter_classes(function, module):
            rule_set = self._class_rule_set(parameter_module, parameter_class)
            if rule_set:
                return rule_set
        return self._rule_extractor(module).from_function(function)

    # -------------------------------------------------------------------------
    # Request accessors
    # -------------------------------------------------------------------------

    def request_fields(self, function: FunctionInfo) -> dict[str, SchemaNode]:
        """Fields read from the request in a handler body.

        Recognises ``request.get("k")``, ``request.json.get("k", 0)``,
        ``request.args.get("k", type=int)``, ``request.form["k"]`` and friends.
        Subscript reads are required, ``get`` reads are optional.
        """
        fields: dict[str, SchemaNode] = {}
        for node in walk_scope(function.body):
            if node.type == "call":
                self._accessor_call(node, fields)
            elif node.type == "subscript":
                holder = node_text(node.child_by_field_name("value"))
                key = string_value(node.child_by_field_name("subscript"))
                if key is not None and _REQUEST_HOLDER.match(holder):
                    fields.setdefault(key, self._accessor_node(key, holder, required=True))
        return fields

    def _accessor_call(self, node: Node, fields: dict[str, SchemaNode]) -> None:
        callee = node_text(node.child_by_field_name("function"))
        holder, _, method = callee.rpartition(".")
        if method not in _ACCESSOR_METHODS or not _REQUEST_HOLDER.match(holder):
            return
        positional, keywords = call_arguments(node)
        key = string_value(positional[0]) if positional else None
        if key is None or key in fields:
            return

        if method in ("getlist", "get_list"):
            fields[key] = SchemaNode.array(items=self._accessor_node(key, holder, required=False))
            return
        if "type" in keywords:
            converted = self.type_mapper.to_schema(parse_type(node_text(keywords["type"])))
            fields[key] = converted.evolve(required=False)
            return
        default = keywords.get("default")
        if default is None and len(positional) > 1:
            default = positional[1]
        fields[key] = self._default_node(default) or self._accessor_node(key, holder, required=False)

    def _accessor_node(self, key: str, holder: str, required: bool) -> SchemaNode:
        if holder.endswith(_FILE_SOURCES):
            return SchemaNode.string("binary", required=required)
        return self.naming.for_field(key.rsplit(".", 1)[-1], required=required)

    def _default_node(self, default: Optional[Node]) -> Optional[SchemaNode]:
        if default is None:
            return None
        value = literal_value(default)
        if isinstance(value, bool):
            return SchemaNode.boolean()
        if isinstance(value, int):
            return SchemaNode.integer()
        if isinstance(value, float):
            return SchemaNode.number()
        if isinstance(value, str):
            return SchemaNode.string()
        if isinstance(value, (list, tuple)):
            return SchemaNode.array()
        if isinstance(value, dict):
            return SchemaNode.object()
        return None


# =============================================================================
# Factory
# =============================================================================


def create_composer(
    root: Optional[Union[str, Path]] = None,
    sources: Optional[Mapping[str, str]] = None,
    settings: Optional[InferenceSettings] = None,
) -> SchemaComposer:
    """Create a composer over a directory or in-memory sources.

    Args:
        root: Directory indexed recursively for ``*.py`` files.
        sources: Relative file path -> source text, added on top of ``root``.
        settings: Engine settings; the process-wide settings when omitted.

    Returns:
        A configured SchemaComposer.
    """
    settings = settings or get_settings()
    cache = InferenceCache(enabled=settings.cache_enabled)
    parser = create_parser(
        SourceParserConfig(
            max_file_size_bytes=settings.max_file_size_bytes,
            allow_partial=settings.allow_partial_parse,
        )
    )
    tree = SourceTree(root=root, sources=sources, parser=parser, cache=cache)
    return SchemaComposer(tree, settings=settings, cache=cache)
