"""Declarative metadata extraction.

Fields come from three sources, highest priority first:

1. structured decorators (``@response_field`` / ``@body_param``), each one a
   fully specified field
2. typed class-level declarations (dataclass / pydantic style), with
   ``Field(...)`` keyword arguments as facets
3. docstring tags (``:ivar:``/``:vartype:``, ``@property``/``@var`` and
   Google style ``Attributes:`` sections)

Per field name the highest source wins; descriptions from lower sources
fill gaps. Classes are read along their ancestor chain, nearest first.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Iterator, Optional

from schemascope.inference.naming import to_snake
from schemascope.inference.schema import Constraints, SchemaKind, SchemaNode
from schemascope.inference.source_parser import (
    CallInfo,
    ClassInfo,
    Expression,
    FieldInfo,
    FunctionInfo,
    ParsedModule,
    node_text,
    walk_scope,
)
from schemascope.inference.symbol_resolver import SourceTree, Subject
from schemascope.inference.type_mapper import TypeMapper, parse_type

logger = logging.getLogger(__name__)


class FieldSource(Enum):
    """Where a declared field came from, in priority order."""

    DECORATOR = 1
    TYPED_FIELD = 2
    DOC_COMMENT = 3


class Direction(Enum):
    """Whether a schema describes accepted or produced data."""

    INPUT = "input"
    OUTPUT = "output"


OUTPUT_DECORATORS = frozenset({"response_field", "ResponseField"})
INPUT_DECORATORS = frozenset({"body_param", "BodyParam"})
NAME_STYLE_DECORATORS = frozenset({"map_name", "MapName"})

_SKIPPED_FIELDS = frozenset({"model_config", "Config", "Meta"})


@dataclass(frozen=True)
class DeclaredField:
    """A field read from declarative metadata.

    ``type_text`` is a type expression in source syntax; ``kind`` is set
    instead when a decorator names a schema kind directly.
    """

    name: str
    source: FieldSource
    type_text: Optional[str] = None
    kind: Optional[SchemaKind] = None
    format: Optional[str] = None
    required: Optional[bool] = None
    nullable: bool = False
    deprecated: bool = False
    example: Any = None
    description: Optional[str] = None
    enum_values: Optional[tuple[Any, ...]] = None
    alias: Optional[str] = None
    lower: Optional[float] = None
    upper: Optional[float] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None
    namespace: Optional[str] = None

    @property
    def output_name(self) -> str:
        return self.alias or self.name


# =============================================================================
# Name transforms
# =============================================================================


def _words(name: str) -> list[str]:
    return [word for word in to_snake(name).split("_") if word]


def transform_name(name: str, style: Optional[str]) -> str:
    """Rename ``name`` to ``style``; unknown styles leave it unchanged."""
    if not style:
        return name
    words = _words(name)
    if not words:
        return name
    if style == "snake_case":
        return "_".join(words)
    if style == "kebab_case":
        return "-".join(words)
    if style == "camel_case":
        return words[0] + "".join(word.capitalize() for word in words[1:])
    if style == "pascal_case":
        return "".join(word.capitalize() for word in words)
    return name


def _style_from_generator(text: str) -> Optional[str]:
    lowered = text.lower()
    for marker, style in (("pascal", "pascal_case"), ("camel", "camel_case"), ("kebab", "kebab_case"), ("snake", "snake_case")):
        if marker in lowered:
            return style
    return None


# =============================================================================
# Docstring tags
# =============================================================================


_IVAR = re.compile(r"^:ivar\s+(?:(?P<type>[^:]+?)\s+)?(?P<name>\w+)\s*:\s*(?P<desc>.*)$")
_VARTYPE = re.compile(r"^:vartype\s+(?P<name>\w+)\s*:\s*(?P<type>.+)$")
_AT_TAG = re.compile(r"^@(?:property(?:-read)?|var)\s+(?P<type>\S+)\s+\$?(?P<name>\w+)(?:\s+(?P<desc>.*))?$")
_ATTRIBUTE_ENTRY = re.compile(r"^(?P<name>\w+)\s*(?:\((?P<type>[^)]+)\))?\s*:\s*(?P<desc>.*)$")
_SECTION_HEADERS = frozenset({"attributes:", "fields:"})


def doc_fields(docstring: Optional[str]) -> list[DeclaredField]:
    """Name/type pairs declared in a class docstring."""
    if not docstring:
        return []
    types: dict[str, str] = {}
    found: dict[str, DeclaredField] = {}

    for name, type_text, description in _iter_doc_entries(docstring):
        current = found.get(name)
        if current is None:
            found[name] = DeclaredField(
                name=name,
                source=FieldSource.DOC_COMMENT,
                type_text=type_text,
                description=description or None,
            )
        else:
            found[name] = replace(
                current,
                type_text=current.type_text or type_text,
                description=current.description or description or None,
            )

    for line in docstring.splitlines():
        match = _VARTYPE.match(line.strip())
        if match:
            types[match.group("name")] = match.group("type").strip()
    for name, type_text in types.items():
        current = found.get(name) or DeclaredField(name=name, source=FieldSource.DOC_COMMENT)
        found[name] = replace(current, type_text=type_text)
    return list(found.values())


def _iter_doc_entries(docstring: str) -> Iterator[tuple[str, Optional[str], str]]:
    section_indent: Optional[int] = None
    for raw_line in docstring.splitlines():
        stripped = raw_line.strip()
        indent = len(raw_line) - len(raw_line.lstrip())

        if section_indent is not None:
            if stripped and indent <= section_indent:
                section_indent = None
            elif stripped:
                match = _ATTRIBUTE_ENTRY.match(stripped)
                if match:
                    yield match.group("name"), match.group("type"), match.group("desc").strip()
                continue

        if stripped.lower() in _SECTION_HEADERS:
            section_indent = indent
            continue
        match = _IVAR.match(stripped)
        if match:
            yield match.group("name"), match.group("type"), match.group("desc").strip()
            continue
        match = _AT_TAG.match(stripped)
        if match:
            yield match.group("name"), match.group("type"), (match.group("desc") or "").strip()


# =============================================================================
# Extractor
# =============================================================================


def _literal(value: Any) -> Any:
    return None if isinstance(value, Expression) else value


def _float(value: Any) -> Optional[float]:
    value = _literal(value)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _init_annotation(init: FunctionInfo, name: str) -> Optional[str]:
    parameters = {param.name: param.annotation for param in init.parameters if param.annotation}
    for node in walk_scope(init.body):
        if node.type != "assignment" or node_text(node.child_by_field_name("left")) != f"self.{name}":
            continue
        declared = node.child_by_field_name("type")
        if declared is not None:
            return node_text(declared)
        value = node.child_by_field_name("right")
        if value is not None and value.type == "identifier":
            return parameters.get(node_text(value))
    return None


class MetadataExtractor:
    """Reads declared fields of a subject and turns them into properties."""

    def __init__(self, tree: SourceTree, type_mapper: Optional[TypeMapper] = None):
        self.tree = tree
        self.type_mapper = type_mapper or TypeMapper()

    # -------------------------------------------------------------------------
    # Declared fields
    # -------------------------------------------------------------------------

    def declared_fields(self, subject: Subject, direction: Direction) -> list[DeclaredField]:
        """Merged declared fields of a subject, highest source first."""
        tiers: list[list[DeclaredField]] = [[], [], []]

        if subject.function is not None:
            tiers[0].extend(self.decorator_fields(subject.function.decorators, direction, subject.namespace))
        if subject.is_class and subject.class_info is not None:
            chain = self.tree.ancestor_chain(subject.module, subject.class_info)
            style = self.name_style(chain)
            for module, info in chain:
                tiers[0].extend(
                    replace(declared, name=transform_name(declared.name, style))
                    for declared in self.decorator_fields(info.decorators, direction, module.namespace)
                )
            for module, info in reversed(chain):
                tiers[1].extend(self.typed_fields(info, direction, style, module.namespace))
            for module, info in chain:
                tiers[2].extend(
                    replace(declared, name=transform_name(declared.name, style), namespace=module.namespace)
                    for declared in doc_fields(info.docstring)
                )
        return self._merge(tiers)

    def _merge(self, tiers: list[list[DeclaredField]]) -> list[DeclaredField]:
        merged: dict[str, DeclaredField] = {}
        for tier_index, tier in enumerate(tiers):
            seen_in_tier: set[str] = set()
            for declared in tier:
                key = declared.output_name
                current = merged.get(key)
                if current is None:
                    merged[key] = declared
                elif current.source == declared.source:
                    # same tier: decorators keep the first, typed fields the nearest (last)
                    if tier_index == 1 or key not in seen_in_tier:
                        merged[key] = declared
                elif not current.description and declared.description:
                    merged[key] = replace(current, description=declared.description)
                seen_in_tier.add(key)
        return list(merged.values())

    def decorator_fields(
        self,
        decorators: list[CallInfo],
        direction: Direction,
        namespace: Optional[str] = None,
    ) -> list[DeclaredField]:
        wanted = OUTPUT_DECORATORS if direction == Direction.OUTPUT else INPUT_DECORATORS
        fields: list[DeclaredField] = []
        for decorator in decorators:
            if decorator.base_name not in wanted:
                continue
            name = _literal(decorator.argument(0, "name"))
            if not isinstance(name, str):
                logger.debug(f"Skipping {decorator.name} without a literal name")
                continue
            type_value = decorator.argument(1, "type", "string")
            type_text = type_value.text if isinstance(type_value, Expression) else str(type_value)
            kind = next((k for k in SchemaKind if k.value == type_text), None)
            enum_values = _literal(decorator.kwargs.get("enum"))
            fields.append(
                DeclaredField(
                    name=name,
                    source=FieldSource.DECORATOR,
                    type_text=None if kind else type_text,
                    kind=kind,
                    format=_literal(decorator.kwargs.get("format")),
                    required=bool(_literal(decorator.kwargs.get("required", True))),
                    nullable=bool(_literal(decorator.kwargs.get("nullable", False))),
                    deprecated=bool(_literal(decorator.kwargs.get("deprecated", False))),
                    example=_literal(decorator.kwargs.get("example")),
                    description=_literal(decorator.kwargs.get("description")),
                    enum_values=tuple(enum_values) if isinstance(enum_values, (list, tuple)) else None,
                    namespace=namespace,
                )
            )
        return fields

    def typed_fields(
        self,
        info: ClassInfo,
        direction: Direction,
        style: Optional[str] = None,
        namespace: Optional[str] = None,
    ) -> list[DeclaredField]:
        fields: list[DeclaredField] = []
        for field_info in info.fields:
            if field_info.name.startswith("_") or field_info.name in _SKIPPED_FIELDS:
                continue
            expr = parse_type(field_info.annotation)
            if expr is not None and self.type_mapper.is_class_var(expr):
                continue
            fields.append(replace(self._typed_field(field_info, direction, style), namespace=namespace))
        return fields

    def _typed_field(self, field_info: FieldInfo, direction: Direction, style: Optional[str]) -> DeclaredField:
        call = field_info.field_call
        kwargs = call.kwargs if call is not None and call.base_name in ("Field", "field") else {}

        alias_keys = ("serialization_alias", "alias") if direction == Direction.OUTPUT else ("validation_alias", "alias")
        alias = next((kwargs[key] for key in alias_keys if isinstance(_literal(kwargs.get(key)), str)), None)
        if alias is None and style:
            alias = transform_name(field_info.name, style)
            if alias == field_info.name:
                alias = None

        examples = _literal(kwargs.get("examples"))
        example = examples[0] if isinstance(examples, (list, tuple)) and examples else _literal(kwargs.get("example"))
        extra = _literal(kwargs.get("json_schema_extra"))
        if example is None and isinstance(extra, dict):
            example = extra.get("example")

        deprecated = _literal(kwargs.get("deprecated"))
        pattern = _literal(kwargs.get("pattern")) or _literal(kwargs.get("regex"))

        return DeclaredField(
            name=field_info.name,
            source=FieldSource.TYPED_FIELD,
            type_text=field_info.annotation,
            required=not field_info.has_default,
            deprecated=bool(deprecated),
            example=example,
            description=_literal(kwargs.get("description")) or _literal(kwargs.get("title")),
            alias=alias,
            lower=_float(kwargs.get("ge")) if "ge" in kwargs else _float(kwargs.get("gt")),
            upper=_float(kwargs.get("le")) if "le" in kwargs else _float(kwargs.get("lt")),
            min_length=_literal(kwargs.get("min_length")) if isinstance(_literal(kwargs.get("min_length")), int) else None,
            max_length=_literal(kwargs.get("max_length")) if isinstance(_literal(kwargs.get("max_length")), int) else None,
            pattern=pattern if isinstance(pattern, str) else None,
        )

    def name_style(self, chain: list[tuple[ParsedModule, ClassInfo]]) -> Optional[str]:
        """Class-level rename rule: ``@map_name(...)`` or a pydantic alias generator."""
        for _, info in chain:
            for decorator in info.decorators:
                if decorator.base_name in NAME_STYLE_DECORATORS:
                    style = _literal(decorator.argument(0, "style"))
                    if isinstance(style, str):
                        return style
            config = info.assignment_call("model_config")
            if config is not None:
                generator = config.kwargs.get("alias_generator")
                if isinstance(generator, Expression):
                    style = _style_from_generator(generator.text)
                    if style:
                        return style
        return None

    def attribute_annotation(
        self,
        module: ParsedModule,
        info: ClassInfo,
        name: str,
    ) -> Optional[tuple[ParsedModule, str]]:
        """Declared type of instance attribute ``name`` and the module it was written in.

        Looks along the ancestor chain for an annotated class field, then for
        ``self.name: T = ...`` or ``self.name = param`` with an annotated
        parameter in ``__init__``.
        """
        for chain_module, chain_class in self.tree.ancestor_chain(module, info):
            for field_info in chain_class.fields:
                if field_info.name == name:
                    return chain_module, field_info.annotation
            init = chain_class.methods.get("__init__")
            if init is not None:
                annotation = _init_annotation(init, name)
                if annotation:
                    return chain_module, annotation
        return None

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    def extract(
        self,
        subject: Subject,
        direction: Direction,
        type_node: Callable[[str, Optional[str]], SchemaNode],
    ) -> dict[str, SchemaNode]:
        """The subject's declared fields as schema properties.

        ``type_node`` maps a type expression and the namespace it was written
        in to a node; the composer passes one that recurses into in-tree
        classes under the cycle guard.
        """
        properties: dict[str, SchemaNode] = {}
        for declared in self.declared_fields(subject, direction):
            properties[declared.output_name] = self.field_node(declared, type_node)
        return properties

    def field_node(
        self,
        declared: DeclaredField,
        type_node: Callable[[str, Optional[str]], SchemaNode],
    ) -> SchemaNode:
        if declared.kind is not None:
            node = SchemaNode.scalar(declared.kind, format=declared.format if declared.kind.is_scalar else None)
        elif declared.type_text:
            node = type_node(declared.type_text, declared.namespace)
        else:
            node = SchemaNode.string()

        changes: dict[str, Any] = {}
        if declared.format and node.kind.is_scalar:
            changes["format"] = declared.format
        if declared.nullable and not node.nullable:
            changes["nullable"] = True
        if declared.required is not None:
            changes["required"] = declared.required
        if declared.deprecated:
            changes["deprecated"] = True
        if declared.example is not None:
            changes["example"] = declared.example
        if declared.description:
            changes["description"] = declared.description
        if declared.enum_values and node.kind.is_scalar:
            changes["enum_values"] = declared.enum_values
        constraints = self._constraints(declared, node.kind)
        if constraints is not None:
            changes["constraints"] = (node.constraints or Constraints()).merged(constraints)
        return node.evolve(**changes) if changes else node

    def _constraints(self, declared: DeclaredField, kind: SchemaKind) -> Optional[Constraints]:
        if kind.is_numeric:
            constraints = Constraints(minimum=declared.lower, maximum=declared.upper, pattern=declared.pattern)
        elif kind == SchemaKind.ARRAY:
            constraints = Constraints(min_items=declared.min_length, max_items=declared.max_length)
        elif kind == SchemaKind.STRING:
            constraints = Constraints(
                min_length=declared.min_length,
                max_length=declared.max_length,
                pattern=declared.pattern,
            )
        else:
            return None
        return None if constraints.is_empty else constraints
