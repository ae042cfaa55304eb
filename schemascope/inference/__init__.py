"""Static schema inference for Python web code.

This module provides:
- Source parsing with Tree-sitter and optimistic symbol resolution
- Validation rule interpretation with nested/wildcard path expansion
- Declarative metadata extraction (decorators, typed fields, docstrings)
- Shape analysis of handler and serializer bodies
- A tiered composer with cycle guard, cache and example synthesis
"""

from schemascope.inference.schema import (
    # Core types
    SchemaKind,
    SchemaNode,
    Constraints,
    ConditionalRequirement,
    # Exceptions
    InferenceError,
    SchemaInvariantError,
)

from schemascope.inference.source_parser import (
    # Parser
    SourceParser,
    SourceParserConfig,
    ParsedModule,
    ClassInfo,
    FunctionInfo,
    FieldInfo,
    ParseStatistics,
    # Factory
    create_parser,
    # Exceptions
    ParseError,
)

from schemascope.inference.symbol_resolver import (
    SymbolResolver,
    SourceTree,
    Subject,
    SubjectKind,
    # Exceptions
    UnresolvedTypeError,
)

from schemascope.inference.naming import (
    NamingHeuristics,
    NamingRule,
    HelperRule,
    MethodShapeRule,
)

from schemascope.inference.rules import (
    RuleToken,
    RuleEffect,
    RuleTable,
    RuleInterpreter,
    RuleSetExtractor,
    parse_rules,
)

from schemascope.inference.metadata import (
    DeclaredField,
    FieldSource,
    Direction,
    MetadataExtractor,
)

from schemascope.inference.shape_analyzer import (
    ShapeAnalyzer,
    ConditionalWrapper,
    # Exceptions
    UnsupportedShapeError,
)

from schemascope.inference.path_expander import PathExpander, expand_paths
from schemascope.inference.examples import ExampleSynthesizer
from schemascope.inference.cache import InferenceCache

from schemascope.inference.composer import (
    SchemaComposer,
    ResolutionContext,
    # Factory
    create_composer,
)

__all__ = [
    # Schema
    "SchemaKind",
    "SchemaNode",
    "Constraints",
    "ConditionalRequirement",
    "InferenceError",
    "SchemaInvariantError",
    # Source Parser
    "SourceParser",
    "SourceParserConfig",
    "ParsedModule",
    "ClassInfo",
    "FunctionInfo",
    "FieldInfo",
    "ParseStatistics",
    "create_parser",
    "ParseError",
    # Symbol Resolver
    "SymbolResolver",
    "SourceTree",
    "Subject",
    "SubjectKind",
    "UnresolvedTypeError",
    # Naming Heuristics
    "NamingHeuristics",
    "NamingRule",
    "HelperRule",
    "MethodShapeRule",
    # Rules
    "RuleToken",
    "RuleEffect",
    "RuleTable",
    "RuleInterpreter",
    "RuleSetExtractor",
    "parse_rules",
    # Metadata
    "DeclaredField",
    "FieldSource",
    "Direction",
    "MetadataExtractor",
    # Shape Analyzer
    "ShapeAnalyzer",
    "ConditionalWrapper",
    "UnsupportedShapeError",
    # Path Expander
    "PathExpander",
    "expand_paths",
    # Examples
    "ExampleSynthesizer",
    # Cache
    "InferenceCache",
    # Composer
    "SchemaComposer",
    "ResolutionContext",
    "create_composer",
]
