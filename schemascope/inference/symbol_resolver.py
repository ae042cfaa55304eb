"""Symbol resolution and the indexed source tree.

This module provides:
- SymbolResolver: short identifier + import table + namespace -> dotted name
- SourceTree: module-name index over a directory or in-memory sources
- Subject: a class, function or method selected for analysis
- Ancestor chain walking for in-tree superclasses
"""

from __future__ import annotations

import builtins
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Mapping, Optional, Union

from schemascope.inference.cache import InferenceCache
from schemascope.inference.schema import InferenceError
from schemascope.inference.source_parser import (
    ClassInfo,
    FunctionInfo,
    ParsedModule,
    ParseError,
    SourceParser,
)
from schemascope.inference.symbol_table import ImportTable, module_name_for_path

logger = logging.getLogger(__name__)

BUILTIN_NAMES = frozenset(name for name in dir(builtins) if not name.startswith("_"))

ENUM_BASES = ("Enum", "IntEnum", "StrEnum", "Flag", "IntFlag")

# Re-export chains longer than this are treated as unresolvable.
_MAX_REEXPORT_HOPS = 8


# =============================================================================
# Exceptions
# =============================================================================


class UnresolvedTypeError(InferenceError):
    """Raised when a dotted name does not map to a definition in the source tree."""

    pass


# =============================================================================
# Resolver
# =============================================================================


class SymbolResolver:
    """Optimistic name resolution.

    Order: an alias bound by the import table (``m.User`` with
    ``import app.models as m`` expands the head), a dotted name that is
    not an alias is already qualified, builtins map to ``builtins.<name>``,
    and anything else is assumed to live in the current namespace.

    When ``exists`` is given and the name is not defined in the current
    namespace, modules star-imported with ``from x import *`` are tried in
    import order before falling back to the namespace.
    """

    def resolve(
        self,
        name: str,
        imports: ImportTable,
        namespace: str,
        exists: Optional[Callable[[str], bool]] = None,
    ) -> str:
        name = name.strip().strip("'\"")
        if not name:
            return name
        head, _, rest = name.partition(".")
        target = imports.lookup(head)
        if target:
            return f"{target}.{rest}" if rest else target
        if rest:
            return name
        if name in BUILTIN_NAMES:
            return f"builtins.{name}"
        local = f"{namespace}.{name}" if namespace else name
        if exists is not None and imports.wildcards and not exists(local):
            for module_name in imports.wildcards:
                candidate = f"{module_name}.{name}"
                if exists(candidate):
                    return candidate
        return local


# =============================================================================
# Subjects
# =============================================================================


class SubjectKind(Enum):
    """What a subject points at."""

    CLASS = "class"
    FUNCTION = "function"
    METHOD = "method"


@dataclass(frozen=True)
class Subject:
    """A unit under analysis."""

    kind: SubjectKind
    qualified_name: str
    module: ParsedModule
    class_info: Optional[ClassInfo] = None
    function: Optional[FunctionInfo] = None

    @property
    def name(self) -> str:
        if self.function is not None:
            return self.function.name
        if self.class_info is not None:
            return self.class_info.name
        return self.qualified_name.rsplit(".", 1)[-1]

    @property
    def namespace(self) -> str:
        return self.module.namespace

    @property
    def imports(self) -> ImportTable:
        return self.module.imports

    @property
    def path(self) -> Optional[Path]:
        return self.module.path

    @property
    def is_class(self) -> bool:
        return self.kind == SubjectKind.CLASS


# =============================================================================
# Source Tree
# =============================================================================


class SourceTree:
    """Index of Python modules, parsed lazily.

    Built either over a directory (``root``) or over an in-memory mapping of
    relative file paths to source text (``sources``).
    """

    def __init__(
        self,
        root: Optional[Union[str, Path]] = None,
        sources: Optional[Mapping[str, str]] = None,
        parser: Optional[SourceParser] = None,
        cache: Optional[InferenceCache] = None,
        resolver: Optional[SymbolResolver] = None,
    ):
        self.root = Path(root) if root is not None else None
        self.parser = parser or SourceParser()
        self.cache = cache if cache is not None else InferenceCache()
        self.resolver = resolver or SymbolResolver()
        self._files: dict[str, Path] = {}
        self._texts: dict[str, str] = {}
        self._packages: set[str] = set()

        if self.root is not None:
            self._index_directory(self.root)
        if sources:
            for rel_path, text in sources.items():
                self.add_source(rel_path, text)

    @classmethod
    def from_sources(cls, sources: Mapping[str, str], **kwargs) -> "SourceTree":
        return cls(sources=sources, **kwargs)

    def _index_directory(self, root: Path) -> None:
        for file_path in sorted(root.rglob("*.py")):
            if any(part.startswith(".") or part == "__pycache__" for part in file_path.relative_to(root).parts):
                continue
            module_name = module_name_for_path(file_path, root)
            if not module_name:
                continue
            self._files[module_name] = file_path
            if file_path.name == "__init__.py":
                self._packages.add(module_name)
        logger.debug(f"Indexed {len(self._files)} modules under {root}")

    def add_source(self, rel_path: str, text: str) -> str:
        """Register in-memory source text; returns its module name."""
        module_name = module_name_for_path(Path(rel_path))
        self._texts[module_name] = text
        if Path(rel_path).name == "__init__.py":
            self._packages.add(module_name)
        self.cache.invalidate(module_name)
        return module_name

    def module_names(self) -> list[str]:
        return sorted(set(self._files) | set(self._texts))

    def has_module(self, module_name: str) -> bool:
        return module_name in self._texts or module_name in self._files

    # -------------------------------------------------------------------------
    # Parsing
    # -------------------------------------------------------------------------

    def module(self, module_name: str) -> ParsedModule:
        """Parsed module by dotted name.

        Raises:
            UnresolvedTypeError: If no such module is indexed.
            ParseError: If the module's text cannot be parsed.
        """
        cached = self.cache.get_module(module_name)
        if cached is not None:
            return cached

        is_package = module_name in self._packages
        if module_name in self._texts:
            parsed = self.parser.parse(
                self._texts[module_name],
                namespace=module_name,
                is_package=is_package,
            )
        elif module_name in self._files:
            parsed = self.parser.parse_file(self._files[module_name], namespace=module_name)
        else:
            raise UnresolvedTypeError(f"No module named {module_name}")

        self.cache.put_module(module_name, parsed)
        return parsed

    def _split(self, qualified_name: str) -> tuple[str, list[str]]:
        """Split a dotted name into its longest module prefix and the remainder."""
        parts = qualified_name.split(".")
        for index in range(len(parts) - 1, 0, -1):
            module_name = ".".join(parts[:index])
            if self.has_module(module_name):
                return module_name, parts[index:]
        raise UnresolvedTypeError(f"No module contains {qualified_name}")

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def locate_class(self, qualified_name: str) -> tuple[ParsedModule, ClassInfo]:
        """Find a class definition, following package re-exports.

        Raises:
            UnresolvedTypeError: If the name does not lead to a class.
            ParseError: If the defining module cannot be parsed.
        """
        seen: set[str] = set()
        current = qualified_name
        for _ in range(_MAX_REEXPORT_HOPS):
            if current in seen:
                break
            seen.add(current)
            module_name, remainder = self._split(current)
            module = self.module(module_name)
            if len(remainder) == 1:
                info = module.classes.get(remainder[0])
                if info is not None:
                    return module, info
                target = module.imports.lookup(remainder[0])
                if target and target != current:
                    current = target
                    continue
            break
        raise UnresolvedTypeError(f"Cannot resolve class {qualified_name}")

    def find_class(self, qualified_name: str) -> Optional[tuple[ParsedModule, ClassInfo]]:
        """Like :meth:`locate_class` but returns None instead of raising."""
        try:
            return self.locate_class(qualified_name)
        except (UnresolvedTypeError, ParseError) as e:
            logger.debug(f"Class lookup failed for {qualified_name}: {e}")
            return None

    def subject(self, qualified_name: str) -> Subject:
        """Build a subject for a class, a module function or ``Class.method``.

        Raises:
            UnresolvedTypeError: If nothing with that name is defined.
        """
        module_name, remainder = self._split(qualified_name)
        module = self.module(module_name)
        if len(remainder) == 1:
            name = remainder[0]
            if name in module.classes:
                return self.class_subject(module, module.classes[name])
            if name in module.functions:
                return Subject(
                    kind=SubjectKind.FUNCTION,
                    qualified_name=qualified_name,
                    module=module,
                    function=module.functions[name],
                )
            found = self.find_class(qualified_name)
            if found is not None:
                return self.class_subject(*found)
        elif len(remainder) == 2:
            class_name, method_name = remainder
            found = self.find_class(f"{module_name}.{class_name}")
            if found is not None:
                owner_module, info = found
                for ancestor_module, ancestor in self.ancestor_chain(owner_module, info):
                    method = ancestor.methods.get(method_name)
                    if method is not None:
                        return Subject(
                            kind=SubjectKind.METHOD,
                            qualified_name=qualified_name,
                            module=ancestor_module,
                            class_info=info,
                            function=method,
                        )
        raise UnresolvedTypeError(f"Nothing named {qualified_name}")

    def class_subject(self, module: ParsedModule, info: ClassInfo) -> Subject:
        return Subject(
            kind=SubjectKind.CLASS,
            qualified_name=info.qualified_name,
            module=module,
            class_info=info,
        )

    def resolve(self, name: str, module: ParsedModule) -> str:
        return self.resolver.resolve(name, module.imports, module.namespace, exists=self.has_class)

    def has_class(self, qualified_name: str) -> bool:
        return self.find_class(qualified_name) is not None

    def resolve_class(self, name: str, module: ParsedModule) -> Optional[tuple[ParsedModule, ClassInfo]]:
        """Resolve a short class name used inside ``module`` to its definition."""
        return self.find_class(self.resolve(name, module))

    # -------------------------------------------------------------------------
    # Hierarchy
    # -------------------------------------------------------------------------

    def ancestor_chain(
        self,
        module: ParsedModule,
        info: ClassInfo,
    ) -> list[tuple[ParsedModule, ClassInfo]]:
        """The class followed by its in-tree ancestors, nearest first.

        Walked iteratively, depth-first and left-to-right over the bases;
        bases outside the tree end their branch and each class appears once.
        """
        chain: list[tuple[ParsedModule, ClassInfo]] = []
        seen: set[str] = set()
        stack: list[tuple[ParsedModule, ClassInfo]] = [(module, info)]
        while stack:
            current_module, current = stack.pop()
            if current.qualified_name in seen:
                continue
            seen.add(current.qualified_name)
            chain.append((current_module, current))
            parents: list[tuple[ParsedModule, ClassInfo]] = []
            for base in current.bases:
                base_name = base.split("[", 1)[0]
                found = self.resolve_class(base_name, current_module)
                if found is not None and found[1].qualified_name not in seen:
                    parents.append(found)
            stack.extend(reversed(parents))
        return chain

    def base_names(self, module: ParsedModule, info: ClassInfo) -> list[str]:
        """Resolved names of every base along the chain, including out-of-tree ones."""
        names: list[str] = []
        for chain_module, chain_class in self.ancestor_chain(module, info):
            for base in chain_class.bases:
                resolved = self.resolve(base.split("[", 1)[0], chain_module)
                if resolved not in names:
                    names.append(resolved)
        return names

    def inherits_from(self, module: ParsedModule, info: ClassInfo, suffixes: Iterable[str]) -> bool:
        """Whether any base along the chain ends with one of ``suffixes``."""
        wanted = tuple(suffixes)
        return any(
            name == suffix or name.endswith(f".{suffix}")
            for name in self.base_names(module, info)
            for suffix in wanted
        )

    def is_enum(self, module: ParsedModule, info: ClassInfo) -> bool:
        return self.inherits_from(module, info, ENUM_BASES)

