"""Tests for symbol resolution and the source tree.

Covers:
- Resolution order: aliases, qualified names, builtins, namespace
- Module naming and relative imports
- Directory and in-memory indexing
- Subjects, re-exports and ancestor chains
"""

from pathlib import Path

import pytest

from schemascope.inference.source_parser import ParseError
from schemascope.inference.symbol_resolver import (
    SourceTree,
    SubjectKind,
    SymbolResolver,
    UnresolvedTypeError,
)
from schemascope.inference.symbol_table import (
    ImportTable,
    module_name_for_path,
    resolve_relative_module,
)


SOURCES = {
    "app/__init__.py": "from .models import User\n",
    "app/models.py": '''
from enum import IntEnum

from app.base import Base, Mixin


class User(Base, Mixin):
    def to_dict(self):
        return {}


class Admin(User):
    pass


class Level(IntEnum):
    LOW = 1
''',
    "app/base.py": '''
class Root:
    def describe(self):
        return {}


class Base(Root):
    pass


class Mixin(Root):
    pass
''',
    "app/views.py": '''
from app import User


def show(request):
    return {}
''',
    "app/broken.py": "def broken(:\n",
    "app/starred.py": '''
from app.models import *
from app.base import *


class Mixin:
    pass


def show(request) -> User:
    return {}
''',
}


@pytest.fixture
def tree():
    return SourceTree.from_sources(SOURCES)


# =============================================================================
# Resolver Tests
# =============================================================================


class TestSymbolResolver:
    """Tests for SymbolResolver.resolve."""

    @pytest.fixture
    def imports(self):
        table = ImportTable()
        table.add("User", "app.models.User")
        table.add("m", "app.models")
        return table

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("User", "app.models.User"),
            ("m.Post", "app.models.Post"),
            ("other.Thing", "other.Thing"),
            ("int", "builtins.int"),
            ("Local", "app.views.Local"),
            ("'User'", "app.models.User"),
            ("", ""),
        ],
    )
    def test_resolution_order(self, imports, name, expected):
        assert SymbolResolver().resolve(name, imports, "app.views") == expected

    def test_empty_namespace(self):
        assert SymbolResolver().resolve("Local", ImportTable(), "") == "Local"

    def test_wildcard_modules_tried_in_order(self):
        table = ImportTable()
        table.add_wildcard("app.base")
        table.add_wildcard("app.models")
        known = {"app.base.Base", "app.models.User", "app.models.Base"}

        resolver = SymbolResolver()

        assert resolver.resolve("User", table, "app.views", exists=known.__contains__) == "app.models.User"
        assert resolver.resolve("Base", table, "app.views", exists=known.__contains__) == "app.base.Base"
        assert resolver.resolve("Other", table, "app.views", exists=known.__contains__) == "app.views.Other"

    def test_wildcards_ignored_without_lookup(self):
        table = ImportTable()
        table.add_wildcard("app.models")
        assert SymbolResolver().resolve("User", table, "app.views") == "app.views.User"


class TestModuleNames:
    """Tests for module naming helpers."""

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("app/models.py", "app.models"),
            ("app/__init__.py", "app"),
            ("main.py", "main"),
        ],
    )
    def test_module_name_for_path(self, path, expected):
        assert module_name_for_path(Path(path)) == expected

    def test_relative_to_root(self, tmp_path):
        assert module_name_for_path(tmp_path / "pkg" / "mod.py", tmp_path) == "pkg.mod"

    @pytest.mark.parametrize(
        "current,module,level,expected",
        [
            ("app.api.users", "base", 1, "app.api.base"),
            ("app.api.users", None, 2, "app"),
            ("app.__init__", "models", 1, "app.models"),
            ("app", "x", 5, "x"),
            ("app.views", "json", 0, "json"),
        ],
    )
    def test_resolve_relative_module(self, current, module, level, expected):
        assert resolve_relative_module(current, module, level) == expected


# =============================================================================
# Source Tree Tests
# =============================================================================


class TestSourceTree:
    """Tests for module indexing and lookup."""

    def test_module_names(self, tree):
        assert tree.module_names() == ["app", "app.base", "app.broken", "app.models", "app.starred", "app.views"]
        assert tree.has_module("app.models")
        assert not tree.has_module("app.missing")

    def test_modules_parsed_once(self, tree):
        assert tree.module("app.models") is tree.module("app.models")
        assert tree.module("app").is_package is True

    def test_missing_module(self, tree):
        with pytest.raises(UnresolvedTypeError):
            tree.module("app.missing")

    def test_broken_module(self, tree):
        with pytest.raises(ParseError):
            tree.module("app.broken")

    def test_directory_index(self, tmp_path):
        package = tmp_path / "shop"
        package.mkdir()
        (package / "__init__.py").write_text("")
        (package / "orders.py").write_text("class Order:\n    total: float\n")
        hidden = tmp_path / ".venv"
        hidden.mkdir()
        (hidden / "skip.py").write_text("x = 1\n")

        tree = SourceTree(root=tmp_path)

        assert tree.module_names() == ["shop", "shop.orders"]
        assert tree.module("shop.orders").path == package / "orders.py"
        assert "Order" in tree.module("shop.orders").classes

    def test_in_memory_source_overrides_directory(self, tmp_path):
        (tmp_path / "svc.py").write_text("class Old:\n    pass\n")
        tree = SourceTree(root=tmp_path, sources={"svc.py": "class New:\n    pass\n"})
        assert list(tree.module("svc").classes) == ["New"]

# =============================================================================
# Subject Tests
# =============================================================================


class TestSubjects:
    """Tests for SourceTree.subject."""

    def test_class(self, tree):
        subject = tree.subject("app.models.User")
        assert subject.kind == SubjectKind.CLASS
        assert subject.is_class
        assert subject.name == "User"
        assert subject.namespace == "app.models"

    def test_function(self, tree):
        subject = tree.subject("app.views.show")
        assert subject.kind == SubjectKind.FUNCTION
        assert subject.name == "show"
        assert not subject.is_class

    def test_method(self, tree):
        subject = tree.subject("app.models.User.to_dict")
        assert subject.kind == SubjectKind.METHOD
        assert subject.class_info.name == "User"
        assert subject.function.name == "to_dict"

    def test_inherited_method(self, tree):
        subject = tree.subject("app.models.Admin.describe")
        assert subject.class_info.name == "Admin"
        assert subject.module.namespace == "app.base"

    def test_reexported_class(self, tree):
        subject = tree.subject("app.User")
        assert subject.qualified_name == "app.models.User"

    @pytest.mark.parametrize("name", ["app.models.Missing", "app.models.User.missing", "nowhere.User"])
    def test_unknown(self, tree, name):
        with pytest.raises(UnresolvedTypeError):
            tree.subject(name)


# =============================================================================
# Hierarchy Tests
# =============================================================================


class TestHierarchy:
    """Tests for ancestor chains and base checks."""

    def test_ancestor_chain_order(self, tree):
        module, info = tree.locate_class("app.models.Admin")
        chain = [chain_class.name for _, chain_class in tree.ancestor_chain(module, info)]
        assert chain == ["Admin", "User", "Base", "Root", "Mixin"]

    def test_resolve_class_through_wildcard_import(self, tree):
        starred = tree.module("app.starred")
        module, info = tree.resolve_class("User", starred)

        assert module.namespace == "app.models"
        assert info.name == "User"
        assert tree.resolve("Root", starred) == "app.base.Root"

    def test_local_definition_wins_over_wildcard(self, tree):
        starred = tree.module("app.starred")
        assert tree.resolve("Mixin", starred) == "app.starred.Mixin"
        assert tree.resolve("Missing", starred) == "app.starred.Missing"

    def test_resolve_class_through_reexport(self, tree):
        views = tree.module("app.views")
        module, info = tree.resolve_class("User", views)
        assert module.namespace == "app.models"
        assert info.name == "User"

    def test_is_enum(self, tree):
        models = tree.module("app.models")
        assert tree.is_enum(models, models.classes["Level"])
        assert not tree.is_enum(models, models.classes["User"])

    def test_inherits_from(self, tree):
        models = tree.module("app.models")
        assert tree.inherits_from(models, models.classes["Admin"], ["Mixin"])
        assert "enum.IntEnum" in tree.base_names(models, models.classes["Level"])

    def test_find_class_missing(self, tree):
        assert tree.find_class("app.models.Missing") is None
        assert tree.find_class("app.broken.Anything") is None
