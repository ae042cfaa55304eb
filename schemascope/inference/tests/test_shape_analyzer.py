"""Tests for shape analysis of handler and serializer bodies.

Covers:
- Dict displays, comprehensions and bound variables
- Value typing (literals, operators, attributes, helpers)
- Declared attribute types before naming
- Conditional inclusion wrappers and conditional splats
- Response wrappers and resource-style calls
- Fallthrough to later produce statements
"""

import pytest

from schemascope.inference.schema import SchemaKind, SchemaNode
from schemascope.inference.shape_analyzer import (
    SPLAT_CONDITION_DESCRIPTION,
    ConditionalWrapper,
    ShapeAnalyzer,
)
from schemascope.inference.source_parser import SourceParser


RESOURCE_SOURCE = '''
class UserResource:
    def to_dict(self):
        return {"id": self.id, "items": [t.name for t in self.tags]}

    def to_representation(self):
        return {
            "id": self.id,
            "email": self.when(self.is_admin, self.email),
            "posts": self.when_loaded("posts"),
            "comments_count": self.when_counted("comments"),
            "tags": self.tags.map(lambda t: t.name),
            **self.merge_when(self.is_admin, {"secret": self.secret}),
            **({"debug": True} if DEBUG else {}),
        }

    def serialize(self):
        return {
            "total": self.price * self.qty,
            "label": "#" + self.code,
            "ratio": self.done / self.all,
            "deleted_at": None,
            "nickname": self.nickname if self.nickname else None,
            "active": not self.banned,
            "created": self.created_at.isoformat(),
            "size": len(self.items),
            "offset": -1,
            "meta": {"version": 2},
            "callback": lambda: 1,
            "contact_email": when(self.public, self.contact),
        }

    def visible(self):
        return {"email": self.if_visible(self.email)}

    def typed(self):
        return {"id": self.id, "email": self.owner.email, "score": self.score, "label": row.label}


def index(rows):
    return [{"id": row.id, "name": row.name} for row in rows]


def show(user):
    data = {"id": user.id}
    data["name"] = user.name
    data.update({"is_active": user.active})
    return data


def create(payload):
    return jsonify({"ok": True}), 201


def wrapped(user):
    return JSONResponse(content={"user": user.name}, status_code=200)


def detail(user):
    return UserOut(user).to_dict()


def listing(users):
    return UserOut.collection(users)


def mapped(users):
    return users.map(lambda u: {"id": u.id, "email": u.email})


def built():
    return dict(page=1, items=[])


def fallback(x):
    if x:
        return compute(x)
    return {"x": 1}


def unknown():
    return compute()


def nested():
    def inner():
        return {"inner": 1}

    return inner


def stream():
    yield {"n": 1}


def merged(data, user):
    data = {**data, "email": user.email}
    return data
'''


@pytest.fixture(scope="module")
def module():
    return SourceParser().parse(RESOURCE_SOURCE, namespace="app.resources")


@pytest.fixture
def analyzer():
    return ShapeAnalyzer()


def user_out(name):
    if name == "UserOut":
        return SchemaNode.object({"id": SchemaNode.integer(required=True)}, source_type="app.UserOut")
    return None


def method(module, name):
    return module.classes["UserResource"].methods[name]


# =============================================================================
# Structure Tests
# =============================================================================


class TestStructure:
    """Tests for structural shapes."""

    def test_dict_with_comprehension(self, module, analyzer):
        """{"id": self.id, "items": [t.name for t in self.tags]}"""
        node = analyzer.analyze(method(module, "to_dict"))

        assert node.kind == SchemaKind.OBJECT
        assert list(node.properties) == ["id", "items"]
        assert node.properties["id"].kind == SchemaKind.INTEGER
        assert node.properties["id"].required is True
        items = node.properties["items"]
        assert items.kind == SchemaKind.ARRAY
        assert items.items.kind == SchemaKind.STRING
        assert items.required is True

    def test_list_comprehension_of_dicts(self, module, analyzer):
        node = analyzer.analyze(module.functions["index"])
        assert node.kind == SchemaKind.ARRAY
        assert list(node.items.properties) == ["id", "name"]

    def test_bound_variable_with_updates(self, module, analyzer):
        node = analyzer.analyze(module.functions["show"])
        assert list(node.properties) == ["id", "name", "is_active"]
        assert node.properties["is_active"].kind == SchemaKind.BOOLEAN

    def test_dict_call(self, module, analyzer):
        node = analyzer.analyze(module.functions["built"])
        assert node.properties["page"].kind == SchemaKind.INTEGER
        assert node.properties["items"].kind == SchemaKind.ARRAY

    def test_map_lambda(self, module, analyzer):
        node = analyzer.analyze(module.functions["mapped"])
        assert node.kind == SchemaKind.ARRAY
        assert node.items.properties["email"].format == "email"

    def test_yield(self, module, analyzer):
        node = analyzer.analyze(module.functions["stream"])
        assert node.properties["n"].kind == SchemaKind.INTEGER

    def test_variable_splatting_itself_terminates(self, module, analyzer):
        node = analyzer.analyze(module.functions["merged"])

        assert list(node.properties) == ["email"]
        assert node.properties["email"].format == "email"


# =============================================================================
# Wrapper and Resource Tests
# =============================================================================


class TestWrappersAndResources:
    """Tests for response wrappers and resource calls."""

    def test_response_tuple(self, module, analyzer):
        """jsonify(...), 201 keeps the body only."""
        node = analyzer.analyze(module.functions["create"])
        assert node.properties["ok"].kind == SchemaKind.BOOLEAN

    def test_content_keyword(self, module, analyzer):
        node = analyzer.analyze(module.functions["wrapped"])
        assert list(node.properties) == ["user"]

    def test_resource_render(self, module, analyzer):
        node = analyzer.analyze(module.functions["detail"], user_out)
        assert node.source_type == "app.UserOut"

    def test_resource_collection(self, module, analyzer):
        node = analyzer.analyze(module.functions["listing"], user_out)
        assert node.kind == SchemaKind.ARRAY
        assert node.items.source_type == "app.UserOut"

    def test_resource_without_resolver(self, module, analyzer):
        assert analyzer.analyze(module.functions["detail"]) is None


# =============================================================================
# Fallthrough Tests
# =============================================================================


class TestFallthrough:
    """Tests for unrecognised produce statements."""

    def test_later_statement_used(self, module, analyzer):
        node = analyzer.analyze(module.functions["fallback"])
        assert list(node.properties) == ["x"]

    def test_nothing_recognised(self, module, analyzer):
        assert analyzer.analyze(module.functions["unknown"]) is None

    def test_nested_scopes_ignored(self, module, analyzer):
        assert analyzer.analyze(module.functions["nested"]) is None
        assert len(analyzer.produced_expressions(module.functions["nested"].body)) == 1


# =============================================================================
# Value Tests
# =============================================================================


class TestValues:
    """Tests for value typing."""

    @pytest.fixture
    def properties(self, module, analyzer):
        return analyzer.analyze(method(module, "serialize")).properties

    def test_arithmetic(self, properties):
        assert properties["total"].kind == SchemaKind.NUMBER
        assert properties["total"].format == "double"
        assert properties["label"].kind == SchemaKind.STRING
        assert properties["ratio"].kind == SchemaKind.NUMBER

    def test_none_and_optional(self, properties):
        assert properties["deleted_at"].nullable is True
        assert properties["nickname"].kind == SchemaKind.STRING
        assert properties["nickname"].nullable is True

    def test_boolean_operator(self, properties):
        assert properties["active"].kind == SchemaKind.BOOLEAN

    def test_helpers(self, properties):
        assert properties["created"].format == "date-time"
        assert properties["size"].kind == SchemaKind.INTEGER

    def test_literals(self, properties):
        assert properties["offset"].kind == SchemaKind.INTEGER
        assert properties["meta"].properties["version"].kind == SchemaKind.INTEGER

    def test_unknown_value_is_string(self, properties):
        assert properties["callback"].kind == SchemaKind.STRING
        assert properties["callback"].required is True

    def test_plain_function_is_not_a_wrapper(self, properties):
        contact = properties["contact_email"]
        assert contact.format == "email"
        assert contact.conditional is False
        assert contact.required is True


class TestDeclaredAttributes:
    """Tests for attribute types supplied by the caller."""

    def test_declared_type_then_name(self, module, analyzer):
        calls = []
        declared = {("id",): SchemaNode.integer("int64"), ("owner", "email"): SchemaNode.string()}

        def resolve_attribute(path):
            calls.append(path)
            return declared.get(path)

        node = analyzer.analyze(method(module, "typed"), resolve_attribute=resolve_attribute)

        assert calls == [("id",), ("owner", "email"), ("score",)]
        assert node.properties["id"].format == "int64"
        assert node.properties["email"].format == "email"
        assert node.properties["score"].kind == SchemaKind.STRING
        assert node.properties["label"].kind == SchemaKind.STRING


# =============================================================================
# Conditional Tests
# =============================================================================


class TestConditionals:
    """Tests for conditional inclusion."""

    @pytest.fixture
    def properties(self, module, analyzer):
        return analyzer.analyze(method(module, "to_representation")).properties

    def test_when(self, properties):
        """"email": self.when(cond, self.email)"""
        email = properties["email"]
        assert email.conditional is True
        assert email.format == "email"
        assert email.required is False
        assert email.description == "Included only when a runtime condition holds."

    def test_unconditional_siblings_required(self, properties):
        assert properties["id"].required is True
        assert properties["id"].conditional is False

    def test_when_loaded_relation(self, properties):
        posts = properties["posts"]
        assert posts.kind == SchemaKind.ARRAY
        assert posts.conditional is True
        assert posts.description == "Included only when the posts relation is loaded."

    def test_when_counted(self, properties):
        count = properties["comments_count"]
        assert count.kind == SchemaKind.INTEGER
        assert count.description == "Included only when the comments count is loaded."

    def test_map_on_attribute(self, properties):
        assert properties["tags"].kind == SchemaKind.ARRAY
        assert properties["tags"].items.kind == SchemaKind.STRING

    def test_merge_when(self, properties):
        secret = properties["secret"]
        assert secret.conditional is True
        assert secret.required is False

    def test_conditional_splat(self, properties):
        debug = properties["debug"]
        assert debug.kind == SchemaKind.BOOLEAN
        assert debug.conditional is True
        assert debug.description == SPLAT_CONDITION_DESCRIPTION

    def test_custom_wrapper_table(self, module):
        default = ShapeAnalyzer().analyze(method(module, "visible"))
        assert default.properties["email"].conditional is False

        analyzer = ShapeAnalyzer(
            conditional_wrappers={"if_visible": ConditionalWrapper("Visible only.", value_index=0)}
        )
        email = analyzer.analyze(method(module, "visible")).properties["email"]
        assert email.conditional is True
        assert email.format == "email"
        assert email.description == "Visible only."
