"""Tests for validation rule interpretation and rule set extraction.

Covers:
- Token parsing (pipe strings, lists, regex parameters containing pipes)
- Per-field interpretation: kinds, formats, bounds by kind, enums, regex
- Conditional requirements and ``sometimes``
- ``confirmed`` siblings
- Rule sets read from ``rules()`` methods, class attributes and inline calls
"""

import pytest

from schemascope.inference.rules import (
    RuleEffect,
    RuleInterpreter,
    RuleSetExtractor,
    RuleTable,
    RuleToken,
    literal_rule_set,
    parse_rules,
)
from schemascope.inference.schema import Constraints, SchemaKind
from schemascope.inference.source_parser import SourceParser


@pytest.fixture
def interpreter():
    return RuleInterpreter()


@pytest.fixture
def parser():
    return SourceParser()


# =============================================================================
# Token Tests
# =============================================================================


class TestRuleTokens:
    """Tests for RuleToken and parse_rules."""

    def test_parse_token(self):
        assert RuleToken.parse("min:1") == RuleToken("min", ("1",))
        assert RuleToken.parse("REQUIRED") == RuleToken("required")
        assert RuleToken.parse("in: a, b") == RuleToken("in", ("a", "b"))

    def test_unsplit_parameters(self):
        assert RuleToken.parse("regex:^[a,b]$") == RuleToken("regex", ("^[a,b]$",))

    def test_str(self):
        assert str(RuleToken("in", ("a", "b"))) == "in:a,b"
        assert str(RuleToken("required")) == "required"

    def test_pipe_string(self):
        assert [token.name for token in parse_rules("required|string|max:255")] == [
            "required",
            "string",
            "max",
        ]

    def test_list_elements_not_split(self):
        tokens = parse_rules(["required", "regex:/^(a|b)$/"])
        assert tokens[1] == RuleToken("regex", ("/^(a|b)$/",))

    def test_regex_pipe_kept_in_string(self):
        tokens = parse_rules("required|regex:/^(a|b)$/|max:5")
        assert [token.name for token in tokens] == ["required", "regex", "max"]
        assert tokens[1].first == "/^(a|b)$/"

    def test_empty_and_foreign_elements(self):
        assert parse_rules(None) == []
        assert parse_rules("") == []
        assert parse_rules([1, "required", None]) == [RuleToken("required")]


# =============================================================================
# Interpreter Tests
# =============================================================================


class TestInterpretKinds:
    """Tests for kind and format tokens."""

    def test_required_email(self, interpreter):
        node = interpreter.interpret(["required", "email"])
        assert node.kind == SchemaKind.STRING
        assert node.format == "email"
        assert node.required is True

    def test_nullable_bounded_integer(self, interpreter):
        node = interpreter.interpret(["nullable", "integer", "min:1", "max:10"])
        assert node.kind == SchemaKind.INTEGER
        assert node.nullable is True
        assert node.required is False
        assert node.constraints == Constraints(minimum=1, maximum=10)

    def test_no_type_token_is_string(self, interpreter):
        node = interpreter.interpret("required")
        assert node.kind == SchemaKind.STRING
        assert node.constraints is None

    def test_last_kind_wins(self, interpreter):
        assert interpreter.interpret("integer|string").kind == SchemaKind.STRING

    def test_object_and_array(self, interpreter):
        assert interpreter.interpret("array").kind == SchemaKind.ARRAY
        assert interpreter.interpret("json").kind == SchemaKind.OBJECT

    def test_deprecated(self, interpreter):
        assert interpreter.interpret("deprecated|string").deprecated is True

    def test_unknown_token_ignored(self, interpreter):
        node = interpreter.interpret("frobnicate|integer")
        assert node.kind == SchemaKind.INTEGER

    def test_date_format(self, interpreter):
        assert interpreter.interpret("date_format:Y-m-d").format == "date"
        assert interpreter.interpret("date_format:Y-m-d H:i:s").format == "date-time"

    def test_described_type(self, interpreter):
        node = interpreter.interpret("mimes:jpg,png")
        assert node.format == "binary"
        assert node.description == "Must be a file of type: jpg, png."


class TestInterpretBounds:
    """Tests for bounds resolved by kind."""

    def test_string_length(self, interpreter):
        node = interpreter.interpret("required|string|min:2|max:255")
        assert node.constraints == Constraints(min_length=2, max_length=255)

    def test_array_items(self, interpreter):
        node = interpreter.interpret("array|min:1|max:5")
        assert node.constraints == Constraints(min_items=1, max_items=5)

    def test_file_size(self, interpreter):
        node = interpreter.interpret("file|max:2048")
        assert node.format == "binary"
        assert node.constraints is None
        assert node.description == "Maximum size: 2048 kilobytes."

    def test_between(self, interpreter):
        node = interpreter.interpret("numeric|between:1,5")
        assert node.kind == SchemaKind.NUMBER
        assert node.constraints == Constraints(minimum=1, maximum=5)

    def test_bound_on_other_field_ignored(self, interpreter):
        node = interpreter.interpret("integer|gt:start")
        assert node.constraints is None

    def test_digits(self, interpreter):
        node = interpreter.interpret("digits:4")
        assert node.kind == SchemaKind.STRING
        assert node.constraints.pattern == r"^\d{4}$"
        assert node.description == "Must be exactly 4 digits."


class TestInterpretEnumsAndPatterns:
    """Tests for in/enum/regex tokens."""

    def test_in_strings(self, interpreter):
        node = interpreter.interpret("string|in:draft,published")
        assert node.enum_values == ("draft", "published")

    def test_in_numeric(self, interpreter):
        node = interpreter.interpret("integer|in:1,2,3")
        assert node.enum_values == (1, 2, 3)

    def test_enum_resolver(self):
        values = {"app.enums.Status": ("draft", "published"), "app.enums.Level": (1, 2)}
        interpreter = RuleInterpreter(enum_resolver=values.get)

        status = interpreter.interpret("enum:app.enums.Status")
        assert status.kind == SchemaKind.STRING
        assert status.enum_values == ("draft", "published")

        level = interpreter.interpret("enum:app.enums.Level")
        assert level.kind == SchemaKind.INTEGER

    def test_enum_unresolved(self, interpreter):
        node = interpreter.interpret("enum:app.Missing")
        assert node.enum_values is None
        assert node.description == "Must be a valid enum value."

    def test_regex(self, interpreter):
        node = interpreter.interpret("regex:/^[A-Z]{3}$/")
        assert node.constraints.pattern == "^[A-Z]{3}$"
        assert node.example == "ABC"
        assert node.description == "Must be exactly 3 characters matching pattern: ^[A-Z]{3}$"

    def test_regex_example_only_for_strings(self, interpreter):
        node = interpreter.interpret(r"integer|regex:/^\d+$/")
        assert node.example is None

    def test_alpha_pattern(self, interpreter):
        assert interpreter.interpret("alpha").constraints.pattern == r"^[a-zA-Z]+$"


class TestInterpretConditionals:
    """Tests for conditional requirements."""

    def test_required_if(self, interpreter):
        node = interpreter.interpret("required_if:type,company|string")
        assert node.required is False
        (requirement,) = node.conditional_requirements
        assert requirement.kind == "required_if"
        assert requirement.fields == ("type",)
        assert requirement.value == "company"
        assert requirement.description == "Required when type is company."

    def test_required_with(self, interpreter):
        node = interpreter.interpret("required_with:a,b")
        (requirement,) = node.conditional_requirements
        assert requirement.fields == ("a", "b")
        assert requirement.value is None
        assert requirement.description == "Required when any of these fields are present: a, b."

    def test_sometimes(self, interpreter):
        node = interpreter.interpret("sometimes|string")
        assert node.required is False
        assert node.description == "Optional field that is validated only when present."


class TestInterpretSet:
    """Tests for interpret_set."""

    def test_confirmed_sibling(self, interpreter):
        fragments = interpreter.interpret_set({"password": "required|string|min:8|confirmed"})
        assert list(fragments) == ["password", "password_confirmation"]
        confirmation = fragments["password_confirmation"]
        assert confirmation.kind == SchemaKind.STRING
        assert confirmation.required is True
        assert confirmation.description == "Must match password."

    def test_order_kept(self, interpreter):
        fragments = interpreter.interpret_set({"b": "string", "a": "integer"})
        assert list(fragments) == ["b", "a"]


class TestRuleTable:
    def test_extend(self):
        table = RuleTable().extend(types={"phone": RuleEffect(SchemaKind.STRING, "phone")}, silent=["audit"])
        interpreter = RuleInterpreter(table=table)
        assert interpreter.interpret("phone").format == "phone"
        assert "audit" in table.silent
        assert "phone" not in RuleTable().types


# =============================================================================
# Extractor Tests
# =============================================================================


REQUESTS_SOURCE = '''
from app.enums import Role


class StoreUserRequest(FormRequest):
    def rules(self):
        return {
            "name": "required|string|max:255",
            "email": ["required", "email"],
            "status": [Rule.in_(["active", "inactive"])],
            "role": [Rule.enum(Role)],
            "password": ["required", Password.min(8)],
        }


class BaseRequest:
    def rules(self):
        return {"tenant_id": "required|integer"}


class UpdateRequest(BaseRequest):
    def rules(self):
        rules = {"name": "string", **super().rules()}
        rules["email"] = "email"
        rules.update({"age": "integer"})
        return rules


class SearchRequest:
    rules = {"q": "string"}


class RebindRequest:
    def rules(self):
        rules = {"name": "required|string"}
        rules = {**rules, "email": "required|email"}
        return rules


class SelfSplatRequest:
    def rules(self):
        rules = {**rules, "email": "required|email"}
        return rules


class Plain:
    pass


def store(request):
    data = request.validate({"title": "required|string", "body": "nullable|string"})
    return data


def update(request):
    rules = {"title": "string"}
    validator(request.all(), rules)


def show(request):
    return {"id": 1}
'''


@pytest.fixture
def module(parser):
    return parser.parse(REQUESTS_SOURCE, namespace="app.requests")


class TestRuleSetExtractor:
    """Tests for rule sets declared in source."""

    def test_rules_method(self, module):
        extractor = RuleSetExtractor(resolve=lambda name: f"app.enums.{name}")
        rule_set = extractor.from_class_chain([module.classes["StoreUserRequest"]])

        assert list(rule_set) == ["name", "email", "status", "role", "password"]
        assert [token.name for token in rule_set["name"]] == ["required", "string", "max"]
        assert rule_set["email"] == [RuleToken("required"), RuleToken("email")]
        assert rule_set["status"] == [RuleToken("in", ("active", "inactive"))]
        assert rule_set["role"] == [RuleToken("enum", ("app.enums.Role",))]
        assert rule_set["password"] == [
            RuleToken("required"),
            RuleToken("password"),
            RuleToken("min", ("8",)),
        ]

    def test_super_splat_and_updates(self, module):
        extractor = RuleSetExtractor()
        chain = [module.classes["UpdateRequest"], module.classes["BaseRequest"]]
        rule_set = extractor.from_class_chain(chain)

        assert list(rule_set) == ["name", "tenant_id", "email", "age"]
        assert rule_set["email"] == [RuleToken("email")]
        assert rule_set["age"] == [RuleToken("integer")]

    def test_rebound_variable_splats_previous_binding(self, module):
        rule_set = RuleSetExtractor().from_class_chain([module.classes["RebindRequest"]])

        assert list(rule_set) == ["name", "email"]
        assert rule_set["email"] == [RuleToken("required"), RuleToken("email")]

    def test_variable_splatting_itself_terminates(self, module):
        rule_set = RuleSetExtractor().from_class_chain([module.classes["SelfSplatRequest"]])
        assert rule_set == {"email": [RuleToken("required"), RuleToken("email")]}

    def test_inherited_rules(self, module):
        """A class without its own rules uses the nearest declaring ancestor."""
        extractor = RuleSetExtractor()
        chain = [module.classes["Plain"], module.classes["BaseRequest"]]
        assert list(extractor.from_class_chain(chain)) == ["tenant_id"]

    def test_class_attribute(self, module):
        rule_set = RuleSetExtractor().from_class_chain([module.classes["SearchRequest"]])
        assert rule_set == {"q": [RuleToken("string")]}

    def test_no_rules(self, module):
        assert RuleSetExtractor().from_class_chain([module.classes["Plain"]]) is None

    def test_custom_method_name(self, module):
        extractor = RuleSetExtractor(rules_method="validation_rules")
        assert extractor.from_class_chain([module.classes["StoreUserRequest"]]) is None

    def test_inline_validate(self, module):
        rule_set = RuleSetExtractor().from_function(module.functions["store"])
        assert list(rule_set) == ["title", "body"]
        assert rule_set["body"] == [RuleToken("nullable"), RuleToken("string")]

    def test_inline_validator_with_variable(self, module):
        rule_set = RuleSetExtractor().from_function(module.functions["update"])
        assert rule_set == {"title": [RuleToken("string")]}

    def test_function_without_validation(self, module):
        assert RuleSetExtractor().from_function(module.functions["show"]) is None

    def test_literal_rule_set(self):
        rule_set = literal_rule_set({"a": "required|string", "b": ["email"]})
        assert rule_set == {
            "a": [RuleToken("required"), RuleToken("string")],
            "b": [RuleToken("email")],
        }
