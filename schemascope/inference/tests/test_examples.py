"""Tests for example synthesis.

Covers:
- Format and kind defaults
- Enum and explicit examples
- Field-name hints and their kind check
- Numeric and length bounds
- Pattern-constrained fields
- Arrays, objects and placeholders
"""

import pytest

from schemascope.inference.examples import ExampleSynthesizer
from schemascope.inference.schema import Constraints, SchemaNode


@pytest.fixture
def synthesizer():
    return ExampleSynthesizer()


# =============================================================================
# Scalar Tests
# =============================================================================


class TestScalarExamples:
    """Tests for leaf examples."""

    def test_kind_defaults(self, synthesizer):
        assert synthesizer.synthesize(SchemaNode.string()).example == "string"
        assert synthesizer.synthesize(SchemaNode.integer()).example == 1
        assert synthesizer.synthesize(SchemaNode.number()).example == 0.0
        assert synthesizer.synthesize(SchemaNode.boolean()).example is True

    def test_format(self, synthesizer):
        node = synthesizer.synthesize(SchemaNode.string("email"))
        assert node.example == "user@example.com"

    def test_format_beats_name(self, synthesizer):
        node = synthesizer.synthesize(SchemaNode.string("date-time"), "name")
        assert node.example == "2025-01-15T10:30:00Z"

    def test_enum_first_value(self, synthesizer):
        node = synthesizer.synthesize(SchemaNode.string(enum_values=("draft", "published")))
        assert node.example == "draft"

    def test_explicit_example_kept(self, synthesizer):
        node = synthesizer.synthesize(SchemaNode.string("email", example="me@site.test"))
        assert node.example == "me@site.test"

    def test_binary_has_no_example(self, synthesizer):
        node = synthesizer.synthesize(SchemaNode.string("binary"), "avatar")
        assert node.example is None

    def test_name_hint(self, synthesizer):
        assert synthesizer.synthesize(SchemaNode.string(), "email").example == "user@example.com"
        assert synthesizer.synthesize(SchemaNode.string(), "country").example == "US"

    def test_name_hint_must_fit_kind(self, synthesizer):
        """A float hint is not used for an integer field."""
        node = synthesizer.synthesize(SchemaNode.integer(), "price")
        assert node.example == 1


# =============================================================================
# Bound Tests
# =============================================================================


class TestBoundExamples:
    """Tests for examples derived from constraints."""

    def test_integer_midpoint(self, synthesizer):
        node = SchemaNode.integer(constraints=Constraints(minimum=2, maximum=10))
        assert synthesizer.synthesize(node).example == 6

    def test_number_single_bound(self, synthesizer):
        node = SchemaNode.number(constraints=Constraints(minimum=2.5))
        assert synthesizer.synthesize(node).example == 2.5

    def test_string_length(self, synthesizer):
        node = SchemaNode.string(constraints=Constraints(max_length=3))
        assert synthesizer.synthesize(node).example == "str"

    def test_string_min_length(self, synthesizer):
        node = SchemaNode.string(constraints=Constraints(min_length=8))
        assert synthesizer.synthesize(node).example == "stringst"


# =============================================================================
# Pattern Tests
# =============================================================================


class TestPatternExamples:
    """A field with a pattern gets a matching example or none at all."""

    @pytest.mark.parametrize("pattern", [r"^(AB|CD)[0-9]{2}$", r"/^(AB|CD)[0-9]{2}$/"])
    def test_unsatisfiable_pattern_has_no_example(self, synthesizer, pattern):
        node = SchemaNode.string(constraints=Constraints(pattern=pattern))
        assert synthesizer.synthesize(node, "code").example is None

    def test_matching_hint_kept(self, synthesizer):
        node = SchemaNode.string(constraints=Constraints(pattern=r"^[A-Z]{2}$"))
        assert synthesizer.synthesize(node, "country").example == "US"

    def test_built_from_pattern_when_hint_does_not_match(self, synthesizer):
        node = SchemaNode.string(constraints=Constraints(pattern=r"^[0-9]{4}$"))
        assert synthesizer.synthesize(node, "name").example == "1234"

    def test_common_pattern(self, synthesizer):
        node = SchemaNode.string(constraints=Constraints(pattern=r"^\+?[1-9]\d{1,14}$"))
        assert synthesizer.synthesize(node).example == "+1234567890"

    def test_non_string_kind_without_match(self, synthesizer):
        node = SchemaNode.integer(constraints=Constraints(pattern=r"^\d{4}$"))
        assert synthesizer.synthesize(node).example is None

    def test_invalid_pattern(self, synthesizer):
        node = SchemaNode.string(constraints=Constraints(pattern="[unclosed"))
        assert synthesizer.synthesize(node).example is None


# =============================================================================
# Container Tests
# =============================================================================


class TestContainerExamples:
    """Tests for arrays, objects and placeholders."""

    def test_object_properties(self, synthesizer):
        node = SchemaNode.object(
            {
                "id": SchemaNode.integer(required=True),
                "name": SchemaNode.string(),
                "email": SchemaNode.string("email"),
            }
        )
        result = synthesizer.synthesize(node)
        assert result.example is None
        assert result.properties["id"].example == 1
        assert result.properties["name"].example == "Example name"
        assert result.properties["email"].example == "user@example.com"
        assert result.properties["id"].required is True

    def test_array_of_scalars(self, synthesizer):
        result = synthesizer.synthesize(SchemaNode.array(items=SchemaNode.integer()))
        assert result.example == [1]
        assert result.items.example == 1

    def test_array_of_objects(self, synthesizer):
        node = SchemaNode.array(items=SchemaNode.object({"name": SchemaNode.string()}))
        result = synthesizer.synthesize(node)
        assert result.example is None
        assert result.items.properties["name"].example == "Example name"

    def test_placeholder_untouched(self, synthesizer):
        placeholder = SchemaNode.circular("app.models.User")
        assert synthesizer.synthesize(placeholder) is placeholder

    def test_input_not_mutated(self, synthesizer):
        node = SchemaNode.object({"id": SchemaNode.integer()})
        synthesizer.synthesize(node)
        assert node.properties["id"].example is None
