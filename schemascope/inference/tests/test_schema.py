"""Tests for the SchemaNode data model.

Covers:
- Kind invariants (object/array/union children, scalars without children)
- Factories and placeholders
- Immutable composition helpers
- OpenAPI rendering
"""

import dataclasses

import pytest

from schemascope.inference.schema import (
    CIRCULAR_REFERENCE_PREFIX,
    ConditionalRequirement,
    Constraints,
    SchemaInvariantError,
    SchemaKind,
    SchemaNode,
)


# =============================================================================
# Invariant Tests
# =============================================================================


class TestSchemaNodeInvariants:
    """Tests for the per-kind structure rules."""

    def test_object_always_has_properties(self):
        """An object node built without properties gets an empty map."""
        node = SchemaNode(kind=SchemaKind.OBJECT)
        assert node.properties == {}

    def test_array_requires_items(self):
        """An array node without items is rejected."""
        with pytest.raises(SchemaInvariantError):
            SchemaNode(kind=SchemaKind.ARRAY)

    def test_union_requires_variants(self):
        """A union node without variants is rejected."""
        with pytest.raises(SchemaInvariantError):
            SchemaNode(kind=SchemaKind.UNION)

    def test_scalar_cannot_carry_children(self):
        """Scalar nodes cannot have properties or items."""
        with pytest.raises(SchemaInvariantError):
            SchemaNode(kind=SchemaKind.STRING, properties={})
        with pytest.raises(SchemaInvariantError):
            SchemaNode(kind=SchemaKind.INTEGER, items=SchemaNode.string())

    def test_object_cannot_carry_items(self):
        """Object nodes carry properties only."""
        with pytest.raises(SchemaInvariantError):
            SchemaNode(kind=SchemaKind.OBJECT, items=SchemaNode.string())

    def test_kind_accepts_string_value(self):
        """Kinds given as strings are converted to SchemaKind."""
        node = SchemaNode(kind="integer")
        assert node.kind is SchemaKind.INTEGER

    def test_nodes_are_frozen(self):
        """Nodes cannot be mutated after construction."""
        node = SchemaNode.string()
        with pytest.raises(dataclasses.FrozenInstanceError):
            node.format = "email"


# =============================================================================
# Factory Tests
# =============================================================================


class TestSchemaNodeFactories:
    """Tests for the convenience constructors."""

    def test_array_defaults_to_string_items(self):
        """array() without items holds strings."""
        node = SchemaNode.array()
        assert node.items.kind == SchemaKind.STRING

    def test_scalar_builds_containers(self):
        """scalar() builds well-formed containers and drops their format."""
        assert SchemaNode.scalar(SchemaKind.OBJECT, format="x").properties == {}
        array = SchemaNode.scalar(SchemaKind.ARRAY, format="x")
        assert array.items.kind == SchemaKind.STRING
        assert array.format is None

    def test_scalar_keeps_format(self):
        """scalar() keeps the format for scalar kinds."""
        node = SchemaNode.scalar(SchemaKind.STRING, format="email", required=True)
        assert node.format == "email"
        assert node.required is True

    def test_circular_placeholder(self):
        """circular() is an object naming the type it stands for."""
        node = SchemaNode.circular("app.models.User")
        assert node.kind == SchemaKind.OBJECT
        assert node.description == f"{CIRCULAR_REFERENCE_PREFIX} app.models.User"
        assert node.is_placeholder
        assert node.source_type == "app.models.User"

    def test_depth_limited_placeholder(self):
        """depth_limited() is also a placeholder."""
        node = SchemaNode.depth_limited("app.models.Tree")
        assert node.is_placeholder
        assert "maximum nesting depth" in node.description


# =============================================================================
# Composition Tests
# =============================================================================


class TestSchemaNodeComposition:
    """Tests for evolve and friends."""

    def test_evolve_returns_new_node(self):
        """evolve() leaves the original untouched."""
        node = SchemaNode.string()
        changed = node.evolve(format="email")
        assert node.format is None
        assert changed.format == "email"

    def test_with_property_copies_map(self):
        """with_property() does not share the property map."""
        node = SchemaNode.object({"id": SchemaNode.integer()})
        extended = node.with_property("name", SchemaNode.string())
        assert list(node.properties) == ["id"]
        assert list(extended.properties) == ["id", "name"]

    def test_with_property_rejects_scalars(self):
        """Only objects have properties."""
        with pytest.raises(SchemaInvariantError):
            SchemaNode.string().with_property("x", SchemaNode.string())

    def test_add_description_appends_once(self):
        """add_description() appends text that is not already present."""
        node = SchemaNode.string(description="First.")
        node = node.add_description("Second.").add_description("Second.")
        assert node.description == "First. Second."

    def test_required_properties_in_order(self):
        """required_properties lists required names in declaration order."""
        node = SchemaNode.object(
            {
                "b": SchemaNode.string(required=True),
                "a": SchemaNode.string(),
                "c": SchemaNode.integer(required=True),
            }
        )
        assert node.required_properties == ["b", "c"]

    def test_walk_and_has_placeholder(self):
        """walk() visits every descendant; has_placeholder() finds placeholders."""
        tree = SchemaNode.object(
            {
                "items": SchemaNode.array(items=SchemaNode.circular("app.A")),
                "name": SchemaNode.string(),
            }
        )
        kinds = [node.kind for node in tree.walk()]
        assert kinds.count(SchemaKind.OBJECT) == 2
        assert tree.has_placeholder()
        assert not SchemaNode.object({"name": SchemaNode.string()}).has_placeholder()


# =============================================================================
# Constraint Tests
# =============================================================================


class TestConstraints:
    """Tests for Constraints."""

    def test_empty(self):
        assert Constraints().is_empty
        assert not Constraints(minimum=1).is_empty

    def test_merged_prefers_other(self):
        """Facets set on the argument win."""
        merged = Constraints(minimum=1, maximum=5).merged(Constraints(maximum=10))
        assert merged == Constraints(minimum=1, maximum=10)

    def test_to_dict_uses_openapi_keys(self):
        data = Constraints(min_length=2, max_length=8, pattern="^a").to_dict()
        assert data == {"minLength": 2, "maxLength": 8, "pattern": "^a"}


# =============================================================================
# Rendering Tests
# =============================================================================


class TestToDict:
    """Tests for OpenAPI rendering."""

    def test_object_rendering(self):
        """Objects render properties and the required list."""
        node = SchemaNode.object(
            {
                "id": SchemaNode.integer(required=True),
                "email": SchemaNode.string("email", nullable=True),
            }
        )
        assert node.to_dict() == {
            "type": "object",
            "properties": {
                "id": {"type": "integer"},
                "email": {"type": "string", "format": "email", "nullable": True},
            },
            "required": ["id"],
        }

    def test_union_rendering(self):
        """Unions render as oneOf."""
        node = SchemaNode.union([SchemaNode.string(), SchemaNode.integer()])
        assert node.to_dict() == {"oneOf": [{"type": "string"}, {"type": "integer"}]}

    def test_conditional_rendering(self):
        """Conditional flags and requirements render as extensions."""
        requirement = ConditionalRequirement(
            kind="required_if",
            fields=("type",),
            value="company",
            description="Required when type is company.",
        )
        node = SchemaNode.string(conditional=True, conditional_requirements=(requirement,))
        data = node.to_dict()
        assert data["x-conditional"] is True
        assert data["x-conditional-required"] == [
            {
                "type": "required_if",
                "description": "Required when type is company.",
                "field": "type",
                "value": "company",
            }
        ]

    def test_array_rendering_with_example(self):
        node = SchemaNode.array(items=SchemaNode.integer(), example=[1])
        assert node.to_dict() == {"type": "array", "items": {"type": "integer"}, "example": [1]}
