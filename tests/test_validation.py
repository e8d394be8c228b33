"""Unit tests for validation.py - Desired state validation."""

from plugins.resources.ecr_repository import SCHEMA as ECR_SCHEMA
from plugins.resources.ecs_task_set import SCHEMA as ECS_SCHEMA
from schema import Field, FieldType, ResourceSchema
from validation import strip_unset, validate_desired_state, validate_json_schema


class TestValidateJsonSchema:
    """Tests for validate_json_schema function."""

    def test_valid_rendered_schema(self):
        for schema in (ECR_SCHEMA, ECS_SCHEMA):
            is_valid, error = validate_json_schema(schema.to_json_schema())
            assert is_valid is True
            assert error is None

    def test_invalid_schema(self):
        is_valid, error = validate_json_schema({"type": "invalid_type"})
        assert is_valid is False
        assert "Invalid schema" in error


class TestStripUnset:
    """Tests for strip_unset function."""

    def test_drops_none_values(self):
        assert strip_unset({"a": 1, "b": None, "c": ""}) == {"a": 1, "c": ""}


class TestValidateDesiredState:
    """Tests for validate_desired_state function."""

    def test_valid_desired_state(self):
        is_valid, error = validate_desired_state(
            {"name": "repo", "image_tag_mutability": "IMMUTABLE", "tags": {"a": "b"}},
            ECR_SCHEMA,
        )
        assert is_valid is True
        assert error is None

    def test_missing_required_field(self):
        is_valid, error = validate_desired_state({}, ECR_SCHEMA)
        assert is_valid is False
        assert "'name' is a required property" in error

    def test_wrong_type(self):
        is_valid, error = validate_desired_state(
            {"name": "repo", "force_delete": "yes"}, ECR_SCHEMA
        )
        assert is_valid is False
        assert error.startswith("force_delete:")

    def test_invalid_choice(self):
        is_valid, error = validate_desired_state(
            {"name": "repo", "image_tag_mutability": "SOMETIMES"}, ECR_SCHEMA
        )
        assert is_valid is False
        assert "image_tag_mutability" in error

    def test_computed_field_rejected(self):
        is_valid, error = validate_desired_state(
            {"name": "repo", "arn": "arn:aws:ecr:::repo"}, ECR_SCHEMA
        )
        assert is_valid is False
        assert "arn" in error

    def test_unset_optional_allowed(self):
        is_valid, _ = validate_desired_state(
            {"name": "repo", "encryption_configuration": None}, ECR_SCHEMA
        )
        assert is_valid is True

    def test_nested_block_validation(self):
        is_valid, error = validate_desired_state(
            {
                "name": "repo",
                "image_scanning_configuration": [{"scan_on_push": "true"}],
            },
            ECR_SCHEMA,
        )
        assert is_valid is False
        assert "image_scanning_configuration.0.scan_on_push" in error

    def test_max_items(self):
        is_valid, error = validate_desired_state(
            {
                "name": "repo",
                "image_scanning_configuration": [
                    {"scan_on_push": True},
                    {"scan_on_push": False},
                ],
            },
            ECR_SCHEMA,
        )
        assert is_valid is False
        assert "image_scanning_configuration" in error

    def test_duration_pattern(self):
        base = {"cluster": "c", "service": "s", "task_definition": "td:1"}
        is_valid, _ = validate_desired_state(
            dict(base, wait_until_stable_timeout="1h30m"), ECS_SCHEMA
        )
        assert is_valid is True
        is_valid, error = validate_desired_state(
            dict(base, wait_until_stable_timeout="ten minutes"), ECS_SCHEMA
        )
        assert is_valid is False
        assert "wait_until_stable_timeout" in error

    def test_multiple_errors_joined(self):
        schema = ResourceSchema(
            fields={
                "a": Field(FieldType.INT, required=True, minimum=1),
                "b": Field(FieldType.STRING, optional=True, max_length=2),
            },
            tagged=False,
        )
        is_valid, error = validate_desired_state({"a": 0, "b": "long"}, schema)
        assert is_valid is False
        assert error.split("; ")[0].startswith("a:")
        assert error.split("; ")[1].startswith("b:")
