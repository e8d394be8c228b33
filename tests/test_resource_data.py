"""Unit tests for resource_data.py - Per-invocation resource view."""

import pytest

from resource_data import ResourceData
from schema import Field, FieldType, ResourceSchema
from timeouts import Timeouts


@pytest.fixture
def schema():
    return ResourceSchema(
        fields={
            "name": Field(FieldType.STRING, required=True, force_new=True),
            "mutability": Field(FieldType.STRING, optional=True, default="MUTABLE"),
            "size": Field(FieldType.INT, optional=True, computed=True),
            "arn": Field(FieldType.STRING, computed=True),
            "zones": Field(FieldType.SET, optional=True),
        },
        timeouts=Timeouts.of(create="30m"),
    )


class TestGet:
    """Tests for field lookup order."""

    def test_desired_value(self, schema):
        d = ResourceData(schema, desired={"name": "repo"})
        assert d.get("name") == "repo"

    def test_default_value(self, schema):
        d = ResourceData(schema, desired={"name": "repo"})
        assert d.get("mutability") == "MUTABLE"

    def test_computed_falls_back_to_prior(self, schema):
        d = ResourceData(
            schema, identity="repo", desired={"name": "repo"}, prior={"arn": "arn:x"}
        )
        assert d.get("arn") == "arn:x"
        assert d.get("size") == 0

    def test_observed_value_wins(self, schema):
        d = ResourceData(schema, desired={"name": "repo"})
        d.set("name", "other")
        assert d.get("name") == "other"

    def test_get_ok(self, schema):
        d = ResourceData(schema, desired={"name": "repo"})
        assert d.get_ok("name") == ("repo", True)
        assert d.get_ok("arn") == ("", False)

    def test_set_unknown_field(self, schema):
        d = ResourceData(schema)
        with pytest.raises(KeyError):
            d.set("colour", "blue")


class TestChanges:
    """Tests for change detection."""

    def test_has_change(self, schema):
        d = ResourceData(
            schema,
            identity="repo",
            desired={"name": "repo", "mutability": "IMMUTABLE"},
            prior={"name": "repo", "mutability": "MUTABLE"},
        )
        assert d.has_change("mutability")
        assert not d.has_change("name")
        assert d.get_change("mutability") == ("MUTABLE", "IMMUTABLE")

    def test_set_order_ignored(self, schema):
        d = ResourceData(
            schema,
            identity="repo",
            desired={"name": "repo", "zones": ["b", "a"]},
            prior={"name": "repo", "zones": ["a", "b"], "mutability": "MUTABLE"},
        )
        assert not d.has_change("zones")

    def test_has_changes_except(self, schema):
        d = ResourceData(
            schema,
            identity="repo",
            desired={"name": "repo", "tags": {"a": "1"}},
            prior={"name": "repo", "mutability": "MUTABLE", "tags": {}},
        )
        assert d.has_change("tags")
        assert not d.has_changes_except("tags", "tags_all")
        assert d.has_changes_except("name")

    def test_changed_keys(self, schema):
        d = ResourceData(
            schema,
            identity="repo",
            desired={"name": "repo", "mutability": "IMMUTABLE"},
            prior={"name": "repo", "mutability": "MUTABLE"},
        )
        assert d.changed_keys(["name", "mutability"]) == {"mutability": "IMMUTABLE"}


class TestStateViews:
    """Tests for observed_state and current_state."""

    def test_timeout(self, schema):
        d = ResourceData(schema)
        assert d.timeout("create") == 1800
        assert ResourceData(schema, timeouts=Timeouts.of(create="1m")).timeout(
            "create"
        ) == 60

    def test_observed_state(self, schema):
        d = ResourceData(schema, identity="repo", desired={"name": "repo"})
        d.set("name", "repo")
        d.set("arn", "arn:x")
        state = d.observed_state()
        assert state["id"] == "repo"
        assert state["arn"] == "arn:x"
        # Unread fields carry zero values, not desired values
        assert state["mutability"] == ""
        assert state["tags_all"] == {}

    def test_observed_state_none_when_gone(self, schema):
        d = ResourceData(schema, identity="repo")
        d.set_id("")
        assert d.observed_state() is None
        assert d.current_state() is None

    def test_current_state_keeps_planned_values(self, schema):
        d = ResourceData(
            schema, identity="repo", desired={"name": "repo"}, new_resource=True
        )
        d.set("arn", "arn:x")
        state = d.current_state()
        assert state["id"] == "repo"
        assert state["mutability"] == "MUTABLE"
        assert state["arn"] == "arn:x"
        assert d.is_new_resource()
