"""Unit tests for identity.py - Composite identities."""

import pytest

from errors import MalformedIdentityError, TerminalError
from identity import CompositeIdentity


@pytest.fixture
def task_set_identity():
    return CompositeIdentity("task_set_id", "service", "cluster")


class TestCompositeIdentity:
    """Tests for formatting and parsing composite identities."""

    def test_expected_format(self, task_set_identity):
        assert task_set_identity.expected_format == "TASK_SET_ID,SERVICE,CLUSTER"

    def test_round_trip(self, task_set_identity):
        for parts in [
            ("ecs-svc/123", "web", "main"),
            ("a", "b", "c"),
            ("arn:aws:ecs:us-east-1:1:task-set/x", "svc", "cluster-1"),
        ]:
            identity = task_set_identity.format(*parts)
            assert task_set_identity.parse(identity) == parts

    def test_parse_too_few_parts(self, task_set_identity):
        with pytest.raises(MalformedIdentityError) as exc_info:
            task_set_identity.parse("ts-1,web")
        assert "expected TASK_SET_ID,SERVICE,CLUSTER" in str(exc_info.value)

    def test_parse_too_many_parts(self, task_set_identity):
        with pytest.raises(MalformedIdentityError):
            task_set_identity.parse("a,b,c,d")

    def test_parse_empty_part(self, task_set_identity):
        with pytest.raises(MalformedIdentityError):
            task_set_identity.parse("ts-1,,main")

    def test_parse_empty_string(self, task_set_identity):
        with pytest.raises(MalformedIdentityError):
            task_set_identity.parse("")

    def test_format_rejects_separator_in_part(self, task_set_identity):
        with pytest.raises(MalformedIdentityError):
            task_set_identity.format("a,b", "svc", "cluster")

    def test_format_rejects_wrong_count(self, task_set_identity):
        with pytest.raises(MalformedIdentityError):
            task_set_identity.format("a", "b")

    def test_format_rejects_empty_part(self, task_set_identity):
        with pytest.raises(MalformedIdentityError):
            task_set_identity.format("a", "", "c")

    def test_malformed_identity_is_terminal(self):
        assert issubclass(MalformedIdentityError, TerminalError)

    def test_custom_separator(self):
        identity = CompositeIdentity("name", "version", separator="/")
        assert identity.parse(identity.format("api", "v1")) == ("api", "v1")

    def test_requires_part_names(self):
        with pytest.raises(ValueError):
            CompositeIdentity()
