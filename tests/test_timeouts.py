"""Unit tests for timeouts.py - Operation timeouts."""

import pytest

from errors import TypeMismatchError
from timeouts import DEFAULT_TIMEOUT, Timeouts, parse_duration


class TestParseDuration:
    """Tests for parse_duration function."""

    def test_compound(self):
        assert parse_duration("1h30m") == 5400

    def test_units(self):
        assert parse_duration("45s") == 45
        assert parse_duration("10m") == 600
        assert parse_duration("10ms") == pytest.approx(0.01)
        assert parse_duration("1.5h") == 5400

    def test_zero(self):
        assert parse_duration("0") == 0

    def test_numbers_are_seconds(self):
        assert parse_duration(30) == 30.0
        assert parse_duration(2.5) == 2.5

    def test_invalid(self):
        for value in ("ten minutes", "10", "-5m", "", "m"):
            with pytest.raises(ValueError):
                parse_duration(value)

    def test_negative_number(self):
        with pytest.raises(ValueError):
            parse_duration(-1)

    def test_bool_rejected(self):
        with pytest.raises(ValueError):
            parse_duration(True)


class TestTimeouts:
    """Tests for Timeouts class."""

    def test_defaults(self):
        t = Timeouts()
        assert t.get("create") == DEFAULT_TIMEOUT
        assert t.get("delete") == DEFAULT_TIMEOUT

    def test_of(self):
        t = Timeouts.of(create="30m", delete="1h")
        assert t.create == 1800
        assert t.delete == 3600
        assert t.update == DEFAULT_TIMEOUT

    def test_with_overrides_keeps_unset(self):
        t = Timeouts.of(create="30m").with_overrides({"update": "5m", "create": None})
        assert t.create == 1800
        assert t.update == 300

    def test_unknown_operation(self):
        with pytest.raises(TypeMismatchError) as exc_info:
            Timeouts().with_overrides({"destroy": "5m"})
        assert exc_info.value.path == "timeouts.destroy"

    def test_bad_duration(self):
        with pytest.raises(TypeMismatchError) as exc_info:
            Timeouts().with_overrides({"create": "soon"})
        assert exc_info.value.path == "timeouts.create"
        assert exc_info.value.expected == "duration string"

    def test_get_unknown_operation(self):
        with pytest.raises(KeyError):
            Timeouts().get("import")
