"""Unit tests for values.py - Typed projections of configuration values."""

from typing import List, Optional

import pytest
from pydantic import BaseModel

from errors import TypeMismatchError
from values import (
    as_bool,
    as_float,
    as_int,
    as_map,
    as_str,
    as_str_list,
    as_str_map,
    block,
    project,
)


class Scaling(BaseModel):
    unit: str
    value: float
    zones: Optional[List[str]] = None


class TestScalarProjections:
    """Tests for the as_* helpers."""

    def test_matching_types(self):
        assert as_str("x") == "x"
        assert as_bool(False) is False
        assert as_int(3) == 3
        assert as_float(2) == 2.0
        assert as_map({"a": 1}) == {"a": 1}

    def test_integral_float_is_int(self):
        assert as_int(3.0) == 3

    def test_mismatches(self):
        with pytest.raises(TypeMismatchError) as exc_info:
            as_str(5, "name")
        assert exc_info.value.path == "name"
        assert str(exc_info.value) == "name: expected string, got int"

        with pytest.raises(TypeMismatchError):
            as_bool("true")
        with pytest.raises(TypeMismatchError):
            as_int(True)
        with pytest.raises(TypeMismatchError):
            as_int(1.5)
        with pytest.raises(TypeMismatchError):
            as_float(False)

    def test_string_collections(self):
        assert as_str_list(("a", "b")) == ["a", "b"]
        assert as_str_map({"k": "v"}) == {"k": "v"}

    def test_string_collection_element_path(self):
        with pytest.raises(TypeMismatchError) as exc_info:
            as_str_list(["a", 2], "subnets")
        assert exc_info.value.path == "subnets[1]"

        with pytest.raises(TypeMismatchError) as exc_info:
            as_str_map({"env": 1}, "tags")
        assert exc_info.value.path == "tags.env"


class TestBlock:
    """Tests for single nested block extraction."""

    def test_absent(self):
        assert block(None) is None
        assert block([]) is None
        assert block([None]) is None

    def test_single_block(self):
        assert block([{"scan_on_push": True}]) == {"scan_on_push": True}

    def test_more_than_one_block(self):
        with pytest.raises(TypeMismatchError) as exc_info:
            block([{}, {}], "scale")
        assert exc_info.value.expected == "at most one block"

    def test_block_must_be_mapping(self):
        with pytest.raises(TypeMismatchError) as exc_info:
            block(["x"], "scale")
        assert exc_info.value.path == "scale[0]"


class TestProject:
    """Tests for projecting mappings into request models."""

    def test_valid(self):
        model = project(Scaling, {"unit": "PERCENT", "value": 50.0})
        assert model.unit == "PERCENT"
        assert model.zones is None

    def test_strict_no_string_to_number(self):
        with pytest.raises(TypeMismatchError) as exc_info:
            project(Scaling, {"unit": "PERCENT", "value": "50"}, "scale[0]")
        assert exc_info.value.path == "scale[0].value"

    def test_missing_field(self):
        with pytest.raises(TypeMismatchError) as exc_info:
            project(Scaling, {"value": 1.0}, "scale[0]")
        assert exc_info.value.path == "scale[0].unit"
        assert exc_info.value.expected == "a value"

    def test_nested_element_path(self):
        with pytest.raises(TypeMismatchError) as exc_info:
            project(Scaling, {"unit": "COUNT", "value": 1.0, "zones": ["a", 2]})
        assert exc_info.value.path == "zones.1"
