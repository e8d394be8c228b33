"""
Resource Schemas - Data-driven field descriptors for each resource type.

A ResourceSchema maps field names to Field descriptors (type, mutability
and validation rules). Schemas render to JSON Schema for validating desired
state, supply defaults and zero values, and tell the planner which fields
force replacement.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set

from timeouts import Timeouts

TAGS_FIELD = "tags"
TAGS_ALL_FIELD = "tags_all"


class FieldType(Enum):
    """Type of a schema field."""

    STRING = "string"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    LIST = "list"
    SET = "set"
    MAP = "map"
    BLOCK = "block"


_JSON_TYPES = {
    FieldType.STRING: "string",
    FieldType.BOOL: "boolean",
    FieldType.INT: "integer",
    FieldType.FLOAT: "number",
}

_ZERO_VALUES = {
    FieldType.STRING: "",
    FieldType.BOOL: False,
    FieldType.INT: 0,
    FieldType.FLOAT: 0.0,
}


@dataclass
class Field:
    """
    Descriptor for one field of a resource.

    A field is configurable when it is required or optional. A field that is
    only computed is set by reads and never accepted in desired state.
    """

    type: FieldType
    required: bool = False
    optional: bool = False
    computed: bool = False
    force_new: bool = False
    default: Any = None
    choices: Optional[Sequence[Any]] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None
    elem: FieldType = FieldType.STRING
    fields: Optional[Dict[str, "Field"]] = None
    max_items: Optional[int] = None
    description: str = ""

    @property
    def configurable(self) -> bool:
        return self.required or self.optional

    @property
    def computed_only(self) -> bool:
        return self.computed and not self.configurable

    def zero_value(self) -> Any:
        if self.type in _ZERO_VALUES:
            return _ZERO_VALUES[self.type]
        if self.type is FieldType.MAP:
            return {}
        return []

    def default_value(self) -> Any:
        return self.zero_value() if self.default is None else self.default

    def normalize(self, value: Any) -> Any:
        """Canonical form of a value for comparison."""
        if value is None:
            return self.zero_value()
        if self.type is FieldType.SET:
            return sorted(value, key=repr)
        if self.type is FieldType.BLOCK and self.fields:
            return [
                {
                    name: sub.normalize((item or {}).get(name))
                    for name, sub in self.fields.items()
                }
                for item in value
                if item is not None
            ]
        return value

    def equal(self, a: Any, b: Any) -> bool:
        return self.normalize(a) == self.normalize(b)

    def to_json_schema(self) -> Dict[str, Any]:
        """Render this field as a JSON Schema fragment."""
        if self.type in _JSON_TYPES:
            rendered: Dict[str, Any] = {"type": _JSON_TYPES[self.type]}
        elif self.type is FieldType.MAP:
            rendered = {
                "type": "object",
                "additionalProperties": {"type": _JSON_TYPES[self.elem]},
            }
        elif self.type is FieldType.BLOCK:
            rendered = {
                "type": "array",
                "items": _object_schema(self.fields or {}),
            }
        else:
            rendered = {"type": "array", "items": {"type": _JSON_TYPES[self.elem]}}
            if self.type is FieldType.SET:
                rendered["uniqueItems"] = True

        if self.choices is not None:
            rendered["enum"] = list(self.choices)
        if self.minimum is not None:
            rendered["minimum"] = self.minimum
        if self.maximum is not None:
            rendered["maximum"] = self.maximum
        if self.min_length is not None:
            rendered["minLength"] = self.min_length
        if self.max_length is not None:
            rendered["maxLength"] = self.max_length
        if self.pattern is not None:
            rendered["pattern"] = self.pattern
        if self.max_items is not None:
            rendered["maxItems"] = self.max_items
        if self.description:
            rendered["description"] = self.description
        return rendered


def _object_schema(fields: Dict[str, Field]) -> Dict[str, Any]:
    configurable = {n: f for n, f in fields.items() if f.configurable}
    rendered: Dict[str, Any] = {
        "type": "object",
        "properties": {n: f.to_json_schema() for n, f in configurable.items()},
        "additionalProperties": False,
    }
    required = [n for n, f in configurable.items() if f.required]
    if required:
        rendered["required"] = required
    return rendered


@dataclass
class ResourceSchema:
    """
    Descriptor for a resource type.

    Tagged resources get the standard ``tags`` (configurable) and
    ``tags_all`` (computed effective set) fields automatically.
    """

    fields: Dict[str, Field]
    timeouts: Timeouts = field(default_factory=Timeouts)
    tagged: bool = True

    def __post_init__(self):
        if self.tagged:
            self.fields.setdefault(
                TAGS_FIELD, Field(FieldType.MAP, optional=True, elem=FieldType.STRING)
            )
            self.fields.setdefault(
                TAGS_ALL_FIELD,
                Field(FieldType.MAP, computed=True, elem=FieldType.STRING),
            )

    def __contains__(self, name: str) -> bool:
        return name in self.fields

    def get_field(self, name: str) -> Field:
        return self.fields[name]

    def configurable_fields(self) -> List[str]:
        return [n for n, f in self.fields.items() if f.configurable]

    def force_new_fields(self) -> Set[str]:
        return {n for n, f in self.fields.items() if f.force_new}

    def to_json_schema(self) -> Dict[str, Any]:
        """Render the configurable fields as a JSON Schema object."""
        return _object_schema(self.fields)

    def apply_defaults(self, desired: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of desired state with top-level defaults filled in."""
        result = dict(desired)
        for name, f in self.fields.items():
            if f.configurable and f.default is not None and result.get(name) is None:
                result[name] = f.default
        return result
