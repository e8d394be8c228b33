"""
Configuration Values - Explicit, fallible projections of loosely-typed values.

Desired and observed state hold plain JSON-like values (str, bool, int,
float, list, dict). Resource plugins read them through these helpers so a
wrong type is reported as a TypeMismatchError instead of surfacing as an
arbitrary exception deep inside a request builder.
"""

from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from errors import TypeMismatchError

Value = Union[str, bool, int, float, List[Any], Dict[str, Any]]

M = TypeVar("M", bound=BaseModel)


def as_str(value: Any, path: str = "") -> str:
    if isinstance(value, str):
        return value
    raise TypeMismatchError(path, "string", value)


def as_bool(value: Any, path: str = "") -> bool:
    if isinstance(value, bool):
        return value
    raise TypeMismatchError(path, "bool", value)


def as_int(value: Any, path: str = "") -> int:
    # JSON decoders may hand back 3.0 for an integral number
    if isinstance(value, bool):
        raise TypeMismatchError(path, "int", value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise TypeMismatchError(path, "int", value)


def as_float(value: Any, path: str = "") -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise TypeMismatchError(path, "float", value)


def as_list(value: Any, path: str = "") -> List[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    raise TypeMismatchError(path, "list", value)


def as_map(value: Any, path: str = "") -> Dict[str, Any]:
    if isinstance(value, dict):
        return dict(value)
    raise TypeMismatchError(path, "map", value)


def as_str_list(value: Any, path: str = "") -> List[str]:
    return [as_str(v, f"{path}[{i}]") for i, v in enumerate(as_list(value, path))]


def as_str_map(value: Any, path: str = "") -> Dict[str, str]:
    return {k: as_str(v, f"{path}.{k}") for k, v in as_map(value, path).items()}


def block(value: Any, path: str = "") -> Optional[Dict[str, Any]]:
    """
    Return the single nested block of a block list, or None.

    Nested blocks are stored as lists holding at most one mapping; an empty
    list or a list holding None means the block is absent.

    Raises:
        TypeMismatchError: The value is not a list, holds more than one
            block, or the block is not a mapping.
    """
    if value is None:
        return None
    items = as_list(value, path)
    if not items or items[0] is None:
        return None
    if len(items) > 1:
        raise TypeMismatchError(path, "at most one block", value)
    return as_map(items[0], f"{path}[0]")


def project(model: Type[M], data: Any, path: str = "") -> M:
    """
    Project a plain value into a typed request model.

    Validation is strict: no implicit casts between strings and numbers.

    Args:
        model: Pydantic model class to build.
        data: Plain mapping to validate.
        path: Field path of ``data``, used in error messages.

    Returns:
        The validated model instance.

    Raises:
        TypeMismatchError: For the first field that failed validation.
    """
    try:
        return model.model_validate(data, strict=True)
    except ValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(part) for part in first["loc"])
        full_path = ".".join(p for p in (path, loc) if p)
        if first["type"] == "missing":
            raise TypeMismatchError(full_path, "a value", None) from e
        expected = first["msg"]
        if expected.lower().startswith("input should be "):
            expected = expected[len("input should be ") :]
        raise TypeMismatchError(full_path, expected, first.get("input")) from e
