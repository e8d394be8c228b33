"""
Operation Timeouts - Per-operation wait budgets and duration strings.

Budgets are stored in seconds. Users override them per resource instance
with duration strings such as "10m", "1h30m" or "45s".
"""

import re
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Union

from errors import TypeMismatchError

DEFAULT_TIMEOUT = 20 * 60.0

OPERATIONS = ("create", "read", "update", "delete")

_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
# Also used as a JSON Schema pattern for duration fields
DURATION_PATTERN = r"^(?:0|(?:\d+(?:\.\d+)?(?:ms|s|m|h))+)$"
_DURATION_RE = re.compile(DURATION_PATTERN)
_COMPONENT_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")


def parse_duration(value: Union[str, int, float]) -> float:
    """
    Parse a duration into seconds.

    Args:
        value: A duration string ("10m", "1h30m", "1.5h", "0") or a number
            of seconds.

    Returns:
        The duration in seconds.

    Raises:
        ValueError: If the value is negative or not a valid duration.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"invalid duration {value!r}: negative")
        return float(value)

    text = value.strip()
    if text == "0":
        return 0.0
    if not _DURATION_RE.match(text):
        raise ValueError(f"invalid duration {value!r}")
    return sum(
        float(amount) * _UNIT_SECONDS[unit]
        for amount, unit in _COMPONENT_RE.findall(text)
    )


@dataclass(frozen=True)
class Timeouts:
    """Wait budgets in seconds for each operation."""

    create: float = DEFAULT_TIMEOUT
    read: float = DEFAULT_TIMEOUT
    update: float = DEFAULT_TIMEOUT
    delete: float = DEFAULT_TIMEOUT

    @classmethod
    def of(cls, **durations: Union[str, int, float]) -> "Timeouts":
        """Build timeouts from duration strings, defaulting the rest."""
        return cls().with_overrides(durations)

    def with_overrides(self, overrides: Optional[Dict[str, Any]]) -> "Timeouts":
        """
        Return a copy with per-instance overrides applied.

        Raises:
            TypeMismatchError: For an unknown operation or a bad duration.
        """
        changes: Dict[str, float] = {}
        for operation, raw in (overrides or {}).items():
            if raw is None:
                continue
            path = f"timeouts.{operation}"
            if operation not in OPERATIONS:
                raise TypeMismatchError(path, "one of " + ", ".join(OPERATIONS), raw)
            try:
                changes[operation] = parse_duration(raw)
            except (ValueError, AttributeError) as e:
                raise TypeMismatchError(path, "duration string", raw) from e
        return replace(self, **changes)

    def get(self, operation: str) -> float:
        if operation not in OPERATIONS:
            raise KeyError(operation)
        return getattr(self, operation)
