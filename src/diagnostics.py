"""
Diagnostics - Severity/message pairs returned to the orchestrator.

Entry points never raise to the caller; failures and degradations are
reported as diagnostics instead.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List


class Severity(Enum):
    """Severity of a diagnostic."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """A single diagnostic message."""

    severity: Severity
    summary: str
    detail: str = ""


class Diagnostics:
    """Ordered collection of diagnostics for one invocation."""

    def __init__(self):
        self._items: List[Diagnostic] = []

    def append_error(self, summary: str, detail: str = "") -> "Diagnostics":
        self._items.append(Diagnostic(Severity.ERROR, summary, detail))
        return self

    def append_warning(self, summary: str, detail: str = "") -> "Diagnostics":
        """Record a warning once; repeats of the same summary are dropped."""
        if any(d.summary == summary for d in self.warnings):
            return self
        self._items.append(Diagnostic(Severity.WARNING, summary, detail))
        return self

    def has_error(self) -> bool:
        return any(d.severity is Severity.ERROR for d in self._items)

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self._items if d.severity is Severity.ERROR]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self._items if d.severity is Severity.WARNING]

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"Diagnostics({self._items!r})"
