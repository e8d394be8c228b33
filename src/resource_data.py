"""
Resource Data - Per-invocation view of one resource instance.

Wraps the planned desired state, the prior observed state and the identity
for a single Create, Read, Update or Delete call. Reads write a fresh
observed state through set(); nothing is merged into the prior state.
"""

import logging
from typing import Any, Dict, Iterable, Optional, Tuple

from schema import ResourceSchema
from timeouts import Timeouts

logger = logging.getLogger(__name__)

ID_FIELD = "id"


class ResourceData:
    """
    Field access for one resource instance during one invocation.

    Lookup order for get(): values set during this invocation, then the
    desired state, then (for computed fields) the prior state, then the
    field default.
    """

    def __init__(
        self,
        schema: ResourceSchema,
        *,
        identity: str = "",
        desired: Optional[Dict[str, Any]] = None,
        prior: Optional[Dict[str, Any]] = None,
        timeouts: Optional[Timeouts] = None,
        new_resource: bool = False,
    ):
        self.schema = schema
        self._id = identity
        self._desired = dict(desired or {})
        self._prior = {k: v for k, v in (prior or {}).items() if k != ID_FIELD}
        self._observed: Dict[str, Any] = {}
        self._timeouts = timeouts or schema.timeouts
        self._new_resource = new_resource

    @property
    def id(self) -> str:
        return self._id

    def set_id(self, identity: str) -> None:
        """Assign the identity. An empty string marks the resource as gone."""
        self._id = identity

    def is_new_resource(self) -> bool:
        return self._new_resource

    def timeout(self, operation: str) -> float:
        return self._timeouts.get(operation)

    def _planned(self, key: str) -> Any:
        f = self.schema.get_field(key)
        value = self._desired.get(key)
        if value is not None:
            return value
        if f.computed:
            return self._prior.get(key, f.zero_value())
        return f.default_value()

    def get(self, key: str) -> Any:
        """Return the current value of a field."""
        if key in self._observed:
            return self._observed[key]
        return self._planned(key)

    def get_ok(self, key: str) -> Tuple[Any, bool]:
        """Return a field value and whether it is set to a non-zero value."""
        value = self.get(key)
        f = self.schema.get_field(key)
        return value, value is not None and value != f.zero_value()

    def get_change(self, key: str) -> Tuple[Any, Any]:
        """Return the (old, new) values of a field between prior and planned."""
        f = self.schema.get_field(key)
        return self._prior.get(key, f.zero_value()), self._planned(key)

    def has_change(self, key: str) -> bool:
        old, new = self.get_change(key)
        return not self.schema.get_field(key).equal(old, new)

    def has_changes(self, *keys: str) -> bool:
        return any(self.has_change(k) for k in keys)

    def has_changes_except(self, *keys: str) -> bool:
        """Check for changes in any configurable field not listed."""
        excluded = set(keys)
        return any(
            self.has_change(name)
            for name in self.schema.configurable_fields()
            if name not in excluded
        )

    def set(self, key: str, value: Any) -> None:
        """Record an observed value."""
        if key not in self.schema:
            raise KeyError(f"unknown field {key!r}")
        self._observed[key] = value

    def changed_keys(self, keys: Iterable[str]) -> Dict[str, Any]:
        """Return the planned values of the listed fields that changed."""
        return {k: self._planned(k) for k in keys if self.has_change(k)}

    def observed_state(self) -> Optional[Dict[str, Any]]:
        """
        Return the observed state built during this invocation.

        Returns None when the identity was cleared (the resource is gone).
        """
        if not self._id:
            return None
        state = {ID_FIELD: self._id}
        for name, f in self.schema.fields.items():
            state[name] = self._observed.get(name, f.zero_value())
        return state

    def current_state(self) -> Optional[Dict[str, Any]]:
        """
        Return the best known state after a partially failed invocation.

        Fields that were not read back keep their planned values.
        """
        if not self._id:
            return None
        state = {ID_FIELD: self._id}
        for name in self.schema.fields:
            state[name] = self.get(name)
        return state
