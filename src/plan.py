"""
Change Planning - Diff desired state against prior observed state.

The plan decides whether an invocation is a create, an in-place update, a
replacement or a no-op, and which fields drive it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import tags as tagmodel
from schema import TAGS_ALL_FIELD, ResourceSchema
from tags import IgnoreConfig, TagDiff


class PlanAction(Enum):
    """Action a plan resolves to."""

    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    NOOP = "noop"


@dataclass
class ChangePlan:
    """Result of comparing desired state with prior state."""

    action: PlanAction
    changed_fields: List[str] = field(default_factory=list)
    replace_fields: List[str] = field(default_factory=list)
    tag_diff: TagDiff = field(default_factory=TagDiff)

    @property
    def requires_replace(self) -> bool:
        return self.action is PlanAction.REPLACE

    @property
    def has_changes(self) -> bool:
        return self.action is not PlanAction.NOOP


def plan_changes(
    schema: ResourceSchema,
    prior: Optional[Dict[str, Any]],
    desired: Dict[str, Any],
    ignore: Optional[IgnoreConfig] = None,
) -> ChangePlan:
    """
    Build a change plan for one resource instance.

    Args:
        schema: The resource type schema.
        prior: Prior observed state, or None if the resource does not exist.
        desired: Planned desired state, including the computed ``tags_all``
            effective tag set for tagged resources.
        ignore: Tag keys excluded from the tag diff.

    Returns:
        The ChangePlan. Computed-only fields never count as changes; unset
        optional-computed fields keep their prior value.
    """
    if not prior:
        changed = [
            name
            for name in schema.configurable_fields()
            if desired.get(name) is not None
        ]
        return ChangePlan(
            action=PlanAction.CREATE,
            changed_fields=changed,
            tag_diff=tagmodel.diff({}, desired.get(TAGS_ALL_FIELD), ignore),
        )

    changed: List[str] = []
    for name, f in schema.fields.items():
        if not f.configurable:
            continue
        new = desired.get(name)
        if new is None and f.computed:
            continue
        if not f.equal(prior.get(name), new if new is not None else f.default):
            changed.append(name)

    tag_diff = TagDiff()
    if schema.tagged:
        tag_diff = tagmodel.diff(
            prior.get(TAGS_ALL_FIELD), desired.get(TAGS_ALL_FIELD), ignore
        )
        if tag_diff.has_changes:
            changed.append(TAGS_ALL_FIELD)

    force_new = schema.force_new_fields()
    replace_fields = [name for name in changed if name in force_new]

    if replace_fields:
        action = PlanAction.REPLACE
    elif changed:
        action = PlanAction.UPDATE
    else:
        action = PlanAction.NOOP

    return ChangePlan(
        action=action,
        changed_fields=changed,
        replace_fields=replace_fields,
        tag_diff=tag_diff,
    )
