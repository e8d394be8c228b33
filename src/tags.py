"""
Tag Merge Model - Default/resource tag merging and tag deltas.

Every resource type reconciles tags through these pure functions:
the effective set written remotely is the provider's default tags merged
with the resource's own tags, minus anything the ignore rules exclude.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

# Keys under this prefix are managed by the platform itself
SYSTEM_TAG_PREFIX = "aws:"


@dataclass(frozen=True)
class IgnoreConfig:
    """Tag keys that are never diffed or written back."""

    keys: FrozenSet[str] = frozenset()
    key_prefixes: Tuple[str, ...] = ()

    @classmethod
    def build(
        cls,
        keys: Optional[Iterable[str]] = None,
        key_prefixes: Optional[Iterable[str]] = None,
    ) -> "IgnoreConfig":
        return cls(
            keys=frozenset(keys or ()),
            key_prefixes=tuple(key_prefixes or ()),
        )

    def matches(self, key: str) -> bool:
        """Check whether a tag key is ignored."""
        if key in self.keys:
            return True
        return any(key.startswith(prefix) for prefix in self.key_prefixes)


@dataclass
class DefaultTagsConfig:
    """Provider-wide default tags."""

    tags: Dict[str, str] = field(default_factory=dict)

    def merge_tags(self, resource_tags: Optional[Dict[str, str]]) -> Dict[str, str]:
        """Merge resource tags over the defaults."""
        return merge(self.tags, resource_tags or {})


@dataclass
class TagDiff:
    """Minimal delta between two tag snapshots."""

    removed: Set[str] = field(default_factory=set)
    updated: Dict[str, str] = field(default_factory=dict)

    @property
    def has_changes(self) -> bool:
        return bool(self.removed or self.updated)


def merge(default: Dict[str, str], resource: Dict[str, str]) -> Dict[str, str]:
    """
    Union of default and resource tags.

    Resource tags take precedence when both define a key.

    Args:
        default: Provider default tags.
        resource: Tags declared on the resource.

    Returns:
        The effective tag set.
    """
    merged = dict(default)
    merged.update(resource)
    return merged


def ignore_system(tags: Dict[str, str]) -> Dict[str, str]:
    """Drop platform-managed tags."""
    return {k: v for k, v in tags.items() if not k.startswith(SYSTEM_TAG_PREFIX)}


def ignore_filter(
    tags: Dict[str, str], ignore: Optional[IgnoreConfig]
) -> Dict[str, str]:
    """Drop tags whose keys match the ignore rules."""
    if ignore is None:
        return dict(tags)
    return {k: v for k, v in tags.items() if not ignore.matches(k)}


def clean(tags: Dict[str, str], ignore: Optional[IgnoreConfig] = None) -> Dict[str, str]:
    """Apply both the platform prefix filter and the ignore rules."""
    return ignore_filter(ignore_system(tags), ignore)


def diff(
    old: Optional[Dict[str, str]],
    new: Optional[Dict[str, str]],
    ignore: Optional[IgnoreConfig] = None,
) -> TagDiff:
    """
    Compute the minimal add/remove delta between two tag snapshots.

    Both sides are filtered with the same rules before comparing.

    Args:
        old: Tags currently applied.
        new: Tags that should be applied.
        ignore: Optional ignore rules.

    Returns:
        TagDiff with keys to remove and tags to add or overwrite.
    """
    old_tags = clean(old or {}, ignore)
    new_tags = clean(new or {}, ignore)

    removed = set(old_tags) - set(new_tags)
    updated = {k: v for k, v in new_tags.items() if old_tags.get(k) != v}
    return TagDiff(removed=removed, updated=updated)


def remove_default(
    tags: Dict[str, str],
    default: Dict[str, str],
    configured: Optional[Dict[str, str]] = None,
) -> Dict[str, str]:
    """
    Compute the resource-only view of an effective tag set.

    A key is dropped when the default config carries the same value for it,
    unless the resource configures that key itself.
    """
    configured = configured or {}
    return {
        k: v
        for k, v in tags.items()
        if k in configured or k not in default or default[k] != v
    }


def to_tag_list(
    tags: Dict[str, str], key_name: str = "Key", value_name: str = "Value"
) -> List[Dict[str, str]]:
    """Convert a tag map into the list-of-pairs shape most services use."""
    return [{key_name: k, value_name: v} for k, v in sorted(tags.items())]


def from_tag_list(
    items: Optional[List[Dict[str, Any]]],
    key_name: str = "Key",
    value_name: str = "Value",
) -> Dict[str, str]:
    """Convert a list of tag pairs into a tag map."""
    result: Dict[str, str] = {}
    for item in items or []:
        if item is None or key_name not in item:
            continue
        result[item[key_name]] = item.get(value_name) or ""
    return result
