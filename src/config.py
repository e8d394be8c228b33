"""
Configuration module for the Stratus provider.

Loads configuration from environment variables or a YAML/JSON config file.
The resulting Config is passed explicitly into the Provider; there is no
process-wide configuration instance.
"""

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from tags import DefaultTagsConfig, IgnoreConfig


def _csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class AWSConfig:
    """Connection settings for the cloud API."""

    region: Optional[str] = None
    profile: Optional[str] = None
    partition: Optional[str] = None  # derived from the region when unset
    endpoint_url: Optional[str] = None

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            region=os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION"),
            profile=os.getenv("AWS_PROFILE"),
            partition=os.getenv("STRATUS_PARTITION"),
            endpoint_url=os.getenv("STRATUS_ENDPOINT_URL"),
        )


@dataclass
class TagsConfig:
    """Provider-wide default tags and ignore rules."""

    default_tags: Dict[str, str] = field(default_factory=dict)
    ignore_keys: List[str] = field(default_factory=list)
    ignore_key_prefixes: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        default_tags = {}
        if os.getenv("STRATUS_DEFAULT_TAGS"):
            try:
                default_tags = json.loads(os.getenv("STRATUS_DEFAULT_TAGS"))
            except json.JSONDecodeError as e:
                raise ValueError(
                    f"STRATUS_DEFAULT_TAGS must be a JSON object: {e}"
                ) from e
            if not isinstance(default_tags, dict):
                raise ValueError("STRATUS_DEFAULT_TAGS must be a JSON object")

        return cls(
            default_tags={str(k): str(v) for k, v in default_tags.items()},
            ignore_keys=_csv(os.getenv("STRATUS_IGNORE_TAG_KEYS")),
            ignore_key_prefixes=_csv(os.getenv("STRATUS_IGNORE_TAG_KEY_PREFIXES")),
        )

    def default_tags_config(self) -> DefaultTagsConfig:
        return DefaultTagsConfig(tags=dict(self.default_tags))

    def ignore_config(self) -> IgnoreConfig:
        return IgnoreConfig.build(
            keys=self.ignore_keys, key_prefixes=self.ignore_key_prefixes
        )


@dataclass
class PartitionConfig:
    """Partition capability settings."""

    # Empty lists mean the built-in defaults of PartitionPolicy
    primary_partitions: List[str] = field(default_factory=list)
    unsupported_error_codes: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            primary_partitions=_csv(os.getenv("STRATUS_PRIMARY_PARTITIONS")),
            unsupported_error_codes=_csv(
                os.getenv("STRATUS_UNSUPPORTED_ERROR_CODES")
            ),
        )


@dataclass
class WaiterConfig:
    """Polling configuration shared by all waits."""

    poll_interval: float = 10.0  # seconds
    propagation_timeout: float = 120.0  # seconds; new-resource read retry budget
    not_found_checks: int = 20

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            poll_interval=float(os.getenv("STRATUS_POLL_INTERVAL", "10")),
            propagation_timeout=float(
                os.getenv("STRATUS_PROPAGATION_TIMEOUT", "120")
            ),
            not_found_checks=int(os.getenv("STRATUS_NOT_FOUND_CHECKS", "20")),
        )


def _section(section_cls, data: Optional[Dict[str, Any]]):
    data = data or {}
    known = {f.name for f in fields(section_cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(
            f"unknown {section_cls.__name__} settings: {', '.join(sorted(unknown))}"
        )
    return section_cls(**data)


@dataclass
class Config:
    """Main configuration object."""

    aws: AWSConfig
    tags: TagsConfig
    partition: PartitionConfig
    waiter: WaiterConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            aws=AWSConfig.from_env(),
            tags=TagsConfig.from_env(),
            partition=PartitionConfig.from_env(),
            waiter=WaiterConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            aws=AWSConfig(),
            tags=TagsConfig(),
            partition=PartitionConfig(),
            waiter=WaiterConfig(),
        )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]):
        """Build configuration from a mapping of section name to settings."""
        data = data or {}
        unknown = set(data) - {"aws", "tags", "partition", "waiter"}
        if unknown:
            raise ValueError(f"unknown config sections: {', '.join(sorted(unknown))}")
        return cls(
            aws=_section(AWSConfig, data.get("aws")),
            tags=_section(TagsConfig, data.get("tags")),
            partition=_section(PartitionConfig, data.get("partition")),
            waiter=_section(WaiterConfig, data.get("waiter")),
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]):
        """
        Load configuration from a YAML or JSON file.

        Args:
            path: File path; ``.json`` files are parsed as JSON, anything
                else as YAML.

        Raises:
            ValueError: If the file does not hold a mapping or names
                unknown settings.
        """
        path = Path(path)
        with path.open() as f:
            if path.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"config file {path} must contain a mapping")
        return cls.from_dict(data)
