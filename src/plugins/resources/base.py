"""
Resource Plugin Base - Abstract interface for resource type plugins.

Resource plugins own the Create/Read/Update/Delete logic for one resource
type. They are registered by type name and discovered via Python entry
points. Shared tag reconciliation lives here so every resource type
merges, diffs and degrades tags the same way.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from botocore.exceptions import ClientError

import awserr
import partition
import tags as tagmodel
import values
from conns import AWSClient
from diagnostics import Diagnostics
from errors import NotFoundError
from partition import PartitionPolicy
from resource_data import ResourceData
from schema import TAGS_ALL_FIELD, TAGS_FIELD, ResourceSchema
from tags import DefaultTagsConfig, IgnoreConfig
from waiter import Waiter

logger = logging.getLogger(__name__)


@dataclass
class ResourceContext:
    """
    Everything a resource plugin needs for one invocation.

    Built fresh by the Provider for each call; only the diagnostics are
    mutable.
    """

    conn: AWSClient
    waiter: Waiter
    partition: PartitionPolicy
    default_tags: DefaultTagsConfig = field(default_factory=DefaultTagsConfig)
    ignore: IgnoreConfig = field(default_factory=IgnoreConfig)
    propagation_timeout: float = 120.0
    not_found_checks: int = 20
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


class ResourcePlugin(ABC):
    """
    Abstract base class for resource plugins.

    Subclasses declare a schema and implement the four lifecycle
    operations against the remote API. Tagged resource types also
    implement the three tag hooks for their service.

    Plugins are discovered via Python entry points in the
    'stratus.resources' group.
    """

    @property
    @abstractmethod
    def type_name(self) -> str:
        """Unique resource type name, e.g. 'aws_ecr_repository'."""
        pass

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable name used in messages, e.g. 'ECR Repository'."""
        pass

    @property
    @abstractmethod
    def schema(self) -> ResourceSchema:
        """Field descriptors for this resource type."""
        pass

    @abstractmethod
    async def create(self, d: ResourceData, ctx: ResourceContext) -> None:
        """
        Create the remote resource, assign its identity and read it back.

        Args:
            d: Resource data holding the planned desired state.
            ctx: Invocation context.
        """
        pass

    @abstractmethod
    async def read(self, d: ResourceData, ctx: ResourceContext) -> None:
        """
        Populate the observed state from the remote resource.

        Clears the identity when a resource that is not newly created is
        gone, which tells the caller to drop it from tracked state.
        """
        pass

    @abstractmethod
    async def update(self, d: ResourceData, ctx: ResourceContext) -> None:
        """Apply changed field groups and tags, then read back."""
        pass

    @abstractmethod
    async def delete(self, d: ResourceData, ctx: ResourceContext) -> None:
        """Delete the remote resource. Absence counts as success."""
        pass

    async def import_state(self, d: ResourceData, ctx: ResourceContext) -> None:
        """Prepare an imported identity before the first read."""
        pass

    async def call(
        self, ctx: ResourceContext, service: str, operation: str, /, **params: Any
    ) -> Dict[str, Any]:
        """Invoke a remote operation, classifying remote errors."""
        try:
            return await ctx.conn.call(service, operation, **params)
        except ClientError as e:
            raise awserr.classify(e) from e

    # Tag hooks

    async def list_tags(self, ctx: ResourceContext, identifier: str) -> Dict[str, str]:
        raise NotImplementedError(f"{self.type_name} does not support tags")

    async def tag_resource(
        self, ctx: ResourceContext, identifier: str, tags: Dict[str, str]
    ) -> None:
        raise NotImplementedError(f"{self.type_name} does not support tags")

    async def untag_resource(
        self, ctx: ResourceContext, identifier: str, keys: List[str]
    ) -> None:
        raise NotImplementedError(f"{self.type_name} does not support tags")

    # Shared tag reconciliation

    def effective_tags(self, d: ResourceData, ctx: ResourceContext) -> Dict[str, str]:
        """Default tags merged with the resource's own tags, minus ignored keys."""
        merged = ctx.default_tags.merge_tags(self.configured_tags(d))
        return tagmodel.clean(merged, ctx.ignore)

    def configured_tags(self, d: ResourceData) -> Dict[str, str]:
        return values.as_str_map(d.get(TAGS_FIELD) or {}, TAGS_FIELD)

    def has_explicit_tags(self, d: ResourceData) -> bool:
        return bool(self.configured_tags(d))

    async def update_tags(
        self,
        ctx: ResourceContext,
        identifier: str,
        old: Dict[str, str],
        new: Dict[str, str],
    ) -> None:
        """
        Apply the minimal tag delta between two tag sets.

        Removed keys are untagged before updated keys are tagged.

        Raises:
            RetryableError: Transient failure of a tag call.
            TerminalError: Any other failure.
        """
        delta = tagmodel.diff(old, new, ctx.ignore)

        try:
            if delta.removed:
                await self.untag_resource(ctx, identifier, sorted(delta.removed))
            if delta.updated:
                await self.tag_resource(ctx, identifier, delta.updated)
        except ClientError as e:
            raise awserr.classify(e) from e

    def set_tags(
        self, d: ResourceData, ctx: ResourceContext, remote: Dict[str, str]
    ) -> None:
        """Record observed tags: the full effective set and the resource-only view."""
        remote = tagmodel.clean(remote, ctx.ignore)
        d.set(
            TAGS_FIELD,
            tagmodel.remove_default(remote, ctx.default_tags.tags, d.get(TAGS_FIELD)),
        )
        d.set(TAGS_ALL_FIELD, remote)

    async def read_tags(
        self, d: ResourceData, ctx: ResourceContext, identifier: str
    ) -> None:
        """List remote tags and record them, tolerating partitions without tagging."""

        async def call():
            try:
                return await self.list_tags(ctx, identifier)
            except ClientError as e:
                raise awserr.classify(e) from e

        remote, supported = await partition.tolerate_unsupported(
            call,
            policy=ctx.partition,
            diagnostics=ctx.diagnostics,
            summary=f"listing tags for {self.display_name} ({d.id}) not supported",
        )
        if not supported:
            d.set(TAGS_FIELD, d.get(TAGS_FIELD))
            d.set(TAGS_ALL_FIELD, d.get(TAGS_ALL_FIELD))
            return
        self.set_tags(d, ctx, remote or {})

    async def update_tags_if_changed(
        self, d: ResourceData, ctx: ResourceContext, identifier: str
    ) -> None:
        """Push the tags_all delta, tolerating partitions without tagging."""
        if not d.has_change(TAGS_ALL_FIELD):
            return

        old, new = d.get_change(TAGS_ALL_FIELD)
        await partition.tolerate_unsupported(
            lambda: self.update_tags(ctx, identifier, old, new),
            policy=ctx.partition,
            diagnostics=ctx.diagnostics,
            summary=f"updating tags for {self.display_name} ({d.id}) not supported",
        )

    async def apply_deferred_tags(
        self,
        d: ResourceData,
        ctx: ResourceContext,
        identifier: str,
        effective: Dict[str, str],
    ) -> None:
        """Tag a new resource whose create call could not carry tags."""
        await partition.apply_deferred_tags(
            lambda t: self.update_tags(ctx, identifier, {}, t),
            effective,
            explicit=self.has_explicit_tags(d),
            policy=ctx.partition,
            diagnostics=ctx.diagnostics,
            description=f"{self.display_name} ({d.id})",
        )

    # Shared read handling

    async def find_for_read(
        self,
        d: ResourceData,
        ctx: ResourceContext,
        finder: Callable[[], Any],
    ) -> Any:
        """
        Locate the remote record for a read.

        Retries not-found for up to the propagation timeout when the
        resource was just created. Returns None (and clears the identity)
        when an existing resource is gone.
        """
        try:
            return await ctx.waiter.retry_when_new_resource_not_found(
                finder,
                ctx.propagation_timeout,
                d.is_new_resource(),
                description=f"{self.display_name} ({d.id})",
            )
        except NotFoundError:
            if d.is_new_resource():
                raise
            logger.warning(
                f"{self.display_name} ({d.id}) not found, removing from state"
            )
            d.set_id("")
            return None
