"""
Provider - Entry points for reconciling one resource instance.

The orchestrator calls create, read, update, delete, plan and import_state
with a resource type name plus desired and prior state. Each call runs to
completion inside the awaiting coroutine and returns a ReconcileResult;
failures come back as error diagnostics rather than exceptions.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

import tags as tagmodel
from config import Config
from conns import AWSClient
from diagnostics import Diagnostics
from errors import InvalidConfigurationError, ProviderError, ResourceOperationError
from partition import (
    DEFAULT_PRIMARY_PARTITIONS,
    DEFAULT_UNSUPPORTED_ERROR_CODES,
    PartitionPolicy,
)
from plan import ChangePlan, PlanAction, plan_changes
from plugins.registry import PluginRegistry, get_registry, register_builtin_plugins
from plugins.resources.base import ResourceContext, ResourcePlugin
from resource_data import ResourceData
from schema import TAGS_ALL_FIELD, TAGS_FIELD
from timeouts import Timeouts
from validation import strip_unset, validate_desired_state
from waiter import Waiter

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

State = Dict[str, Any]


@dataclass
class ReconcileResult:
    """
    Outcome of one entry point call.

    ``state`` is the new observed state to track (None when nothing should
    be tracked). ``removed`` tells the caller to drop the instance from
    tracked state; it is an absence signal, not an error.
    """

    state: Optional[State] = None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    removed: bool = False

    @property
    def ok(self) -> bool:
        return not self.diagnostics.has_error()


class Provider:
    """
    Reconciles resource instances of every registered type.

    Configuration is passed in explicitly and only read; each call builds
    its own ResourceContext, so concurrent calls share no mutable state.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        registry: Optional[PluginRegistry] = None,
        conn: Optional[AWSClient] = None,
        waiter: Optional[Waiter] = None,
        partition_predicate: Optional[Callable[[str, BaseException], bool]] = None,
    ):
        self.config = config or Config.default()
        if registry is None:
            registry = get_registry()
            if not registry.list_resource_types():
                register_builtin_plugins(registry)
        self.registry = registry
        self.conn = conn or AWSClient(self.config.aws)
        self.waiter = waiter or Waiter(poll_interval=self.config.waiter.poll_interval)
        self.partition_predicate = partition_predicate

    def partition_policy(self) -> PartitionPolicy:
        """Build the partition policy from configuration."""
        partition_config = self.config.partition
        return PartitionPolicy(
            partition=self.conn.partition,
            primary_partitions=(
                frozenset(partition_config.primary_partitions)
                or DEFAULT_PRIMARY_PARTITIONS
            ),
            unsupported_error_codes=(
                frozenset(partition_config.unsupported_error_codes)
                or DEFAULT_UNSUPPORTED_ERROR_CODES
            ),
            predicate=self.partition_predicate,
        )

    def _context(self) -> ResourceContext:
        return ResourceContext(
            conn=self.conn,
            waiter=self.waiter,
            partition=self.partition_policy(),
            default_tags=self.config.tags.default_tags_config(),
            ignore=self.config.tags.ignore_config(),
            propagation_timeout=self.config.waiter.propagation_timeout,
            not_found_checks=self.config.waiter.not_found_checks,
        )

    def _plugin(self, type_name: str) -> ResourcePlugin:
        return self.registry.get_resource_plugin(type_name)

    def planned_state(self, plugin: ResourcePlugin, desired: State) -> State:
        """
        Validate desired state and fill in defaults and the effective tag set.

        Raises:
            InvalidConfigurationError: If desired state fails validation.
        """
        valid, message = validate_desired_state(desired, plugin.schema)
        if not valid:
            raise InvalidConfigurationError(f"invalid {plugin.type_name}: {message}")

        planned = strip_unset(plugin.schema.apply_defaults(desired))
        if plugin.schema.tagged:
            tag_config = self.config.tags
            merged = tag_config.default_tags_config().merge_tags(planned.get(TAGS_FIELD))
            planned[TAGS_ALL_FIELD] = tagmodel.clean(merged, tag_config.ignore_config())
        return planned

    def _timeouts(
        self, plugin: ResourcePlugin, overrides: Optional[Dict[str, Any]]
    ) -> Timeouts:
        return plugin.schema.timeouts.with_overrides(overrides)

    async def _invoke(
        self,
        operation: str,
        plugin: ResourcePlugin,
        d: ResourceData,
        ctx: ResourceContext,
        fn: Callable[[ResourceData, ResourceContext], Awaitable[None]],
    ) -> bool:
        """Run one plugin operation, turning failures into error diagnostics."""
        try:
            await fn(d, ctx)
            return True
        except ProviderError as e:
            err = ResourceOperationError(
                operation, plugin.display_name, d.id or "new", e
            )
            logger.error(str(err))
            ctx.diagnostics.append_error(str(err), e.message)
        except Exception as e:
            logger.error(
                f"Unexpected error {operation} {plugin.display_name} ({d.id}): {e}",
                exc_info=True,
            )
            ctx.diagnostics.append_error(
                f"{operation} {plugin.display_name} ({d.id or 'new'}): unexpected error",
                str(e),
            )
        return False

    def _rejected(
        self, ctx: ResourceContext, operation: str, plugin: ResourcePlugin, e: Exception
    ) -> None:
        logger.warning(f"Rejected {operation} {plugin.display_name}: {e}")
        ctx.diagnostics.append_error(
            f"{operation} {plugin.display_name}: invalid configuration", str(e)
        )

    # Entry points

    async def create(
        self,
        type_name: str,
        desired: State,
        timeouts: Optional[Dict[str, Any]] = None,
    ) -> ReconcileResult:
        """
        Create a resource instance.

        Args:
            type_name: Registered resource type name.
            desired: Desired state as configured by the user.
            timeouts: Per-instance duration overrides keyed by operation.

        Returns:
            ReconcileResult with the observed state. A create that failed
            after the identity was assigned still returns that identity so
            the instance stays tracked.

        Raises:
            ValueError: If the resource type is not registered.
        """
        plugin = self._plugin(type_name)
        ctx = self._context()
        try:
            planned = self.planned_state(plugin, desired)
            instance_timeouts = self._timeouts(plugin, timeouts)
        except ProviderError as e:
            self._rejected(ctx, "creating", plugin, e)
            return ReconcileResult(diagnostics=ctx.diagnostics)

        d = ResourceData(
            plugin.schema,
            desired=planned,
            timeouts=instance_timeouts,
            new_resource=True,
        )
        logger.info(f"Creating {plugin.display_name}")
        if await self._invoke("creating", plugin, d, ctx, plugin.create):
            return ReconcileResult(state=d.observed_state(), diagnostics=ctx.diagnostics)
        return ReconcileResult(state=d.current_state(), diagnostics=ctx.diagnostics)

    async def read(
        self,
        type_name: str,
        identity: str,
        prior: Optional[State] = None,
        timeouts: Optional[Dict[str, Any]] = None,
    ) -> ReconcileResult:
        """
        Refresh a tracked instance from the remote API.

        A resource that no longer exists comes back with ``removed`` set and
        no error diagnostics.
        """
        plugin = self._plugin(type_name)
        ctx = self._context()
        try:
            instance_timeouts = self._timeouts(plugin, timeouts)
        except ProviderError as e:
            self._rejected(ctx, "reading", plugin, e)
            return ReconcileResult(state=prior, diagnostics=ctx.diagnostics)

        d = ResourceData(
            plugin.schema,
            identity=identity,
            desired=prior,
            prior=prior,
            timeouts=instance_timeouts,
        )
        if not await self._invoke("reading", plugin, d, ctx, plugin.read):
            return ReconcileResult(state=prior, diagnostics=ctx.diagnostics)
        if not d.id:
            return ReconcileResult(diagnostics=ctx.diagnostics, removed=True)
        return ReconcileResult(state=d.observed_state(), diagnostics=ctx.diagnostics)

    async def update(
        self,
        type_name: str,
        identity: str,
        prior: State,
        desired: State,
        timeouts: Optional[Dict[str, Any]] = None,
    ) -> ReconcileResult:
        """
        Update a tracked instance in place.

        Changes to force-new fields cannot be applied in place; they are
        reported as an error so the caller can replace the instance.
        """
        plugin = self._plugin(type_name)
        ctx = self._context()
        try:
            planned = self.planned_state(plugin, desired)
            instance_timeouts = self._timeouts(plugin, timeouts)
        except ProviderError as e:
            self._rejected(ctx, "updating", plugin, e)
            return ReconcileResult(state=prior, diagnostics=ctx.diagnostics)

        change_plan = plan_changes(plugin.schema, prior, planned, ctx.ignore)
        if change_plan.requires_replace:
            fields = ", ".join(change_plan.replace_fields)
            ctx.diagnostics.append_error(
                f"updating {plugin.display_name} ({identity}): replacement required",
                f"changes to {fields} cannot be applied in place",
            )
            return ReconcileResult(state=prior, diagnostics=ctx.diagnostics)

        d = ResourceData(
            plugin.schema,
            identity=identity,
            desired=planned,
            prior=prior,
            timeouts=instance_timeouts,
        )
        if change_plan.action is PlanAction.NOOP:
            logger.debug(f"No changes for {plugin.display_name} ({identity})")
            operation, fn = "reading", plugin.read
        else:
            logger.info(
                f"Updating {plugin.display_name} ({identity}): "
                f"{', '.join(change_plan.changed_fields)}"
            )
            operation, fn = "updating", plugin.update

        if not await self._invoke(operation, plugin, d, ctx, fn):
            return ReconcileResult(state=d.current_state(), diagnostics=ctx.diagnostics)
        if not d.id:
            return ReconcileResult(diagnostics=ctx.diagnostics, removed=True)
        return ReconcileResult(state=d.observed_state(), diagnostics=ctx.diagnostics)

    async def delete(
        self,
        type_name: str,
        identity: str,
        prior: Optional[State] = None,
        timeouts: Optional[Dict[str, Any]] = None,
    ) -> ReconcileResult:
        """Delete a tracked instance. A resource that is already gone is a success."""
        plugin = self._plugin(type_name)
        ctx = self._context()
        try:
            instance_timeouts = self._timeouts(plugin, timeouts)
        except ProviderError as e:
            self._rejected(ctx, "deleting", plugin, e)
            return ReconcileResult(state=prior, diagnostics=ctx.diagnostics)

        d = ResourceData(
            plugin.schema,
            identity=identity,
            desired=prior,
            prior=prior,
            timeouts=instance_timeouts,
        )
        logger.info(f"Deleting {plugin.display_name} ({identity})")
        if not await self._invoke("deleting", plugin, d, ctx, plugin.delete):
            return ReconcileResult(state=prior, diagnostics=ctx.diagnostics)
        return ReconcileResult(diagnostics=ctx.diagnostics, removed=True)

    async def import_state(self, type_name: str, identity: str) -> ReconcileResult:
        """Start tracking an existing remote resource by its identity."""
        plugin = self._plugin(type_name)
        ctx = self._context()
        d = ResourceData(plugin.schema, identity=identity)

        async def import_and_read(d: ResourceData, ctx: ResourceContext) -> None:
            await plugin.import_state(d, ctx)
            await plugin.read(d, ctx)

        if not await self._invoke("importing", plugin, d, ctx, import_and_read):
            return ReconcileResult(diagnostics=ctx.diagnostics)
        if not d.id:
            ctx.diagnostics.append_error(
                "Cannot import non-existent remote object",
                f"{plugin.display_name} ({identity}) does not exist",
            )
            return ReconcileResult(diagnostics=ctx.diagnostics)
        return ReconcileResult(state=d.observed_state(), diagnostics=ctx.diagnostics)

    def plan(
        self, type_name: str, prior: Optional[State], desired: State
    ) -> ChangePlan:
        """
        Compute the change plan for desired state against prior state.

        Raises:
            InvalidConfigurationError: If desired state fails validation.
            ValueError: If the resource type is not registered.
        """
        plugin = self._plugin(type_name)
        planned = self.planned_state(plugin, desired)
        return plan_changes(
            plugin.schema, prior, planned, self.config.tags.ignore_config()
        )
