"""
ECS Task Set - A set of tasks within an ECS service using an external
deployment controller.

Task sets are addressed by the composite identity TASK_SET_ID,SERVICE,CLUSTER.
Creation is retried while the cluster, service or load balancer association
is still propagating.
"""

import logging
import uuid
from functools import partial
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

import awserr
import partition
import tags as tagmodel
import values
from errors import ProviderError, TypeMismatchError
from finder import find_single
from identity import CompositeIdentity
from plugins.resources.base import ResourceContext, ResourcePlugin
from resource_data import ResourceData
from schema import Field, FieldType, ResourceSchema
from timeouts import DURATION_PATTERN, parse_duration
from waiter import NotFoundPolicy

logger = logging.getLogger(__name__)

SERVICE = "ecs"

CLUSTER_NOT_FOUND = "ClusterNotFoundException"
SERVICE_NOT_FOUND = "ServiceNotFoundException"
TASK_SET_NOT_FOUND = "TaskSetNotFoundException"
INVALID_PARAMETER = "InvalidParameterException"

NOT_FOUND_CODES = (CLUSTER_NOT_FOUND, SERVICE_NOT_FOUND, TASK_SET_NOT_FOUND)

# Budget for the create call itself, on top of the propagation allowance
TASK_SET_CREATE_TIMEOUT = 10 * 60.0

STABILITY_STABILIZING = "STABILIZING"
STABILITY_STEADY_STATE = "STEADY_STATE"

TASK_SET_IDENTITY = CompositeIdentity("task_set_id", "service", "cluster")

LAUNCH_TYPES = ("EC2", "FARGATE", "EXTERNAL")
SCALE_UNITS = ("PERCENT",)


class CapacityProviderStrategyItem(BaseModel):
    capacity_provider: str
    weight: int
    base: int = 0


class LoadBalancer(BaseModel):
    container_name: str
    container_port: Optional[int] = None
    load_balancer_name: Optional[str] = None
    target_group_arn: Optional[str] = None


class NetworkConfiguration(BaseModel):
    subnets: List[str]
    security_groups: List[str] = []
    assign_public_ip: bool = False


class Scale(BaseModel):
    unit: str = "PERCENT"
    value: Optional[float] = None


class ServiceRegistry(BaseModel):
    registry_arn: str
    container_name: Optional[str] = None
    container_port: Optional[int] = None
    port: Optional[int] = None


def _port(**kwargs) -> Field:
    return Field(FieldType.INT, minimum=0, maximum=65535, **kwargs)


SCHEMA = ResourceSchema(
    fields={
        "arn": Field(FieldType.STRING, computed=True),
        "service": Field(FieldType.STRING, required=True, force_new=True),
        "cluster": Field(FieldType.STRING, required=True, force_new=True),
        "external_id": Field(
            FieldType.STRING, optional=True, computed=True, force_new=True
        ),
        "task_definition": Field(FieldType.STRING, required=True, force_new=True),
        "task_set_id": Field(FieldType.STRING, computed=True),
        "network_configuration": Field(
            FieldType.BLOCK,
            optional=True,
            force_new=True,
            max_items=1,
            fields={
                "security_groups": Field(
                    FieldType.SET, optional=True, force_new=True, max_items=5
                ),
                "subnets": Field(
                    FieldType.SET, required=True, force_new=True, max_items=16
                ),
                "assign_public_ip": Field(
                    FieldType.BOOL, optional=True, force_new=True, default=False
                ),
            },
        ),
        "load_balancer": Field(
            FieldType.BLOCK,
            optional=True,
            force_new=True,
            fields={
                "load_balancer_name": Field(
                    FieldType.STRING, optional=True, force_new=True
                ),
                "target_group_arn": Field(
                    FieldType.STRING, optional=True, force_new=True
                ),
                "container_name": Field(
                    FieldType.STRING, required=True, force_new=True
                ),
                "container_port": _port(optional=True, force_new=True),
            },
        ),
        "service_registries": Field(
            FieldType.BLOCK,
            optional=True,
            force_new=True,
            max_items=1,
            fields={
                "container_name": Field(
                    FieldType.STRING, optional=True, force_new=True
                ),
                "container_port": _port(optional=True, force_new=True),
                "port": _port(optional=True, force_new=True),
                "registry_arn": Field(
                    FieldType.STRING, required=True, force_new=True
                ),
            },
        ),
        "launch_type": Field(
            FieldType.STRING,
            optional=True,
            computed=True,
            force_new=True,
            choices=LAUNCH_TYPES,
        ),
        "capacity_provider_strategy": Field(
            FieldType.BLOCK,
            optional=True,
            force_new=True,
            fields={
                "base": Field(
                    FieldType.INT,
                    optional=True,
                    force_new=True,
                    minimum=0,
                    maximum=100000,
                ),
                "capacity_provider": Field(
                    FieldType.STRING, required=True, force_new=True
                ),
                "weight": Field(
                    FieldType.INT,
                    required=True,
                    force_new=True,
                    minimum=0,
                    maximum=1000,
                ),
            },
        ),
        "platform_version": Field(
            FieldType.STRING, optional=True, computed=True, force_new=True
        ),
        "scale": Field(
            FieldType.BLOCK,
            optional=True,
            computed=True,
            max_items=1,
            fields={
                "unit": Field(
                    FieldType.STRING,
                    optional=True,
                    default="PERCENT",
                    choices=SCALE_UNITS,
                ),
                "value": Field(
                    FieldType.FLOAT, optional=True, minimum=0.0, maximum=100.0
                ),
            },
        ),
        "force_delete": Field(FieldType.BOOL, optional=True),
        "stability_status": Field(FieldType.STRING, computed=True),
        "status": Field(FieldType.STRING, computed=True),
        "wait_until_stable": Field(FieldType.BOOL, optional=True, default=False),
        "wait_until_stable_timeout": Field(
            FieldType.STRING, optional=True, default="10m", pattern=DURATION_PATTERN
        ),
    },
)


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


def expand_capacity_provider_strategy(value: Any) -> List[Dict[str, Any]]:
    result = []
    for i, item in enumerate(values.as_list(value or [], "capacity_provider_strategy")):
        path = f"capacity_provider_strategy.{i}"
        strategy = values.project(
            CapacityProviderStrategyItem, _compact(values.as_map(item, path)), path
        )
        result.append(
            {
                "capacityProvider": strategy.capacity_provider,
                "weight": strategy.weight,
                "base": strategy.base,
            }
        )
    return result


def flatten_capacity_provider_strategy(
    items: Optional[List[Dict[str, Any]]],
) -> List[Dict[str, Any]]:
    return [
        {
            "base": item.get("base", 0),
            "capacity_provider": item.get("capacityProvider", ""),
            "weight": item.get("weight", 0),
        }
        for item in items or []
    ]


def expand_load_balancers(value: Any) -> List[Dict[str, Any]]:
    result = []
    for i, item in enumerate(values.as_list(value or [], "load_balancer")):
        path = f"load_balancer.{i}"
        lb = values.project(LoadBalancer, _compact(values.as_map(item, path)), path)
        expanded: Dict[str, Any] = {"containerName": lb.container_name}
        if lb.container_port:
            expanded["containerPort"] = lb.container_port
        if lb.load_balancer_name:
            expanded["loadBalancerName"] = lb.load_balancer_name
        if lb.target_group_arn:
            expanded["targetGroupArn"] = lb.target_group_arn
        result.append(expanded)
    return result


def flatten_load_balancers(
    items: Optional[List[Dict[str, Any]]],
) -> List[Dict[str, Any]]:
    return [
        {
            "container_name": item.get("containerName", ""),
            "container_port": item.get("containerPort", 0),
            "load_balancer_name": item.get("loadBalancerName", ""),
            "target_group_arn": item.get("targetGroupArn", ""),
        }
        for item in items or []
    ]


def expand_network_configuration(value: Any) -> Optional[Dict[str, Any]]:
    data = values.block(value, "network_configuration")
    if data is None:
        return None
    config = values.project(
        NetworkConfiguration, _compact(data), "network_configuration.0"
    )
    awsvpc: Dict[str, Any] = {
        "subnets": sorted(config.subnets),
        "assignPublicIp": "ENABLED" if config.assign_public_ip else "DISABLED",
    }
    if config.security_groups:
        awsvpc["securityGroups"] = sorted(config.security_groups)
    return {"awsvpcConfiguration": awsvpc}


def flatten_network_configuration(
    config: Optional[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    awsvpc = (config or {}).get("awsvpcConfiguration")
    if not awsvpc:
        return []
    return [
        {
            "security_groups": list(awsvpc.get("securityGroups", [])),
            "subnets": list(awsvpc.get("subnets", [])),
            "assign_public_ip": awsvpc.get("assignPublicIp") == "ENABLED",
        }
    ]


def expand_scale(value: Any) -> Optional[Dict[str, Any]]:
    data = values.block(value, "scale")
    if data is None:
        return None
    scale = values.project(Scale, _compact(data), "scale.0")
    expanded: Dict[str, Any] = {"unit": scale.unit}
    if scale.value is not None:
        expanded["value"] = scale.value
    return expanded


def flatten_scale(scale: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not scale:
        return []
    value = values.as_float(scale.get("value", 0.0), "scale.value")
    return [{"unit": scale.get("unit", ""), "value": value}]


def expand_service_registries(value: Any) -> List[Dict[str, Any]]:
    data = values.block(value, "service_registries")
    if data is None:
        return []
    registry = values.project(ServiceRegistry, _compact(data), "service_registries.0")
    expanded: Dict[str, Any] = {"registryArn": registry.registry_arn}
    if registry.container_name:
        expanded["containerName"] = registry.container_name
    if registry.container_port:
        expanded["containerPort"] = registry.container_port
    if registry.port:
        expanded["port"] = registry.port
    return [expanded]


def flatten_service_registries(
    items: Optional[List[Dict[str, Any]]],
) -> List[Dict[str, Any]]:
    return [
        {
            "container_name": item.get("containerName", ""),
            "container_port": item.get("containerPort", 0),
            "port": item.get("port", 0),
            "registry_arn": item.get("registryArn", ""),
        }
        for item in items or []
    ]


def is_create_propagation_error(err: BaseException) -> bool:
    """Errors create_task_set returns while its dependencies propagate."""
    return awserr.error_code_equals(err, *NOT_FOUND_CODES) or (
        awserr.error_message_contains(
            err, INVALID_PARAMETER, "does not have an associated load balancer"
        )
    )


class ECSTaskSetPlugin(ResourcePlugin):
    """Reconciles aws_ecs_task_set."""

    @property
    def type_name(self) -> str:
        return "aws_ecs_task_set"

    @property
    def display_name(self) -> str:
        return "ECS Task Set"

    @property
    def schema(self) -> ResourceSchema:
        return SCHEMA

    def _stable_timeout(self, d: ResourceData) -> float:
        raw = d.get("wait_until_stable_timeout")
        try:
            return parse_duration(values.as_str(raw, "wait_until_stable_timeout"))
        except ValueError as e:
            raise TypeMismatchError(
                "wait_until_stable_timeout", "duration string", raw
            ) from e

    async def describe_task_set(
        self, ctx: ResourceContext, task_set_id: str, service: str, cluster: str
    ) -> Dict[str, Any]:
        """Describe one task set, including its tags where the partition allows."""
        request = {
            "cluster": cluster,
            "service": service,
            "taskSets": [task_set_id],
            "include": ["TAGS"],
        }

        async def describe():
            output, _ = await partition.call_with_capability_fallback(
                partial(ctx.conn.call, SERVICE, "describe_task_sets"),
                request,
                "include",
                ctx.partition,
                ctx.diagnostics,
                description=f"{self.display_name} ({task_set_id})",
                action="describing",
            )
            return output.get("taskSets")

        return await find_single(
            describe,
            request=request,
            not_found_codes=NOT_FOUND_CODES,
            match=lambda t: t.get("id") == task_set_id,
            description=f"{self.display_name} ({task_set_id})",
        )

    async def _stability(
        self, ctx: ResourceContext, task_set_id: str, service: str, cluster: str
    ) -> Tuple[Any, str]:
        task_set = await self.describe_task_set(ctx, task_set_id, service, cluster)
        return task_set, task_set.get("stabilityStatus", "")

    async def _status(
        self, ctx: ResourceContext, task_set_id: str, service: str, cluster: str
    ) -> Tuple[Any, str]:
        task_set = await self.describe_task_set(ctx, task_set_id, service, cluster)
        return task_set, task_set.get("status", "")

    async def wait_stable(
        self,
        ctx: ResourceContext,
        timeout: float,
        task_set_id: str,
        service: str,
        cluster: str,
    ) -> None:
        await ctx.waiter.for_status(
            lambda: self._stability(ctx, task_set_id, service, cluster),
            pending=(STABILITY_STABILIZING,),
            target=(STABILITY_STEADY_STATE,),
            timeout=timeout,
            not_found_checks=ctx.not_found_checks,
            description=f"{self.display_name} ({task_set_id}) to be stable",
        )

    async def _create_with_retry(self, ctx: ResourceContext, **params: Any):
        return await ctx.waiter.retry_when(
            lambda: ctx.conn.call(SERVICE, "create_task_set", **params),
            ctx.propagation_timeout + TASK_SET_CREATE_TIMEOUT,
            is_create_propagation_error,
            description=f"creating {self.display_name}",
        )

    async def create(self, d: ResourceData, ctx: ResourceContext) -> None:
        cluster = values.as_str(d.get("cluster"), "cluster")
        service = values.as_str(d.get("service"), "service")
        effective = self.effective_tags(d, ctx)

        params: Dict[str, Any] = {
            "clientToken": str(uuid.uuid4()),
            "cluster": cluster,
            "service": service,
            "taskDefinition": values.as_str(d.get("task_definition"), "task_definition"),
        }
        if effective:
            params["tags"] = tagmodel.to_tag_list(effective, "key", "value")

        strategy = expand_capacity_provider_strategy(d.get("capacity_provider_strategy"))
        if strategy:
            params["capacityProviderStrategy"] = strategy
        external_id, ok = d.get_ok("external_id")
        if ok:
            params["externalId"] = values.as_str(external_id, "external_id")
        launch_type, ok = d.get_ok("launch_type")
        if ok:
            params["launchType"] = values.as_str(launch_type, "launch_type")
        load_balancers = expand_load_balancers(d.get("load_balancer"))
        if load_balancers:
            params["loadBalancers"] = load_balancers
        network = expand_network_configuration(d.get("network_configuration"))
        if network:
            params["networkConfiguration"] = network
        platform_version, ok = d.get_ok("platform_version")
        if ok:
            params["platformVersion"] = values.as_str(platform_version, "platform_version")
        scale = expand_scale(d.get("scale"))
        if scale:
            params["scale"] = scale
        registries = expand_service_registries(d.get("service_registries"))
        if registries:
            params["serviceRegistries"] = registries

        output, deferred = await partition.call_with_capability_fallback(
            partial(self._create_with_retry, ctx),
            params,
            "tags",
            ctx.partition,
            ctx.diagnostics,
            description=self.display_name,
        )

        task_set = output["taskSet"]
        task_set_id = task_set["id"]
        d.set_id(TASK_SET_IDENTITY.format(task_set_id, service, cluster))
        logger.info(f"Created {self.display_name}: {d.id}")

        if d.get("wait_until_stable"):
            await self.wait_stable(
                ctx, self._stable_timeout(d), task_set_id, service, cluster
            )

        if deferred:
            await self.apply_deferred_tags(
                d, ctx, task_set["taskSetArn"], effective
            )

        await self.read(d, ctx)

    async def import_state(self, d: ResourceData, ctx: ResourceContext) -> None:
        TASK_SET_IDENTITY.parse(d.id)

    async def read(self, d: ResourceData, ctx: ResourceContext) -> None:
        task_set_id, service, cluster = TASK_SET_IDENTITY.parse(d.id)

        task_set = await self.find_for_read(
            d,
            ctx,
            lambda: self.describe_task_set(ctx, task_set_id, service, cluster),
        )
        if task_set is None:
            return

        d.set("arn", task_set.get("taskSetArn", ""))
        d.set("cluster", cluster)
        d.set("launch_type", task_set.get("launchType", ""))
        d.set("platform_version", task_set.get("platformVersion", ""))
        d.set("external_id", task_set.get("externalId", ""))
        d.set("service", service)
        d.set("status", task_set.get("status", ""))
        d.set("stability_status", task_set.get("stabilityStatus", ""))
        d.set("task_definition", task_set.get("taskDefinition", ""))
        d.set("task_set_id", task_set.get("id", ""))
        d.set(
            "capacity_provider_strategy",
            flatten_capacity_provider_strategy(task_set.get("capacityProviderStrategy")),
        )
        d.set("load_balancer", flatten_load_balancers(task_set.get("loadBalancers")))
        d.set(
            "network_configuration",
            flatten_network_configuration(task_set.get("networkConfiguration")),
        )
        d.set("scale", flatten_scale(task_set.get("scale")))
        d.set(
            "service_registries",
            flatten_service_registries(task_set.get("serviceRegistries")),
        )
        for name in ("force_delete", "wait_until_stable", "wait_until_stable_timeout"):
            d.set(name, d.get(name))

        self.set_tags(d, ctx, tagmodel.from_tag_list(task_set.get("tags"), "key", "value"))

    async def update(self, d: ResourceData, ctx: ResourceContext) -> None:
        if d.has_changes_except("tags", "tags_all"):
            task_set_id, service, cluster = TASK_SET_IDENTITY.parse(d.id)

            await self.call(
                ctx,
                SERVICE,
                "update_task_set",
                cluster=cluster,
                service=service,
                taskSet=task_set_id,
                scale=expand_scale(d.get("scale")) or {"unit": "PERCENT"},
            )

            if d.get("wait_until_stable"):
                await self.wait_stable(
                    ctx, self._stable_timeout(d), task_set_id, service, cluster
                )

        await self.update_tags_if_changed(d, ctx, d.get("arn"))
        await self.read(d, ctx)

    async def delete(self, d: ResourceData, ctx: ResourceContext) -> None:
        task_set_id, service, cluster = TASK_SET_IDENTITY.parse(d.id)

        try:
            await self.call(
                ctx,
                SERVICE,
                "delete_task_set",
                cluster=cluster,
                service=service,
                taskSet=task_set_id,
                force=bool(d.get("force_delete")),
            )
        except ProviderError as e:
            if awserr.error_code_equals(e, TASK_SET_NOT_FOUND):
                return
            raise

        await ctx.waiter.for_status(
            lambda: self._status(ctx, task_set_id, service, cluster),
            pending=("ACTIVE", "PRIMARY", "DRAINING"),
            target=(),
            timeout=d.timeout("delete"),
            not_found=NotFoundPolicy.SUCCEED,
            description=f"{self.display_name} ({d.id}) delete",
        )

    # Tag hooks

    async def tag_resource(
        self, ctx: ResourceContext, identifier: str, tags: Dict[str, str]
    ) -> None:
        await ctx.conn.call(
            SERVICE,
            "tag_resource",
            resourceArn=identifier,
            tags=tagmodel.to_tag_list(tags, "key", "value"),
        )

    async def untag_resource(
        self, ctx: ResourceContext, identifier: str, keys: List[str]
    ) -> None:
        await ctx.conn.call(
            SERVICE, "untag_resource", resourceArn=identifier, tagKeys=keys
        )
