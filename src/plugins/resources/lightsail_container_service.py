"""
Lightsail Container Service - Managed container hosting in Lightsail.

Services are addressed by name. The service must reach READY before it can
be disabled or updated again, and private registry access is changed with
its own update call.
"""

import logging
from datetime import datetime
from functools import partial
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

import awserr
import partition
import tags as tagmodel
import values
from errors import ProviderError
from finder import find_single
from plugins.resources.base import ResourceContext, ResourcePlugin
from resource_data import ResourceData
from schema import Field, FieldType, ResourceSchema
from timeouts import Timeouts
from waiter import NotFoundPolicy

logger = logging.getLogger(__name__)

SERVICE = "lightsail"

NOT_FOUND = "NotFoundException"

STATE_PENDING = "PENDING"
STATE_READY = "READY"
STATE_RUNNING = "RUNNING"
STATE_UPDATING = "UPDATING"
STATE_DELETING = "DELETING"
STATE_DISABLED = "DISABLED"
STATE_DEPLOYING = "DEPLOYING"

POWER_NAMES = ("nano", "micro", "small", "medium", "large", "xlarge")

NAME_PATTERN = r"^(?:[a-z0-9]{1,2}|[a-z0-9][a-z0-9-]+[a-z0-9])$"


class Certificate(BaseModel):
    certificate_name: str
    domain_names: List[str]


class ECRImagePullerRole(BaseModel):
    is_active: Optional[bool] = None


SCHEMA = ResourceSchema(
    fields={
        "arn": Field(FieldType.STRING, computed=True),
        "availability_zone": Field(FieldType.STRING, computed=True),
        "created_at": Field(FieldType.STRING, computed=True),
        "is_disabled": Field(FieldType.BOOL, optional=True, default=False),
        "name": Field(
            FieldType.STRING,
            required=True,
            force_new=True,
            min_length=1,
            max_length=63,
            pattern=NAME_PATTERN,
        ),
        "power": Field(FieldType.STRING, required=True, choices=POWER_NAMES),
        "power_id": Field(FieldType.STRING, computed=True),
        "principal_arn": Field(FieldType.STRING, computed=True),
        "private_domain_name": Field(FieldType.STRING, computed=True),
        "public_domain_names": Field(
            FieldType.BLOCK,
            optional=True,
            max_items=1,
            fields={
                "certificate": Field(
                    FieldType.BLOCK,
                    required=True,
                    fields={
                        "certificate_name": Field(FieldType.STRING, required=True),
                        "domain_names": Field(FieldType.LIST, required=True),
                    },
                ),
            },
        ),
        "private_registry_access": Field(
            FieldType.BLOCK,
            optional=True,
            computed=True,
            max_items=1,
            fields={
                "ecr_image_puller_role": Field(
                    FieldType.BLOCK,
                    optional=True,
                    computed=True,
                    max_items=1,
                    fields={
                        "is_active": Field(FieldType.BOOL, optional=True),
                        "principal_arn": Field(FieldType.STRING, computed=True),
                    },
                ),
            },
        ),
        "resource_type": Field(FieldType.STRING, computed=True),
        "scale": Field(FieldType.INT, required=True, minimum=1, maximum=20),
        "state": Field(FieldType.STRING, computed=True),
        "url": Field(FieldType.STRING, computed=True),
    },
    timeouts=Timeouts.of(create="30m", update="30m", delete="30m"),
)


def expand_public_domain_names(value: Any) -> Optional[Dict[str, List[str]]]:
    """Map certificate names to the domain names they cover."""
    data = values.block(value, "public_domain_names")
    if data is None:
        return None
    result: Dict[str, List[str]] = {}
    certificates = values.as_list(
        data.get("certificate") or [], "public_domain_names.0.certificate"
    )
    for i, item in enumerate(certificates):
        path = f"public_domain_names.0.certificate.{i}"
        certificate = values.project(Certificate, values.as_map(item, path), path)
        result[certificate.certificate_name] = list(certificate.domain_names)
    return result


def flatten_public_domain_names(
    domain_names: Optional[Dict[str, List[str]]],
) -> List[Dict[str, Any]]:
    if not domain_names:
        return []
    return [
        {
            "certificate": [
                {"certificate_name": name, "domain_names": list(domains)}
                for name, domains in sorted(domain_names.items())
            ]
        }
    ]


def public_domain_names_changed(
    d: ResourceData,
) -> Tuple[Optional[Dict[str, List[str]]], bool]:
    """
    Return the public domain names to send and whether they changed.

    A certificate dropped from configuration is sent with an empty domain
    list, which detaches it from the service.
    """
    old, new = d.get_change("public_domain_names")
    old_names = expand_public_domain_names(old)
    new_names = expand_public_domain_names(new)
    if old_names == new_names:
        return new_names, False

    new_names = dict(new_names or {})
    for certificate_name in old_names or {}:
        new_names.setdefault(certificate_name, [])
    return new_names, True


def expand_private_registry_access(value: Any) -> Optional[Dict[str, Any]]:
    data = values.block(value, "private_registry_access")
    if data is None:
        return None
    result: Dict[str, Any] = {}
    role = values.block(
        data.get("ecr_image_puller_role"),
        "private_registry_access.0.ecr_image_puller_role",
    )
    if role is not None:
        puller = values.project(
            ECRImagePullerRole,
            {"is_active": role.get("is_active")},
            "private_registry_access.0.ecr_image_puller_role.0",
        )
        result["ecrImagePullerRole"] = (
            {} if puller.is_active is None else {"isActive": puller.is_active}
        )
    return result


def flatten_private_registry_access(
    access: Optional[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    if access is None:
        return []
    result: Dict[str, Any] = {}
    role = access.get("ecrImagePullerRole")
    if role is not None:
        result["ecr_image_puller_role"] = [
            {
                "is_active": bool(role.get("isActive", False)),
                "principal_arn": role.get("principalArn", ""),
            }
        ]
    return [result]


def _timestamp(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value or "")


class LightsailContainerServicePlugin(ResourcePlugin):
    """Reconciles aws_lightsail_container_service."""

    @property
    def type_name(self) -> str:
        return "aws_lightsail_container_service"

    @property
    def display_name(self) -> str:
        return "Lightsail Container Service"

    @property
    def schema(self) -> ResourceSchema:
        return SCHEMA

    async def find_container_service_by_name(
        self, ctx: ResourceContext, name: str
    ) -> Dict[str, Any]:
        request = {"serviceName": name}

        async def describe():
            output = await ctx.conn.call(SERVICE, "get_container_services", **request)
            return output.get("containerServices")

        return await find_single(
            describe,
            request=request,
            not_found_codes=(NOT_FOUND,),
            match=lambda s: s.get("containerServiceName") == name,
            description=f"{self.display_name} ({name})",
        )

    async def _state(self, ctx: ResourceContext, name: str) -> Tuple[Any, str]:
        service = await self.find_container_service_by_name(ctx, name)
        return service, service.get("state", "")

    async def wait_state(
        self,
        ctx: ResourceContext,
        name: str,
        timeout: float,
        *,
        pending: Tuple[str, ...],
        target: Tuple[str, ...],
    ) -> None:
        await ctx.waiter.for_status(
            lambda: self._state(ctx, name),
            pending=pending,
            target=target,
            timeout=timeout,
            not_found_checks=ctx.not_found_checks,
            description=f"{self.display_name} ({name}) to reach {'/'.join(target)}",
        )

    async def wait_updated(self, d: ResourceData, ctx: ResourceContext) -> None:
        if d.get("is_disabled"):
            target: Tuple[str, ...] = (STATE_DISABLED,)
        else:
            target = (STATE_READY, STATE_RUNNING)
        await self.wait_state(
            ctx,
            d.id,
            d.timeout("update"),
            pending=(STATE_UPDATING, STATE_DEPLOYING),
            target=target,
        )

    async def create(self, d: ResourceData, ctx: ResourceContext) -> None:
        name = values.as_str(d.get("name"), "name")
        effective = self.effective_tags(d, ctx)

        params: Dict[str, Any] = {
            "serviceName": name,
            "power": values.as_str(d.get("power"), "power"),
            "scale": values.as_int(d.get("scale"), "scale"),
        }
        public_domain_names = expand_public_domain_names(d.get("public_domain_names"))
        if public_domain_names:
            params["publicDomainNames"] = public_domain_names
        registry_access = expand_private_registry_access(
            d.get("private_registry_access")
        )
        if registry_access:
            params["privateRegistryAccess"] = registry_access
        if effective:
            params["tags"] = tagmodel.to_tag_list(effective, "key", "value")

        _, deferred = await partition.call_with_capability_fallback(
            partial(ctx.conn.call, SERVICE, "create_container_service"),
            params,
            "tags",
            ctx.partition,
            ctx.diagnostics,
            description=f"{self.display_name} ({name})",
        )

        d.set_id(name)
        logger.info(f"Created {self.display_name}: {d.id}")

        await self.wait_state(
            ctx,
            d.id,
            d.timeout("create"),
            pending=(STATE_PENDING,),
            target=(STATE_READY,),
        )

        # New services are enabled; disable once creation has settled
        if d.get("is_disabled"):
            await self.call(
                ctx,
                SERVICE,
                "update_container_service",
                serviceName=d.id,
                isDisabled=True,
            )
            await self.wait_state(
                ctx,
                d.id,
                d.timeout("create"),
                pending=(STATE_UPDATING,),
                target=(STATE_DISABLED,),
            )

        if deferred:
            await self.apply_deferred_tags(d, ctx, d.id, effective)

        await self.read(d, ctx)

    async def read(self, d: ResourceData, ctx: ResourceContext) -> None:
        service = await self.find_for_read(
            d, ctx, lambda: self.find_container_service_by_name(ctx, d.id)
        )
        if service is None:
            return

        d.set("name", service.get("containerServiceName", ""))
        d.set("power", service.get("power", ""))
        d.set("scale", service.get("scale", 0))
        d.set("is_disabled", bool(service.get("isDisabled")))
        d.set(
            "public_domain_names",
            flatten_public_domain_names(service.get("publicDomainNames")),
        )
        d.set(
            "private_registry_access",
            flatten_private_registry_access(service.get("privateRegistryAccess")),
        )
        d.set("arn", service.get("arn", ""))
        d.set(
            "availability_zone",
            (service.get("location") or {}).get("availabilityZone", ""),
        )
        d.set("created_at", _timestamp(service.get("createdAt")))
        d.set("power_id", service.get("powerId", ""))
        d.set("principal_arn", service.get("principalArn", ""))
        d.set("private_domain_name", service.get("privateDomainName", ""))
        d.set("resource_type", service.get("resourceType", ""))
        d.set("state", service.get("state", ""))
        d.set("url", service.get("url", ""))

        self.set_tags(d, ctx, tagmodel.from_tag_list(service.get("tags"), "key", "value"))

    async def update(self, d: ResourceData, ctx: ResourceContext) -> None:
        if d.has_changes("is_disabled", "power", "public_domain_names", "scale"):
            params: Dict[str, Any] = {
                "serviceName": d.id,
                "isDisabled": values.as_bool(d.get("is_disabled"), "is_disabled"),
                "power": values.as_str(d.get("power"), "power"),
                "scale": values.as_int(d.get("scale"), "scale"),
            }
            public_domain_names, changed = public_domain_names_changed(d)
            if changed:
                params["publicDomainNames"] = public_domain_names

            await self.call(ctx, SERVICE, "update_container_service", **params)
            await self.wait_updated(d, ctx)

        if d.has_change("private_registry_access"):
            await self.call(
                ctx,
                SERVICE,
                "update_container_service",
                serviceName=d.id,
                privateRegistryAccess=expand_private_registry_access(
                    d.get("private_registry_access")
                )
                or {},
            )
            await self.wait_updated(d, ctx)

        await self.update_tags_if_changed(d, ctx, d.id)
        await self.read(d, ctx)

    async def delete(self, d: ResourceData, ctx: ResourceContext) -> None:
        logger.debug(f"Deleting {self.display_name}: {d.id}")
        try:
            await self.call(ctx, SERVICE, "delete_container_service", serviceName=d.id)
        except ProviderError as e:
            if awserr.error_code_equals(e, NOT_FOUND):
                return
            raise

        await ctx.waiter.for_status(
            lambda: self._state(ctx, d.id),
            pending=(STATE_DELETING,),
            target=(),
            timeout=d.timeout("delete"),
            not_found=NotFoundPolicy.SUCCEED,
            description=f"{self.display_name} ({d.id}) deletion",
        )

    # Tag hooks

    async def tag_resource(
        self, ctx: ResourceContext, identifier: str, tags: Dict[str, str]
    ) -> None:
        await ctx.conn.call(
            SERVICE,
            "tag_resource",
            resourceName=identifier,
            tags=tagmodel.to_tag_list(tags, "key", "value"),
        )

    async def untag_resource(
        self, ctx: ResourceContext, identifier: str, keys: List[str]
    ) -> None:
        await ctx.conn.call(
            SERVICE, "untag_resource", resourceName=identifier, tagKeys=keys
        )
