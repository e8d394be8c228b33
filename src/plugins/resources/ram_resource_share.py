"""
RAM Resource Share - Cross-account resource share owned by this account.
"""

import logging
from typing import Any, Dict, List, Tuple

import awserr
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

SERVICE = "ram"

UNKNOWN_RESOURCE = "UnknownResourceException"

STATUS_PENDING = "PENDING"
STATUS_ACTIVE = "ACTIVE"
STATUS_DELETING = "DELETING"
STATUS_DELETED = "DELETED"

SCHEMA = ResourceSchema(
    fields={
        "allow_external_principals": Field(FieldType.BOOL, optional=True, default=False),
        "arn": Field(FieldType.STRING, computed=True),
        "name": Field(FieldType.STRING, required=True),
        "permission_arns": Field(
            FieldType.SET,
            optional=True,
            computed=True,
            force_new=True,
            elem=FieldType.STRING,
        ),
    },
    timeouts=Timeouts.of(create="5m", delete="5m"),
)


class RAMResourceSharePlugin(ResourcePlugin):
    """Reconciles aws_ram_resource_share."""

    @property
    def type_name(self) -> str:
        return "aws_ram_resource_share"

    @property
    def display_name(self) -> str:
        return "RAM Resource Share"

    @property
    def schema(self) -> ResourceSchema:
        return SCHEMA

    async def find_resource_share_by_arn(
        self, ctx: ResourceContext, arn: str
    ) -> Dict[str, Any]:
        request = {"resourceShareArns": [arn], "resourceOwner": "SELF"}

        async def describe():
            output = await ctx.conn.call(SERVICE, "get_resource_shares", **request)
            return output.get("resourceShares")

        return await find_single(
            describe,
            request=request,
            not_found_codes=(UNKNOWN_RESOURCE,),
            match=lambda r: r.get("resourceShareArn") == arn,
            description=f"{self.display_name} ({arn})",
        )

    async def _status(self, ctx: ResourceContext, arn: str) -> Tuple[Any, str]:
        share = await self.find_resource_share_by_arn(ctx, arn)
        return share, share.get("status", "")

    async def list_permission_arns(self, ctx: ResourceContext, arn: str) -> List[str]:
        arns: List[str] = []
        params: Dict[str, Any] = {"resourceShareArn": arn}
        while True:
            output = await self.call(
                ctx, SERVICE, "list_resource_share_permissions", **params
            )
            arns.extend(p["arn"] for p in output.get("permissions", []) if "arn" in p)
            if not output.get("nextToken"):
                return arns
            params["nextToken"] = output["nextToken"]

    async def create(self, d: ResourceData, ctx: ResourceContext) -> None:
        name = values.as_str(d.get("name"), "name")
        effective = self.effective_tags(d, ctx)

        params: Dict[str, Any] = {
            "name": name,
            "allowExternalPrincipals": values.as_bool(
                d.get("allow_external_principals"), "allow_external_principals"
            ),
        }
        permission_arns = values.as_str_list(d.get("permission_arns"), "permission_arns")
        if permission_arns:
            params["permissionArns"] = sorted(permission_arns)
        if effective:
            params["tags"] = tagmodel.to_tag_list(effective, "key", "value")

        logger.debug(f"Creating {self.display_name}: {params}")
        output = await self.call(ctx, SERVICE, "create_resource_share", **params)
        d.set_id(output["resourceShare"]["resourceShareArn"])
        logger.info(f"Created {self.display_name}: {d.id}")

        await ctx.waiter.for_status(
            lambda: self._status(ctx, d.id),
            pending=(STATUS_PENDING,),
            target=(STATUS_ACTIVE,),
            timeout=d.timeout("create"),
            not_found_checks=ctx.not_found_checks,
            description=f"{self.display_name} ({d.id}) to become ready",
        )

        await self.read(d, ctx)

    async def read(self, d: ResourceData, ctx: ResourceContext) -> None:
        share = await self.find_for_read(
            d, ctx, lambda: self.find_resource_share_by_arn(ctx, d.id)
        )
        if share is None:
            return

        if not d.is_new_resource() and share.get("status") != STATUS_ACTIVE:
            logger.warning(
                f"{self.display_name} ({d.id}) not active, removing from state"
            )
            d.set_id("")
            return

        d.set("allow_external_principals", bool(share.get("allowExternalPrincipals")))
        d.set("arn", share.get("resourceShareArn", ""))
        d.set("name", share.get("name", ""))
        self.set_tags(d, ctx, tagmodel.from_tag_list(share.get("tags"), "key", "value"))
        d.set("permission_arns", await self.list_permission_arns(ctx, d.id))

    async def update(self, d: ResourceData, ctx: ResourceContext) -> None:
        if d.has_changes("name", "allow_external_principals"):
            await self.call(
                ctx,
                SERVICE,
                "update_resource_share",
                resourceShareArn=d.id,
                name=values.as_str(d.get("name"), "name"),
                allowExternalPrincipals=values.as_bool(
                    d.get("allow_external_principals"), "allow_external_principals"
                ),
            )

        await self.update_tags_if_changed(d, ctx, d.id)
        await self.read(d, ctx)

    async def delete(self, d: ResourceData, ctx: ResourceContext) -> None:
        logger.debug(f"Deleting {self.display_name}: {d.id}")
        try:
            await self.call(ctx, SERVICE, "delete_resource_share", resourceShareArn=d.id)
        except ProviderError as e:
            if awserr.error_code_equals(e, UNKNOWN_RESOURCE):
                return
            raise

        await ctx.waiter.for_status(
            lambda: self._status(ctx, d.id),
            pending=(STATUS_ACTIVE, STATUS_DELETING),
            target=(STATUS_DELETED,),
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
            resourceShareArn=identifier,
            tags=tagmodel.to_tag_list(tags, "key", "value"),
        )

    async def untag_resource(
        self, ctx: ResourceContext, identifier: str, keys: List[str]
    ) -> None:
        await ctx.conn.call(
            SERVICE, "untag_resource", resourceShareArn=identifier, tagKeys=keys
        )
