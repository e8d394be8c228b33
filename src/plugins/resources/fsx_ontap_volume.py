"""
FSx ONTAP Volume - A volume on an FSx for NetApp ONTAP storage virtual machine.

Volume lifecycle changes are asynchronous; create, update and delete wait
on the volume's Lifecycle status for up to 30 minutes each.
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
from errors import ProviderError, TerminalError
from finder import find_single
from plugins.resources.base import ResourceContext, ResourcePlugin
from resource_data import ResourceData
from schema import Field, FieldType, ResourceSchema
from timeouts import Timeouts
from waiter import NotFoundPolicy

logger = logging.getLogger(__name__)

SERVICE = "fsx"

VOLUME_NOT_FOUND = "VolumeNotFound"

LIFECYCLE_CREATING = "CREATING"
LIFECYCLE_CREATED = "CREATED"
LIFECYCLE_DELETING = "DELETING"
LIFECYCLE_FAILED = "FAILED"
LIFECYCLE_MISCONFIGURED = "MISCONFIGURED"
LIFECYCLE_PENDING = "PENDING"
LIFECYCLE_AVAILABLE = "AVAILABLE"

READY_STATES = (LIFECYCLE_CREATED, LIFECYCLE_MISCONFIGURED, LIFECYCLE_AVAILABLE)

SECURITY_STYLES = ("UNIX", "NTFS", "MIXED")
TIERING_POLICY_NAMES = ("SNAPSHOT_ONLY", "AUTO", "ALL", "NONE")
VOLUME_TYPES = ("ONTAP", "OPENZFS")

# The API rejects cooling periods below this; an unset period reads back as 0
MIN_COOLING_PERIOD = 2


class TieringPolicy(BaseModel):
    cooling_period: int = 0
    name: Optional[str] = None


SCHEMA = ResourceSchema(
    fields={
        "arn": Field(FieldType.STRING, computed=True),
        "file_system_id": Field(FieldType.STRING, computed=True),
        "flexcache_endpoint_type": Field(FieldType.STRING, computed=True),
        "junction_path": Field(
            FieldType.STRING, required=True, min_length=1, max_length=255
        ),
        "name": Field(
            FieldType.STRING, required=True, force_new=True, min_length=1, max_length=203
        ),
        "ontap_volume_type": Field(FieldType.STRING, computed=True),
        "security_style": Field(
            FieldType.STRING, optional=True, default="UNIX", choices=SECURITY_STYLES
        ),
        "size_in_megabytes": Field(
            FieldType.INT, required=True, minimum=0, maximum=2147483647
        ),
        "storage_efficiency_enabled": Field(FieldType.BOOL, required=True),
        "storage_virtual_machine_id": Field(
            FieldType.STRING, required=True, min_length=21, max_length=21
        ),
        "tiering_policy": Field(
            FieldType.BLOCK,
            optional=True,
            computed=True,
            max_items=1,
            fields={
                "cooling_period": Field(
                    FieldType.INT, optional=True, minimum=2, maximum=183
                ),
                "name": Field(
                    FieldType.STRING,
                    optional=True,
                    computed=True,
                    choices=TIERING_POLICY_NAMES,
                ),
            },
        ),
        "uuid": Field(FieldType.STRING, computed=True),
        "volume_type": Field(
            FieldType.STRING, optional=True, default="ONTAP", choices=VOLUME_TYPES
        ),
    },
    timeouts=Timeouts.of(create="30m", update="30m", delete="30m"),
)


def expand_tiering_policy(value: Any) -> Optional[Dict[str, Any]]:
    data = values.block(value, "tiering_policy")
    if data is None:
        return None
    policy = values.project(
        TieringPolicy,
        {k: v for k, v in data.items() if v is not None},
        "tiering_policy.0",
    )
    result: Dict[str, Any] = {}
    if policy.cooling_period >= MIN_COOLING_PERIOD:
        result["CoolingPeriod"] = policy.cooling_period
    if policy.name:
        result["Name"] = policy.name
    return result


def flatten_tiering_policy(policy: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if policy is None:
        return []
    result: Dict[str, Any] = {}
    if policy.get("CoolingPeriod", 0) >= MIN_COOLING_PERIOD:
        result["cooling_period"] = policy["CoolingPeriod"]
    if "Name" in policy:
        result["name"] = policy["Name"]
    return [result]


class FSxONTAPVolumePlugin(ResourcePlugin):
    """Reconciles aws_fsx_ontap_volume."""

    @property
    def type_name(self) -> str:
        return "aws_fsx_ontap_volume"

    @property
    def display_name(self) -> str:
        return "FSx ONTAP Volume"

    @property
    def schema(self) -> ResourceSchema:
        return SCHEMA

    async def find_volume_by_id(
        self, ctx: ResourceContext, volume_id: str
    ) -> Dict[str, Any]:
        request = {"VolumeIds": [volume_id]}

        async def describe():
            output = await ctx.conn.call(SERVICE, "describe_volumes", **request)
            return output.get("Volumes")

        return await find_single(
            describe,
            request=request,
            not_found_codes=(VOLUME_NOT_FOUND,),
            match=lambda v: v.get("VolumeId") == volume_id,
            description=f"{self.display_name} ({volume_id})",
        )

    async def _status(self, ctx: ResourceContext, volume_id: str) -> Tuple[Any, str]:
        volume = await self.find_volume_by_id(ctx, volume_id)
        status = volume.get("Lifecycle", "")
        if status == LIFECYCLE_FAILED:
            reason = (volume.get("LifecycleTransitionReason") or {}).get("Message")
            if reason:
                raise TerminalError(f"volume {volume_id} failed: {reason}")
        return volume, status

    async def wait_ready(
        self, ctx: ResourceContext, volume_id: str, timeout: float, pending: Tuple[str, ...]
    ) -> None:
        await ctx.waiter.for_status(
            lambda: self._status(ctx, volume_id),
            pending=pending,
            target=READY_STATES,
            timeout=timeout,
            not_found_checks=ctx.not_found_checks,
            description=f"{self.display_name} ({volume_id}) to become available",
        )

    async def create(self, d: ResourceData, ctx: ResourceContext) -> None:
        name = values.as_str(d.get("name"), "name")
        effective = self.effective_tags(d, ctx)

        ontap: Dict[str, Any] = {
            "JunctionPath": values.as_str(d.get("junction_path"), "junction_path"),
            "SizeInMegabytes": values.as_int(
                d.get("size_in_megabytes"), "size_in_megabytes"
            ),
            "StorageEfficiencyEnabled": values.as_bool(
                d.get("storage_efficiency_enabled"), "storage_efficiency_enabled"
            ),
            "StorageVirtualMachineId": values.as_str(
                d.get("storage_virtual_machine_id"), "storage_virtual_machine_id"
            ),
        }
        security_style, ok = d.get_ok("security_style")
        if ok:
            ontap["SecurityStyle"] = values.as_str(security_style, "security_style")
        tiering = expand_tiering_policy(d.get("tiering_policy"))
        if tiering is not None:
            ontap["TieringPolicy"] = tiering

        params: Dict[str, Any] = {
            "Name": name,
            "VolumeType": values.as_str(d.get("volume_type"), "volume_type"),
            "OntapConfiguration": ontap,
        }
        if effective:
            params["Tags"] = tagmodel.to_tag_list(effective)

        logger.debug(f"Creating {self.display_name}: {params}")
        output, deferred = await partition.call_with_capability_fallback(
            partial(ctx.conn.call, SERVICE, "create_volume"),
            params,
            "Tags",
            ctx.partition,
            ctx.diagnostics,
            description=f"{self.display_name} ({name})",
        )

        volume = output["Volume"]
        d.set_id(volume["VolumeId"])
        logger.info(f"Created {self.display_name}: {d.id}")

        await self.wait_ready(
            ctx, d.id, d.timeout("create"), (LIFECYCLE_CREATING, LIFECYCLE_PENDING)
        )

        if deferred:
            await self.apply_deferred_tags(d, ctx, volume["ResourceARN"], effective)

        await self.read(d, ctx)

    async def read(self, d: ResourceData, ctx: ResourceContext) -> None:
        volume = await self.find_for_read(
            d, ctx, lambda: self.find_volume_by_id(ctx, d.id)
        )
        if volume is None:
            return

        ontap = volume.get("OntapConfiguration")
        if not ontap:
            raise TerminalError(
                f"describing {self.display_name} ({d.id}): empty ONTAP configuration"
            )

        arn = volume.get("ResourceARN", "")
        d.set("arn", arn)
        d.set("name", volume.get("Name", ""))
        d.set("file_system_id", volume.get("FileSystemId", ""))
        d.set("flexcache_endpoint_type", ontap.get("FlexCacheEndpointType", ""))
        d.set("junction_path", ontap.get("JunctionPath", ""))
        d.set("ontap_volume_type", ontap.get("OntapVolumeType", ""))
        d.set("security_style", ontap.get("SecurityStyle", ""))
        d.set("size_in_megabytes", ontap.get("SizeInMegabytes", 0))
        d.set(
            "storage_efficiency_enabled", bool(ontap.get("StorageEfficiencyEnabled"))
        )
        d.set("storage_virtual_machine_id", ontap.get("StorageVirtualMachineId", ""))
        d.set("tiering_policy", flatten_tiering_policy(ontap.get("TieringPolicy")))
        d.set("uuid", ontap.get("UUID", ""))
        d.set("volume_type", volume.get("VolumeType", ""))

        # Describe does not return volume tags
        await self.read_tags(d, ctx, arn)

    async def update(self, d: ResourceData, ctx: ResourceContext) -> None:
        await self.update_tags_if_changed(d, ctx, d.get("arn"))

        if d.has_changes_except("tags", "tags_all"):
            ontap: Dict[str, Any] = {}
            if d.has_change("junction_path"):
                ontap["JunctionPath"] = values.as_str(
                    d.get("junction_path"), "junction_path"
                )
            if d.has_change("security_style"):
                ontap["SecurityStyle"] = values.as_str(
                    d.get("security_style"), "security_style"
                )
            if d.has_change("size_in_megabytes"):
                ontap["SizeInMegabytes"] = values.as_int(
                    d.get("size_in_megabytes"), "size_in_megabytes"
                )
            if d.has_change("storage_efficiency_enabled"):
                ontap["StorageEfficiencyEnabled"] = values.as_bool(
                    d.get("storage_efficiency_enabled"), "storage_efficiency_enabled"
                )
            if d.has_change("tiering_policy"):
                ontap["TieringPolicy"] = (
                    expand_tiering_policy(d.get("tiering_policy")) or {}
                )

            await self.call(
                ctx,
                SERVICE,
                "update_volume",
                ClientRequestToken=str(uuid.uuid4()),
                VolumeId=d.id,
                OntapConfiguration=ontap,
            )

            await self.wait_ready(
                ctx, d.id, d.timeout("update"), (LIFECYCLE_PENDING,)
            )

        await self.read(d, ctx)

    async def delete(self, d: ResourceData, ctx: ResourceContext) -> None:
        logger.debug(f"Deleting {self.display_name}: {d.id}")
        try:
            await self.call(ctx, SERVICE, "delete_volume", VolumeId=d.id)
        except ProviderError as e:
            if awserr.error_code_equals(e, VOLUME_NOT_FOUND):
                return
            raise

        await ctx.waiter.for_status(
            lambda: self._status(ctx, d.id),
            pending=READY_STATES + (LIFECYCLE_DELETING,),
            target=(),
            timeout=d.timeout("delete"),
            not_found=NotFoundPolicy.SUCCEED,
            description=f"{self.display_name} ({d.id}) delete",
        )

    # Tag hooks

    async def list_tags(self, ctx: ResourceContext, identifier: str) -> Dict[str, str]:
        result: Dict[str, str] = {}
        params: Dict[str, Any] = {"ResourceARN": identifier}
        while True:
            output = await ctx.conn.call(SERVICE, "list_tags_for_resource", **params)
            result.update(tagmodel.from_tag_list(output.get("Tags")))
            if not output.get("NextToken"):
                return result
            params["NextToken"] = output["NextToken"]

    async def tag_resource(
        self, ctx: ResourceContext, identifier: str, tags: Dict[str, str]
    ) -> None:
        await ctx.conn.call(
            SERVICE,
            "tag_resource",
            ResourceARN=identifier,
            Tags=tagmodel.to_tag_list(tags),
        )

    async def untag_resource(
        self, ctx: ResourceContext, identifier: str, keys: List[str]
    ) -> None:
        await ctx.conn.call(
            SERVICE, "untag_resource", ResourceARN=identifier, TagKeys=keys
        )
