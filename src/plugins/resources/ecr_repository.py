"""
ECR Repository - Container image repository resource.

Repositories are addressed by name. Tags go on the create call where the
partition allows it, and are otherwise applied with a separate call.
"""

import logging
from functools import partial
from typing import Any, Dict, List, Optional

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

logger = logging.getLogger(__name__)

SERVICE = "ecr"

REPOSITORY_NOT_FOUND = "RepositoryNotFoundException"
REPOSITORY_NOT_EMPTY = "RepositoryNotEmptyException"

ENCRYPTION_TYPES = ("AES256", "KMS")
IMAGE_TAG_MUTABILITY_VALUES = ("MUTABLE", "IMMUTABLE")


class EncryptionConfiguration(BaseModel):
    encryption_type: str = "AES256"
    kms_key: Optional[str] = None


class ImageScanningConfiguration(BaseModel):
    scan_on_push: bool


SCHEMA = ResourceSchema(
    fields={
        "arn": Field(FieldType.STRING, computed=True),
        "encryption_configuration": Field(
            FieldType.BLOCK,
            optional=True,
            computed=True,
            force_new=True,
            fields={
                "encryption_type": Field(
                    FieldType.STRING,
                    optional=True,
                    force_new=True,
                    default="AES256",
                    choices=ENCRYPTION_TYPES,
                ),
                "kms_key": Field(
                    FieldType.STRING, optional=True, computed=True, force_new=True
                ),
            },
        ),
        "force_delete": Field(FieldType.BOOL, optional=True),
        "image_scanning_configuration": Field(
            FieldType.BLOCK,
            optional=True,
            computed=True,
            max_items=1,
            fields={"scan_on_push": Field(FieldType.BOOL, required=True)},
        ),
        "image_tag_mutability": Field(
            FieldType.STRING,
            optional=True,
            default="MUTABLE",
            choices=IMAGE_TAG_MUTABILITY_VALUES,
        ),
        "name": Field(FieldType.STRING, required=True, force_new=True),
        "registry_id": Field(FieldType.STRING, computed=True),
        "repository_url": Field(FieldType.STRING, computed=True),
    },
    timeouts=Timeouts.of(delete="20m"),
)


def expand_encryption_configuration(value: Any) -> Optional[Dict[str, Any]]:
    data = values.block(value, "encryption_configuration")
    if data is None:
        return None
    config = values.project(
        EncryptionConfiguration,
        {k: v for k, v in data.items() if v is not None},
        "encryption_configuration.0",
    )
    result = {"encryptionType": config.encryption_type}
    if config.kms_key:
        result["kmsKey"] = config.kms_key
    return result


def flatten_encryption_configuration(
    config: Optional[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    if not config:
        return []
    return [
        {
            "encryption_type": config.get("encryptionType", ""),
            "kms_key": config.get("kmsKey", ""),
        }
    ]


def expand_image_scanning_configuration(value: Any) -> Optional[Dict[str, Any]]:
    data = values.block(value, "image_scanning_configuration")
    if data is None:
        return None
    config = values.project(
        ImageScanningConfiguration, data, "image_scanning_configuration.0"
    )
    return {"scanOnPush": config.scan_on_push}


def flatten_image_scanning_configuration(
    config: Optional[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    if not config:
        return []
    return [{"scan_on_push": bool(config.get("scanOnPush", False))}]


class ECRRepositoryPlugin(ResourcePlugin):
    """Reconciles aws_ecr_repository."""

    @property
    def type_name(self) -> str:
        return "aws_ecr_repository"

    @property
    def display_name(self) -> str:
        return "ECR Repository"

    @property
    def schema(self) -> ResourceSchema:
        return SCHEMA

    async def find_repository_by_name(
        self, ctx: ResourceContext, name: str
    ) -> Dict[str, Any]:
        request = {"repositoryNames": [name]}

        async def describe():
            output = await ctx.conn.call(SERVICE, "describe_repositories", **request)
            return output.get("repositories")

        return await find_single(
            describe,
            request=request,
            not_found_codes=(REPOSITORY_NOT_FOUND,),
            match=lambda r: r.get("repositoryName") == name,
            description=f"{self.display_name} ({name})",
        )

    def _registry_params(self, d: ResourceData) -> Dict[str, str]:
        registry_id = d.get("registry_id")
        return {"registryId": registry_id} if registry_id else {}

    async def create(self, d: ResourceData, ctx: ResourceContext) -> None:
        name = values.as_str(d.get("name"), "name")
        effective = self.effective_tags(d, ctx)

        params: Dict[str, Any] = {
            "repositoryName": name,
            "imageTagMutability": values.as_str(
                d.get("image_tag_mutability"), "image_tag_mutability"
            ),
        }
        encryption = expand_encryption_configuration(d.get("encryption_configuration"))
        if encryption:
            params["encryptionConfiguration"] = encryption
        scanning = expand_image_scanning_configuration(
            d.get("image_scanning_configuration")
        )
        if scanning:
            params["imageScanningConfiguration"] = scanning
        if effective:
            params["tags"] = tagmodel.to_tag_list(effective)

        output, deferred = await partition.call_with_capability_fallback(
            partial(ctx.conn.call, SERVICE, "create_repository"),
            params,
            "tags",
            ctx.partition,
            ctx.diagnostics,
            description=f"{self.display_name} ({name})",
        )

        repository = output["repository"]
        d.set_id(repository["repositoryName"])
        logger.info(f"Created {self.display_name}: {d.id}")

        if deferred:
            await self.apply_deferred_tags(
                d, ctx, repository["repositoryArn"], effective
            )

        await self.read(d, ctx)

    async def read(self, d: ResourceData, ctx: ResourceContext) -> None:
        repository = await self.find_for_read(
            d, ctx, lambda: self.find_repository_by_name(ctx, d.id)
        )
        if repository is None:
            return

        arn = repository.get("repositoryArn", "")
        d.set("arn", arn)
        d.set(
            "encryption_configuration",
            flatten_encryption_configuration(repository.get("encryptionConfiguration")),
        )
        d.set(
            "image_scanning_configuration",
            flatten_image_scanning_configuration(
                repository.get("imageScanningConfiguration")
            ),
        )
        d.set("image_tag_mutability", repository.get("imageTagMutability", ""))
        d.set("name", repository.get("repositoryName", ""))
        d.set("registry_id", repository.get("registryId", ""))
        d.set("repository_url", repository.get("repositoryUri", ""))
        d.set("force_delete", bool(d.get("force_delete")))

        await self.read_tags(d, ctx, arn)

    async def update(self, d: ResourceData, ctx: ResourceContext) -> None:
        if d.has_change("image_tag_mutability"):
            await self.call(
                ctx,
                SERVICE,
                "put_image_tag_mutability",
                repositoryName=d.id,
                imageTagMutability=values.as_str(
                    d.get("image_tag_mutability"), "image_tag_mutability"
                ),
                **self._registry_params(d),
            )

        if d.has_change("image_scanning_configuration"):
            scanning = expand_image_scanning_configuration(
                d.get("image_scanning_configuration")
            )
            await self.call(
                ctx,
                SERVICE,
                "put_image_scanning_configuration",
                repositoryName=d.id,
                imageScanningConfiguration=scanning or {"scanOnPush": False},
                **self._registry_params(d),
            )

        await self.update_tags_if_changed(d, ctx, d.get("arn"))
        await self.read(d, ctx)

    async def delete(self, d: ResourceData, ctx: ResourceContext) -> None:
        logger.debug(f"Deleting {self.display_name}: {d.id}")
        try:
            await self.call(
                ctx,
                SERVICE,
                "delete_repository",
                repositoryName=d.id,
                force=bool(d.get("force_delete")),
                **self._registry_params(d),
            )
        except ProviderError as e:
            if awserr.error_code_equals(e, REPOSITORY_NOT_FOUND):
                return
            if awserr.error_code_equals(e, REPOSITORY_NOT_EMPTY):
                raise TerminalError(
                    f"repository not empty, consider using force_delete: {e}"
                ) from e
            raise

        await ctx.waiter.retry_until_not_found(
            lambda: self.find_repository_by_name(ctx, d.id),
            d.timeout("delete"),
            description=f"{self.display_name} ({d.id})",
        )

    # Tag hooks

    async def list_tags(self, ctx: ResourceContext, identifier: str) -> Dict[str, str]:
        output = await ctx.conn.call(
            SERVICE, "list_tags_for_resource", resourceArn=identifier
        )
        return tagmodel.from_tag_list(output.get("tags"))

    async def tag_resource(
        self, ctx: ResourceContext, identifier: str, tags: Dict[str, str]
    ) -> None:
        await ctx.conn.call(
            SERVICE,
            "tag_resource",
            resourceArn=identifier,
            tags=tagmodel.to_tag_list(tags),
        )

    async def untag_resource(
        self, ctx: ResourceContext, identifier: str, keys: List[str]
    ) -> None:
        await ctx.conn.call(
            SERVICE, "untag_resource", resourceArn=identifier, tagKeys=keys
        )
