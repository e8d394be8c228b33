"""
API Gateway v2 API - HTTP or WebSocket API definition.

APIs are addressed by API ID. Removing the CORS configuration takes a
dedicated delete call; every other attribute change goes through UpdateApi.
An OpenAPI body, when configured, is reimported after create and whenever
it changes, and configured attributes are then re-applied over whatever
the import set.
"""

import logging
from functools import partial
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel

import awserr
import partition
import tags as tagmodel
import values
from errors import ProviderError, TypeMismatchError
from finder import find_single
from plugins.resources.base import ResourceContext, ResourcePlugin
from resource_data import ResourceData
from schema import Field, FieldType, ResourceSchema

logger = logging.getLogger(__name__)

SERVICE = "apigatewayv2"

NOT_FOUND = "NotFoundException"

PROTOCOL_TYPES = ("HTTP", "WEBSOCKET")
API_KEY_SELECTION_EXPRESSIONS = (
    "$context.authorizer.usageIdentifierKey",
    "$request.header.x-api-key",
)

# Attributes UpdateApi sets directly
UPDATE_API_FIELDS = {
    "api_key_selection_expression": "ApiKeySelectionExpression",
    "description": "Description",
    "disable_execute_api_endpoint": "DisableExecuteApiEndpoint",
    "name": "Name",
    "route_selection_expression": "RouteSelectionExpression",
    "version": "Version",
}


class CORSConfiguration(BaseModel):
    allow_credentials: Optional[bool] = None
    allow_headers: Optional[List[str]] = None
    allow_methods: Optional[List[str]] = None
    allow_origins: Optional[List[str]] = None
    expose_headers: Optional[List[str]] = None
    max_age: Optional[int] = None


SCHEMA = ResourceSchema(
    fields={
        "api_endpoint": Field(FieldType.STRING, computed=True),
        "api_key_selection_expression": Field(
            FieldType.STRING,
            optional=True,
            default="$request.header.x-api-key",
            choices=API_KEY_SELECTION_EXPRESSIONS,
        ),
        "arn": Field(FieldType.STRING, computed=True),
        "body": Field(FieldType.STRING, optional=True),
        "cors_configuration": Field(
            FieldType.BLOCK,
            optional=True,
            max_items=1,
            fields={
                "allow_credentials": Field(FieldType.BOOL, optional=True),
                "allow_headers": Field(FieldType.SET, optional=True),
                "allow_methods": Field(FieldType.SET, optional=True),
                "allow_origins": Field(FieldType.SET, optional=True),
                "expose_headers": Field(FieldType.SET, optional=True),
                "max_age": Field(FieldType.INT, optional=True),
            },
        ),
        "credentials_arn": Field(
            FieldType.STRING, optional=True, force_new=True, pattern=r"^arn:[\w-]+:"
        ),
        "description": Field(FieldType.STRING, optional=True, max_length=1024),
        "disable_execute_api_endpoint": Field(FieldType.BOOL, optional=True),
        "execution_arn": Field(FieldType.STRING, computed=True),
        "fail_on_warnings": Field(FieldType.BOOL, optional=True),
        "name": Field(FieldType.STRING, required=True, min_length=1, max_length=128),
        "protocol_type": Field(
            FieldType.STRING, required=True, force_new=True, choices=PROTOCOL_TYPES
        ),
        "route_key": Field(FieldType.STRING, optional=True, force_new=True),
        "route_selection_expression": Field(
            FieldType.STRING,
            optional=True,
            default="$request.method $request.path",
        ),
        "target": Field(FieldType.STRING, optional=True, force_new=True),
        "version": Field(FieldType.STRING, optional=True, min_length=1, max_length=64),
    },
)


def expand_cors_configuration(value: Any) -> Dict[str, Any]:
    data = values.block(value, "cors_configuration")
    if data is None:
        return {}
    cors = values.project(
        CORSConfiguration,
        {k: v for k, v in data.items() if v is not None},
        "cors_configuration.0",
    )
    result: Dict[str, Any] = {}
    if cors.allow_credentials is not None:
        result["AllowCredentials"] = cors.allow_credentials
    if cors.allow_headers is not None:
        result["AllowHeaders"] = sorted(cors.allow_headers)
    if cors.allow_methods is not None:
        result["AllowMethods"] = sorted(cors.allow_methods)
    if cors.allow_origins is not None:
        result["AllowOrigins"] = sorted(cors.allow_origins)
    if cors.expose_headers is not None:
        result["ExposeHeaders"] = sorted(cors.expose_headers)
    if cors.max_age is not None:
        result["MaxAge"] = cors.max_age
    return result


def _case_insensitive(items: Optional[List[str]]) -> List[str]:
    # The API lower-cases some entries on the way back
    return sorted({item.lower() for item in items or []})


def flatten_cors_configuration(cors: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if cors is None:
        return []
    return [
        {
            "allow_credentials": bool(cors.get("AllowCredentials", False)),
            "allow_headers": _case_insensitive(cors.get("AllowHeaders")),
            "allow_methods": _case_insensitive(cors.get("AllowMethods")),
            "allow_origins": _case_insensitive(cors.get("AllowOrigins")),
            "expose_headers": _case_insensitive(cors.get("ExposeHeaders")),
            "max_age": cors.get("MaxAge", 0),
        }
    ]


def validate_body(body: str) -> None:
    """Check that an OpenAPI body parses as JSON or YAML."""
    try:
        yaml.safe_load(body)
    except yaml.YAMLError as e:
        raise TypeMismatchError("body", "JSON or YAML document", body) from e


class APIGatewayV2APIPlugin(ResourcePlugin):
    """Reconciles aws_apigatewayv2_api."""

    @property
    def type_name(self) -> str:
        return "aws_apigatewayv2_api"

    @property
    def display_name(self) -> str:
        return "API Gateway v2 API"

    @property
    def schema(self) -> ResourceSchema:
        return SCHEMA

    async def find_api_by_id(self, ctx: ResourceContext, api_id: str) -> Dict[str, Any]:
        request = {"ApiId": api_id}

        async def describe():
            output = await ctx.conn.call(SERVICE, "get_api", **request)
            return [output]

        return await find_single(
            describe,
            request=request,
            not_found_codes=(NOT_FOUND,),
            match=lambda a: a.get("ApiId") == api_id,
            description=f"{self.display_name} ({api_id})",
        )

    def api_arn(self, ctx: ResourceContext, api_id: str) -> str:
        return f"arn:{ctx.conn.partition}:apigateway:{ctx.conn.region}::/apis/{api_id}"

    async def execution_arn(self, ctx: ResourceContext, api_id: str) -> str:
        account_id = await ctx.conn.account_id()
        return (
            f"arn:{ctx.conn.partition}:execute-api:{ctx.conn.region}:"
            f"{account_id}:{api_id}"
        )

    async def create(self, d: ResourceData, ctx: ResourceContext) -> None:
        name = values.as_str(d.get("name"), "name")
        effective = self.effective_tags(d, ctx)

        params: Dict[str, Any] = {
            "Name": name,
            "ProtocolType": values.as_str(d.get("protocol_type"), "protocol_type"),
        }
        for field_name, param in (
            ("api_key_selection_expression", "ApiKeySelectionExpression"),
            ("credentials_arn", "CredentialsArn"),
            ("description", "Description"),
            ("route_key", "RouteKey"),
            ("route_selection_expression", "RouteSelectionExpression"),
            ("target", "Target"),
            ("version", "Version"),
        ):
            value, ok = d.get_ok(field_name)
            if ok:
                params[param] = values.as_str(value, field_name)
        disable_endpoint, ok = d.get_ok("disable_execute_api_endpoint")
        if ok:
            params["DisableExecuteApiEndpoint"] = values.as_bool(
                disable_endpoint, "disable_execute_api_endpoint"
            )
        cors = expand_cors_configuration(d.get("cors_configuration"))
        if cors:
            params["CorsConfiguration"] = cors
        if effective:
            params["Tags"] = effective

        body, has_body = d.get_ok("body")
        if has_body:
            validate_body(values.as_str(body, "body"))

        output, deferred = await partition.call_with_capability_fallback(
            partial(ctx.conn.call, SERVICE, "create_api"),
            params,
            "Tags",
            ctx.partition,
            ctx.diagnostics,
            description=f"{self.display_name} ({name})",
        )

        d.set_id(output["ApiId"])
        logger.info(f"Created {self.display_name}: {d.id}")

        if deferred:
            await self.apply_deferred_tags(
                d, ctx, self.api_arn(ctx, d.id), effective
            )

        await self.import_open_api(d, ctx)
        await self.read(d, ctx)

    async def import_open_api(self, d: ResourceData, ctx: ResourceContext) -> None:
        """
        Reimport the configured OpenAPI body.

        The import overwrites the API's name, description, version, CORS
        configuration and tags, so the configured values are captured first
        and written back afterwards.
        """
        body, ok = d.get_ok("body")
        if not ok:
            return
        body = values.as_str(body, "body")
        validate_body(body)

        configured = {
            "name": d.get("name"),
            "description": d.get("description"),
            "version": d.get("version"),
            "cors_configuration": d.get("cors_configuration"),
        }
        effective = self.effective_tags(d, ctx)

        params: Dict[str, Any] = {"ApiId": d.id, "Body": body}
        fail_on_warnings, ok = d.get_ok("fail_on_warnings")
        if ok:
            params["FailOnWarnings"] = values.as_bool(
                fail_on_warnings, "fail_on_warnings"
            )
        logger.debug(f"Importing OpenAPI specification into {self.display_name} {d.id}")
        await self.call(ctx, SERVICE, "reimport_api", **params)

        await self.read(d, ctx)

        update: Dict[str, Any] = {
            "ApiId": d.id,
            "Name": values.as_str(configured["name"], "name"),
        }
        if configured["description"]:
            update["Description"] = values.as_str(configured["description"], "description")
        if configured["version"]:
            update["Version"] = values.as_str(configured["version"], "version")
        cors_field = self.schema.get_field("cors_configuration")
        if not cors_field.equal(configured["cors_configuration"], d.get("cors_configuration")):
            cors = expand_cors_configuration(configured["cors_configuration"])
            if cors:
                update["CorsConfiguration"] = cors
            else:
                await self.call(
                    ctx, SERVICE, "delete_cors_configuration", ApiId=d.id
                )

        await partition.tolerate_unsupported(
            lambda: self.update_tags(
                ctx, self.api_arn(ctx, d.id), d.get("tags_all"), effective
            ),
            policy=ctx.partition,
            diagnostics=ctx.diagnostics,
            summary=f"updating tags for {self.display_name} ({d.id}) not supported",
        )

        await self.call(ctx, SERVICE, "update_api", **update)

    async def read(self, d: ResourceData, ctx: ResourceContext) -> None:
        api = await self.find_for_read(d, ctx, lambda: self.find_api_by_id(ctx, d.id))
        if api is None:
            return

        d.set("api_endpoint", api.get("ApiEndpoint", ""))
        d.set("api_key_selection_expression", api.get("ApiKeySelectionExpression", ""))
        d.set("arn", self.api_arn(ctx, d.id))
        d.set(
            "cors_configuration",
            flatten_cors_configuration(api.get("CorsConfiguration")),
        )
        d.set("description", api.get("Description", ""))
        d.set(
            "disable_execute_api_endpoint",
            bool(api.get("DisableExecuteApiEndpoint")),
        )
        d.set("execution_arn", await self.execution_arn(ctx, d.id))
        d.set("name", api.get("Name", ""))
        d.set("protocol_type", api.get("ProtocolType", ""))
        d.set("route_selection_expression", api.get("RouteSelectionExpression", ""))
        d.set("version", api.get("Version", ""))
        for name in ("body", "credentials_arn", "fail_on_warnings", "route_key", "target"):
            d.set(name, d.get(name))

        self.set_tags(d, ctx, api.get("Tags") or {})

    async def update(self, d: ResourceData, ctx: ResourceContext) -> None:
        delete_cors = False
        if d.has_change("cors_configuration") and not expand_cors_configuration(
            d.get("cors_configuration")
        ):
            delete_cors = True
            logger.debug(f"Deleting CORS configuration for {self.display_name} {d.id}")
            await self.call(ctx, SERVICE, "delete_cors_configuration", ApiId=d.id)

        changed = d.changed_keys(UPDATE_API_FIELDS)
        if changed or (d.has_change("cors_configuration") and not delete_cors):
            params: Dict[str, Any] = {"ApiId": d.id}
            for field_name, value in changed.items():
                params[UPDATE_API_FIELDS[field_name]] = value
            if d.has_change("cors_configuration") and not delete_cors:
                params["CorsConfiguration"] = expand_cors_configuration(
                    d.get("cors_configuration")
                )

            logger.debug(f"Updating {self.display_name}: {params}")
            await self.call(ctx, SERVICE, "update_api", **params)

        await self.update_tags_if_changed(d, ctx, d.get("arn"))

        if d.has_change("body"):
            await self.import_open_api(d, ctx)

        await self.read(d, ctx)

    async def delete(self, d: ResourceData, ctx: ResourceContext) -> None:
        logger.debug(f"Deleting {self.display_name}: {d.id}")
        try:
            await self.call(ctx, SERVICE, "delete_api", ApiId=d.id)
        except ProviderError as e:
            if awserr.error_code_equals(e, NOT_FOUND):
                return
            raise

    # Tag hooks

    async def tag_resource(
        self, ctx: ResourceContext, identifier: str, tags: Dict[str, str]
    ) -> None:
        await ctx.conn.call(SERVICE, "tag_resource", ResourceArn=identifier, Tags=tags)

    async def untag_resource(
        self, ctx: ResourceContext, identifier: str, keys: List[str]
    ) -> None:
        await ctx.conn.call(
            SERVICE, "untag_resource", ResourceArn=identifier, TagKeys=keys
        )
