"""
Elastic Beanstalk Solution Stack - Read-only lookup of a platform stack name.

Nothing is created remotely. Every lifecycle operation re-runs the lookup
against the stacks the service currently offers; dropping the instance is
purely local.
"""

import logging
import re
from typing import List, Pattern

import values
from errors import InvalidConfigurationError, TerminalError
from plugins.resources.base import ResourceContext, ResourcePlugin
from resource_data import ResourceData
from schema import Field, FieldType, ResourceSchema

logger = logging.getLogger(__name__)

SERVICE = "elasticbeanstalk"

NO_RESULTS = (
    "Your query returned no results. "
    "Please change your search criteria and try again."
)
TOO_MANY_RESULTS = (
    "Your query returned more than one result. Please try a more specific "
    "search criteria, or set `most_recent` attribute to true."
)

SCHEMA = ResourceSchema(
    fields={
        "most_recent": Field(FieldType.BOOL, optional=True, default=False),
        "name": Field(FieldType.STRING, computed=True),
        "name_regex": Field(FieldType.STRING, required=True, min_length=1),
    },
    tagged=False,
)


def compile_name_regex(value: str) -> Pattern[str]:
    try:
        return re.compile(value)
    except re.error as e:
        raise InvalidConfigurationError(f"name_regex: invalid pattern {value!r}: {e}")


def select_stack(stacks: List[str], pattern: Pattern[str], most_recent: bool) -> str:
    """
    Pick the one stack name matching the pattern.

    The service lists stacks newest first, so the most recent match is the
    first one.

    Raises:
        TerminalError: No stack matches, or several match and most_recent
            is not set.
    """
    matches = [s for s in stacks if pattern.search(s)]
    if not matches:
        raise TerminalError(NO_RESULTS)
    if len(matches) > 1 and not most_recent:
        raise TerminalError(TOO_MANY_RESULTS)
    return matches[0]


class ElasticBeanstalkSolutionStackPlugin(ResourcePlugin):
    """Looks up aws_elastic_beanstalk_solution_stack."""

    @property
    def type_name(self) -> str:
        return "aws_elastic_beanstalk_solution_stack"

    @property
    def display_name(self) -> str:
        return "Elastic Beanstalk Solution Stack"

    @property
    def schema(self) -> ResourceSchema:
        return SCHEMA

    async def create(self, d: ResourceData, ctx: ResourceContext) -> None:
        await self.read(d, ctx)

    async def read(self, d: ResourceData, ctx: ResourceContext) -> None:
        pattern = compile_name_regex(values.as_str(d.get("name_regex"), "name_regex"))
        most_recent = values.as_bool(d.get("most_recent"), "most_recent")

        output = await self.call(ctx, SERVICE, "list_available_solution_stacks")
        name = select_stack(output.get("SolutionStacks") or [], pattern, most_recent)
        logger.debug(f"{self.display_name} matching {pattern.pattern!r}: {name}")

        d.set_id(name)
        d.set("name", name)
        d.set("name_regex", pattern.pattern)
        d.set("most_recent", most_recent)

    async def update(self, d: ResourceData, ctx: ResourceContext) -> None:
        await self.read(d, ctx)

    async def delete(self, d: ResourceData, ctx: ResourceContext) -> None:
        pass
