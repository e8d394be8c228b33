"""
Resource plugins package.

Resource plugins own the Create/Read/Update/Delete logic for one resource type.
Third-party plugins are discovered via Python entry points
(group: 'stratus.resources').
"""

from plugins.resources.apigatewayv2_api import APIGatewayV2APIPlugin
from plugins.resources.base import ResourceContext, ResourcePlugin
from plugins.resources.ecr_repository import ECRRepositoryPlugin
from plugins.resources.ecs_task_set import ECSTaskSetPlugin
from plugins.resources.elastic_beanstalk_solution_stack import (
    ElasticBeanstalkSolutionStackPlugin,
)
from plugins.resources.fsx_ontap_volume import FSxONTAPVolumePlugin
from plugins.resources.lightsail_container_service import (
    LightsailContainerServicePlugin,
)
from plugins.resources.ram_resource_share import RAMResourceSharePlugin

BUILTIN_RESOURCE_PLUGINS = [
    APIGatewayV2APIPlugin,
    ECRRepositoryPlugin,
    ECSTaskSetPlugin,
    ElasticBeanstalkSolutionStackPlugin,
    FSxONTAPVolumePlugin,
    LightsailContainerServicePlugin,
    RAMResourceSharePlugin,
]

__all__ = [
    "BUILTIN_RESOURCE_PLUGINS",
    "ResourceContext",
    "ResourcePlugin",
]
