"""
Plugin Registry - Discovery and registration of resource plugins.

This module provides the central registry for resource plugins, handling
discovery, registration, and instantiation.
"""

import logging
from importlib.metadata import entry_points
from typing import Any, Dict, List, Optional, Type

from validation import validate_json_schema

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "stratus.resources"


class PluginRegistry:
    """
    Central registry for resource plugins.

    Maps resource type names (for example "aws_ecr_repository") to the
    plugin class implementing them.
    """

    def __init__(self):
        # Registered plugin classes (not instantiated)
        self._resource_plugins: Dict[str, Type] = {}

        # Cached plugin metadata to avoid repeated instantiation
        self._resource_plugin_info: Dict[str, Dict[str, Any]] = {}

        # Instantiated plugin instances
        self._resource_instances: Dict[str, Any] = {}

    # Registration methods

    def register_resource_plugin(self, plugin_class: Type) -> None:
        """
        Register a resource plugin class.

        Args:
            plugin_class: The ResourcePlugin subclass to register

        Raises:
            ValueError: If the resource type is already claimed by another
                plugin class, or its schema does not render to a valid
                JSON Schema
        """
        # Create temporary instance to get metadata (only once at registration)
        temp_instance = plugin_class()
        type_name = temp_instance.type_name

        existing = self._resource_plugins.get(type_name)
        if existing is not None and existing is not plugin_class:
            raise ValueError(
                f"Resource type '{type_name}' is already claimed by "
                f"'{existing.__name__}'. Cannot register '{plugin_class.__name__}'."
            )

        is_valid, error = validate_json_schema(
            temp_instance.schema.to_json_schema()
        )
        if not is_valid:
            raise ValueError(
                f"Resource type '{type_name}' has an invalid schema: {error}"
            )

        self._resource_plugins[type_name] = plugin_class
        self._resource_plugin_info[type_name] = {
            "type_name": type_name,
            "display_name": temp_instance.display_name,
            "fields": sorted(temp_instance.schema.fields),
        }
        self._resource_instances.pop(type_name, None)
        logger.info(
            f"Registered resource plugin: {type_name} "
            f"({temp_instance.display_name})"
        )

    # Instantiation methods

    def get_resource_plugin(self, type_name: str) -> Any:
        """
        Get a resource plugin instance.

        Args:
            type_name: The resource type name

        Returns:
            A ResourcePlugin instance

        Raises:
            ValueError: If the resource type is not registered
        """
        if type_name not in self._resource_plugins:
            available = ", ".join(sorted(self._resource_plugins)) or "none"
            raise ValueError(
                f"Unknown resource type: {type_name}. "
                f"Available resource types: {available}"
            )

        if type_name not in self._resource_instances:
            self._resource_instances[type_name] = self._resource_plugins[type_name]()
            logger.debug(f"Instantiated resource plugin: {type_name}")

        return self._resource_instances[type_name]

    # Discovery methods

    def list_resource_types(self) -> List[str]:
        """List all registered resource type names."""
        return sorted(self._resource_plugins)

    def has_resource_type(self, type_name: str) -> bool:
        """Check if a resource type is registered."""
        return type_name in self._resource_plugins

    def get_resource_plugin_info(self, type_name: str) -> Optional[Dict[str, Any]]:
        """
        Get information about a registered resource plugin.

        Args:
            type_name: The resource type name

        Returns:
            Dictionary with 'type_name', 'display_name' and 'fields', or
            None if not found
        """
        return self._resource_plugin_info.get(type_name)


# Global registry instance
_registry: Optional[PluginRegistry] = None


def get_registry() -> PluginRegistry:
    """Get the global plugin registry singleton."""
    global _registry
    if _registry is None:
        _registry = PluginRegistry()
    return _registry


def reset_registry() -> None:
    """Reset the global registry (mainly for testing)."""
    global _registry
    _registry = None


def register_builtin_plugins(registry: Optional[PluginRegistry] = None) -> None:
    """
    Register all built-in resource plugins and discover third-party ones
    via entry points.

    Args:
        registry: Registry to populate; defaults to the global registry.
    """
    registry = registry or get_registry()

    try:
        from plugins.resources import BUILTIN_RESOURCE_PLUGINS

        for plugin_class in BUILTIN_RESOURCE_PLUGINS:
            registry.register_resource_plugin(plugin_class)
    except ImportError as e:
        logger.warning(f"Could not load built-in resource plugins: {e}")

    # Discover and register resource plugins via entry points
    discovered = entry_points(group=ENTRY_POINT_GROUP)
    for ep in discovered:
        try:
            plugin_class = ep.load()
            registry.register_resource_plugin(plugin_class)
        except Exception as e:
            logger.warning(f"Could not load resource plugin {ep.name}: {e}")
