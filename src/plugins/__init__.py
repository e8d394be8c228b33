"""
Plugin system for the Stratus provider.

This package provides the plugin architecture for resource types.
"""

from plugins.registry import PluginRegistry, get_registry, register_builtin_plugins

__all__ = [
    "PluginRegistry",
    "get_registry",
    "register_builtin_plugins",
]
