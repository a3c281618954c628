"""
Plugin Registry - Discovery and registration of reconciler plugins.

This module provides the central registry for reconcilers, handling
discovery, registration, configuration and lookup by resource kind.
"""

import logging
from importlib.metadata import entry_points
from typing import Dict, List, Optional, Type

from plugins.reconcilers.base import ReconcilerContext, ReconcilerPlugin
from validation import validate_openapi_schema

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "vendor_reconciler.reconcilers"


class PluginRegistry:
    """
    Central registry for reconciler plugins.

    Each reconciler claims exactly one resource kind. Instances are created
    lazily and configured with the shared ReconcilerContext.
    """

    def __init__(self):
        # Registered plugin classes (not instantiated), keyed by kind
        self._reconciler_plugins: Dict[str, Type[ReconcilerPlugin]] = {}

        # Instantiated and configured plugin instances
        self._reconciler_instances: Dict[str, ReconcilerPlugin] = {}

        self._context: Optional[ReconcilerContext] = None

    # Registration methods

    def register_reconciler_plugin(self, plugin_class: Type[ReconcilerPlugin]) -> None:
        """
        Register a reconciler plugin class.

        Args:
            plugin_class: The ReconcilerPlugin subclass to register

        Raises:
            ValueError: If the kind is already claimed by a different class,
                or the plugin publishes an invalid JSON Schema
        """
        # Create temporary instance to get the kind (only once at registration)
        plugin = plugin_class()
        kind = plugin.name

        is_valid, error = validate_openapi_schema(plugin.schema)
        if not is_valid:
            raise ValueError(f"Reconciler {plugin_class.__name__} for '{kind}': {error}")

        existing = self._reconciler_plugins.get(kind)
        if existing is not None and existing is not plugin_class:
            raise ValueError(
                f"Resource kind '{kind}' is already claimed by "
                f"{existing.__name__}. Cannot register {plugin_class.__name__}."
            )

        self._reconciler_plugins[kind] = plugin_class
        self._reconciler_instances.pop(kind, None)
        logger.info(f"Registered reconciler plugin: {kind}")

    def configure(self, ctx: ReconcilerContext) -> None:
        """
        Set the shared context for all reconcilers.

        Instances created before this call are configured as well.
        """
        self._context = ctx
        for reconciler in self._reconciler_instances.values():
            reconciler.configure(ctx)

    # Instantiation methods

    def get_reconciler(self, kind: str) -> ReconcilerPlugin:
        """
        Get a configured reconciler instance for a resource kind.

        Args:
            kind: The resource kind (e.g. 'replicated_cluster')

        Returns:
            A ReconcilerPlugin instance

        Raises:
            ValueError: If no reconciler handles the kind
        """
        if kind not in self._reconciler_plugins:
            available = ", ".join(self._reconciler_plugins.keys()) or "none"
            raise ValueError(
                f"Unknown resource kind: {kind}. Available kinds: {available}"
            )

        if kind not in self._reconciler_instances:
            reconciler = self._reconciler_plugins[kind]()
            if self._context is not None:
                reconciler.configure(self._context)
            self._reconciler_instances[kind] = reconciler
            logger.info(f"Instantiated reconciler plugin: {kind}")

        return self._reconciler_instances[kind]

    # Discovery methods

    def list_kinds(self) -> List[str]:
        """List all registered resource kinds."""
        return list(self._reconciler_plugins.keys())


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


def register_builtin_plugins() -> None:
    """
    Register the built-in reconcilers and discover others via entry points.

    Called during application startup.
    """
    registry = get_registry()

    from plugins.reconcilers.cluster import ClusterReconciler
    from plugins.reconcilers.customer import CustomerReconciler

    registry.register_reconciler_plugin(ClusterReconciler)
    registry.register_reconciler_plugin(CustomerReconciler)

    # Discover and register reconciler plugins via entry points
    discovered = entry_points(group=ENTRY_POINT_GROUP)
    for ep in discovered:
        try:
            reconciler_class = ep.load()
            registry.register_reconciler_plugin(reconciler_class)
        except Exception as e:
            logger.warning(f"Could not load reconciler plugin {ep.name}: {e}")
