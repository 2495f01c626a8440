"""
Resource Registry - Discovery and registration of resource kinds.

Maps resource type names to reconciler classes. Built-in kinds are
registered at startup; additional kinds are discovered through the
'morpheus.resources' entry point group.
"""

import logging
from importlib.metadata import entry_points
from typing import Any, Dict, List, Optional, Type

from resources.base import ResourceReconciler
from validation import validate_json_schema

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "morpheus.resources"


class ResourceRegistry:
    """
    Central registry of resource kinds.

    Reconcilers hold no per-call state, so one instance per kind is shared
    by every lifecycle call.
    """

    def __init__(self):
        # Registered reconciler classes (not instantiated)
        self._resource_classes: Dict[str, Type[ResourceReconciler]] = {}

        # Instantiated reconcilers
        self._instances: Dict[str, ResourceReconciler] = {}

    def register(self, reconciler_class: Type[ResourceReconciler]) -> None:
        """
        Register a reconciler class.

        Args:
            reconciler_class: The ResourceReconciler subclass to register

        Raises:
            ValueError: If the class renders an invalid JSON Schema
        """
        instance = reconciler_class()
        type_name = instance.type_name

        is_valid, error = validate_json_schema(instance.schema.to_json_schema())
        if not is_valid:
            raise ValueError(f"Resource '{type_name}' has an invalid schema: {error}")

        if type_name in self._resource_classes:
            logger.warning(f"Overwriting existing resource kind: {type_name}")

        self._resource_classes[type_name] = reconciler_class
        self._instances[type_name] = instance
        logger.info(f"Registered resource kind: {type_name}")

    def get(self, type_name: str) -> ResourceReconciler:
        """
        Get the reconciler for a resource type.

        Args:
            type_name: The resource type name

        Returns:
            The ResourceReconciler instance

        Raises:
            ValueError: If the type name is not registered
        """
        if type_name not in self._instances:
            available = ", ".join(sorted(self._instances)) or "none"
            raise ValueError(
                f"Unknown resource type: {type_name}. Available types: {available}"
            )
        return self._instances[type_name]

    def has(self, type_name: str) -> bool:
        """Check if a resource type is registered."""
        return type_name in self._instances

    def list_types(self) -> List[str]:
        """List all registered resource type names."""
        return sorted(self._instances)

    def get_info(self, type_name: str) -> Optional[Dict[str, Any]]:
        """
        Get information about a registered resource kind.

        Args:
            type_name: The resource type name

        Returns:
            Dictionary with 'type_name', 'api_path' and attribute name lists,
            or None if not found
        """
        reconciler = self._instances.get(type_name)
        if reconciler is None:
            return None
        schema = reconciler.schema
        return {
            "type_name": type_name,
            "api_path": reconciler.api_path,
            "required": [a.name for a in schema.attributes if a.required],
            "optional": [a.name for a in schema.attributes if a.optional],
            "computed": [a.name for a in schema.computed_attributes()],
        }


# Global registry instance
_registry: Optional[ResourceRegistry] = None


def get_registry() -> ResourceRegistry:
    """Get the global resource registry singleton."""
    global _registry
    if _registry is None:
        _registry = ResourceRegistry()
    return _registry


def reset_registry() -> None:
    """Reset the global registry (mainly for testing)."""
    global _registry
    _registry = None


def register_builtin_resources() -> ResourceRegistry:
    """
    Register the built-in resource kinds and discover additional kinds
    via entry points.

    Returns:
        The global registry.
    """
    from resources.ansible_tower_integration import AnsibleTowerIntegration
    from resources.backup_settings import BackupSettings
    from resources.helm_spec_template import HelmSpecTemplate
    from resources.workflow_catalog_item import WorkflowCatalogItem

    registry = get_registry()
    for reconciler_class in (
        AnsibleTowerIntegration,
        BackupSettings,
        HelmSpecTemplate,
        WorkflowCatalogItem,
    ):
        registry.register(reconciler_class)

    # Discover and register third-party resource kinds via entry points
    for ep in entry_points(group=ENTRY_POINT_GROUP):
        try:
            registry.register(ep.load())
        except Exception as e:
            logger.warning(f"Could not load resource kind {ep.name}: {e}")

    return registry
