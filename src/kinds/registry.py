"""
Kind Registry - discovery and registration of resource kinds.

This module provides the central registry mapping configuration kind names
to ResourceKind instances.
"""

import logging
from importlib.metadata import entry_points
from typing import Dict, List, Optional, Type

from kinds.base import ResourceKind

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "kubeconverge.kinds"


class KindRegistry:
    """Central registry for resource kinds."""

    def __init__(self):
        self._kinds: Dict[str, ResourceKind] = {}

    def register_kind(self, kind_class: Type[ResourceKind]) -> None:
        """
        Register a resource kind class.

        Args:
            kind_class: The ResourceKind subclass to register
        """
        instance = kind_class()
        name = instance.name

        if name in self._kinds:
            logger.warning(f"Overwriting existing kind: {name}")

        self._kinds[name] = instance
        logger.info(
            f"Registered kind: {name} ({instance.api_version} {instance.kind})"
        )

    def get_kind(self, name: str) -> ResourceKind:
        """
        Get a registered kind by name.

        Raises:
            ValueError: If the kind name is not registered
        """
        if name not in self._kinds:
            available = ", ".join(self._kinds.keys()) or "none"
            raise ValueError(f"Unknown kind: {name}. Available kinds: {available}")
        return self._kinds[name]

    def has_kind(self, name: str) -> bool:
        return name in self._kinds

    def list_kinds(self) -> List[str]:
        """List all registered kind names."""
        return list(self._kinds.keys())


# Global registry instance
_registry: Optional[KindRegistry] = None


def get_registry() -> KindRegistry:
    """Get the global kind registry singleton."""
    global _registry
    if _registry is None:
        _registry = KindRegistry()
    return _registry


def reset_registry() -> None:
    """Reset the global registry (mainly for testing)."""
    global _registry
    _registry = None


def register_builtin_kinds() -> KindRegistry:
    """
    Register the built-in kinds and discover additional ones via entry points.
    """
    from kinds.priority_class import PriorityClassKind

    registry = get_registry()
    registry.register_kind(PriorityClassKind)

    for ep in entry_points(group=ENTRY_POINT_GROUP):
        try:
            registry.register_kind(ep.load())
        except Exception as e:
            logger.warning(f"Could not load kind {ep.name}: {e}")
    return registry
