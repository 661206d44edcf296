"""
Resource kinds handled by the reconciliation engine.

Each kind declares its field schema and API coordinates; additional kinds are
discovered via Python entry points (group: 'kubeconverge.kinds').
"""

from kinds.base import ResourceKind
from kinds.priority_class import PriorityClassKind
from kinds.registry import KindRegistry, get_registry

__all__ = ["ResourceKind", "PriorityClassKind", "KindRegistry", "get_registry"]
