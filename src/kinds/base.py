"""
Resource Kind Base - abstract description of one remote resource kind.

A kind supplies its field schema and API coordinates. Mapping and patch
construction default to the generic, schema driven implementations; kinds
only override them for fields the field table cannot express.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import mapper
from flatmodel import FlatModel, Schema
from patch import PatchDocument, build_patch
from poller import Predicate


class ResourceKind(ABC):
    """
    Abstract base class for resource kinds.

    Kinds are discovered via Python entry points in the
    'kubeconverge.kinds' group.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier used in configuration files (e.g., 'priority_class')."""
        pass

    @property
    @abstractmethod
    def api_version(self) -> str:
        """API group and version (e.g., 'scheduling.k8s.io/v1')."""
        pass

    @property
    @abstractmethod
    def kind(self) -> str:
        """Kind as reported by the API (e.g., 'PriorityClass')."""
        pass

    @property
    @abstractmethod
    def plural(self) -> str:
        """Plural resource name used in API paths."""
        pass

    @property
    @abstractmethod
    def namespaced(self) -> bool:
        pass

    @property
    @abstractmethod
    def schema(self) -> Schema:
        pass

    def expand(self, model: FlatModel) -> Dict[str, Any]:
        """
        Build a creation draft from a flat model.

        Raises:
            ValidationError: if the model holds malformed or out of range values
        """
        draft = {"apiVersion": self.api_version, "kind": self.kind}
        draft.update(mapper.expand(self.schema, model))
        return draft

    def flatten(
        self, obj: Dict[str, Any], prior: Optional[FlatModel] = None
    ) -> FlatModel:
        return mapper.flatten(self.schema, obj, prior)

    def build_patch(
        self, prior: FlatModel, current: FlatModel, guard_version: bool = False
    ) -> PatchDocument:
        return build_patch(self.schema, prior, current, guard_version=guard_version)

    def build_id(self, obj: Dict[str, Any]) -> str:
        return mapper.build_id(obj.get("metadata") or {}, self.namespaced)

    def convergence_condition(self, draft: Dict[str, Any]) -> Optional[Predicate]:
        """
        Predicate confirming that a submitted draft is visible in the store.

        Returns None when the kind needs no read-after-write confirmation.
        """
        return None

    def api_path(self, namespace: Optional[str] = None) -> str:
        """Collection path of this kind on the API server."""
        group_version = self.api_version
        prefix = "/api" if "/" not in group_version else "/apis"
        path = f"{prefix}/{group_version}"
        if self.namespaced and namespace:
            path += f"/namespaces/{namespace}"
        return f"{path}/{self.plural}"
