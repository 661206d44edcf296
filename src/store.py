"""
Object Store - contract for the remote, eventually consistent object API.

The engine only ever talks to a store through ``ObjectStore``. A missing
object is reported by ``get`` returning None and by ``delete`` returning
False; every other failure is raised as a StoreError.
"""

import copy
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from errors import StoreError
from mapper import build_id
from patch import PatchApplyError, PatchDocument, apply_patch

logger = logging.getLogger(__name__)


class ObjectStore(ABC):
    """Abstract remote object store addressed by local ID."""

    @abstractmethod
    async def create(self, draft: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create an object from a draft.

        Returns:
            The object as stored, including server assigned metadata
        """
        pass

    @abstractmethod
    async def get(self, object_id: str) -> Optional[Dict[str, Any]]:
        """Return the current object, or None if it does not exist."""
        pass

    @abstractmethod
    async def patch(
        self, object_id: str, document: PatchDocument
    ) -> Dict[str, Any]:
        """Apply a patch document and return the updated object."""
        pass

    @abstractmethod
    async def delete(self, object_id: str) -> bool:
        """Delete an object. Returns False if it was already absent."""
        pass


class InMemoryObjectStore(ObjectStore):
    """
    Dictionary backed store with server-like behaviour.

    Assigns resource versions and UIDs, resolves ``generateName`` and can
    serve ``read_lag`` stale reads after every write to mimic the
    read-after-write lag of a real cluster. Every call is recorded in
    ``calls`` as ``(method, object_id)``.
    """

    def __init__(self, namespaced: bool = False, read_lag: int = 0):
        self.namespaced = namespaced
        self.read_lag = read_lag
        self.calls: List[Tuple[str, Optional[str]]] = []
        self._objects: Dict[str, Dict[str, Any]] = {}
        self._stale: Dict[str, Tuple[Optional[Dict[str, Any]], int]] = {}
        self._version = 0

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def _remember_stale(self, object_id: str, previous: Optional[Dict[str, Any]]):
        if self.read_lag > 0:
            self._stale[object_id] = (copy.deepcopy(previous), self.read_lag)

    def seed(self, obj: Dict[str, Any]) -> str:
        """Insert an object directly, bypassing lag and call recording."""
        obj = copy.deepcopy(obj)
        meta = obj.setdefault("metadata", {})
        meta.setdefault("resourceVersion", self._next_version())
        meta.setdefault("uid", str(uuid.uuid4()))
        object_id = build_id(meta, self.namespaced)
        self._objects[object_id] = obj
        return object_id

    async def create(self, draft: Dict[str, Any]) -> Dict[str, Any]:
        obj = copy.deepcopy(draft)
        meta = obj.setdefault("metadata", {})
        if not meta.get("name"):
            if not meta.get("generateName"):
                raise StoreError(422, "Invalid", "name or generateName is required")
            meta["name"] = meta["generateName"] + uuid.uuid4().hex[:5]
        if self.namespaced:
            meta.setdefault("namespace", "default")

        object_id = build_id(meta, self.namespaced)
        self.calls.append(("create", object_id))
        if object_id in self._objects:
            raise StoreError(409, "AlreadyExists", f'"{object_id}" already exists')

        meta["resourceVersion"] = self._next_version()
        meta["uid"] = str(uuid.uuid4())
        meta["generation"] = 1
        meta["creationTimestamp"] = datetime.now(timezone.utc).isoformat()

        self._remember_stale(object_id, None)
        self._objects[object_id] = obj
        logger.debug(f"Stored {object_id} at version {meta['resourceVersion']}")
        return copy.deepcopy(obj)

    async def get(self, object_id: str) -> Optional[Dict[str, Any]]:
        self.calls.append(("get", object_id))
        if object_id in self._stale:
            previous, remaining = self._stale[object_id]
            if remaining > 1:
                self._stale[object_id] = (previous, remaining - 1)
            else:
                del self._stale[object_id]
            return copy.deepcopy(previous)

        obj = self._objects.get(object_id)
        return copy.deepcopy(obj) if obj is not None else None

    async def patch(
        self, object_id: str, document: PatchDocument
    ) -> Dict[str, Any]:
        self.calls.append(("patch", object_id))
        current = self._objects.get(object_id)
        if current is None:
            raise StoreError(404, "NotFound", f'"{object_id}" not found')

        try:
            updated = apply_patch(current, document)
        except PatchApplyError as e:
            status = 409 if "Test failed" in str(e) else 422
            raise StoreError(status, "Invalid", str(e)) from e

        meta = updated.setdefault("metadata", {})
        meta["uid"] = current["metadata"].get("uid")
        meta["resourceVersion"] = self._next_version()
        spec_changed = {k: v for k, v in updated.items() if k != "metadata"} != {
            k: v for k, v in current.items() if k != "metadata"
        }
        if spec_changed:
            meta["generation"] = current["metadata"].get("generation", 1) + 1

        new_id = build_id(meta, self.namespaced)
        if new_id != object_id:
            if new_id in self._objects:
                raise StoreError(409, "AlreadyExists", f'"{new_id}" already exists')
            del self._objects[object_id]

        self._remember_stale(new_id, current)
        self._objects[new_id] = updated
        return copy.deepcopy(updated)

    async def delete(self, object_id: str) -> bool:
        self.calls.append(("delete", object_id))
        self._stale.pop(object_id, None)
        return self._objects.pop(object_id, None) is not None
