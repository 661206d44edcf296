"""
Resource Controller - create/read/update/delete/exists for one resource instance.

Sequences the mapper, patch builder, convergence poller and object store for
a single kind. The controller holds no per-instance state of its own: every
operation works on a ``ResourceData`` handle owned by the caller, which is
expected to drive one instance sequentially.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from config import ControllerConfig
from errors import ConvergenceError, StateTransitionError
from flatmodel import FlatModel
from kinds.base import ResourceKind
from poller import ConvergencePoller, Predicate
from store import ObjectStore
from validation import validate_model

logger = logging.getLogger(__name__)


class ResourceState(Enum):
    """Lifecycle state of a managed resource instance."""

    ABSENT = "absent"
    CREATING = "creating"
    PRESENT = "present"
    UPDATING = "updating"
    DELETING = "deleting"


@dataclass
class ResourceData:
    """Flat model and local ID of one resource instance."""

    model: FlatModel
    id: Optional[str] = None
    state: ResourceState = ResourceState.ABSENT


def _exists(obj: Dict[str, Any]) -> bool:
    return obj is not None


class ResourceController:
    """
    Drives the lifecycle of instances of one resource kind.

    States: absent -> creating -> present -> updating -> present ->
    deleting -> absent. Reads and existence checks are allowed from any
    state in which the instance has a local ID.
    """

    def __init__(
        self,
        kind: ResourceKind,
        store: ObjectStore,
        config: Optional[ControllerConfig] = None,
        poller: Optional[ConvergencePoller] = None,
    ):
        self.kind = kind
        self.store = store
        self.config = config or ControllerConfig()
        self.poller = poller or ConvergencePoller(
            store,
            timeout=self.config.poll_timeout,
            interval=self.config.poll_interval,
        )

    def _condition(self, draft: Dict[str, Any]) -> Predicate:
        return self.kind.convergence_condition(draft) or _exists

    async def _refresh(self, data: ResourceData) -> FlatModel:
        object_id = data.id
        model = await self.read(data)
        if model is None:
            raise ConvergenceError(object_id, expected="present", observed=None)
        return model

    async def create(self, data: ResourceData) -> FlatModel:
        """
        Create the remote object for ``data.model``.

        The local ID is recorded as soon as the store accepts the object, so
        a convergence failure still leaves the instance discoverable.

        Raises:
            ValidationError: before any store call if the model is invalid
            StoreError: if the store rejects the object
            ConvergenceError: if the object is not observed before the timeout
        """
        if data.state != ResourceState.ABSENT or data.id:
            raise StateTransitionError(
                f"Cannot create {self.kind.kind} {data.id!r}: state is "
                f"{data.state.value}"
            )

        draft = self.kind.expand(data.model)

        data.state = ResourceState.CREATING
        logger.info(f"Creating new {self.kind.kind}: {draft}")
        try:
            out = await self.store.create(draft)
        except Exception:
            data.state = ResourceState.ABSENT
            raise
        logger.info(f"Submitted new {self.kind.kind}: {out}")

        data.id = self.kind.build_id(out)
        data.state = ResourceState.PRESENT

        await self.poller.await_condition(
            data.id, self._condition(draft), timeout=self.config.poll_timeout
        )
        return await self._refresh(data)

    async def read(self, data: ResourceData) -> Optional[FlatModel]:
        """
        Refresh ``data.model`` from the store.

        Returns:
            The refreshed model, or None if the object no longer exists. In
            that case the instance is marked absent and its ID cleared.
        """
        if not data.id:
            raise StateTransitionError(f"Cannot read {self.kind.kind}: no local ID")

        logger.info(f"Reading {self.kind.kind} {data.id}")
        obj = await self.store.get(data.id)
        if obj is None:
            logger.info(f"{self.kind.kind} {data.id} not found, marking absent")
            data.id = None
            data.state = ResourceState.ABSENT
            return None
        logger.debug(f"Received {self.kind.kind}: {obj}")

        data.model = self.kind.flatten(obj, prior=data.model)
        data.state = ResourceState.PRESENT
        return data.model

    async def update(self, data: ResourceData, desired: FlatModel) -> FlatModel:
        """
        Patch the remote object from ``data.model`` to ``desired``.

        No store call is made when the two models do not differ.
        """
        if not data.id or data.state != ResourceState.PRESENT:
            raise StateTransitionError(
                f"Cannot update {self.kind.kind} {data.id!r}: state is "
                f"{data.state.value}"
            )

        validate_model(desired)
        document = self.kind.build_patch(
            data.model,
            desired,
            guard_version=self.config.optimistic_concurrency,
        )
        if not document:
            logger.info(f"No changes for {self.kind.kind} {data.id}")
            return data.model

        draft = self.kind.expand(desired)
        data.state = ResourceState.UPDATING
        logger.info(f"Updating {self.kind.kind} {data.id!r}: {document.to_json()}")
        try:
            out = await self.store.patch(data.id, document)
        except Exception:
            data.state = ResourceState.PRESENT
            raise
        logger.info(f"Submitted updated {self.kind.kind}: {out}")

        data.id = self.kind.build_id(out)
        data.model = desired.copy()
        data.state = ResourceState.PRESENT

        if self.config.await_updates:
            await self.poller.await_condition(
                data.id, self._condition(draft), timeout=self.config.poll_timeout
            )
        return await self._refresh(data)

    async def delete(self, data: ResourceData) -> None:
        """Delete the remote object. An already absent object counts as deleted."""
        if not data.id:
            raise StateTransitionError(f"Cannot delete {self.kind.kind}: no local ID")

        data.state = ResourceState.DELETING
        logger.info(f"Deleting {self.kind.kind}: {data.id}")
        try:
            deleted = await self.store.delete(data.id)
        except Exception:
            data.state = ResourceState.PRESENT
            raise

        if deleted:
            logger.info(f"{self.kind.kind} {data.id} deleted")
        else:
            logger.warning(f"{self.kind.kind} {data.id} was already absent")
        data.id = None
        data.state = ResourceState.ABSENT

    async def exists(self, data: ResourceData) -> bool:
        """Check for the remote object without touching ``data``."""
        if not data.id:
            return False
        logger.info(f"Checking {self.kind.kind} {data.id}")
        return await self.store.get(data.id) is not None
