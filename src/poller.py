"""
Convergence Poller - waits for an eventually consistent store to reflect a write.

After a mutating call the object is read back on a bounded interval until a
caller supplied predicate holds or the deadline passes. Clock and sleep are
injected so tests can drive time without real delays.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

from errors import ConvergenceError
from mapper import get_nested
from store import ObjectStore

logger = logging.getLogger(__name__)

Predicate = Callable[[Dict[str, Any]], bool]


class FieldEquals:
    """Predicate that holds when a nested field equals the submitted value."""

    def __init__(self, remote_path: Sequence[str], expected: Any):
        self.remote_path = tuple(remote_path)
        self.expected = expected

    def observe(self, obj: Optional[Dict[str, Any]]) -> Any:
        if obj is None:
            return None
        return get_nested(obj, self.remote_path)

    def __call__(self, obj: Dict[str, Any]) -> bool:
        return self.observe(obj) == self.expected

    def __repr__(self) -> str:
        return f"FieldEquals({'.'.join(self.remote_path)} == {self.expected!r})"


class ConvergencePoller:
    """Re-reads an object until a predicate holds or a timeout elapses."""

    def __init__(
        self,
        store: ObjectStore,
        timeout: float = 60.0,
        interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.timeout = timeout
        self.interval = interval
        self._clock = clock
        self._sleep = sleep

    async def await_condition(
        self,
        object_id: str,
        predicate: Predicate,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Poll the store until ``predicate`` holds for the object.

        A missing object or a false predicate is retried; a StoreError raised
        by the store aborts polling immediately and propagates unchanged.

        Args:
            object_id: Local ID of the object to read
            predicate: Callable returning True once the write is observed
            timeout: Seconds to wait, defaults to the poller's timeout

        Returns:
            The first object for which the predicate held

        Raises:
            ConvergenceError: if the deadline passes first
        """
        timeout = self.timeout if timeout is None else timeout
        start = self._clock()
        deadline = start + timeout
        attempts = 0
        last: Optional[Dict[str, Any]] = None

        while True:
            attempts += 1
            last = await self.store.get(object_id)
            if last is not None and predicate(last):
                logger.debug(f"{object_id} converged after {attempts} reads")
                return last

            logger.debug(
                f"{object_id} not converged yet (attempt {attempts}): "
                f"{'not found' if last is None else predicate!r}"
            )

            now = self._clock()
            if now >= deadline:
                break
            await self._sleep(min(self.interval, deadline - now))
            if self._clock() > deadline:
                break

        observe = getattr(predicate, "observe", None)
        observed = observe(last) if observe is not None else last
        expected = getattr(predicate, "expected", repr(predicate))
        raise ConvergenceError(
            object_id,
            expected=expected,
            observed=observed,
            attempts=attempts,
            elapsed=self._clock() - start,
        )
