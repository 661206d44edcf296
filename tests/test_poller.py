"""Unit tests for poller.py - convergence polling."""

import pytest
from unittest.mock import AsyncMock

from errors import ConvergenceError, StoreError
from poller import ConvergencePoller, FieldEquals
from store import InMemoryObjectStore


def _priority_class(value):
    return {"metadata": {"name": "high"}, "value": value}


class TestFieldEquals:
    """Tests for the FieldEquals predicate."""

    def test_matches_nested_value(self):
        predicate = FieldEquals(("value",), 5)
        assert predicate(_priority_class(5)) is True
        assert predicate(_priority_class(6)) is False

    def test_missing_field_does_not_match(self):
        assert FieldEquals(("spec", "value"), 5)({"metadata": {}}) is False

    def test_observe(self):
        predicate = FieldEquals(("value",), 5)
        assert predicate.observe(_priority_class(3)) == 3
        assert predicate.observe(None) is None


@pytest.mark.asyncio
class TestConvergencePoller:
    """Tests for ConvergencePoller.await_condition."""

    async def test_returns_immediately_when_converged(self, fake_clock):
        store = InMemoryObjectStore()
        store.seed(_priority_class(5))
        poller = ConvergencePoller(
            store, timeout=5, interval=1, clock=fake_clock, sleep=fake_clock.sleep
        )

        obj = await poller.await_condition("high", FieldEquals(("value",), 5))

        assert obj["value"] == 5
        assert fake_clock.sleeps == []

    async def test_retries_not_found(self, fake_clock):
        store = InMemoryObjectStore(read_lag=2)
        await store.create(_priority_class(5))
        poller = ConvergencePoller(
            store, timeout=5, interval=1, clock=fake_clock, sleep=fake_clock.sleep
        )

        obj = await poller.await_condition("high", FieldEquals(("value",), 5))

        assert obj["value"] == 5
        assert fake_clock.sleeps == [1, 1]
        assert store.calls.count(("get", "high")) == 3

    async def test_times_out_with_expected_and_observed(self, fake_clock):
        store = InMemoryObjectStore()
        store.seed(_priority_class(4))
        poller = ConvergencePoller(
            store, timeout=5, interval=1, clock=fake_clock, sleep=fake_clock.sleep
        )

        with pytest.raises(ConvergenceError) as exc_info:
            await poller.await_condition("high", FieldEquals(("value",), 5))

        error = exc_info.value
        assert error.expected == 5
        assert error.observed == 4
        assert error.attempts == 6
        assert "Expected: 5" in str(error)
        assert "Given: 4" in str(error)

    async def test_gives_up_within_timeout_plus_interval(self, fake_clock):
        store = InMemoryObjectStore()
        poller = ConvergencePoller(
            store, timeout=5, interval=2, clock=fake_clock, sleep=fake_clock.sleep
        )

        with pytest.raises(ConvergenceError) as exc_info:
            await poller.await_condition("missing", FieldEquals(("value",), 1))

        assert fake_clock.now <= 5 + 2
        assert exc_info.value.observed is None
        assert exc_info.value.elapsed <= 7

    async def test_timeout_override(self, fake_clock):
        store = InMemoryObjectStore()
        poller = ConvergencePoller(
            store, timeout=60, interval=1, clock=fake_clock, sleep=fake_clock.sleep
        )

        with pytest.raises(ConvergenceError):
            await poller.await_condition("missing", lambda obj: True, timeout=2)

        assert fake_clock.now == 2

    async def test_store_error_aborts(self, fake_clock):
        store = AsyncMock()
        store.get.side_effect = StoreError(403, "Forbidden", "no access")
        poller = ConvergencePoller(
            store, timeout=5, interval=1, clock=fake_clock, sleep=fake_clock.sleep
        )

        with pytest.raises(StoreError) as exc_info:
            await poller.await_condition("high", FieldEquals(("value",), 5))

        assert exc_info.value.status == 403
        assert store.get.await_count == 1
        assert fake_clock.sleeps == []

    async def test_plain_callable_predicate(self, fake_clock):
        store = InMemoryObjectStore()
        store.seed(_priority_class(1))
        poller = ConvergencePoller(
            store, timeout=1, interval=1, clock=fake_clock, sleep=fake_clock.sleep
        )

        with pytest.raises(ConvergenceError) as exc_info:
            await poller.await_condition("high", lambda obj: False)

        assert exc_info.value.observed == store._objects["high"]
