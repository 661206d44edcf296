"""
Error taxonomy for the reconciliation engine.

Not-found is deliberately absent: stores and the controller report a missing
object through ``None`` / ``False`` return values rather than exceptions.
"""

from typing import Any, List, Optional


class ReconcileError(Exception):
    """Base class for all engine errors."""


class ValidationError(ReconcileError):
    """A flat model cannot be mapped to a valid remote draft."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class StoreError(ReconcileError):
    """Transport, authorization or conflict failure reported by an object store."""

    def __init__(self, status: int, reason: str = "", message: str = ""):
        self.status = status
        self.reason = reason
        self.message = message
        super().__init__(f"{status} {reason}: {message}".strip(": "))


class ConvergenceError(ReconcileError):
    """A submitted write was not observed before the polling deadline."""

    def __init__(
        self,
        object_id: str,
        expected: Any,
        observed: Any,
        attempts: int = 0,
        elapsed: float = 0.0,
    ):
        self.object_id = object_id
        self.expected = expected
        self.observed = observed
        self.attempts = attempts
        self.elapsed = elapsed
        super().__init__(
            f"{object_id} did not converge after {attempts} reads "
            f"({elapsed:.1f}s).\nExpected: {expected!r}\nGiven: {observed!r}"
        )


class StateTransitionError(ReconcileError):
    """An operation was requested from a lifecycle state that does not allow it."""
