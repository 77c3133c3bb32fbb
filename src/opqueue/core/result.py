"""
Result types and error hierarchy for opqueue.

This module provides:
1. Result[T, E] type carrying the outcome of a single task
2. Domain-specific exception hierarchy
3. try_result(), which runs a task body into a Result

Usage:
    from opqueue.core.result import Ok, Err, Result

    outcome = task.outcome
    if isinstance(outcome, Ok):
        print(outcome.value)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

T = TypeVar("T")
E = TypeVar("E", bound=BaseException)


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Represents a successful result containing a value."""

    value: T

    def unwrap(self) -> T:
        """Return the contained value."""
        return self.value


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Represents a failed result containing an error."""

    error: E

    def unwrap(self) -> Any:
        """Raise the contained error."""
        raise self.error


Result = Ok[T] | Err[E]


# ---------------------------------------------------------------------------
# Domain-specific error hierarchy
# ---------------------------------------------------------------------------


class OpQueueError(Exception):
    """Base exception for all opqueue errors.

    Carries an optional context mapping that is rendered after the message,
    e.g. ``Task already submitted [task_id=task-001, queue=uploads]``.
    """

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class UsageError(OpQueueError):
    """Raised synchronously when the queue API is misused.

    A usage error never leaves the queue in a partially-mutated state.
    """


class InvalidConcurrencyError(UsageError):
    """Raised when a queue is built with a non-positive concurrency limit."""


class DuplicateSubmissionError(UsageError):
    """Raised when a task is submitted to a queue more than once.

    Examples:
    - Same task object twice in one batch
    - Resubmitting a task that already ran
    - Submitting a task owned by another queue
    """


class DependencyCycleError(UsageError):
    """Raised when adding a dependency edge would close a cycle."""


class DependencyFrozenError(UsageError):
    """Raised when editing the dependencies of an already-submitted task."""


class UnknownTaskError(UsageError):
    """Raised when a queue is asked to act on a task it does not own."""


class UnsubmittedDependencyError(UsageError):
    """Raised when waiting on a task whose predecessor was never submitted.

    Such a predecessor can never become terminal, so the wait would hang.
    """


class TaskCancelledError(OpQueueError):
    """Raised inside a task body that honours a cancellation request."""


class ConfigurationError(OpQueueError):
    """Raised for configuration issues.

    Examples:
    - Config file parse errors
    - Invalid config values
    """


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def try_result(fn: Callable[[], T], error_type: type[E] = Exception) -> Result[T, E]:  # type: ignore[assignment]
    """Execute a function and wrap the result in Ok/Err.

    Args:
        fn: Function to execute
        error_type: Exception type to catch (default: Exception)

    Returns:
        Ok(value) on success, Err(exception) on failure
    """
    try:
        return Ok(fn())
    except error_type as exc:
        return Err(exc)


__all__ = [
    # Result types
    "Ok",
    "Err",
    "Result",
    # Error hierarchy
    "OpQueueError",
    "UsageError",
    "InvalidConcurrencyError",
    "DuplicateSubmissionError",
    "DependencyCycleError",
    "DependencyFrozenError",
    "UnknownTaskError",
    "UnsubmittedDependencyError",
    "TaskCancelledError",
    "ConfigurationError",
    # Helpers
    "try_result",
]
