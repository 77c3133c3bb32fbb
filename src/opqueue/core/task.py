"""Task model: one schedulable unit of deferred work.

Key classes:
- TaskState: Lifecycle status of a task
- TaskPriority: Named priority levels for ready-task ordering
- CancellationToken: Cooperative cancellation flag handed to every body
- Task: Body, identity, predecessors, and the task's own result channel

A task is created by the caller, wired to its predecessors, and then handed
to exactly one TaskQueue. From then on the queue drives every state change;
the task only carries the data and the result.
"""

from __future__ import annotations

import functools
import logging
import threading
from collections.abc import Callable, Iterable
from enum import Enum, IntEnum, auto
from typing import TYPE_CHECKING, Any, cast
from uuid import uuid4

from opqueue.core.graph import would_create_cycle
from opqueue.core.result import (
    DependencyCycleError,
    DependencyFrozenError,
    Err,
    Result,
    TaskCancelledError,
)

if TYPE_CHECKING:
    from opqueue.core.queue import TaskQueue

logger = logging.getLogger(__name__)

# Guards predecessor lists and queue ownership across every task.
edit_lock = threading.RLock()

TaskBody = Callable[["CancellationToken"], Any]
DoneCallback = Callable[["Task"], None]


class TaskState(Enum):
    """Lifecycle status for a task."""

    PENDING = auto()  # Waiting on predecessors
    READY = auto()  # Predecessors terminal, waiting for a slot
    RUNNING = auto()  # Body executing on a worker
    COMPLETED = auto()  # Body returned
    FAILED = auto()  # Body raised
    CANCELLED = auto()  # Cancelled before or during execution

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset({TaskState.COMPLETED, TaskState.FAILED, TaskState.CANCELLED})


class TaskPriority(IntEnum):
    """Named priorities. Any int is accepted; higher runs first among ready tasks."""

    VERY_LOW = -8
    LOW = -4
    NORMAL = 0
    HIGH = 4
    VERY_HIGH = 8


class CancellationToken:
    """Thread-safe cooperative cancellation flag.

    The queue sets the flag; the body polls it at safe points. Nothing is
    ever interrupted forcibly.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise TaskCancelledError if cancellation was requested."""
        if self._event.is_set():
            raise TaskCancelledError("Task cancelled")

    def wait(self, timeout: float | None = None) -> bool:
        """Sleep up to ``timeout`` seconds, waking early on cancellation.

        Returns:
            True if cancellation was requested
        """
        return self._event.wait(timeout)

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled})"


class Task:
    """A single unit of deferred work.

    Attributes:
        task_id: Human-readable identifier (generated when omitted)
        priority: Ordering among simultaneously ready tasks
        token: Cancellation flag passed to the body

    The object itself is the identity: two tasks with the same ``task_id``
    are still distinct tasks.
    """

    def __init__(
        self,
        body: TaskBody,
        *,
        task_id: str | None = None,
        priority: int = TaskPriority.NORMAL,
        dependencies: Iterable[Task] = (),
    ) -> None:
        """Create a pending task.

        Args:
            body: Callable receiving the task's CancellationToken
            task_id: Optional identifier used in logs and errors
            priority: Higher values run first when several tasks are ready
            dependencies: Tasks that must be terminal before this one starts
        """
        self.task_id = task_id or f"task-{uuid4().hex[:8]}"
        self.priority = int(priority)
        self.token = CancellationToken()

        self._body = body
        self._dependencies: list[Task] = []
        self._state = TaskState.PENDING
        self._queue: TaskQueue | None = None
        self._seq = -1
        self._outcome: Result[Any, BaseException] | None = None
        self._done = threading.Event()
        self._callbacks: list[DoneCallback] = []
        self._callbacks_lock = threading.Lock()
        self._published = False

        for dep in dependencies:
            self.add_dependency(dep)

    @classmethod
    def from_callable(
        cls,
        fn: Callable[..., Any],
        *args: Any,
        task_id: str | None = None,
        priority: int = TaskPriority.NORMAL,
        **kwargs: Any,
    ) -> Task:
        """Wrap a plain callable that does not take a cancellation token."""
        bound = functools.partial(fn, *args, **kwargs)
        return cls(lambda _token: bound(), task_id=task_id, priority=priority)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> TaskState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state.is_terminal

    @property
    def is_cancelled(self) -> bool:
        return self.token.is_cancelled

    @property
    def queue(self) -> TaskQueue | None:
        """The queue this task was submitted to, if any."""
        return self._queue

    @property
    def dependencies(self) -> tuple[Task, ...]:
        return tuple(self._dependencies)

    @property
    def outcome(self) -> Result[Any, BaseException] | None:
        """Ok(value), Err(exception), or None while the task is not terminal.

        A cancelled task reports Err(TaskCancelledError).
        """
        return self._outcome

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    def add_dependency(self, depends_on: Task) -> None:
        """Require ``depends_on`` to be terminal before this task starts.

        Raises:
            DependencyFrozenError: This task was already submitted
            DependencyCycleError: The edge would close a cycle
        """
        with edit_lock:
            if self._queue is not None:
                raise DependencyFrozenError(
                    "Cannot add a dependency to a submitted task",
                    context={"task_id": self.task_id, "depends_on": depends_on.task_id},
                )
            if any(dep is depends_on for dep in self._dependencies):
                return
            if would_create_cycle(self, depends_on):
                raise DependencyCycleError(
                    "Dependency would create a cycle",
                    context={"task_id": self.task_id, "depends_on": depends_on.task_id},
                )
            self._dependencies.append(depends_on)

    def remove_dependency(self, depends_on: Task) -> None:
        with edit_lock:
            if self._queue is not None:
                raise DependencyFrozenError(
                    "Cannot remove a dependency from a submitted task",
                    context={"task_id": self.task_id, "depends_on": depends_on.task_id},
                )
            self._dependencies = [dep for dep in self._dependencies if dep is not depends_on]

    # ------------------------------------------------------------------
    # Cancellation and results
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Request cancellation.

        A submitted task is cancelled through its queue. An unsubmitted task
        becomes CANCELLED at once; submitting it later runs nothing.
        """
        queue = self._queue
        if queue is None:
            with edit_lock:
                queue = self._queue
                if queue is None:
                    if self._state.is_terminal:
                        return
                    self.token.cancel()
                    self._mark_terminal(TaskState.CANCELLED, cancelled_outcome(self))
            if queue is None:
                logger.debug("Task %s cancelled before submission", self.task_id)
                self._publish()
                return
        queue.cancel(self)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the task is terminal.

        Returns:
            False if the timeout elapsed first
        """
        return self._done.wait(timeout)

    def result(self, timeout: float | None = None) -> Any:
        """Return the body's value, or raise its exception.

        Raises:
            TimeoutError: The task did not finish within ``timeout``
            TaskCancelledError: The task was cancelled
        """
        if not self._done.wait(timeout):
            raise TimeoutError(f"Task {self.task_id} did not finish within {timeout}s")
        # _done is set only after _outcome is assigned.
        outcome = cast("Result[Any, BaseException]", self._outcome)
        return outcome.unwrap()

    def add_done_callback(self, fn: DoneCallback) -> None:
        """Call ``fn(task)`` once the task is terminal.

        Runs immediately on the calling thread if the task already finished.
        Callback exceptions are logged, never propagated.
        """
        with self._callbacks_lock:
            if not self._published:
                self._callbacks.append(fn)
                return
        self._invoke_callback(fn)

    # ------------------------------------------------------------------
    # Queue-facing internals
    # ------------------------------------------------------------------

    def _run_body(self) -> Any:
        return self._body(self.token)

    def _mark_terminal(self, state: TaskState, outcome: Result[Any, BaseException]) -> None:
        # Caller holds the owning queue's lock, or edit_lock for unsubmitted tasks.
        self._state = state
        self._outcome = outcome
        self._done.set()

    def _publish(self) -> None:
        with self._callbacks_lock:
            if self._published:
                return
            self._published = True
            callbacks, self._callbacks = self._callbacks, []
        for fn in callbacks:
            self._invoke_callback(fn)

    def _invoke_callback(self, fn: DoneCallback) -> None:
        try:
            fn(self)
        except Exception:
            logger.exception("Done callback for task %s failed", self.task_id)

    def __repr__(self) -> str:
        return f"Task(task_id={self.task_id!r}, state={self._state.name})"


def cancelled_outcome(task: Task) -> Err[TaskCancelledError]:
    return Err(TaskCancelledError("Task cancelled", context={"task_id": task.task_id}))


__all__ = [
    "CancellationToken",
    "DoneCallback",
    "Task",
    "TaskBody",
    "TaskPriority",
    "TaskState",
    "cancelled_outcome",
    "edit_lock",
]
