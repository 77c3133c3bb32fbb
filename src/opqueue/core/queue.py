"""Bounded-concurrency task queue with dependency ordering.

This module provides the TaskQueue, which accepts tasks, holds each one
until all of its predecessors are terminal, and runs ready tasks on the
shared worker pool without ever exceeding its concurrency limit.

Scheduling:
- A task is ready once every predecessor is COMPLETED, FAILED or CANCELLED.
- Whenever a slot frees, a task is submitted, a predecessor terminates or
  the queue resumes, pending work is re-scanned and ready tasks are
  promoted until all slots are taken.
- Ready tasks are promoted by priority (highest first), then in
  submission order.

Locking:
- One RLock guards every pending/running/state mutation.
- Bodies, done callbacks and cross-queue hooks run outside it.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Executor
from typing import Any

from opqueue.core.config import FailurePolicy, QueueConfig, get_config
from opqueue.core.graph import transitive_closure
from opqueue.core.pool import get_shared_pool
from opqueue.core.result import (
    DuplicateSubmissionError,
    Err,
    InvalidConcurrencyError,
    Ok,
    Result,
    TaskCancelledError,
    UnknownTaskError,
    UnsubmittedDependencyError,
    try_result,
)
from opqueue.core.runtime import task_context
from opqueue.core.task import (
    Task,
    TaskPriority,
    TaskState,
    cancelled_outcome,
    edit_lock,
)

logger = logging.getLogger(__name__)

_CASCADING_STATES = frozenset({TaskState.FAILED, TaskState.CANCELLED})


def _validate_concurrency(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidConcurrencyError(
            "max_concurrency must be a positive integer",
            context={"max_concurrency": value},
        )
    return value


class TaskQueue:
    """Runs submitted tasks with at most ``max_concurrency`` in flight.

    Attributes:
        name: Queue name, conventionally reverse-DNS (``com.example.uploads``)
        max_concurrency: Upper bound on simultaneously RUNNING tasks
        failure_policy: Whether failed/cancelled predecessors cancel dependants

    Example:
        queue = TaskQueue(max_concurrency=2, name="com.example.thumbnails")
        first = Task(render, task_id="render")
        second = Task(upload, task_id="upload")
        queue.add_dependency(second, first)
        queue.submit([first, second], wait_until_drained=True)
    """

    def __init__(
        self,
        max_concurrency: int | None = None,
        name: str | None = None,
        *,
        failure_policy: FailurePolicy | str | None = None,
        config: QueueConfig | None = None,
        pool: Executor | None = None,
    ) -> None:
        """Initialize the queue.

        Args:
            max_concurrency: Concurrency limit (default: config.default_max_concurrency)
            name: Queue name (default: config.default_name)
            failure_policy: Dependant handling on failure (default: config.failure_policy)
            config: Settings to draw defaults from (default: process-wide config)
            pool: Executor to run bodies on (default: the shared worker pool)

        Raises:
            InvalidConcurrencyError: max_concurrency is not a positive integer
        """
        cfg = config or get_config()
        limit = cfg.default_max_concurrency if max_concurrency is None else max_concurrency
        self.max_concurrency = _validate_concurrency(limit)
        self.name = name or cfg.default_name
        self.failure_policy = FailurePolicy(failure_policy or cfg.failure_policy)

        self._pool = pool
        self._lock = threading.RLock()
        self._drained = threading.Condition(self._lock)
        self._seq = itertools.count()
        self._pending: dict[Task, None] = {}
        self._running: dict[Task, None] = {}
        self._watched: set[Task] = set()
        self._suspended = False
        self._max_running_observed = 0

        logger.debug(
            "Queue %s created (max_concurrency=%d, failure_policy=%s)",
            self.name,
            self.max_concurrency,
            self.failure_policy.value,
        )

    @classmethod
    def serial(cls, name: str | None = None, **kwargs: Any) -> TaskQueue:
        """Build a queue that runs one task at a time."""
        return cls(1, name, **kwargs)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def running_count(self) -> int:
        with self._lock:
            return len(self._running)

    @property
    def task_count(self) -> int:
        with self._lock:
            return len(self._pending) + len(self._running)

    @property
    def max_running_observed(self) -> int:
        """High-water mark of simultaneously running tasks."""
        with self._lock:
            return self._max_running_observed

    @property
    def tasks(self) -> list[Task]:
        """Non-terminal tasks in submission order."""
        with self._lock:
            return sorted([*self._pending, *self._running], key=lambda t: t._seq)

    @property
    def is_suspended(self) -> bool:
        with self._lock:
            return self._suspended

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, tasks: Task | Iterable[Task], wait_until_drained: bool = False) -> list[Task]:
        """Add tasks to the queue.

        The whole batch is validated before anything changes, so a rejected
        batch leaves the queue untouched.

        Args:
            tasks: A task or an iterable of tasks
            wait_until_drained: Block until every task in the batch, and
                everything it transitively depends on, is terminal

        Returns:
            The accepted tasks

        Raises:
            DuplicateSubmissionError: A task is already owned by a queue or
                appears twice in the batch
            UnsubmittedDependencyError: wait_until_drained was requested and a
                predecessor has never been submitted anywhere
        """
        batch = [tasks] if isinstance(tasks, Task) else list(tasks)
        closure: list[Task] = []
        finished: list[Task] = []
        to_start: list[Task] = []
        external: list[Task] = []

        with self._lock:
            with edit_lock:
                self._validate_batch(batch)
                if wait_until_drained:
                    closure = transitive_closure(batch)
                    self._validate_closure(batch, closure)

                members = set(batch)
                for task in batch:
                    task._queue = self
                    task._seq = next(self._seq)
                    for dep in task._dependencies:
                        if dep._queue is not self and dep not in members and not dep.is_terminal:
                            external.append(dep)

            for task in batch:
                if task.is_terminal:
                    # Cancelled before submission; nothing to run.
                    continue
                if task.is_cancelled:
                    task._mark_terminal(TaskState.CANCELLED, cancelled_outcome(task))
                    finished.append(task)
                    continue
                self._pending[task] = None

            logger.debug("Queue %s accepted %d task(s)", self.name, len(batch))
            to_start, cascaded = self._schedule_locked()
            finished.extend(cascaded)
            self._drained.notify_all()

        self._after_transition(finished, to_start)
        self._watch(external)

        if wait_until_drained:
            for task in closure:
                task.wait()

        return batch

    def add(
        self,
        fn: Callable[..., Any],
        *args: Any,
        task_id: str | None = None,
        priority: int = TaskPriority.NORMAL,
        **kwargs: Any,
    ) -> Task:
        """Wrap a plain callable in a task and submit it."""
        task = Task.from_callable(fn, *args, task_id=task_id, priority=priority, **kwargs)
        self.submit([task])
        return task

    def _validate_batch(self, batch: list[Task]) -> None:
        seen: set[int] = set()
        for task in batch:
            if id(task) in seen:
                raise DuplicateSubmissionError(
                    "Task appears twice in one submission",
                    context={"task_id": task.task_id, "queue": self.name},
                )
            seen.add(id(task))
            if task._queue is self:
                raise DuplicateSubmissionError(
                    "Task already submitted to this queue",
                    context={"task_id": task.task_id, "queue": self.name},
                )
            if task._queue is not None:
                raise DuplicateSubmissionError(
                    "Task already submitted to another queue",
                    context={"task_id": task.task_id, "queue": self.name, "owner": task._queue.name},
                )

    def _validate_closure(self, batch: list[Task], closure: list[Task]) -> None:
        members = {id(t) for t in batch}
        for task in closure:
            if id(task) in members or task._queue is not None or task.is_terminal:
                continue
            raise UnsubmittedDependencyError(
                "Cannot wait on a predecessor that was never submitted",
                context={"task_id": task.task_id, "queue": self.name},
            )

    def _watch(self, external: list[Task]) -> None:
        """Re-scan this queue whenever an external predecessor terminates."""
        fresh: list[Task] = []
        with self._lock:
            for dep in external:
                if dep not in self._watched:
                    self._watched.add(dep)
                    fresh.append(dep)
        for dep in fresh:
            dep.add_done_callback(self._on_external_done)

    def _on_external_done(self, task: Task) -> None:
        with self._lock:
            self._watched.discard(task)
        self.reschedule()

    # ------------------------------------------------------------------
    # Dependencies and cancellation
    # ------------------------------------------------------------------

    def add_dependency(self, task: Task, depends_on: Task) -> None:
        """Record that ``task`` may not start before ``depends_on`` is terminal.

        Raises:
            DependencyFrozenError: ``task`` was already submitted
            DependencyCycleError: The edge would close a cycle
        """
        task.add_dependency(depends_on)

    def cancel(self, task: Task) -> None:
        """Cancel a task owned by this queue.

        A task that has not started is removed and never runs. A running task
        only has its token set; its body decides when to stop.

        Raises:
            UnknownTaskError: The task was never submitted to this queue
        """
        finished: list[Task] = []
        to_start: list[Task] = []

        with self._lock:
            if task._queue is not self:
                raise UnknownTaskError(
                    "Task is not owned by this queue",
                    context={"task_id": task.task_id, "queue": self.name},
                )
            if task.is_terminal:
                return
            task.token.cancel()
            if task not in self._pending:
                if task in self._running:
                    logger.debug("Queue %s: cancellation requested for running %s", self.name, task.task_id)
                return

            del self._pending[task]
            task._mark_terminal(TaskState.CANCELLED, cancelled_outcome(task))
            logger.debug("Queue %s: %s cancelled before start", self.name, task.task_id)
            finished.append(task)
            to_start, cascaded = self._schedule_locked()
            finished.extend(cascaded)
            self._drained.notify_all()

        self._after_transition(finished, to_start)

    def cancel_all(self) -> None:
        """Cancel every non-terminal task in the queue."""
        with self._lock:
            targets = [*self._pending, *self._running]
        logger.info("Queue %s: cancelling %d task(s)", self.name, len(targets))
        for task in targets:
            self.cancel(task)

    # ------------------------------------------------------------------
    # Suspension and draining
    # ------------------------------------------------------------------

    def suspend(self) -> None:
        """Stop promoting new tasks. Running tasks are unaffected."""
        with self._lock:
            self._suspended = True
        logger.info("Queue %s suspended", self.name)

    def resume(self) -> None:
        with self._lock:
            self._suspended = False
        logger.info("Queue %s resumed", self.name)
        self.reschedule()

    def reschedule(self) -> None:
        """Re-scan pending work and promote whatever is ready."""
        with self._lock:
            to_start, finished = self._schedule_locked()
            self._drained.notify_all()
        self._after_transition(finished, to_start)

    def wait_until_drained(self, timeout: float | None = None) -> bool:
        """Block until no task in this queue is pending or running.

        Returns:
            False if the timeout elapsed first
        """
        with self._drained:
            return self._drained.wait_for(
                lambda: not self._pending and not self._running,
                timeout=timeout,
            )

    async def drain(self, timeout: float | None = None) -> bool:
        """Async form of wait_until_drained; the blocking wait runs in a thread."""
        return await asyncio.to_thread(self.wait_until_drained, timeout)

    # ------------------------------------------------------------------
    # Scheduling core
    # ------------------------------------------------------------------

    def _schedule_locked(self) -> tuple[list[Task], list[Task]]:
        """Promote ready tasks into free slots. Caller holds the lock.

        Returns:
            (tasks to hand to the pool, tasks that just became terminal)
        """
        finished: list[Task] = []
        if self.failure_policy is FailurePolicy.CANCEL_DEPENDENTS:
            finished.extend(self._cascade_cancellations_locked())

        ready: list[Task] = []
        for task in self._pending:
            if all(dep.is_terminal for dep in task._dependencies):
                task._state = TaskState.READY
                ready.append(task)

        to_start: list[Task] = []
        if self._suspended:
            return to_start, finished

        ready.sort(key=lambda t: (-t.priority, t._seq))
        for task in ready:
            if len(self._running) >= self.max_concurrency:
                break
            del self._pending[task]
            if task.is_cancelled:
                task._mark_terminal(TaskState.CANCELLED, cancelled_outcome(task))
                finished.append(task)
                continue
            task._state = TaskState.RUNNING
            self._running[task] = None
            to_start.append(task)

        self._max_running_observed = max(self._max_running_observed, len(self._running))
        return to_start, finished

    def _cascade_cancellations_locked(self) -> list[Task]:
        cancelled: list[Task] = []
        changed = True
        while changed:
            changed = False
            for task in list(self._pending):
                if any(dep.state in _CASCADING_STATES for dep in task._dependencies):
                    del self._pending[task]
                    task.token.cancel()
                    task._mark_terminal(TaskState.CANCELLED, cancelled_outcome(task))
                    logger.debug(
                        "Queue %s: %s cancelled after a predecessor failed", self.name, task.task_id
                    )
                    cancelled.append(task)
                    changed = True
        return cancelled

    def _after_transition(self, finished: list[Task], to_start: list[Task]) -> None:
        for task in finished:
            task._publish()
        for task in to_start:
            self._start(task)

    def _start(self, task: Task) -> None:
        pool = self._pool or get_shared_pool()
        logger.debug("Queue %s: starting %s", self.name, task.task_id)
        try:
            pool.submit(self._run, task)
        except RuntimeError as exc:
            # Executor shut down; the task can never run.
            self._finish(task, TaskState.FAILED, Err(exc))

    def _run(self, task: Task) -> None:
        # The slot is released however the body exits, SystemExit included.
        state = TaskState.FAILED
        outcome: Result[Any, BaseException] = Err(RuntimeError("Task body did not return"))
        try:
            with task_context(task, self):
                outcome = try_result(task._run_body, BaseException)

            if isinstance(outcome, Ok):
                state = TaskState.COMPLETED
                if task.is_cancelled:
                    # Body returned early after observing its token.
                    state = TaskState.CANCELLED
                    outcome = cancelled_outcome(task)
            elif isinstance(outcome.error, TaskCancelledError):
                state = TaskState.CANCELLED
            else:
                logger.error(
                    "Task %s failed with exception", task.task_id, exc_info=outcome.error
                )
        finally:
            self._finish(task, state, outcome)

    def _finish(self, task: Task, state: TaskState, outcome: Result[Any, BaseException]) -> None:
        with self._lock:
            self._running.pop(task, None)
            task._mark_terminal(state, outcome)
            logger.debug("Queue %s: %s -> %s", self.name, task.task_id, state.name)
            to_start, finished = self._schedule_locked()
            self._drained.notify_all()
        self._after_transition([task, *finished], to_start)

    def __repr__(self) -> str:
        return (
            f"TaskQueue(name={self.name!r}, max_concurrency={self.max_concurrency}, "
            f"pending={self.pending_count}, running={self.running_count})"
        )


__all__ = ["TaskQueue"]
