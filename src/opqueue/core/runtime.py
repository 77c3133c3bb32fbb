"""
Per-body runtime context for opqueue.

A running task body can ask which task and queue it belongs to without
any module-level mutable state. The worker binds both context variables
around the body and resets them afterwards, so each pool thread only
sees the body it is currently executing.

Usage:
    from opqueue.core.runtime import current_task

    def body(token):
        task = current_task()
        ...
"""

from __future__ import annotations

import contextvars
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from opqueue.core.queue import TaskQueue
    from opqueue.core.task import Task

_current_task: contextvars.ContextVar[Task | None] = contextvars.ContextVar(
    "opqueue_task",
    default=None,
)
_current_queue: contextvars.ContextVar[TaskQueue | None] = contextvars.ContextVar(
    "opqueue_queue",
    default=None,
)


def current_task() -> Task | None:
    """Return the task whose body is running on this thread, if any."""
    return _current_task.get()


def current_queue() -> TaskQueue | None:
    """Return the queue that scheduled the running body, if any."""
    return _current_queue.get()


@contextmanager
def task_context(task: Task, queue: TaskQueue) -> Iterator[None]:
    """Bind ``task`` and ``queue`` for the duration of a body."""
    task_token = _current_task.set(task)
    queue_token = _current_queue.set(queue)
    try:
        yield
    finally:
        _current_queue.reset(queue_token)
        _current_task.reset(task_token)


__all__ = ["current_queue", "current_task", "task_context"]
