"""opqueue - bounded-concurrency task queues with dependency ordering.

Tasks declare the tasks they depend on; a TaskQueue runs ready tasks on a
shared worker pool, never exceeding its concurrency limit, and honours
cooperative cancellation.

Exports:
    __version__: Package version string.
    Task, TaskQueue, TaskState, TaskPriority, CancellationToken
    FailurePolicy, current_task, current_queue
"""

from __future__ import annotations

from opqueue.core.config import FailurePolicy
from opqueue.core.queue import TaskQueue
from opqueue.core.runtime import current_queue, current_task
from opqueue.core.task import CancellationToken, Task, TaskPriority, TaskState

__all__ = [
    "CancellationToken",
    "FailurePolicy",
    "Task",
    "TaskPriority",
    "TaskQueue",
    "TaskState",
    "__version__",
    "current_queue",
    "current_task",
]

__version__ = "0.1.0"
