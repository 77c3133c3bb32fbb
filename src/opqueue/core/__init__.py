"""Core machinery for opqueue.

This package contains:
    - task: Task model, states, priorities, cancellation tokens
    - queue: The bounded-concurrency TaskQueue
    - graph: Cycle detection over predecessor references
    - pool: Process-wide shared worker pool
    - runtime: Current task/queue context for running bodies
    - config: Settings management
    - console: Rich logging setup
    - result: Result types and error hierarchy
"""

from __future__ import annotations

from . import config, console

__all__ = ["config", "console"]
