"""Process-wide worker pool shared by every task queue.

Queues never spawn a thread per task. Bodies are handed to one lazily
created ThreadPoolExecutor sized from ``QueueConfig.pool_workers``; each
queue enforces its own concurrency limit on top of it.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

from opqueue.core.config import get_config

logger = logging.getLogger(__name__)

_shared_pool: ThreadPoolExecutor | None = None
_shared_pool_lock = threading.Lock()


def get_shared_pool() -> ThreadPoolExecutor:
    """Get the module-level shared pool.

    Creates the pool on first access (thread-safe).

    Returns:
        The shared ThreadPoolExecutor instance
    """
    global _shared_pool
    if _shared_pool is None:
        with _shared_pool_lock:
            if _shared_pool is None:
                workers = get_config().pool_workers
                _shared_pool = ThreadPoolExecutor(
                    max_workers=workers,
                    thread_name_prefix="opqueue-worker",
                )
                logger.debug("Started shared worker pool with %d threads", workers)
    return _shared_pool


def reset_shared_pool(wait: bool = True) -> None:
    """Shut down and forget the shared pool (primarily for testing).

    Args:
        wait: Block until in-flight bodies finish
    """
    global _shared_pool
    with _shared_pool_lock:
        pool, _shared_pool = _shared_pool, None
    if pool is not None:
        pool.shutdown(wait=wait)


__all__ = ["get_shared_pool", "reset_shared_pool"]
