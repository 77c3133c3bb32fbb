"""Dependency graph helpers over task predecessor references.

Tasks hold plain references to the tasks they depend on; there is no
separate graph object. These helpers walk those references to answer the
two questions the queue needs:

- Would a new edge close a cycle?
- Which tasks does a batch transitively depend on?

Callers hold ``opqueue.core.task.edit_lock`` while walking so that
predecessor lists cannot change underneath them.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from opqueue.core.task import Task


def iter_predecessors(task: Task) -> Iterator[Task]:
    """Yield every task ``task`` transitively depends on, each once.

    Iterative DFS so long dependency chains do not hit the recursion limit.
    """
    seen: set[int] = {id(task)}
    stack: list[Task] = list(reversed(task.dependencies))
    while stack:
        current = stack.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        stack.extend(reversed(current.dependencies))


def would_create_cycle(task: Task, depends_on: Task) -> bool:
    """Return True if making ``task`` depend on ``depends_on`` closes a cycle.

    A cycle exists when ``depends_on`` is ``task`` itself or already
    (transitively) depends on ``task``.
    """
    if depends_on is task:
        return True
    return any(pred is task for pred in iter_predecessors(depends_on))


def transitive_closure(tasks: Iterable[Task]) -> list[Task]:
    """Return ``tasks`` plus everything they depend on, without duplicates.

    Order is the input order followed by predecessors in discovery order.
    """
    ordered: list[Task] = []
    seen: set[int] = set()
    roots = list(tasks)
    for task in roots:
        if id(task) not in seen:
            seen.add(id(task))
            ordered.append(task)
    for task in roots:
        for pred in iter_predecessors(task):
            if id(pred) not in seen:
                seen.add(id(pred))
                ordered.append(pred)
    return ordered


__all__ = ["iter_predecessors", "transitive_closure", "would_create_cycle"]
