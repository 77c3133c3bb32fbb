"""Tests for dependency graph helpers."""

from __future__ import annotations

from opqueue.core.graph import iter_predecessors, transitive_closure, would_create_cycle
from opqueue.core.task import Task


def _task(name: str, *deps: Task) -> Task:
    return Task(lambda token: None, task_id=name, dependencies=deps)


class TestIterPredecessors:
    def test_no_dependencies(self) -> None:
        assert list(iter_predecessors(_task("a"))) == []

    def test_chain_yields_each_once(self) -> None:
        a = _task("a")
        b = _task("b", a)
        c = _task("c", b, a)
        assert [t.task_id for t in iter_predecessors(c)] == ["b", "a"]

    def test_long_chain_does_not_recurse(self) -> None:
        """Walk a chain longer than the default recursion limit."""
        tasks = [_task("t0")]
        for i in range(1, 1500):
            tasks.append(_task(f"t{i}", tasks[-1]))
        assert sum(1 for _ in iter_predecessors(tasks[-1])) == 1499


class TestWouldCreateCycle:
    def test_self_edge(self) -> None:
        a = _task("a")
        assert would_create_cycle(a, a) is True

    def test_back_edge(self) -> None:
        a = _task("a")
        b = _task("b", a)
        c = _task("c", b)
        assert would_create_cycle(a, c) is True
        assert would_create_cycle(c, a) is False

    def test_unrelated_tasks(self) -> None:
        assert would_create_cycle(_task("a"), _task("b")) is False


class TestTransitiveClosure:
    def test_roots_first_then_predecessors(self) -> None:
        a = _task("a")
        b = _task("b", a)
        c = _task("c")
        closure = transitive_closure([b, c])
        assert [t.task_id for t in closure] == ["b", "c", "a"]

    def test_shared_predecessor_listed_once(self) -> None:
        top = _task("top")
        left = _task("left", top)
        right = _task("right", top)
        closure = transitive_closure([left, right])
        assert [t.task_id for t in closure] == ["left", "right", "top"]

    def test_duplicate_roots_collapsed(self) -> None:
        a = _task("a")
        assert transitive_closure([a, a]) == [a]
