"""Tests for Result types and the error hierarchy."""

from __future__ import annotations

import pytest

from opqueue.core.result import (
    DependencyCycleError,
    DuplicateSubmissionError,
    Err,
    InvalidConcurrencyError,
    Ok,
    OpQueueError,
    UsageError,
    try_result,
)


class TestResult:
    def test_ok_unwrap(self) -> None:
        assert Ok(3).unwrap() == 3

    def test_err_unwrap_raises(self) -> None:
        with pytest.raises(ValueError, match="bad"):
            Err(ValueError("bad")).unwrap()

    def test_try_result(self) -> None:
        assert try_result(lambda: 1) == Ok(1)
        outcome = try_result(lambda: int("x"), ValueError)
        assert isinstance(outcome, Err)
        assert isinstance(outcome.error, ValueError)

    def test_try_result_catches_base_exception(self) -> None:
        def bail() -> None:
            raise SystemExit(2)

        outcome = try_result(bail, BaseException)
        assert isinstance(outcome, Err)
        assert isinstance(outcome.error, SystemExit)

    def test_try_result_lets_other_types_through(self) -> None:
        with pytest.raises(KeyError):
            try_result(lambda: {}["missing"], ValueError)


class TestErrorHierarchy:
    @pytest.mark.parametrize(
        "exc_type",
        [InvalidConcurrencyError, DuplicateSubmissionError, DependencyCycleError],
    )
    def test_usage_errors(self, exc_type: type[UsageError]) -> None:
        assert issubclass(exc_type, UsageError)
        assert issubclass(exc_type, OpQueueError)

    def test_context_rendering(self) -> None:
        exc = OpQueueError("Task already submitted", context={"task_id": "t1", "queue": "q"})
        assert str(exc) == "Task already submitted [task_id=t1, queue=q]"
        assert str(OpQueueError("plain")) == "plain"
