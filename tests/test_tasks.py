import pytest

from labvoyager.common.errors import ExternalOperationError
from labvoyager.integrations.vsphere.tasks import join_tasks, wait_for_task

from tests.fakes import FakeTask


def test_join_tasks_returns_results_in_submission_order():
    sleeps = []
    tasks = [FakeTask("slow", result="a", polls=3), FakeTask("fast", result="b")]

    results = join_tasks(tasks, poll_interval=5, sleep=sleeps.append)

    assert results == ["a", "b"]
    assert sleeps == [5, 5]


def test_join_tasks_waits_for_all_before_raising():
    slow = FakeTask("slow", result="a", polls=3)
    failing = FakeTask("broken", error="boom")

    with pytest.raises(ExternalOperationError, match="broken: boom"):
        join_tasks([failing, slow], sleep=lambda _: None)

    assert slow.remaining == 0


def test_join_tasks_with_no_tasks():
    assert join_tasks([], sleep=pytest.fail) == []


def test_wait_for_task():
    assert wait_for_task(FakeTask("one", result=42), sleep=lambda _: None) == 42
