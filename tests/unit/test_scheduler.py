"""Tests for admission scheduling."""

from pathlib import Path

from grunner.test_runner.models.test_case import TestCase
from grunner.test_runner.scheduler import select_admissions


def _tests(count: int) -> list[TestCase]:
    return [TestCase.create(i, f"t{i}", Path(f"t{i}.cc"), 1) for i in range(count)]


def test_select_admissions_fills_free_slots_in_id_order() -> None:
    """select_admissions picks the lowest-id waiting tests."""
    tests = _tests(5)

    admission = select_admissions(tests, max_concurrency=2)

    assert admission.test_ids == [0, 1]


def test_select_admissions_accounts_for_running_tests() -> None:
    """Running tests consume slots."""
    tests = _tests(4)
    tests[0].state = "building"
    tests[0].running = True

    admission = select_admissions(tests, max_concurrency=2)

    assert admission.test_ids == [1]


def test_select_admissions_skips_resolved_tests() -> None:
    """Only waiting tests are admitted."""
    tests = _tests(3)
    tests[0].state = "compile_failure"
    tests[0].resolved = True

    admission = select_admissions(tests, max_concurrency=4)

    assert admission.test_ids == [1, 2]


def test_select_admissions_when_full() -> None:
    """No test is admitted without free capacity."""
    tests = _tests(3)
    for test in tests[:2]:
        test.state = "running"
        test.running = True

    admission = select_admissions(tests, max_concurrency=2)

    assert admission.test_ids == []


def test_select_admissions_does_not_mutate() -> None:
    """select_admissions only produces a message."""
    tests = _tests(2)

    select_admissions(tests, max_concurrency=2)

    assert all(test.state == "waiting" and not test.running for test in tests)
