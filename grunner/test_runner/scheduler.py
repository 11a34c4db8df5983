"""Select waiting tests to admit under the concurrency budget."""

from collections.abc import Sequence

from grunner.test_runner.models.messages import AdmitTests
from grunner.test_runner.models.test_case import TestCase


def select_admissions(tests: Sequence[TestCase], max_concurrency: int) -> AdmitTests:
    """Pick the lowest-id waiting tests that fit in the free slots.

    Args:
        tests: The full test collection, indexed by id
        max_concurrency: Maximum number of tests allowed to be running

    Returns:
        Admission message; the caller applies it, this function never mutates

    """
    available = max_concurrency - sum(1 for test in tests if test.running)
    selected: list[int] = []
    for test in sorted(tests, key=lambda t: t.id):
        if available <= 0:
            break
        if test.state == "waiting":
            selected.append(test.id)
            available -= 1
    return AdmitTests(test_ids=selected)
