"""Per-test lifecycle state machine and iteration continuation policy.

All functions mutate the given ``TestCase`` in place and must only be called
by the orchestrator, which is the single writer of test state.
"""

import logging
import time
from datetime import datetime, timezone

from grunner.test_runner.errors import InvariantViolationError
from grunner.test_runner.models.messages import RunCompleted
from grunner.test_runner.models.run_config import RunConfig
from grunner.test_runner.models.test_case import TestCase, TestState

logger = logging.getLogger(__name__)

TRANSITIONS: dict[TestState, frozenset[TestState]] = {
    "waiting": frozenset({"building"}),
    "building": frozenset({"compile_failure", "running"}),
    "running": frozenset({"running", "success", "failure"}),
    "compile_failure": frozenset(),
    "success": frozenset(),
    "failure": frozenset(),
}


def _transition(test: TestCase, target: TestState) -> None:
    if test.resolved:
        raise InvariantViolationError(
            f"tried moving already resolved test {test.name} to {target}"
        )
    if target not in TRANSITIONS[test.state]:
        raise InvariantViolationError(
            f"illegal transition for test {test.name}: {test.state} -> {target}"
        )
    logger.debug(f"Test {test.name}: {test.state} -> {target}")
    test.state = target


def admit(test: TestCase) -> None:
    """Waiting -> Building; the test now holds a concurrency slot."""
    _transition(test, "building")
    if test.running:
        raise InvariantViolationError(f"test {test.name} admitted while running")
    test.running = True


def build_failed(test: TestCase, error: str) -> None:
    """Building -> CompileFailure. Terminal, never retried."""
    _transition(test, "compile_failure")
    test.last_error = error
    _resolve(test, executed=0)


def build_succeeded(test: TestCase) -> None:
    """Building -> Running; iteration 0 starts and the stopwatch runs."""
    _transition(test, "running")
    test.current_iteration = 0
    test.iterations[0].start_time = datetime.now(timezone.utc)
    test.started_at = time.monotonic()


def should_stop(test: TestCase, config: RunConfig, passed: bool) -> bool:
    """Continuation policy evaluated after every run verdict."""
    if config.early_exit and not passed:
        return True
    if test.current_iteration >= config.iterations - 1:
        return True
    if config.has_time_cap and test.time_elapsed() > (config.time_cap or 0):
        return True
    return False


def record_run(test: TestCase, config: RunConfig, message: RunCompleted) -> bool:
    """Record a run verdict and advance or resolve the test.

    Returns:
        True when another iteration should be launched, False when the test
        has been resolved

    Raises:
        InvariantViolationError: If the test is resolved, not running, or the
            message is for another iteration

    """
    if test.resolved:
        raise InvariantViolationError(
            f"tried running an already resolved test {test.name}"
        )
    if test.state != "running":
        raise InvariantViolationError(
            f"run result for test {test.name} in state {test.state}"
        )
    if message.iteration != test.current_iteration:
        raise InvariantViolationError(
            f"run result for iteration {message.iteration} of test {test.name} "
            f"while iteration {test.current_iteration} is current"
        )

    iteration = test.iterations[test.current_iteration]
    iteration.passed = message.passed
    iteration.duration = message.duration
    iteration.verdict = message.verdict
    test.last_verdict = message.verdict
    if not message.passed:
        test.last_error = message.detail or message.verdict

    if should_stop(test, config, message.passed):
        executed = test.current_iteration + 1
        failed = any(not it.passed for it in test.iterations[:executed])
        _transition(test, "failure" if failed else "success")
        _resolve(test, executed=executed)
        return False

    _transition(test, "running")
    test.current_iteration += 1
    test.iterations[test.current_iteration].start_time = datetime.now(timezone.utc)
    return True


def _resolve(test: TestCase, executed: int) -> None:
    del test.iterations[executed:]
    test.running = False
    test.resolved = True
    if test.started_at is not None:
        test.finished_at = time.monotonic()
    logger.info(f"Test {test.name} resolved: {test.state}")
