"""Test orchestrator coordinating builds and runs under a concurrency limit."""

import asyncio
import logging
from collections.abc import Awaitable, Sequence

from pydantic import BaseModel, Field

from grunner.test_runner import lifecycle
from grunner.test_runner.discovery import TestFile
from grunner.test_runner.errors import (
    DependencyBuildError,
    FatalRunError,
    InvariantViolationError,
)
from grunner.test_runner.executors import build_dependencies, build_test, run_test
from grunner.test_runner.models.messages import (
    AdmitRequested,
    AdmitTests,
    BuildFailed,
    BuildSucceeded,
    CancelRequested,
    DependenciesBuilt,
    DependencyBuildFailed,
    Message,
    RunCompleted,
)
from grunner.test_runner.models.run_config import RunConfig
from grunner.test_runner.models.test_case import TestCase
from grunner.test_runner.scheduler import select_admissions

logger = logging.getLogger(__name__)


class RunState(BaseModel):
    """Mutable state of one harness run, owned by the orchestrator."""

    tests: list[TestCase] = Field(default_factory=list)
    cancelled: bool = Field(default=False)
    dependencies_built: bool = Field(default=False)

    @property
    def running_count(self) -> int:
        return sum(1 for test in self.tests if test.running)

    @property
    def all_resolved(self) -> bool:
        return all(test.resolved for test in self.tests)


class TestOrchestrator:
    """Single-writer controller for a harness run.

    Build and run operations execute as independent asyncio tasks that only
    compute a completion message. Messages are applied one at a time by
    ``run``, which is the only code that mutates test state.
    """

    __test__ = False

    def __init__(self, config: RunConfig, test_files: Sequence[TestFile]) -> None:
        """Initialize orchestrator with the run configuration and test files."""
        self.config = config
        self.state = RunState(
            tests=[
                TestCase.create(index, file.name, file.path, config.iterations)
                for index, file in enumerate(test_files)
            ]
        )
        self._queue: asyncio.Queue[Message] = asyncio.Queue()
        self._tasks: set[asyncio.Task[Message]] = set()
        self._failure: BaseException | None = None

    @property
    def tests(self) -> list[TestCase]:
        return self.state.tests

    def request_cancel(self) -> None:
        """Ask the loop to stop; in-flight operations are cancelled."""
        self._queue.put_nowait(CancelRequested())

    async def run(self) -> list[TestCase]:
        """Build dependencies, then build and run every test.

        Returns:
            The test collection in its final state

        Raises:
            DependencyBuildError: If the shared dependency build fails
            InvariantViolationError: If a lifecycle invariant is broken

        """
        self.config.artifacts_dir.mkdir(parents=True, exist_ok=True)

        logger.info("Orchestrator: Building dependencies...")
        self._spawn(build_dependencies(self.config))
        try:
            while not self.state.cancelled and not (
                self.state.dependencies_built and self.state.all_resolved
            ):
                message = await self._queue.get()
                if self._failure is not None:
                    raise FatalRunError(
                        f"operation failed: {self._failure}"
                    ) from self._failure
                self._handle(message)
        finally:
            await self._cancel_in_flight()

        if self.state.cancelled:
            logger.warning("Run cancelled by user")
        else:
            logger.info("Test execution completed")
        return self.tests

    def _handle(self, message: Message) -> None:
        if isinstance(message, DependenciesBuilt):
            self.state.dependencies_built = True
            if self.tests:
                logger.info(
                    f"Running {len(self.tests)} tests, "
                    f"{self.config.max_concurrency} at a time, "
                    f"{self.config.iterations} iteration(s) each"
                )
                self._queue.put_nowait(AdmitRequested())
        elif isinstance(message, DependencyBuildFailed):
            raise DependencyBuildError(message.error)
        elif isinstance(message, AdmitRequested):
            self._admit(select_admissions(self.tests, self.config.max_concurrency))
        elif isinstance(message, BuildSucceeded):
            test = self.tests[message.test_id]
            lifecycle.build_succeeded(test)
            self._spawn(run_test(self.config, test.model_copy(deep=True), 0))
        elif isinstance(message, BuildFailed):
            test = self.tests[message.test_id]
            logger.info(f"Test {test.name} did not compile: {message.error}")
            lifecycle.build_failed(test, message.error)
            self._queue.put_nowait(AdmitRequested())
        elif isinstance(message, RunCompleted):
            self._record_run(message)
        elif isinstance(message, CancelRequested):
            self.state.cancelled = True
        else:
            raise InvariantViolationError(f"unexpected message: {message!r}")

    def _admit(self, admission: AdmitTests) -> None:
        for test_id in admission.test_ids:
            test = self.tests[test_id]
            if test.state != "waiting":
                continue
            if self.state.running_count >= self.config.max_concurrency:
                break
            lifecycle.admit(test)
            logger.debug(f"Admitted {test.name}")
            self._spawn(build_test(self.config, test.model_copy(deep=True)))

    def _record_run(self, message: RunCompleted) -> None:
        test = self.tests[message.test_id]
        if not message.passed:
            logger.debug(
                f"Test {test.name} iteration {message.iteration} failed: "
                f"{message.verdict} ({message.detail})"
            )
        if lifecycle.record_run(test, self.config, message):
            self._spawn(
                run_test(
                    self.config, test.model_copy(deep=True), test.current_iteration
                )
            )
        else:
            self._queue.put_nowait(AdmitRequested())

    def _spawn(self, operation: Awaitable[Message]) -> None:
        task: asyncio.Task[Message] = asyncio.ensure_future(operation)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: "asyncio.Task[Message]") -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Operation failed: {type(error).__name__}: {error}", exc_info=error
            )
            self._failure = error
            # wake the loop so the failure is raised
            self._queue.put_nowait(AdmitRequested())
            return
        self._queue.put_nowait(task.result())

    async def _cancel_in_flight(self) -> None:
        if not self._tasks:
            return
        logger.debug(f"Cancelling {len(self._tasks)} in-flight operations")
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
