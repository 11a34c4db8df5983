"""Completion messages consumed by the orchestration loop.

Build and run tasks never touch the test collection. Each one returns exactly
one of these messages and the orchestrator applies it.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, Field

from grunner.test_runner.models.test_case import Verdict


class DependenciesBuilt(BaseModel):
    """The shared dependency build succeeded."""

    kind: Literal["dependencies_built"] = "dependencies_built"


class DependencyBuildFailed(BaseModel):
    """The shared dependency build failed; the run cannot continue."""

    kind: Literal["dependency_build_failed"] = "dependency_build_failed"
    error: str = Field(..., description="Build tool failure detail")


class AdmitRequested(BaseModel):
    """Ask the orchestrator to fill free slots with waiting tests."""

    kind: Literal["admit_requested"] = "admit_requested"


class AdmitTests(BaseModel):
    """Tests selected by the scheduler for admission, in id order.

    Returned by the scheduler and applied in the same step; never queued.
    """

    kind: Literal["admit_tests"] = "admit_tests"
    test_ids: list[int] = Field(default_factory=list)


class BuildSucceeded(BaseModel):
    kind: Literal["build_succeeded"] = "build_succeeded"
    test_id: int


class BuildFailed(BaseModel):
    kind: Literal["build_failed"] = "build_failed"
    test_id: int
    error: str = Field(..., description="Compile failure detail")


class RunCompleted(BaseModel):
    """Classified outcome of one run of one test."""

    kind: Literal["run_completed"] = "run_completed"
    test_id: int
    iteration: int = Field(..., description="Iteration index the run belongs to")
    verdict: Verdict
    detail: str | None = Field(default=None, description="Failure detail")
    duration: float = Field(default=0.0, description="Run time in seconds")

    @property
    def passed(self) -> bool:
        return self.verdict == "success"


class CancelRequested(BaseModel):
    """The user asked to abort the run."""

    kind: Literal["cancel_requested"] = "cancel_requested"


Message = Annotated[
    DependenciesBuilt
    | DependencyBuildFailed
    | AdmitRequested
    | BuildSucceeded
    | BuildFailed
    | RunCompleted
    | CancelRequested,
    Field(discriminator="kind"),
]
