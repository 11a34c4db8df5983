"""Data models for test cases, configuration, process results and messages."""

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
from grunner.test_runner.models.process_result import ProcessResult
from grunner.test_runner.models.run_config import ProjectConfig, RunConfig
from grunner.test_runner.models.test_case import (
    Iteration,
    TestCase,
    TestState,
    Verdict,
)

__all__ = [
    "AdmitRequested",
    "AdmitTests",
    "BuildFailed",
    "BuildSucceeded",
    "CancelRequested",
    "DependenciesBuilt",
    "DependencyBuildFailed",
    "Iteration",
    "Message",
    "ProcessResult",
    "ProjectConfig",
    "RunCompleted",
    "RunConfig",
    "TestCase",
    "TestState",
    "Verdict",
]
