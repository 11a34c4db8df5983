"""Configuration models for a harness run."""

import os
from pathlib import Path

from pydantic import BaseModel, Field, model_validator

DEFAULT_QEMU_CORES = "4"
DEFAULT_QEMU_PATH = "qemu-system-i386"


def _qemu_cores_from_env() -> str:
    return os.environ.get("QEMU_SMP", DEFAULT_QEMU_CORES)


def _qemu_path_from_env() -> str:
    return os.environ.get("GRUNNER_QEMU", DEFAULT_QEMU_PATH)


class ProjectConfig(BaseModel):
    """Per-project defaults loaded from ``grunner.yaml``.

    Every field is optional; unset fields fall back to the ``RunConfig``
    defaults and command line options override both.
    """

    max_concurrency: int | None = Field(default=None, ge=1)
    iterations: int | None = Field(default=None, ge=1)
    run_timeout: float | None = Field(default=None, gt=0)
    time_cap: float | None = Field(default=None, ge=0)
    early_exit: bool | None = None
    qemu_path: str | None = None
    qemu_memory: str | None = None
    output_dir: Path | None = None


class RunConfig(BaseModel):
    """Global configuration consumed by the orchestrator."""

    build_dir: Path = Field(..., description="Directory holding the Makefile")
    output_dir: Path | None = Field(
        default=None,
        description="Directory for .raw/.out/.diff files (defaults to build_dir)",
    )
    max_concurrency: int = Field(
        default=1, ge=1, description="Maximum number of tests building or running"
    )
    iterations: int = Field(default=1, ge=1, description="Measured runs per test")
    run_timeout: float = Field(
        default=10.0, gt=0, description="Deadline for one run in seconds"
    )
    time_cap: float | None = Field(
        default=None,
        ge=0,
        description="Cumulative run time per test after which iteration stops",
    )
    early_exit: bool = Field(
        default=False, description="Stop iterating a test after its first failure"
    )
    verbose: bool = Field(default=False, description="Show failure details inline")
    dependency_build_timeout: float = Field(
        default=10.0, gt=0, description="Deadline for the shared dependency build"
    )
    build_timeout: float = Field(
        default=10.0, gt=0, description="Deadline for one test build"
    )
    diff_timeout: float = Field(
        default=10.0, gt=0, description="Deadline for comparing against the golden"
    )
    qemu_path: str = Field(
        default_factory=_qemu_path_from_env, description="Emulator binary"
    )
    qemu_cores: str = Field(
        default_factory=_qemu_cores_from_env, description="Simulated core count"
    )
    qemu_memory: str = Field(default="128m", description="Simulated memory size")

    @model_validator(mode="after")
    def _default_output_dir(self) -> "RunConfig":
        if self.output_dir is None:
            self.output_dir = self.build_dir
        return self

    @property
    def artifacts_dir(self) -> Path:
        """Directory receiving the per-test side files."""
        return self.output_dir if self.output_dir is not None else self.build_dir

    @property
    def has_time_cap(self) -> bool:
        return self.time_cap is not None and self.time_cap > 0

    def with_project(self, project: ProjectConfig) -> "RunConfig":
        """Return a copy with the project's explicit settings applied."""
        overrides = project.model_dump(exclude_none=True)
        return self.model_validate({**self.model_dump(), **overrides})
