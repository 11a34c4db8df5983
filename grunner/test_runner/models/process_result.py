"""Models for the outcome of an external process."""

from typing import Literal

from pydantic import BaseModel, Field

ProcessOutcome = Literal["completed", "timeout", "start_failure"]


class ProcessResult(BaseModel):
    """Result of running one external program under a deadline."""

    outcome: ProcessOutcome = Field(..., description="How the process ended")
    stdout: bytes = Field(default=b"", description="Captured standard output")
    stderr: bytes = Field(default=b"", description="Captured standard error")
    returncode: int | None = Field(
        default=None, description="Exit code, only set when the process completed"
    )
    error: str | None = Field(
        default=None, description="Launch error message for start failures"
    )
    duration: float = Field(default=0.0, description="Wall-clock time in seconds")

    @property
    def ok(self) -> bool:
        return self.outcome == "completed" and self.returncode == 0

    def stderr_text(self) -> str:
        return self.stderr.decode(errors="replace").strip()
