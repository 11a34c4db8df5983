"""Classify a sandbox run against its golden transcript.

Checks are applied in a fixed order and the first match wins:
timeout, launch failure (or a side file that cannot be written), empty output,
unexpected exit code, stderr output, transcript mismatch (reported as
``unimplemented`` when the guest printed the missing-code marker), success.

The sandbox reports guest termination through the debug-exit device: exit
code 1 means the guest asked for a clean shutdown.
"""

import logging
from pathlib import Path

from pydantic import BaseModel, Field

from grunner.test_runner.models.process_result import ProcessResult
from grunner.test_runner.models.test_case import Verdict
from grunner.test_runner.output_filter import filter_transcript, is_unimplemented
from grunner.test_runner.process_runner import run_process

logger = logging.getLogger(__name__)

GOLDEN_SUFFIX = ".ok"
TEST_SUFFIXES = (".cc", ".dir")
CLEAN_EXIT_CODES = (0, 1)


class Classification(BaseModel):
    """Verdict of one run plus a human readable detail for failures."""

    verdict: Verdict
    detail: str | None = Field(default=None)


def golden_path_for(test_path: Path) -> Path:
    """Return the golden file for a test source (``t0.cc`` -> ``t0.ok``)."""
    if test_path.suffix in TEST_SUFFIXES:
        return test_path.with_suffix(GOLDEN_SUFFIX)
    return test_path.with_name(test_path.name + GOLDEN_SUFFIX)


async def classify(
    result: ProcessResult,
    *,
    golden_path: Path,
    transcript_path: Path,
    diff_path: Path,
    cwd: Path,
    diff_timeout: float = 10.0,
) -> Classification:
    """Turn a finished sandbox run into a verdict.

    Args:
        result: Outcome of the sandbox process
        golden_path: Reference transcript to compare against
        transcript_path: Where the filtered transcript (``.out``) is written
        diff_path: Where the diff (``.diff``) is written on mismatch
        cwd: Working directory for the diff tool
        diff_timeout: Deadline for the diff tool in seconds

    Returns:
        The classification; never raises for per-run failures

    """
    transcript = ""
    write_error = None
    if result.stdout:
        transcript = filter_transcript(result.stdout.decode(errors="replace"))
        try:
            transcript_path.write_text(transcript)
        except OSError as e:
            write_error = f"failed to write {transcript_path.name}: {e}"

    stderr = result.stderr_text()

    if result.outcome == "timeout":
        return Classification(verdict="timeout", detail="timed out")

    if result.outcome == "start_failure":
        return Classification(verdict="launch_failure", detail=result.error)

    if write_error is not None:
        return Classification(verdict="launch_failure", detail=write_error)

    if not result.stdout:
        return Classification(
            verdict="empty_output", detail=f"empty .raw file {stderr}".rstrip()
        )

    if result.returncode not in CLEAN_EXIT_CODES:
        return Classification(
            verdict="crash",
            detail=f"qemu failed with exit code {result.returncode}: {stderr}",
        )

    if stderr:
        return Classification(verdict="crash", detail=f"qemu stderr: {stderr}")

    diff = await run_process(
        "diff",
        ["-wBb", "--color=always", "-", str(golden_path)],
        cwd=cwd,
        timeout=diff_timeout,
        stdin=transcript.encode(),
    )
    if diff.ok:
        return Classification(verdict="success")

    if is_unimplemented(transcript):
        return Classification(verdict="unimplemented", detail="missing code")

    if diff.outcome == "completed" and diff.returncode == 1:
        return Classification(
            verdict="diff_mismatch",
            detail=_with_write_error("diff found", diff_path, diff.stdout),
        )

    # diff could not compare (missing golden, tool failure or timeout)
    reason = diff.error or diff.stderr_text() or f"diff {diff.outcome}"
    logger.debug(f"Comparison against {golden_path} failed: {reason}")
    return Classification(
        verdict="diff_mismatch",
        detail=_with_write_error(
            f"diff failed: {reason}", diff_path, diff.stdout + diff.stderr
        ),
    )


def _with_write_error(detail: str, diff_path: Path, content: bytes) -> str:
    """Write the diff file; a write error is appended to the failure detail."""
    try:
        diff_path.write_bytes(content)
    except OSError as e:
        logger.warning(f"Failed to write {diff_path}: {e}")
        return f"{detail}; failed to write {diff_path.name}: {e}"
    return detail
