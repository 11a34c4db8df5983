"""Build and run operations executed as independent tasks.

Each coroutine receives immutable inputs, drives one external program and
returns exactly one completion message for the orchestrator.
"""

import logging
from pathlib import Path

from grunner.test_runner.classifier import classify, golden_path_for
from grunner.test_runner.models.messages import (
    BuildFailed,
    BuildSucceeded,
    DependenciesBuilt,
    DependencyBuildFailed,
    RunCompleted,
)
from grunner.test_runner.models.process_result import ProcessResult
from grunner.test_runner.models.run_config import RunConfig
from grunner.test_runner.models.test_case import TestCase
from grunner.test_runner.process_runner import run_process

logger = logging.getLogger(__name__)

BUILD_TOOL = "make"
DEPENDENCY_DIR = "kernel"
DEBUG_EXIT_DEVICE = "isa-debug-exit,iobase=0xf4,iosize=0x04"


def raw_path(config: RunConfig, name: str) -> Path:
    return config.artifacts_dir / f"{name}.raw"


def transcript_path(config: RunConfig, name: str) -> Path:
    return config.artifacts_dir / f"{name}.out"


def diff_path(config: RunConfig, name: str) -> Path:
    return config.artifacts_dir / f"{name}.diff"


def _failure_output(result: ProcessResult) -> str:
    if result.outcome == "start_failure":
        return result.error or "failed to start"
    if result.outcome == "timeout":
        return "timed out"
    output = result.stderr_text()
    status = f"exit status {result.returncode}"
    return f"{status}\n{output}" if output else status


async def build_dependencies(
    config: RunConfig,
) -> DependenciesBuilt | DependencyBuildFailed:
    """Build the shared dependencies once before any test is scheduled."""
    logger.info(f"Building dependencies in {config.build_dir / DEPENDENCY_DIR}")
    result = await run_process(
        BUILD_TOOL,
        ["-C", DEPENDENCY_DIR],
        cwd=config.build_dir,
        timeout=config.dependency_build_timeout,
    )
    if result.ok:
        return DependenciesBuilt()
    return DependencyBuildFailed(
        error=(
            f"make error: {_failure_output(result)}\n\n"
            f"(Using makefile at: {config.build_dir})"
        )
    )


def references_data_artifact(build_dir: Path) -> bool:
    """Return True when the Makefile builds a secondary ``.data`` artifact."""
    makefile = build_dir / "Makefile"
    try:
        return b".data" in makefile.read_bytes()
    except OSError:
        return False


def build_targets(config: RunConfig, name: str) -> list[str]:
    if references_data_artifact(config.build_dir):
        return [name, f"{name}.data"]
    return [name]


async def build_test(config: RunConfig, test: TestCase) -> BuildSucceeded | BuildFailed:
    """Build one test's runnable artifact."""
    # a rebuilding test must never show the previous attempt's diff
    diff_path(config, test.name).unlink(missing_ok=True)

    result = await run_process(
        BUILD_TOOL,
        build_targets(config, test.name),
        cwd=config.build_dir,
        timeout=config.build_timeout,
    )
    if result.ok:
        logger.debug(f"Built {test.name}")
        return BuildSucceeded(test_id=test.id)

    logger.debug(f"Build of {test.name} failed")
    return BuildFailed(
        test_id=test.id, error=f"compile error: {_failure_output(result)}"
    )


def image_path(config: RunConfig, name: str) -> Path:
    """Shared kernel image if the project builds one, else the per-test image."""
    shared = config.build_dir / "kernel" / "build" / "kernel.img"
    if shared.exists():
        return shared
    return config.build_dir / "kernel" / "build" / f"{name}.img"


def qemu_args(config: RunConfig, name: str) -> list[str]:
    """Command line for running one test inside the emulator."""
    args = [
        "-accel",
        "tcg,thread=multi",
        "-cpu",
        "max",
        "-smp",
        config.qemu_cores,
        "-m",
        config.qemu_memory,
        "-no-reboot",
        "-nographic",
        "--monitor",
        "none",
        "-drive",
        f"file={image_path(config, name)},index=0,media=disk,format=raw,"
        "file.locking=off",
        "-device",
        DEBUG_EXIT_DEVICE,
    ]
    if config.verbose:
        args += ["-d", "guest_errors"]

    data_file = config.build_dir / f"{name}.data"
    if data_file.exists():
        args += [
            "-drive",
            f"file={data_file},index=1,media=disk,format=raw,file.locking=off",
        ]
    return args


async def run_test(config: RunConfig, test: TestCase, iteration: int) -> RunCompleted:
    """Run one iteration of a built test and classify its output."""
    logger.debug(f"Running {test.name} iteration {iteration}")
    capture_path = raw_path(config, test.name)
    try:
        result = await run_process(
            config.qemu_path,
            qemu_args(config, test.name),
            cwd=config.build_dir,
            timeout=config.run_timeout,
            capture_path=capture_path,
        )
    except OSError as e:
        logger.warning(f"Failed to write {capture_path}: {e}")
        return RunCompleted(
            test_id=test.id,
            iteration=iteration,
            verdict="launch_failure",
            detail=f"failed to write {capture_path.name}: {e}",
        )
    classification = await classify(
        result,
        golden_path=golden_path_for(test.file_path),
        transcript_path=transcript_path(config, test.name),
        diff_path=diff_path(config, test.name),
        cwd=config.build_dir,
        diff_timeout=config.diff_timeout,
    )
    return RunCompleted(
        test_id=test.id,
        iteration=iteration,
        verdict=classification.verdict,
        detail=classification.detail,
        duration=result.duration,
    )
