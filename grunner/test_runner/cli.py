"""CLI entry point for the emulator test harness."""

import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

import typer

from grunner.test_runner.config_loader import find_project_config, load_project_config
from grunner.test_runner.discovery import find_makefile, find_test_files
from grunner.test_runner.errors import FatalRunError
from grunner.test_runner.host import default_concurrency
from grunner.test_runner.models.run_config import ProjectConfig, RunConfig
from grunner.test_runner.models.test_case import TestCase
from grunner.test_runner.orchestrator import TestOrchestrator

# Configure logging - force reconfiguration
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
    force=True,
)
logger = logging.getLogger(__name__)

app = typer.Typer()


def build_run_config(
    build_dir: Path,
    project: ProjectConfig,
    *,
    jobs: int | None,
    iterations: int | None,
    timeout: float | None,
    time_cap: float | None,
    early_exit: bool,
    verbose: bool,
) -> RunConfig:
    """Merge defaults, project settings and command line options."""
    config = RunConfig(build_dir=build_dir).with_project(project)

    overrides: dict[str, object] = {"verbose": verbose}
    if jobs is not None:
        overrides["max_concurrency"] = jobs
    elif project.max_concurrency is None:
        overrides["max_concurrency"] = default_concurrency()
    if iterations is not None:
        overrides["iterations"] = iterations
    if timeout is not None:
        overrides["run_timeout"] = timeout
    if time_cap is not None:
        overrides["time_cap"] = time_cap
    if early_exit:
        overrides["early_exit"] = True

    return RunConfig.model_validate({**config.model_dump(), **overrides})


def describe(test: TestCase, verbose: bool) -> str:
    """One summary line for a test."""
    if test.state == "compile_failure":
        line = f"- {test.name} did not compile."
        return f"{line} {test.last_error}" if verbose else line

    if test.state == "success":
        line = f"✓ {test.name} passed!"
    elif test.state == "failure":
        line = f"✗ {test.name} failed!"
    else:
        line = f"• {test.name} {test.state}"

    if len(test.iterations) > 1:
        line += f" ({test.count_passed()}/{len(test.iterations)})"
    if test.iterations:
        line += f" [{test.average_time():.3f}s]"
    if test.state == "failure" and test.last_error:
        line += f" {test.last_error}" if verbose else f" {test.last_verdict}"
    return line


def report(tests: list[TestCase]) -> dict[str, object]:
    """JSON-serializable report of a finished run."""
    return {
        "total": len(tests),
        "passed": sum(1 for t in tests if t.state == "success"),
        "failed": sum(1 for t in tests if t.state == "failure"),
        "compile_failures": sum(1 for t in tests if t.state == "compile_failure"),
        "results": [
            {
                "name": t.name,
                "state": t.state,
                "iterations": len(t.iterations),
                "passed_iterations": t.count_passed(),
                "average_time": t.average_time(),
                "total_time": t.time_elapsed(),
                "last_verdict": t.last_verdict,
                "message": t.last_error,
            }
            for t in tests
        ],
    }


async def run_until_done(orchestrator: TestOrchestrator) -> list[TestCase]:
    """Run the orchestrator, turning SIGTERM into a cancellation request."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, orchestrator.request_cancel)
    except (NotImplementedError, RuntimeError):  # pragma: no cover
        logger.debug("SIGTERM handler not supported on this platform")
    return await orchestrator.run()


@app.command()
def main(  # noqa: C901
    paths: Optional[List[str]] = typer.Argument(  # noqa: B008
        None, help="Test directories, files or names (default: current directory)"
    ),
    jobs: Optional[int] = typer.Option(
        None, "--jobs", "-j", min=1, help="Maximum tests building or running at once"
    ),
    iterations: Optional[int] = typer.Option(
        None, "--iterations", "-n", min=1, help="Measured runs per test"
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Deadline for one run in seconds"
    ),
    time_cap: Optional[float] = typer.Option(
        None, "--time-cap", help="Stop iterating a test after this many seconds"
    ),
    early_exit: bool = typer.Option(
        False, "--early-exit", help="Stop iterating a test after its first failure"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show failure details inline"
    ),
    config_file: Optional[Path] = typer.Option(  # noqa: B008
        None, "--config", help="YAML settings file (default: grunner.yaml)"
    ),
    json_output: bool = typer.Option(False, "--json", help="Print a JSON report"),
) -> None:
    """Build and run emulator tests in parallel."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        test_files = find_test_files(paths or ["."])
        build_dir = find_makefile(Path.cwd()).parent
        if config_file is not None:
            project = load_project_config(config_file)
        else:
            project = find_project_config(build_dir)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Failed to prepare run: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    if not test_files:
        typer.echo("Error: no test files found", err=True)
        raise typer.Exit(code=1)

    config = build_run_config(
        build_dir,
        project,
        jobs=jobs,
        iterations=iterations,
        timeout=timeout,
        time_cap=time_cap,
        early_exit=early_exit,
        verbose=verbose,
    )
    logger.info(f"Using makefile at: {build_dir}")
    logger.info(f"Found {len(test_files)} test files")

    orchestrator = TestOrchestrator(config, test_files)

    try:
        tests = asyncio.run(run_until_done(orchestrator))
    except KeyboardInterrupt:
        typer.echo("Terminated.", err=True)
        raise typer.Exit(code=130)
    except FatalRunError as e:
        logger.error(f"Test run aborted: {type(e).__name__}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    for test in tests:
        line = describe(test, config.verbose)
        if test.state == "success":
            logger.info(line)
        else:
            logger.error(line)

    passed = sum(1 for t in tests if t.state == "success")
    compiled = sum(1 for t in tests if t.state != "compile_failure")
    if json_output:
        typer.echo(json.dumps(report(tests), indent=2))
    else:
        typer.echo(f"{passed}/{compiled} test cases passed.")

    if orchestrator.state.cancelled:
        typer.echo("Terminated.", err=True)
        raise typer.Exit(code=130)

    if passed < len(tests):
        raise typer.Exit(code=1)


if __name__ == "__main__":  # pragma: no cover
    app()
