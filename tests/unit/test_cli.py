"""Tests for CLI entry point."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from grunner.test_runner.cli import app, build_run_config, describe, report
from grunner.test_runner.errors import DependencyBuildError
from grunner.test_runner.models.run_config import ProjectConfig
from grunner.test_runner.models.test_case import Iteration, TestCase

runner = CliRunner()


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create a project with a Makefile and two tests, and enter it."""
    (tmp_path / "Makefile").write_text("")
    (tmp_path / "t0.cc").write_text("")
    (tmp_path / "t1.cc").write_text("")
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _finished(name: str, state: str, passed: bool = True) -> TestCase:
    test = TestCase.create(0, name, Path(f"{name}.cc"), 1)
    test.state = state  # type: ignore[assignment]
    if state != "compile_failure":
        test.iterations = [Iteration(duration=0.5, passed=passed)]
    return test


def _mock_orchestrator(tests: list[TestCase], cancelled: bool = False) -> MagicMock:
    orchestrator = MagicMock()
    orchestrator.run = AsyncMock(return_value=tests)
    orchestrator.state.cancelled = cancelled
    return orchestrator


def _invoke(orchestrator: MagicMock, args: list[str]):  # type: ignore[no-untyped-def]
    with (
        patch(
            "grunner.test_runner.cli.TestOrchestrator", return_value=orchestrator
        ) as mock_cls,
        patch("grunner.test_runner.cli.default_concurrency", return_value=3),
    ):
        result = runner.invoke(app, args)
    return result, mock_cls


def test_main_all_passed(project: Path) -> None:
    """Main prints the summary and exits 0 when every test passes."""
    orchestrator = _mock_orchestrator(
        [_finished("t0", "success"), _finished("t1", "success")]
    )

    result, mock_cls = _invoke(orchestrator, [])

    assert result.exit_code == 0
    assert "2/2 test cases passed." in result.stdout
    config, test_files = mock_cls.call_args.args
    assert [f.name for f in test_files] == ["t0", "t1"]
    assert config.build_dir == project.resolve()
    assert config.max_concurrency == 3


def test_main_failure_exit_code(project: Path) -> None:
    """Main exits 1 when a test fails or does not compile."""
    orchestrator = _mock_orchestrator(
        [_finished("t0", "failure", passed=False), _finished("t1", "compile_failure")]
    )

    result, _ = _invoke(orchestrator, [])

    assert result.exit_code == 1
    assert "0/1 test cases passed." in result.stdout


def test_main_json_report(project: Path) -> None:
    """--json prints a machine readable report."""
    orchestrator = _mock_orchestrator(
        [_finished("t0", "success"), _finished("t1", "failure", passed=False)]
    )

    result, _ = _invoke(orchestrator, ["--json"])

    assert result.exit_code == 1
    output = json.loads(result.stdout)
    assert output["total"] == 2
    assert output["passed"] == 1
    assert output["failed"] == 1
    assert output["results"][0]["name"] == "t0"


def test_main_options_override_defaults(project: Path) -> None:
    """Command line options reach the run config."""
    orchestrator = _mock_orchestrator([_finished("t0", "success")])

    result, mock_cls = _invoke(
        orchestrator, ["t0", "-j", "2", "-n", "5", "--timeout", "3", "--early-exit"]
    )

    assert result.exit_code == 0
    config, test_files = mock_cls.call_args.args
    assert [f.name for f in test_files] == ["t0"]
    assert config.max_concurrency == 2
    assert config.iterations == 5
    assert config.run_timeout == 3.0
    assert config.early_exit is True


def test_main_no_tests(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Main exits 1 when no test files are found."""
    (tmp_path / "Makefile").write_text("")
    monkeypatch.chdir(tmp_path)

    result, mock_cls = _invoke(_mock_orchestrator([]), [])

    assert result.exit_code == 1
    mock_cls.assert_not_called()


def test_main_invalid_config(project: Path) -> None:
    """An invalid project config aborts before running."""
    (project / "grunner.yaml").write_text("iterations: [")

    result, mock_cls = _invoke(_mock_orchestrator([]), [])

    assert result.exit_code == 1
    mock_cls.assert_not_called()


def test_main_fatal_error(project: Path) -> None:
    """A fatal orchestrator error exits 1."""
    orchestrator = _mock_orchestrator([])
    orchestrator.run = AsyncMock(side_effect=DependencyBuildError("make error"))

    result, _ = _invoke(orchestrator, [])

    assert result.exit_code == 1


def test_main_cancelled(project: Path) -> None:
    """A cancelled run exits 130."""
    orchestrator = _mock_orchestrator([_finished("t0", "waiting")], cancelled=True)

    result, _ = _invoke(orchestrator, [])

    assert result.exit_code == 130


def test_build_run_config_project_settings(tmp_path: Path) -> None:
    """Project settings apply and skip the host concurrency probe."""
    project = ProjectConfig(max_concurrency=6, iterations=4, qemu_memory="256m")

    with patch("grunner.test_runner.cli.default_concurrency") as mock_default:
        config = build_run_config(
            tmp_path,
            project,
            jobs=None,
            iterations=None,
            timeout=None,
            time_cap=None,
            early_exit=False,
            verbose=True,
        )

    mock_default.assert_not_called()
    assert config.max_concurrency == 6
    assert config.iterations == 4
    assert config.qemu_memory == "256m"
    assert config.verbose is True


def test_build_run_config_options_win(tmp_path: Path) -> None:
    """Command line options override project settings."""
    project = ProjectConfig(max_concurrency=6, time_cap=30)

    config = build_run_config(
        tmp_path,
        project,
        jobs=1,
        iterations=None,
        timeout=None,
        time_cap=5,
        early_exit=True,
        verbose=False,
    )

    assert config.max_concurrency == 1
    assert config.time_cap == 5
    assert config.early_exit is True


def test_describe() -> None:
    """describe renders one line per final state."""
    passed = _finished("t0", "success")
    failed = _finished("t1", "failure", passed=False)
    failed.last_verdict = "diff_mismatch"
    failed.last_error = "diff found"
    broken = _finished("t2", "compile_failure")
    broken.last_error = "compile error: oops"

    assert describe(passed, verbose=False) == "✓ t0 passed! [0.500s]"
    assert describe(failed, verbose=False) == "✗ t1 failed! [0.500s] diff_mismatch"
    assert describe(failed, verbose=True) == "✗ t1 failed! [0.500s] diff found"
    assert describe(broken, verbose=False) == "- t2 did not compile."
    assert describe(broken, verbose=True).endswith("compile error: oops")


def test_describe_multiple_iterations() -> None:
    """describe shows the pass ratio when iterating."""
    test = _finished("t0", "failure")
    test.iterations = [
        Iteration(duration=1.0, passed=True),
        Iteration(duration=2.0, passed=False),
    ]

    assert describe(test, verbose=False).startswith("✗ t0 failed! (1/2) [1.500s]")


def test_report_counts() -> None:
    """report totals each final state."""
    tests = [
        _finished("t0", "success"),
        _finished("t1", "failure", passed=False),
        _finished("t2", "compile_failure"),
    ]

    output = report(tests)

    assert output["total"] == 3
    assert output["passed"] == 1
    assert output["failed"] == 1
    assert output["compile_failures"] == 1


def test_build_run_config_jobs_skips_host_probe(tmp_path: Path) -> None:
    """--jobs is used as-is without inspecting logged-in users."""
    with patch("grunner.test_runner.cli.default_concurrency") as mock_default:
        config = build_run_config(
            tmp_path,
            ProjectConfig(),
            jobs=2,
            iterations=None,
            timeout=None,
            time_cap=None,
            early_exit=False,
            verbose=False,
        )

    mock_default.assert_not_called()
    assert config.max_concurrency == 2


def test_build_run_config_probes_host_without_settings(tmp_path: Path) -> None:
    """Without --jobs or a project setting the host decides concurrency."""
    with patch(
        "grunner.test_runner.cli.default_concurrency", return_value=5
    ) as mock_default:
        config = build_run_config(
            tmp_path,
            ProjectConfig(),
            jobs=None,
            iterations=None,
            timeout=None,
            time_cap=None,
            early_exit=False,
            verbose=False,
        )

    mock_default.assert_called_once()
    assert config.max_concurrency == 5
