"""Tests for project config loading."""

from pathlib import Path

import pytest

from grunner.test_runner.config_loader import find_project_config, load_project_config


def test_load_project_config_valid(tmp_path: Path) -> None:
    """load_project_config parses a valid YAML file."""
    config_file = tmp_path / "grunner.yaml"
    config_file.write_text(
        """
max_concurrency: 4
iterations: 5
run_timeout: 30
time_cap: 60
early_exit: true
qemu_memory: 256m
"""
    )

    project = load_project_config(config_file)

    assert project.max_concurrency == 4
    assert project.iterations == 5
    assert project.run_timeout == 30.0
    assert project.time_cap == 60.0
    assert project.early_exit is True
    assert project.qemu_memory == "256m"
    assert project.qemu_path is None


def test_load_project_config_file_not_found(tmp_path: Path) -> None:
    """load_project_config raises FileNotFoundError for a missing file."""
    with pytest.raises(FileNotFoundError, match="Config file not found"):
        load_project_config(tmp_path / "missing.yaml")


def test_load_project_config_invalid_yaml(tmp_path: Path) -> None:
    """load_project_config raises ValueError for invalid YAML."""
    config_file = tmp_path / "grunner.yaml"
    config_file.write_text("invalid: yaml: content: [")

    with pytest.raises(ValueError, match="Invalid YAML"):
        load_project_config(config_file)


def test_load_project_config_invalid_schema(tmp_path: Path) -> None:
    """load_project_config raises ValueError for out-of-range values."""
    config_file = tmp_path / "grunner.yaml"
    config_file.write_text("iterations: 0\n")

    with pytest.raises(ValueError, match="Invalid config schema"):
        load_project_config(config_file)


def test_load_project_config_empty_file(tmp_path: Path) -> None:
    """An empty file means no project settings."""
    config_file = tmp_path / "grunner.yaml"
    config_file.write_text("")

    project = load_project_config(config_file)

    assert project.model_dump(exclude_none=True) == {}


def test_find_project_config_absent(tmp_path: Path) -> None:
    """find_project_config falls back to defaults without a file."""
    project = find_project_config(tmp_path)

    assert project.iterations is None


def test_find_project_config_next_to_makefile(tmp_path: Path) -> None:
    """find_project_config loads grunner.yaml from the build directory."""
    (tmp_path / "grunner.yaml").write_text("iterations: 3\n")

    assert find_project_config(tmp_path).iterations == 3
