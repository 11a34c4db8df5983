"""Load per-project harness settings from YAML files."""

from pathlib import Path

import yaml

from grunner.test_runner.models.run_config import ProjectConfig

PROJECT_CONFIG_NAME = "grunner.yaml"


def load_project_config(config_file: Path) -> ProjectConfig:
    """Load project settings from a YAML file.

    Args:
        config_file: Path to the YAML file

    Returns:
        Parsed project settings

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If YAML is invalid or doesn't match schema

    """
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_file}")

    try:
        with config_file.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_file}: {e}") from e

    if data is None:
        return ProjectConfig()

    try:
        return ProjectConfig.model_validate(data)
    except Exception as e:
        raise ValueError(f"Invalid config schema in {config_file}: {e}") from e


def find_project_config(build_dir: Path) -> ProjectConfig:
    """Load ``grunner.yaml`` next to the Makefile, or defaults if absent."""
    config_file = build_dir / PROJECT_CONFIG_NAME
    if not config_file.exists():
        return ProjectConfig()
    return load_project_config(config_file)
