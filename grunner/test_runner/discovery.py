"""Locate test sources and the build descriptor on disk."""

import logging
import re
from collections.abc import Sequence
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

TEST_EXT_RE = re.compile(r"\.(cc|dir)$")


class TestFile(BaseModel):
    """A discovered test source."""

    __test__ = False

    name: str = Field(..., description="Test name without extension")
    path: Path = Field(..., description="Path to the .cc file or .dir directory")


def _trim_test_ext(name: str) -> str:
    return TEST_EXT_RE.sub("", name)


def find_test_files(args: Sequence[str]) -> list[TestFile]:
    """Return unique test files found from directories or file arguments.

    A directory (that is not itself a ``.dir`` test) is searched for test
    entries. A path with an extension is taken as-is if it exists. A bare
    name such as ``tests/t0`` is completed by searching its parent directory
    for matching test entries.

    Args:
        args: Directories, test files or bare test names

    Returns:
        Test files sorted by name

    """
    unique: dict[str, Path] = {}

    for raw in args:
        arg = raw.strip()
        path = Path(arg).absolute()

        if path.is_dir() and not TEST_EXT_RE.search(path.name):
            for entry in path.iterdir():
                if TEST_EXT_RE.search(entry.name):
                    unique[_trim_test_ext(entry.name)] = entry
        elif "." in path.name:
            if path.exists():
                unique[_trim_test_ext(path.name)] = path
            else:
                logger.warning(f"Test file not found: {arg}")
        else:
            parent = path.parent
            if not parent.is_dir():
                logger.warning(f"Test directory not found: {parent}")
                continue
            for entry in parent.iterdir():
                if entry.name.startswith(path.name) and TEST_EXT_RE.search(
                    entry.name
                ):
                    unique[_trim_test_ext(entry.name)] = entry

    return [TestFile(name=name, path=unique[name]) for name in sorted(unique)]


def find_makefile(directory: Path) -> Path:
    """Find the closest Makefile in ``directory`` or any of its parents.

    Raises:
        FileNotFoundError: If no Makefile exists up to the filesystem root

    """
    current = directory.resolve()
    while True:
        candidate = current / "Makefile"
        if candidate.is_file():
            return candidate
        if current.parent == current:
            raise FileNotFoundError(f"Makefile not found from {directory}")
        current = current.parent
