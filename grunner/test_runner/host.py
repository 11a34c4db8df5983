"""Host inspection used to pick a default concurrency level."""

import logging
import os
import subprocess

logger = logging.getLogger(__name__)


def _run(args: list[str]) -> str:
    try:
        result = subprocess.run(
            args,
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as e:
        raise RuntimeError(f"Failed to run '{' '.join(args)}': {e}") from e
    return result.stdout


def parse_who(output: str) -> set[str]:
    """Users with a tty or pts session in ``who`` output."""
    users = set()
    for line in output.splitlines():
        fields = line.split()
        if len(fields) >= 2 and fields[1].startswith(("tty", "pts")):
            users.add(fields[0])
    return users


def parse_ps_sshd(output: str) -> set[str]:
    """Users owning an ``sshd:`` process in ``ps aux`` output."""
    users = set()
    for line in output.splitlines():
        if "sshd:" in line:
            fields = line.split()
            if fields:
                users.add(fields[0])
    return users


def count_other_users() -> int:
    """Count other users logged into this machine (tty, pts or ssh).

    Raises:
        RuntimeError: If ``who`` or ``ps`` cannot be run

    """
    active = parse_who(_run(["who"])) | parse_ps_sshd(_run(["ps", "aux"]))
    active.discard("root")
    active.discard(os.environ.get("USER", ""))
    return len(active)


def default_concurrency() -> int:
    """Share the CPUs evenly between this user and other active users."""
    cpus = os.cpu_count() or 1
    try:
        others = count_other_users()
    except RuntimeError as e:
        logger.warning(f"Could not count other users, using all CPUs: {e}")
        return cpus
    if others:
        logger.info(f"{others} other user(s) active, sharing {cpus} CPUs")
    return max(1, cpus // (others + 1))
