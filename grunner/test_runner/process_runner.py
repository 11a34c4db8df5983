"""Run external programs under a deadline with captured output."""

import asyncio
import logging
import time
from collections.abc import Sequence
from pathlib import Path
from typing import BinaryIO

from grunner.test_runner.models.process_result import ProcessResult

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


async def run_process(
    program: str,
    args: Sequence[str],
    *,
    cwd: Path,
    timeout: float,
    stdin: bytes | None = None,
    capture_path: Path | None = None,
) -> ProcessResult:
    """Run ``program`` and report completion, start failure or timeout.

    Args:
        program: Executable name or path
        args: Arguments passed to the program
        cwd: Working directory of the process
        timeout: Deadline in seconds; the process is killed when it expires
        stdin: Bytes written to the process's standard input, if any
        capture_path: File receiving standard output as it is produced

    Returns:
        The process result. Output captured before a timeout is kept.

    Raises:
        OSError: If writing to ``capture_path`` fails mid-run

    """
    start = time.monotonic()
    logger.debug(f"Starting: {program} {' '.join(args)} (cwd={cwd})")
    capture = None
    if capture_path is not None:
        try:
            capture = capture_path.open("wb")
        except OSError as e:
            logger.debug(f"Failed to create {capture_path}: {e}")
            return ProcessResult(
                outcome="start_failure",
                error=f"failed to create {capture_path.name}: {e}",
                duration=time.monotonic() - start,
            )
    try:
        process = await asyncio.create_subprocess_exec(
            program,
            *args,
            cwd=cwd,
            stdin=asyncio.subprocess.PIPE
            if stdin is not None
            else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        if capture is not None:
            capture.close()
        logger.debug(f"Failed to start {program}: {e}")
        return ProcessResult(
            outcome="start_failure",
            error=f"failed to start {program}: {e}",
            duration=time.monotonic() - start,
        )

    stdout = bytearray()
    stderr = bytearray()
    try:
        await asyncio.wait_for(
            asyncio.gather(
                _feed(process.stdin, stdin),
                _drain(process.stdout, stdout, capture),
                _drain(process.stderr, stderr, None),
                process.wait(),
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        await _terminate(process)
        logger.debug(f"{program} exceeded its {timeout}s deadline")
        return ProcessResult(
            outcome="timeout",
            stdout=bytes(stdout),
            stderr=bytes(stderr),
            duration=time.monotonic() - start,
        )
    except (asyncio.CancelledError, OSError):
        # cancelled, or the capture file could not be written
        await _terminate(process)
        raise
    finally:
        if capture is not None:
            capture.close()

    return ProcessResult(
        outcome="completed",
        stdout=bytes(stdout),
        stderr=bytes(stderr),
        returncode=process.returncode,
        duration=time.monotonic() - start,
    )


async def _feed(writer: asyncio.StreamWriter | None, data: bytes | None) -> None:
    if writer is None or data is None:
        return
    try:
        writer.write(data)
        await writer.drain()
    except (BrokenPipeError, ConnectionResetError):
        # the program exited without reading all of its input
        pass
    finally:
        writer.close()


async def _drain(
    reader: asyncio.StreamReader | None,
    buffer: bytearray,
    sink: BinaryIO | None,
) -> None:
    if reader is None:
        return
    while True:
        chunk = await reader.read(_CHUNK_SIZE)
        if not chunk:
            return
        buffer.extend(chunk)
        if sink is not None:
            sink.write(chunk)
            sink.flush()


async def _terminate(process: asyncio.subprocess.Process) -> None:
    """Kill the process if it is still alive and reap it."""
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await asyncio.shield(process.wait())
