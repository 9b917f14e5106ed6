"""Command executor — runs shell commands under a timeout and output ceiling.

Every outcome (non-zero exit, timeout, oversized output, spawn failure) comes
back as a ``CommandResult``; ``execute`` never raises.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from collections.abc import Callable

from pydantic import BaseModel

logger = logging.getLogger(__name__)

_CHUNK = 64 * 1024
# upper bound on reaping a killed process group
_REAP_GRACE = 5.0


class CommandResult(BaseModel):
    success: bool
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0


async def _read_capped(
    stream: asyncio.StreamReader | None,
    limit: int,
    on_overflow: Callable[[], None],
) -> tuple[bytes, bool]:
    """Read a pipe to EOF, keeping at most ``limit`` bytes.

    The pipe is drained past the cap so the writer never blocks on it;
    ``on_overflow`` fires once, on the first byte over the limit.
    """
    if stream is None:
        return b"", False
    buf = bytearray()
    over = False
    while True:
        chunk = await stream.read(_CHUNK)
        if not chunk:
            return bytes(buf), over
        if over:
            continue
        room = limit - len(buf)
        buf.extend(chunk[:room])
        if len(chunk) > room:
            over = True
            on_overflow()


async def _drain(stream: asyncio.StreamReader | None) -> None:
    if stream is None:
        return
    while await stream.read(_CHUNK):
        pass


def _kill(proc: asyncio.subprocess.Process) -> None:
    # the shell runs in its own session; take down pipelines and children too
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass


async def _reap(proc: asyncio.subprocess.Process) -> None:
    """Kill the group, then read both pipes to EOF so ``wait`` can resolve."""
    _kill(proc)
    try:
        await asyncio.wait_for(
            asyncio.gather(_drain(proc.stdout), _drain(proc.stderr), proc.wait()),
            timeout=_REAP_GRACE,
        )
    except asyncio.TimeoutError:
        logger.warning("Process %s still holds its pipes after kill", proc.pid)


class CommandExecutor:
    """Runs shell-level commands for checks, mitigations and remediation tasks."""

    def __init__(self, timeout: float = 600.0, max_output_bytes: int = 20 * 1024 * 1024) -> None:
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes

    async def execute(
        self,
        command: str,
        timeout: float | None = None,
        max_output_bytes: int | None = None,
    ) -> CommandResult:
        timeout = timeout if timeout is not None else self.timeout
        limit = max_output_bytes if max_output_bytes is not None else self.max_output_bytes
        t0 = time.perf_counter()

        def elapsed() -> int:
            return int((time.perf_counter() - t0) * 1000)

        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except Exception as e:
            logger.warning("Could not spawn %r: %s", command, e)
            return CommandResult(
                success=False, exit_code=-1,
                stderr=f"Error: {type(e).__name__}: {e}", duration_ms=elapsed(),
            )

        def overflow() -> None:
            _kill(proc)

        try:
            (out, out_over), (err, err_over), exit_code = await asyncio.wait_for(
                asyncio.gather(
                    _read_capped(proc.stdout, limit, overflow),
                    _read_capped(proc.stderr, limit, overflow),
                    proc.wait(),
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            await _reap(proc)
            logger.warning("Command timed out after %ss: %s", timeout, command)
            return CommandResult(
                success=False, exit_code=-1,
                stderr=f"Command timed out after {timeout}s", duration_ms=elapsed(),
            )

        stdout = out.decode(errors="replace")
        stderr = err.decode(errors="replace")

        if out_over or err_over:
            logger.warning("Command output exceeded %d bytes: %s", limit, command)
            note = f"Output exceeded {limit} bytes"
            return CommandResult(
                success=False, exit_code=-1, stdout=stdout,
                stderr=f"{stderr}\n{note}" if stderr else note, duration_ms=elapsed(),
            )

        logger.debug("Command exit=%d (%dms): %s", exit_code, elapsed(), command)
        return CommandResult(
            success=exit_code == 0, exit_code=exit_code,
            stdout=stdout, stderr=stderr, duration_ms=elapsed(),
        )
