"""Async subprocess execution for the external binaries (gs, qpdf, pdftoppm, soffice)."""

import asyncio
import logging
import shutil
from dataclasses import dataclass
from typing import Optional, Sequence

from app.core.errors import ApiError

logger = logging.getLogger(__name__)

DOCKER_HINT = "Missing system dependency. Run in Docker full mode: docker compose up --build"


@dataclass
class CommandResult:
    stdout: str
    stderr: str


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        proc.kill()
        await proc.wait()


async def run_command(
    command: str,
    args: Sequence[str],
    cwd: Optional[str] = None,
    timeout: Optional[float] = None,
) -> CommandResult:
    """Run a binary to completion.

    With no timeout the command runs until it exits. The child is killed when
    the timeout elapses or when the awaiting task is cancelled (e.g. the
    owning job hit its deadline).
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            command,
            *args,
            cwd=cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        raise ApiError(f'Required command "{command}" is missing. {DOCKER_HINT}', 503)
    except OSError as exc:
        logger.error("Failed to spawn %s: %s", command, exc)
        raise ApiError(f'Failed to run command "{command}".', 500)

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await _kill(proc)
        raise ApiError(f'Command "{command}" timed out after {int(timeout)} seconds.', 408)
    except asyncio.CancelledError:
        await _kill(proc)
        raise

    out = stdout.decode("utf-8", errors="replace")
    err = stderr.decode("utf-8", errors="replace")
    if proc.returncode != 0:
        raise ApiError(f'Command "{command}" failed with code {proc.returncode}. {err or out}'.strip(), 400)
    return CommandResult(stdout=out, stderr=err)


def is_command_available(command: str) -> bool:
    return shutil.which(command) is not None


def ensure_command_available(command: str, message: str) -> None:
    if not is_command_available(command):
        raise ApiError(message, 503)
