"""Process Runner.

Runs one external tool per call on the asyncio event loop and turns its
exit status and diagnostic output into a RunResult.

Design:
    - asyncio.create_subprocess_exec, no shell
    - The child is always reaped before run_process returns or raises
    - Spawn failures and non-zero exits become FAILED results, never
      exceptions
    - Exit 0 with text on stderr is a WARNING: the run succeeded but the
      operator should see the diagnostics
    - On cancellation or timeout the whole process tree is killed with psutil
    - The kill wait runs in a worker thread and skips the root process,
      which only asyncio reaps
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Union

import psutil

from .flag_builder import CommandLine

logger = logging.getLogger(__name__)

KILL_WAIT_SECONDS = 3


class StdioMode(Enum):
    """How the child's standard streams are connected."""

    CAPTURED = "captured"
    INHERITED = "inherited"


class RunStatus(Enum):
    """Terminal classification of a tool run."""

    OK = "ok"
    WARNING = "warning"
    FAILED = "failed"


@dataclass
class RunResult:
    """Result of one tool invocation."""

    status: RunStatus
    returncode: int
    stdout: str = ""
    stderr: str = ""
    spawn_error: Optional[str] = None
    timeout_error: Optional[str] = None
    command: Optional[CommandLine] = None

    @property
    def success(self) -> bool:
        return self.status is not RunStatus.FAILED

    @property
    def diagnostic(self) -> str:
        """Text to show the operator for this run."""
        if self.spawn_error:
            return self.spawn_error
        if self.timeout_error:
            return self.timeout_error
        text = self.stderr.strip() or self.stdout.strip()
        if text:
            return text
        if self.status is RunStatus.FAILED:
            return f"exited with code {self.returncode}"
        return ""


def classify(returncode: int, stderr: str) -> RunStatus:
    """Classify a finished run by exit code and diagnostic stream."""
    if returncode != 0:
        return RunStatus.FAILED
    if stderr.strip():
        return RunStatus.WARNING
    return RunStatus.OK


def _decode(data: Optional[bytes]) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


def kill_process_tree(pid: int, wait_root: bool = True) -> int:
    """
    Kill a process and all of its children.

    Args:
        pid: Root process id
        wait_root: Also wait for the root process. Pass False when the
            root is an asyncio child, which its own transport must reap

    Returns:
        Number of processes that were signalled
    """
    try:
        root = psutil.Process(pid)
        processes = root.children(recursive=True) + [root]
    except psutil.NoSuchProcess:
        return 0

    killed = 0
    for proc in reversed(processes):
        try:
            proc.kill()
            killed += 1
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied as e:
            logger.warning("Cannot kill process %d: %s", proc.pid, e)

    waited = processes if wait_root else processes[:-1]
    _gone, alive = psutil.wait_procs(waited, timeout=KILL_WAIT_SECONDS)
    for proc in alive:
        logger.warning("Process %d survived kill", proc.pid)
    return killed


async def _reap(proc: asyncio.subprocess.Process) -> None:
    """Kill the child's tree and wait for the child itself to exit."""
    if proc.returncode is None:
        await asyncio.to_thread(kill_process_tree, proc.pid, False)
    await proc.wait()


async def run_process(
    command: Union[CommandLine, Sequence[str]],
    working_dir: Union[str, Path],
    stdio_mode: StdioMode = StdioMode.CAPTURED,
    timeout: Optional[float] = None
) -> RunResult:
    """
    Run one external tool to completion.

    Args:
        command: Tool argv
        working_dir: Working directory for the child
        stdio_mode: CAPTURED to collect output, INHERITED to share the terminal
        timeout: Seconds before the tool is killed (default: no limit)

    Returns:
        RunResult; spawn failures and non-zero exits are FAILED results

    Raises:
        asyncio.CancelledError: If the caller is cancelled; the child is
            killed and reaped first
    """
    if not isinstance(command, CommandLine):
        command = CommandLine(tuple(str(arg) for arg in command))

    pipe = asyncio.subprocess.PIPE if stdio_mode is StdioMode.CAPTURED else None
    logger.debug("Running (cwd=%s): %s", working_dir, command)

    try:
        proc = await asyncio.create_subprocess_exec(
            *command.args,
            cwd=str(working_dir),
            stdin=None,
            stdout=pipe,
            stderr=pipe,
        )
    except (OSError, ValueError) as e:
        logger.debug("Failed to start %s: %s", command.program, e)
        return RunResult(
            status=RunStatus.FAILED,
            returncode=-1,
            spawn_error=f"Failed to start {command.program}: {e}",
            command=command,
        )

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
    except asyncio.TimeoutError:
        await _reap(proc)
        return RunResult(
            status=RunStatus.FAILED,
            returncode=proc.returncode if proc.returncode is not None else -1,
            timeout_error=f"{command.program} timed out after {timeout}s",
            command=command,
        )
    except BaseException:
        # Cancelled or interrupted: never leave the child behind
        await asyncio.shield(_reap(proc))
        raise

    out_text = _decode(stdout)
    err_text = _decode(stderr)
    status = classify(proc.returncode, err_text)
    logger.debug("%s exited with %d (%s)", command.program, proc.returncode, status.value)
    return RunResult(
        status=status,
        returncode=proc.returncode,
        stdout=out_text,
        stderr=err_text,
        command=command,
    )
