"""Shell command execution tools."""

import asyncio
import contextlib
import os
import re
import signal
import subprocess
import time
from dataclasses import dataclass
from typing import List, Optional

import psutil

from ..context_management import truncate_output
from ..logger import get_logger, get_output_dir

log = get_logger("tools.shell")

# Output kept per command; the rest is read and counted but discarded
MAX_OUTPUT_BYTES = 1024 * 1024
READ_CHUNK = 4096
POLL_INTERVAL = 0.05
# Seconds to wait for bash after SIGKILL, and for the pipe after bash exits
KILL_GRACE = 3.0
PIPE_GRACE = 0.5

LONG_RUNNING_PATTERNS = [
    "python", "python3", "node", "npm start", "npm run", "go run",
    "serve", "server", "uvicorn", "gunicorn", "flask run",
    "rails server", "php -s", "java -jar", "./", "watch",
    "tail -f", "ping", "curl.*-w", "sleep", "while true",
]

# Patterns above that are meant as regular expressions
_REGEX_PATTERNS = {"curl.*-w": re.compile(r"curl.*-w")}


def is_long_running(command: str) -> bool:
    """Heuristic scan for interpreters, servers, watchers and unbounded loops."""
    lowered = command.lower()
    for pattern in LONG_RUNNING_PATTERNS:
        regex = _REGEX_PATTERNS.get(pattern)
        if regex is not None:
            if regex.search(lowered):
                return True
        elif pattern in lowered:
            return True
    return False


def _descendants(pid: int) -> List[psutil.Process]:
    try:
        return psutil.Process(pid).children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return []


def kill_process_group(pid: int, timeout: float = 1.0) -> None:
    """Kill the session led by ``pid`` and every descendant still known to it.

    ``pid`` must have been started with ``start_new_session=True`` so that
    it is also the process group id. Descendants that moved to another
    group are swept through psutil. ``pid`` itself is left for the caller
    to reap.
    """
    children = _descendants(pid)
    try:
        os.killpg(pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass

    for proc in children:
        try:
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass
    psutil.wait_procs(children, timeout=timeout)


class CommandError(RuntimeError):
    """A shell command timed out or exited non-zero; the message carries its output."""


@dataclass
class ShellResult:
    """Result of a shell command execution."""

    output: str
    return_code: Optional[int]
    timed_out: bool = False
    duration: float = 0.0

    def to_text(self, timeout: float) -> str:
        if self.timed_out:
            return f"Command timed out after {timeout:g} seconds. Output so far: {self.output}"
        if self.return_code:
            return f"Command failed with exit code {self.return_code}. Output: {self.output}"
        return self.output


class OutputBuffer:
    """Collects process output up to ``limit`` bytes and counts the rest."""

    def __init__(self, limit: int = MAX_OUTPUT_BYTES):
        self.limit = limit
        self.chunks: List[bytes] = []
        self.size = 0

    def feed(self, chunk: bytes) -> None:
        if self.size < self.limit:
            self.chunks.append(chunk[:self.limit - self.size])
        self.size += len(chunk)

    @property
    def dropped(self) -> int:
        return max(0, self.size - self.limit)

    def text(self) -> str:
        text = b"".join(self.chunks).decode("utf-8", errors="replace")
        if self.dropped:
            text += f"\n\n... (output capped at {self.limit} bytes, {self.dropped} bytes dropped) ..."
        return text


async def _drain(stream: asyncio.StreamReader, buffer: OutputBuffer) -> None:
    # Keep reading past the cap so the child never blocks on a full pipe
    while True:
        chunk = await stream.read(READ_CHUNK)
        if not chunk:
            return
        buffer.feed(chunk)


async def _wait_exit(process: asyncio.subprocess.Process, timeout: float) -> bool:
    """Poll until bash itself exits. Returns False on timeout.

    ``Process.wait()`` is not used: it also waits for the pipes, which a
    backgrounded child can hold open indefinitely.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while process.returncode is None:
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(POLL_INTERVAL)
    return True


async def _finish_reader(reader: asyncio.Future) -> None:
    """Let the reader pick up trailing output, then stop it if the pipe stays open."""
    try:
        await asyncio.wait_for(asyncio.shield(reader), timeout=PIPE_GRACE)
    except asyncio.TimeoutError:
        # A child that outlived bash still holds the pipe
        reader.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reader


async def run_shell_command(
    command: str,
    timeout: float = 30.0,
    cwd: Optional[str] = None,
    max_output_bytes: int = MAX_OUTPUT_BYTES,
) -> ShellResult:
    """Run ``command`` under ``bash -c`` with stdout and stderr combined.

    The process leads its own session, so on timeout the whole process
    group is killed, including children that were re-parented away. The
    call returns once bash exits; children it left running in the
    background do not hold it up. Output read before then is kept.
    """
    start = time.perf_counter()
    process = await asyncio.create_subprocess_exec(
        "bash", "-c", command,
        stdin=subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
        cwd=cwd,
        start_new_session=True,
    )
    buffer = OutputBuffer(max_output_bytes)
    reader = asyncio.ensure_future(_drain(process.stdout, buffer))
    timed_out = False
    try:
        if not await _wait_exit(process, timeout):
            timed_out = True
            log.warning("Command timed out after %ss: %s", timeout, command)
            kill_process_group(process.pid)
            if not await _wait_exit(process, KILL_GRACE):
                log.error("pid %d still alive after SIGKILL", process.pid)
    except asyncio.CancelledError:
        kill_process_group(process.pid)
        raise
    finally:
        await _finish_reader(reader)

    output = truncate_output(buffer.text())
    result = ShellResult(
        output=output,
        return_code=process.returncode,
        timed_out=timed_out,
        duration=time.perf_counter() - start,
    )
    log.info(
        "Command exit=%s timed_out=%s in %.1fs: %s",
        result.return_code, timed_out, result.duration, command,
    )
    return result


def start_background(command: str, cwd: Optional[str] = None) -> str:
    """Start ``command`` detached and return its handle without waiting."""
    log_path = get_output_dir() / f"background-{int(time.time() * 1000)}.log"
    with open(log_path, "wb") as log_file:
        process = subprocess.Popen(
            ["bash", "-c", command],
            stdin=subprocess.DEVNULL,
            stdout=log_file,
            stderr=subprocess.STDOUT,
            cwd=cwd,
            start_new_session=True,
        )
    log.info("Started background pid=%d: %s", process.pid, command)
    return (
        f"Command started in background with PID {process.pid}. "
        f"Output is written to {log_path}."
    )
