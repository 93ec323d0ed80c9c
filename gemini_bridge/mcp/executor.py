"""
Gemini CLI executor — runs the `gemini` binary for a single tools/call.

CLI invocation pattern:
  gemini -p <prompt> -m <model> -o json

The prompt and model travel as discrete argv elements; nothing is ever
interpolated into a shell string, so prompt text containing quotes, `$(...)`
or `;` reaches the CLI byte-for-byte.

Limits:
  - `timeout_seconds`: hard wall-clock budget; on expiry the child and every
    process it spawned are killed (one process group per call on POSIX)
  - `max_output_bytes`: cap on combined stdout+stderr; the group is killed as
    soon as the cap is crossed, the partial output is discarded

Both limits surface as InvocationError subclasses. Nothing is truncated and
returned as if it were a success.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from gemini_bridge.core.config import (
    DEFAULT_MAX_OUTPUT_BYTES,
    DEFAULT_TIMEOUT_SECONDS,
    BridgeConfig,
)
from gemini_bridge.core.errors import (
    ExecutableNotFoundError,
    InvocationTimeoutError,
    NonZeroExitError,
    OutputLimitExceededError,
)
from gemini_bridge.core.types import ExecutionResult, InvocationRequest

logger = logging.getLogger("GeminiBridge.mcp.executor")

_IS_WINDOWS = sys.platform == "win32"
_READ_CHUNK_BYTES = 64 * 1024
_REAP_TIMEOUT_SECONDS = 5.0

# pids of running gemini children, each the leader of its own process group on POSIX
_ACTIVE_PIDS: Set[int] = set()
_ACTIVE_LOCK = threading.Lock()


@dataclass
class ExecutionOptions:
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    env_overrides: Dict[str, str] = field(default_factory=lambda: {"NO_COLOR": "1"})
    model: Optional[str] = None

    @classmethod
    def from_config(cls, config: BridgeConfig, model: Optional[str] = None) -> "ExecutionOptions":
        return cls(
            timeout_seconds=config.timeout_seconds,
            max_output_bytes=config.max_output_bytes,
            model=model,
        )

    def build_env(self) -> Dict[str, str]:
        env = dict(os.environ)
        env.update(self.env_overrides)
        return env


class _OutputBudget:
    def __init__(self, limit: int):
        self.limit = limit
        self.used = 0

    def consume(self, size: int) -> None:
        self.used += size
        if self.used > self.limit:
            raise _OutputBudgetExceeded()


class _OutputBudgetExceeded(Exception):
    pass


def _get_subprocess_kwargs() -> dict:
    """
    On Windows, suppress the console window that would otherwise flash.
    On POSIX, start a new session so the child and everything it spawns can
    be killed as one process group.
    """
    if _IS_WINDOWS:
        si = subprocess.STARTUPINFO()
        si.dwFlags |= subprocess.STARTF_USESHOWWINDOW
        si.wShowWindow = subprocess.SW_HIDE
        return {
            "creationflags": subprocess.CREATE_NO_WINDOW,
            "startupinfo": si,
        }
    return {"start_new_session": True}


def _decode(chunks: List[bytes]) -> str:
    return b"".join(chunks).decode("utf-8", errors="replace")


def build_argv(program_path: str, request: InvocationRequest) -> List[str]:
    """Build the gemini argv. Pure transformation, launches nothing."""
    return [
        program_path,
        "-p", request.full_prompt,
        "-m", request.model,
        "-o", "json",
    ]


async def _drain(stream: asyncio.StreamReader, sink: List[bytes], budget: _OutputBudget) -> None:
    while True:
        chunk = await stream.read(_READ_CHUNK_BYTES)
        if not chunk:
            return
        sink.append(chunk)
        budget.consume(len(chunk))


def _kill_tree(pid: int) -> None:
    """SIGKILL the process group led by pid (just the process on Windows)."""
    try:
        if _IS_WINDOWS:
            os.kill(pid, signal.SIGTERM)
        else:
            os.killpg(pid, signal.SIGKILL)
    except OSError:
        pass


async def _kill_and_reap(proc: asyncio.subprocess.Process) -> None:
    # Descendants may still hold the pipes after the direct child dies,
    # and wait() does not return until every pipe is closed.
    _kill_tree(proc.pid)
    try:
        await asyncio.wait_for(proc.wait(), timeout=_REAP_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.warning(
            "gemini pid=%d: pipes still open %.0fs after kill; abandoning reap",
            proc.pid,
            _REAP_TIMEOUT_SECONDS,
        )


def active_invocation_count() -> int:
    with _ACTIVE_LOCK:
        return len(_ACTIVE_PIDS)


def terminate_active_invocations() -> int:
    """Kill every running gemini child. Returns how many were signalled."""
    with _ACTIVE_LOCK:
        pids = list(_ACTIVE_PIDS)
    for pid in pids:
        _kill_tree(pid)
    if pids:
        logger.info("Terminated %d in-flight gemini invocation(s)", len(pids))
    return len(pids)


async def execute_async(argv: List[str], options: ExecutionOptions) -> ExecutionResult:
    """Run argv under the timeout and output cap. Raises InvocationError subclasses."""
    stdout_chunks: List[bytes] = []
    stderr_chunks: List[bytes] = []
    budget = _OutputBudget(options.max_output_bytes)

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=options.build_env(),
            **_get_subprocess_kwargs(),
        )
    except (FileNotFoundError, PermissionError) as exc:
        raise ExecutableNotFoundError(
            f"Gemini CLI binary not found or not executable: {argv[0]}",
            model=options.model,
        ) from exc

    with _ACTIVE_LOCK:
        _ACTIVE_PIDS.add(proc.pid)
    try:
        await asyncio.wait_for(
            asyncio.gather(
                _drain(proc.stdout, stdout_chunks, budget),
                _drain(proc.stderr, stderr_chunks, budget),
                proc.wait(),
            ),
            timeout=options.timeout_seconds,
        )
    except asyncio.TimeoutError as exc:
        await _kill_and_reap(proc)
        raise InvocationTimeoutError(
            f"gemini timed out after {options.timeout_seconds:.0f}s",
            model=options.model,
            stderr=_decode(stderr_chunks),
        ) from exc
    except _OutputBudgetExceeded as exc:
        await _kill_and_reap(proc)
        raise OutputLimitExceededError(
            f"gemini output exceeded {options.max_output_bytes} bytes",
            model=options.model,
            stderr=_decode(stderr_chunks),
        ) from exc
    finally:
        with _ACTIVE_LOCK:
            _ACTIVE_PIDS.discard(proc.pid)

    result = ExecutionResult(
        stdout=_decode(stdout_chunks),
        stderr=_decode(stderr_chunks),
        exit_status=proc.returncode,
    )
    if result.exit_status != 0:
        raise NonZeroExitError(
            f"Command failed: {argv[0]} exited with status {result.exit_status}",
            model=options.model,
            stderr=result.stderr,
            exit_status=result.exit_status,
        )
    return result


def execute(program_path: str, argv: List[str], options: ExecutionOptions) -> ExecutionResult:
    """
    Run the gemini CLI synchronously on the calling (dispatch) thread.

    `argv` holds the arguments after the program itself.
    """
    started = time.monotonic()
    full_argv = [program_path, *argv]
    logger.debug(
        "gemini command: %s <%d args> timeout=%.0fs max_output_bytes=%d",
        program_path,
        len(argv),
        options.timeout_seconds,
        options.max_output_bytes,
    )
    try:
        return asyncio.run(execute_async(full_argv, options))
    finally:
        logger.debug("gemini finished in %.1fms", (time.monotonic() - started) * 1000.0)


def run_invocation(request: InvocationRequest, config: BridgeConfig) -> ExecutionResult:
    """Execute one InvocationRequest with limits taken from config."""
    argv = build_argv(config.gemini_path, request)
    options = ExecutionOptions.from_config(config, model=request.model)
    return execute(argv[0], argv[1:], options)
