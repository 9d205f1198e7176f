"""Process runner for the launcher sidecar.

This module provides:
- Cross-platform subprocess isolation (new session/process group)
- Line streaming of stdout with concurrent stderr draining
- Reliable termination (SIGTERM -> timeout -> SIGKILL) of the whole group
- Cancel-safe cleanup using asyncio.shield

Spawning and streaming are separate steps so callers can tell "the process
started" apart from "the process produced output".
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

__all__ = [
    "IS_WINDOWS",
    "ProcessRunner",
    "ProcessSpec",
]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"

DEFAULT_TERM_TIMEOUT = 5.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 2.0  # seconds to wait after SIGKILL


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a subprocess to run.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process
        env: Environment variables (None = inherit parent)
    """

    argv: list[str]
    cwd: Path
    env: Mapping[str, str] | None = None


@dataclass
class ProcessRunner:
    """Cross-platform process runner with isolation and reliable termination.

    Example:
        runner = ProcessRunner()
        process = await runner.spawn(ProcessSpec(argv=["sidecar", "launch", "{}"], cwd=root))
        async for line in runner.stream_lines(process, on_stderr=print):
            handle(line)
        print(process.returncode)
    """

    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT

    async def spawn(self, spec: ProcessSpec) -> asyncio.subprocess.Process:
        """Start the subprocess in an isolated process group/session.

        Raises:
            OSError: If the executable cannot be started
        """
        # stdin=DEVNULL so the child never inherits the launcher's stdin
        process = await asyncio.create_subprocess_exec(
            *spec.argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=spec.cwd,
            **self._build_subprocess_kwargs(spec),
        )
        logger.debug(f"Started subprocess pid={process.pid} argv={spec.argv[0]} cwd={spec.cwd}")
        return process

    async def stream_lines(
        self,
        process: asyncio.subprocess.Process,
        *,
        on_stderr: Callable[[str], None] | None = None,
    ) -> AsyncIterator[str]:
        """Yield decoded stdout lines until EOF, then wait for exit.

        Stderr is drained concurrently, line by line, into on_stderr.
        If the consumer stops early or is cancelled, the process group is
        terminated.
        """
        stderr_task = asyncio.create_task(self._drain_stderr(process, on_stderr))
        try:
            if process.stdout:
                async for raw in process.stdout:
                    yield raw.decode("utf-8", errors="replace").rstrip("\r\n")

            await stderr_task
            await process.wait()
            logger.debug(f"Subprocess completed pid={process.pid} returncode={process.returncode}")
        finally:
            await self._safe_cleanup(process, stderr_task)

    async def run(
        self,
        spec: ProcessSpec,
        *,
        on_stderr: Callable[[str], None] | None = None,
    ) -> AsyncIterator[str]:
        """Spawn and stream in one step."""
        process = await self.spawn(spec)
        async for line in self.stream_lines(process, on_stderr=on_stderr):
            yield line

    async def terminate(self, process: asyncio.subprocess.Process) -> None:
        """Terminate gracefully, then forcefully if needed.

        1. SIGTERM to the group (CTRL_BREAK_EVENT on Windows)
        2. Wait up to term_timeout
        3. SIGKILL to the group (kill() on Windows)
        4. Wait up to kill_timeout
        """
        if process.returncode is not None:
            return

        pid = process.pid
        logger.debug(f"Terminating subprocess pid={pid}")

        try:
            if IS_WINDOWS:
                self._send_windows_break(process)
            else:
                self._signal_group(process, signal.SIGTERM)

            try:
                await asyncio.wait_for(process.wait(), timeout=self.term_timeout)
                logger.debug(f"Subprocess terminated gracefully pid={pid} returncode={process.returncode}")
                return
            except asyncio.TimeoutError:
                pass

            logger.debug(f"Force killing subprocess pid={pid}")
            if IS_WINDOWS:
                process.kill()
            else:
                self._signal_group(process, signal.SIGKILL)

            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Subprocess did not exit after kill pid={pid}")

        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")
        except OSError as e:
            logger.warning(f"Error terminating subprocess pid={pid}: {e}")

    def _build_subprocess_kwargs(self, spec: ProcessSpec) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}

        if spec.env is not None:
            kwargs["env"] = dict(spec.env)

        if IS_WINDOWS:
            # CREATE_NO_WINDOW hides the console window of the sidecar
            kwargs["creationflags"] = (
                subprocess.CREATE_NEW_PROCESS_GROUP | subprocess.CREATE_NO_WINDOW
            )
        else:
            kwargs["start_new_session"] = True

        return kwargs

    async def _drain_stderr(
        self,
        process: asyncio.subprocess.Process,
        on_stderr: Callable[[str], None] | None,
    ) -> None:
        """Drain stderr to prevent buffer deadlock."""
        if not process.stderr:
            return
        async for raw in process.stderr:
            if on_stderr:
                on_stderr(raw.decode("utf-8", errors="replace").rstrip("\r\n"))

    async def _safe_cleanup(
        self,
        process: asyncio.subprocess.Process,
        stderr_task: asyncio.Task[None],
    ) -> None:
        """Cleanup shielded from cancellation."""
        try:
            await asyncio.shield(self._do_cleanup(process, stderr_task))
        except asyncio.CancelledError:
            await self._do_cleanup(process, stderr_task)
            raise

    async def _do_cleanup(
        self,
        process: asyncio.subprocess.Process,
        stderr_task: asyncio.Task[None],
    ) -> None:
        if not stderr_task.done():
            stderr_task.cancel()
            try:
                await stderr_task
            except asyncio.CancelledError:
                pass

        if process.returncode is None:
            await self.terminate(process)

    def _signal_group(self, process: asyncio.subprocess.Process, sig: signal.Signals) -> None:
        """Signal the whole process group, falling back to the process itself."""
        try:
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, sig)
            logger.debug(f"Sent {sig.name} to process group pgid={pgid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, signalling process directly: {e}")
            process.send_signal(sig)

    def _send_windows_break(self, process: asyncio.subprocess.Process) -> None:
        try:
            os.kill(process.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={process.pid}")
        except OSError as e:
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
            process.terminate()
