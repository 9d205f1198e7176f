"""启动器 sidecar 进程适配。

sidecar 是一个独立的启动器程序，负责下载游戏文件并拉起游戏：

    <command> launch '<options-json>'

它在 stdout 上逐行输出 JSON 事件：

    {"type": "progress", "data": {"type": "assets", "task": 10, "total": 120}}
    {"type": "data", "data": "[Render thread/INFO]: ..."}
    {"type": "debug", "data": "..."}
    {"type": "close", "data": 0}
    {"type": "error", "data": "..."}

非 JSON 行视为游戏日志；stderr 行视为调试输出，其中的 fatal 事件保留级别。
sidecar 没有输出 close 就退出时，以进程退出码补发 close 事件。
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Sequence

from .capability import LaunchCapability
from .events import (
    DataLine,
    DebugLine,
    EventKind,
    ProcessClosed,
    ProgressTick,
    RawEvent,
)
from .process_runner import ProcessRunner, ProcessSpec
from .types import LaunchConfiguration

__all__ = [
    "DEFAULT_SIDECAR_COMMAND",
    "SidecarCapability",
    "parse_sidecar_line",
]

logger = logging.getLogger(__name__)

DEFAULT_SIDECAR_COMMAND = ("mango-sidecar",)


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and isinstance(value.get("message"), str):
        return value["message"]
    return json.dumps(value, ensure_ascii=False, default=str)


def parse_sidecar_line(line: str, session_id: str = "") -> RawEvent | None:
    """解析 sidecar 的一行 stdout。

    Returns:
        原始事件；空行返回 None
    """
    if not line.strip():
        return None

    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return DataLine(line=line, session_id=session_id)

    if not isinstance(data, dict) or "type" not in data:
        return DataLine(line=line, session_id=session_id)

    event_type = data.get("type")
    payload = data.get("data")

    if event_type == EventKind.PROGRESS.value:
        payload = payload if isinstance(payload, dict) else {}
        return ProgressTick(
            category=str(payload.get("type") or ""),
            task=_as_int(payload.get("task")),
            total=_as_int(payload.get("total")),
            session_id=session_id,
        )

    if event_type == EventKind.CLOSE.value:
        return ProcessClosed(code=_as_int(payload), session_id=session_id)

    if event_type == EventKind.DEBUG.value:
        return DebugLine(line=_as_text(payload), session_id=session_id)

    if event_type in ("error", "fatal"):
        return DebugLine(
            line=f"{event_type}: {_as_text(payload)}",
            severity=event_type,
            session_id=session_id,
        )

    if event_type == EventKind.DATA.value:
        return DataLine(line=_as_text(payload), session_id=session_id)

    logger.debug(f"Unknown sidecar event type: {event_type}")
    return DataLine(line=line, session_id=session_id)


class SidecarCapability(LaunchCapability):
    """通过 sidecar 子进程实现的启动能力。

    start() 在子进程创建成功后立即返回，输出由后台任务读取并发布到 events。

    Example:
        capability = SidecarCapability(["node", "sidecar/launcher.js"])
        capability.events.subscribe(EventKind.DATA, print)
        await capability.start(config, session_id="abc")
    """

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_SIDECAR_COMMAND,
        *,
        runner: ProcessRunner | None = None,
    ) -> None:
        super().__init__()
        if not command:
            raise ValueError("Sidecar command must not be empty")
        self.command = list(command)
        self._runner = runner or ProcessRunner()
        self._processes: dict[str, asyncio.subprocess.Process] = {}
        self._pumps: dict[str, asyncio.Task[None]] = {}

    def build_argv(self, config: LaunchConfiguration) -> list[str]:
        options = json.dumps(config.to_options(), ensure_ascii=False)
        return [*self.command, "launch", options]

    async def start(self, config: LaunchConfiguration, *, session_id: str) -> None:
        """启动 sidecar。

        Raises:
            OSError: sidecar 无法启动
        """
        config.root.mkdir(parents=True, exist_ok=True)
        spec = ProcessSpec(argv=self.build_argv(config), cwd=config.root)
        process = await self._runner.spawn(spec)

        self._processes[session_id] = process
        self._pumps[session_id] = asyncio.create_task(
            self._pump(process, session_id),
            name=f"sidecar-{session_id[:8]}",
        )

    async def stop(self, session_id: str) -> None:
        process = self._processes.get(session_id)
        if process is not None:
            await self._runner.terminate(process)

    async def wait(self, session_id: str) -> None:
        """等待会话的输出读取任务结束。"""
        pump = self._pumps.get(session_id)
        if pump is not None:
            await pump

    async def aclose(self) -> None:
        for session_id in list(self._pumps):
            await self.stop(session_id)
        pumps = list(self._pumps.values())
        for pump in pumps:
            pump.cancel()
        await asyncio.gather(*pumps, return_exceptions=True)

    async def _pump(self, process: asyncio.subprocess.Process, session_id: str) -> None:
        """读取 sidecar 输出并发布事件。"""
        closed = False

        def on_stderr(line: str) -> None:
            if not line.strip():
                return
            # fatal 事件写在 stderr 上
            event = parse_sidecar_line(line, session_id)
            if isinstance(event, DebugLine) and event.severity != "debug":
                self.events.publish(event)
            else:
                self.events.publish(DebugLine(line=line, session_id=session_id))

        try:
            async for line in self._runner.stream_lines(process, on_stderr=on_stderr):
                event = parse_sidecar_line(line, session_id)
                if event is None:
                    continue
                if isinstance(event, ProcessClosed):
                    if closed:
                        continue
                    closed = True
                self.events.publish(event)

            if not closed:
                code = process.returncode if process.returncode is not None else -1
                self.events.publish(ProcessClosed(code=code, session_id=session_id))
        except Exception as e:
            logger.exception(f"Sidecar output pump failed: {e}")
            if not closed:
                self.events.publish(DebugLine(line=f"error: {e}", session_id=session_id))
                self.events.publish(ProcessClosed(code=-1, session_id=session_id))
        finally:
            self._processes.pop(session_id, None)
            self._pumps.pop(session_id, None)
