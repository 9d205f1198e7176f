"""启动流程编排。

Launcher 串联整个启动流程：

    获取运行时 -> 生成启动配置 -> 交给 ProcessSupervisor 启动

每个致命错误都会转换为失败的 LaunchResult 并发送一条 error 消息，
launching 标志总会被复位，调用方可以直接重试。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .errors import ConfigurationError, ProcessStartError, ProvisionError
from .launch import LaunchRequest, LaunchSession, ProcessSupervisor, plan
from .relay import EventRelay
from .runtime import RuntimeManager

__all__ = [
    "AUTO_DOWNLOAD_HINT",
    "LaunchResult",
    "Launcher",
    "installed_versions",
    "is_installed",
]

logger = logging.getLogger(__name__)

AUTO_DOWNLOAD_HINT = "the launcher will try to download the runtime automatically"


@dataclass
class LaunchResult:
    """一次启动调用的结果。

    Attributes:
        success: 进程是否已成功启动
        error: 失败原因
        session: 启动成功时的会话
    """

    success: bool
    error: str | None = None
    session: LaunchSession | None = None


def installed_versions(install_root: Path) -> list[str]:
    """列出已安装的游戏版本（R/versions 下的目录名，排序后返回）。"""
    versions_dir = Path(install_root) / "versions"
    try:
        return sorted(entry.name for entry in versions_dir.iterdir() if entry.is_dir())
    except OSError:
        return []


def is_installed(install_root: Path, version: str) -> bool:
    if not version or not version.strip():
        return False
    return (Path(install_root) / "versions" / version).is_dir()


class Launcher:
    """启动流程编排器。

    Example:
        relay = EventRelay()
        launcher = Launcher(ProcessSupervisor(SidecarCapability(), relay), relay)
        result = await launcher.launch(LaunchRequest("1.20.4", root))
        if result.success:
            await result.session.wait()
    """

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        relay: EventRelay,
        *,
        runtime_factory: Callable[[Path], RuntimeManager] = RuntimeManager,
    ) -> None:
        self.supervisor = supervisor
        self.relay = relay
        self._runtime_factory = runtime_factory
        self._launching = False

    @property
    def launching(self) -> bool:
        """是否有启动流程正在进行。"""
        return self._launching

    async def launch(self, request: LaunchRequest) -> LaunchResult:
        """执行完整启动流程。不抛出启动相关异常。"""
        if self._launching:
            return self._fail("A launch is already in progress")

        self._launching = True
        runtime_manager = self._runtime_factory(request.install_root)
        try:
            self.relay.status("Checking runtime...")
            try:
                runtime = await runtime_manager.ensure(request.distribution_version)
            except ProvisionError as e:
                logger.error(f"Runtime acquisition failed: {e}")
                return self._fail(f"Runtime setup failed: {e}. {AUTO_DOWNLOAD_HINT}.")

            logger.info(f"Using runtime {runtime.executable_path} ({runtime.origin.value})")
            self.relay.status("Runtime ready, starting game...")

            try:
                config = plan(request, runtime)
                session = await self.supervisor.launch(config)
            except (ConfigurationError, ProcessStartError) as e:
                logger.error(f"Launch failed: {e}")
                return self._fail(f"Launch failed: {e}")

            return LaunchResult(success=True, session=session)
        finally:
            try:
                await runtime_manager.close()
            finally:
                self._launching = False

    def _fail(self, message: str) -> LaunchResult:
        self.relay.error(message)
        return LaunchResult(success=False, error=message)
