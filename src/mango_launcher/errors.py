"""启动器异常类。

异常分层:
    DiscoveryError     - 运行时探测失败（非致命，只会触发回退）
    ProvisionError     - 运行时下载/解压失败（致命，终止本次获取）
    ConfigurationError - 启动配置不完整（致命，同步抛出，不会启动进程）
    ProcessStartError  - 子进程启动失败（致命，supervisor 回到 Idle）
    ProcessExitError   - 子进程非零退出（只作为通知，不抛出）
"""

from __future__ import annotations

__all__ = [
    "LauncherError",
    "DiscoveryError",
    "ProvisionError",
    "ConfigurationError",
    "ProcessStartError",
    "ProcessExitError",
]


class LauncherError(Exception):
    """启动器基础异常。"""
    pass


class DiscoveryError(LauncherError):
    """系统运行时探测失败。

    只在 RuntimeLocator 内部使用，不会传播到调用方。
    """
    pass


class ProvisionError(LauncherError):
    """运行时下载或解压失败。

    Attributes:
        status_code: 下载失败时的 HTTP 状态码（非 HTTP 错误为 None）
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ConfigurationError(LauncherError):
    """启动配置缺少必需字段。"""
    pass


class ProcessStartError(LauncherError):
    """子进程启动失败。"""
    pass


class ProcessExitError(LauncherError):
    """子进程以非零退出码结束。

    Attributes:
        exit_code: 进程退出码
    """

    def __init__(self, exit_code: int) -> None:
        self.exit_code = exit_code
        super().__init__(f"Game exited with code {exit_code}. Check the logs for details.")
