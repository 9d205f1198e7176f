"""宿主平台识别。

将当前操作系统/CPU 架构映射为运行时下载 API 认识的路径片段，
并提供平台相关的可执行文件名与命令查找方式。
"""

from __future__ import annotations

import platform
import sys
from dataclasses import dataclass
from enum import Enum

__all__ = ["OSFamily", "HostPlatform", "detect_host"]

# 视为 64 位的机器标识，其余一律回退到 32 位
_X64_MACHINES = frozenset({"x86_64", "amd64", "x64"})


class OSFamily(str, Enum):
    """下载 API 认识的三种操作系统。

    顺序有意义：第一个（WINDOWS）是未知系统的回退值。
    """

    WINDOWS = "windows"
    MAC = "mac"
    LINUX = "linux"


_PLATFORM_MAP: dict[str, OSFamily] = {
    "win32": OSFamily.WINDOWS,
    "cygwin": OSFamily.WINDOWS,
    "darwin": OSFamily.MAC,
    "linux": OSFamily.LINUX,
}


@dataclass(frozen=True)
class HostPlatform:
    """宿主平台。

    Attributes:
        os_family: 操作系统族
        arch: 架构标识（x64 / x86）
    """

    os_family: OSFamily
    arch: str

    @property
    def is_windows(self) -> bool:
        return self.os_family is OSFamily.WINDOWS

    @property
    def exe_name(self) -> str:
        """运行时可执行文件名。"""
        return "java.exe" if self.is_windows else "java"

    def lookup_argv(self) -> list[str]:
        """在 PATH 中查找运行时的命令。"""
        if self.is_windows:
            return ["where", "java"]
        return ["which", "java"]


def detect_host(
    sys_platform: str | None = None,
    machine: str | None = None,
) -> HostPlatform:
    """识别宿主平台。

    Args:
        sys_platform: 覆盖 sys.platform（测试用）
        machine: 覆盖 platform.machine()（测试用）
    """
    sys_platform = sys_platform if sys_platform is not None else sys.platform
    machine = machine if machine is not None else platform.machine()

    os_family = OSFamily.WINDOWS
    for prefix, family in _PLATFORM_MAP.items():
        if sys_platform.startswith(prefix):
            os_family = family
            break

    arch = "x64" if machine.lower() in _X64_MACHINES else "x86"
    return HostPlatform(os_family=os_family, arch=arch)
