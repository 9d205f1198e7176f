"""启动相关类型定义。

定义启动请求、身份、内存/窗口设置以及最终交给启动能力的启动配置。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

__all__ = [
    "Variant",
    "Identity",
    "MemoryBounds",
    "WindowSize",
    "ProcessOverrides",
    "LaunchRequest",
    "LaunchConfiguration",
]


class Variant(str, Enum):
    """游戏版本变体（原版或 Mod 加载器）。"""

    VANILLA = "vanilla"
    FABRIC = "fabric"
    FORGE = "forge"

    @property
    def release_type(self) -> str:
        """子进程使用的 release type。

        原版映射为 "release"，其余变体原样透传。
        """
        if self is Variant.VANILLA:
            return "release"
        return self.value


@dataclass(frozen=True)
class Identity:
    """玩家身份。

    Attributes:
        display_name: 显示名称（离线模式使用）
        auth_token: 外部登录得到的授权材料，原样透传；None 表示离线
    """

    display_name: str = ""
    auth_token: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        if self.auth_token is not None:
            object.__setattr__(self, "auth_token", MappingProxyType(dict(self.auth_token)))


@dataclass(frozen=True)
class MemoryBounds:
    """JVM 内存上下限（例如 "4G" / "2G"）。"""

    max: str = "4G"
    min: str = "2G"


@dataclass(frozen=True)
class WindowSize:
    """游戏窗口尺寸。"""

    width: int = 1280
    height: int = 720


@dataclass(frozen=True)
class ProcessOverrides:
    """传给启动能力的进程选项。"""

    detached: bool = False
    max_sockets: int = 64


@dataclass(frozen=True)
class LaunchRequest:
    """一次启动请求。

    Attributes:
        distribution_version: 游戏版本号，如 "1.20.4"
        variant: 版本变体
        identity: 玩家身份
        install_root: 安装根目录
        memory: 内存设置覆盖（None 使用默认值）
        window: 窗口尺寸覆盖（None 使用默认值）
    """

    distribution_version: str
    install_root: Path
    variant: Variant = Variant.VANILLA
    identity: Identity = field(default_factory=Identity)
    memory: MemoryBounds | None = None
    window: WindowSize | None = None

    def __post_init__(self) -> None:
        """确保 install_root 是 Path，variant 是枚举。"""
        if isinstance(self.install_root, str):
            object.__setattr__(self, "install_root", Path(self.install_root))
        if isinstance(self.variant, str) and not isinstance(self.variant, Variant):
            object.__setattr__(self, "variant", Variant(self.variant.lower()))


@dataclass(frozen=True)
class LaunchConfiguration:
    """完全解析后的启动配置。

    由 LaunchPlanner 生成，启动期间归 ProcessSupervisor 独占。

    Attributes:
        version: 游戏版本号
        release_type: 版本类型（release / fabric / ...）
        root: 安装根目录
        java_path: 运行时可执行文件
        authorization: 授权材料
        memory: 内存设置
        window: 窗口尺寸
        overrides: 进程选项
    """

    version: str
    release_type: str
    root: Path
    java_path: Path
    authorization: Mapping[str, Any]
    memory: MemoryBounds = field(default_factory=MemoryBounds)
    window: WindowSize = field(default_factory=WindowSize)
    overrides: ProcessOverrides = field(default_factory=ProcessOverrides)

    def to_options(self) -> dict[str, Any]:
        """转换为启动能力接受的选项对象。"""
        return {
            "authorization": dict(self.authorization),
            "root": str(self.root),
            "version": {
                "number": self.version,
                "type": self.release_type,
            },
            "memory": {
                "max": self.memory.max,
                "min": self.memory.min,
            },
            "javaPath": str(self.java_path),
            "overrides": {
                "detached": self.overrides.detached,
                "maxSockets": self.overrides.max_sockets,
            },
            "window": {
                "width": self.window.width,
                "height": self.window.height,
            },
        }
