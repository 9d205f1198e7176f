"""运行时类型定义。"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

__all__ = [
    "RuntimeOrigin",
    "RuntimeDescriptor",
    "RUNTIME_PROVIDER",
    "provision_dir_for",
]

# 运行时提供方目录名：R/runtime/<provider>/
RUNTIME_PROVIDER = "java"


class RuntimeOrigin(str, Enum):
    """运行时来源。"""

    SYSTEM = "system"
    PROVISIONED = "provisioned"


@dataclass(frozen=True)
class RuntimeDescriptor:
    """一个可用的运行时。

    Attributes:
        executable_path: 可执行文件绝对路径
        major_version: 主版本号
        origin: 来源（系统安装 / 启动器下载）
    """

    executable_path: Path
    major_version: int
    origin: RuntimeOrigin

    def to_dict(self) -> dict[str, str | int]:
        return {
            "executable_path": str(self.executable_path),
            "major_version": self.major_version,
            "origin": self.origin.value,
        }


def provision_dir_for(install_root: Path) -> Path:
    """返回安装根目录下的运行时下载目录。"""
    return Path(install_root) / "runtime" / RUNTIME_PROVIDER
