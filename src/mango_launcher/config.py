"""启动器环境变量配置。

环境变量:
    MANGO_HOME: 安装根目录
        - 默认 %APPDATA%/.mango_launcher，没有 APPDATA 时为 ~/.mango_launcher

    MANGO_SIDECAR: 启动器 sidecar 命令行
        - 按 shell 规则拆分，例: "node sidecar/launcher.js"
        - 默认 mango-sidecar

    MANGO_RUNTIME_ENDPOINT: 运行时下载 API 根地址
        - 默认 https://api.adoptium.net

    MANGO_MEMORY_MAX / MANGO_MEMORY_MIN: JVM 内存上下限覆盖
        - 例: "6G" / "1G"，未设置时使用 4G / 2G

    MANGO_PROGRESS_INTERVAL: 进度消息最小转发间隔（秒）
        - 默认 0.5，限制在 0.05-10 秒范围

    MANGO_MAX_REDIRECTS: 下载重定向跳数上限
        - 默认 5，限制在 1-20 范围

    MANGO_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import os
import shlex
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from .launch.sidecar import DEFAULT_SIDECAR_COMMAND
from .relay import DEFAULT_PROGRESS_INTERVAL
from .runtime.provisioner import DEFAULT_ENDPOINT, DEFAULT_MAX_REDIRECTS

__all__ = ["Config", "load_config", "get_config", "reload_config"]


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_float(value: str | None, default: float, low: float, high: float) -> float:
    """解析浮点数并限制范围，无效值返回默认值。"""
    if not value:
        return default
    try:
        return max(low, min(float(value), high))
    except ValueError:
        return default


def _parse_int(value: str | None, default: int, low: int, high: int) -> int:
    """解析整数并限制范围，无效值返回默认值。"""
    if not value:
        return default
    try:
        return max(low, min(int(value), high))
    except ValueError:
        return default


def _default_install_root() -> Path:
    base = os.environ.get("APPDATA") or str(Path.home())
    return Path(base) / ".mango_launcher"


def _parse_command(value: str | None) -> list[str]:
    """拆分 sidecar 命令行，空值使用默认命令。"""
    if not value or not value.strip():
        return list(DEFAULT_SIDECAR_COMMAND)
    return shlex.split(value, posix=os.name != "nt")


@dataclass
class Config:
    """启动器配置。

    Attributes:
        install_root: 安装根目录
        sidecar_command: sidecar 命令行
        runtime_endpoint: 运行时下载 API 根地址
        memory_max: JVM 内存上限覆盖（None 使用默认值）
        memory_min: JVM 内存下限覆盖（None 使用默认值）
        progress_interval: 进度消息最小转发间隔（秒）
        max_redirects: 下载重定向跳数上限
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    install_root: Path = field(default_factory=_default_install_root)
    sidecar_command: list[str] = field(default_factory=lambda: list(DEFAULT_SIDECAR_COMMAND))
    runtime_endpoint: str = DEFAULT_ENDPOINT
    memory_max: str | None = None
    memory_min: str | None = None
    progress_interval: float = DEFAULT_PROGRESS_INTERVAL
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(install_root={self.install_root}, "
            f"sidecar_command={' '.join(self.sidecar_command)}, "
            f"runtime_endpoint={self.runtime_endpoint}, "
            f"memory={self.memory_max or '-'}/{self.memory_min or '-'}, "
            f"progress_interval={self.progress_interval}, "
            f"max_redirects={self.max_redirects}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """生成临时目录下带时间戳的日志文件路径。"""
    log_dir = Path(tempfile.gettempdir()) / "mango-launcher"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"mango_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("MANGO_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    home = os.environ.get("MANGO_HOME", "").strip()

    return Config(
        install_root=Path(home).expanduser() if home else _default_install_root(),
        sidecar_command=_parse_command(os.environ.get("MANGO_SIDECAR")),
        runtime_endpoint=os.environ.get("MANGO_RUNTIME_ENDPOINT", "").strip() or DEFAULT_ENDPOINT,
        memory_max=os.environ.get("MANGO_MEMORY_MAX", "").strip() or None,
        memory_min=os.environ.get("MANGO_MEMORY_MIN", "").strip() or None,
        progress_interval=_parse_float(
            os.environ.get("MANGO_PROGRESS_INTERVAL"),
            DEFAULT_PROGRESS_INTERVAL, 0.05, 10.0,
        ),
        max_redirects=_parse_int(
            os.environ.get("MANGO_MAX_REDIRECTS"),
            DEFAULT_MAX_REDIRECTS, 1, 20,
        ),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
