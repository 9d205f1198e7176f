"""启动配置规划。

纯函数：由启动请求和运行时描述生成不可变的 LaunchConfiguration，
不访问网络和文件系统。缺少必需字段时同步抛出 ConfigurationError。
"""

from __future__ import annotations

import uuid
from typing import Any

from ..errors import ConfigurationError
from ..runtime.types import RuntimeDescriptor
from .types import (
    Identity,
    LaunchConfiguration,
    LaunchRequest,
    MemoryBounds,
    WindowSize,
)

__all__ = [
    "DEFAULT_PLAYER_NAME",
    "OFFLINE_TOKEN",
    "plan",
    "offline_authorization",
]

# 离线模式默认玩家名
DEFAULT_PLAYER_NAME = "Player"

# 离线模式的占位 token（不会通过任何校验）
OFFLINE_TOKEN = "unsigned"


def offline_authorization(display_name: str = "") -> dict[str, Any]:
    """生成离线身份：随机 UUID + 占位 token。"""
    return {
        "access_token": OFFLINE_TOKEN,
        "client_token": OFFLINE_TOKEN,
        "uuid": str(uuid.uuid4()),
        "name": display_name.strip() or DEFAULT_PLAYER_NAME,
        "user_properties": "{}",
    }


def _resolve_authorization(identity: Identity) -> dict[str, Any]:
    if identity.auth_token is not None:
        return dict(identity.auth_token)
    return offline_authorization(identity.display_name)


def plan(request: LaunchRequest, runtime: RuntimeDescriptor) -> LaunchConfiguration:
    """生成启动配置。

    Args:
        request: 启动请求
        runtime: 已获取的运行时

    Returns:
        LaunchConfiguration 实例

    Raises:
        ConfigurationError: 版本号为空、运行时路径缺失或安装根目录为空
    """
    version = (request.distribution_version or "").strip()
    if not version:
        raise ConfigurationError("Distribution version is required")

    if runtime is None or not str(runtime.executable_path or "").strip():
        raise ConfigurationError("Runtime executable path is required")
    if not runtime.executable_path.is_absolute():
        raise ConfigurationError(f"Runtime path must be absolute: {runtime.executable_path}")

    # Path("") 会变成 "."
    if str(request.install_root).strip() in ("", "."):
        raise ConfigurationError("Install root is required")

    return LaunchConfiguration(
        version=version,
        release_type=request.variant.release_type,
        root=request.install_root,
        java_path=runtime.executable_path,
        authorization=_resolve_authorization(request.identity),
        memory=request.memory or MemoryBounds(),
        window=request.window or WindowSize(),
    )
