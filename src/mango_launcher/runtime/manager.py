"""运行时获取入口。

RuntimeManager 串联探测与下载：先用 RuntimeLocator 查找，找不到时交给
RuntimeProvisioner 下载。同一安装根目录的获取过程用 asyncio.Lock 串行化，
锁内重新探测，后到的调用会直接复用先到调用下载的结果。

跨进程并发下载不在保证范围内。
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from .locator import RuntimeLocator
from .provisioner import RuntimeProvisioner
from .types import RuntimeDescriptor, provision_dir_for
from .versions import required_runtime_version

__all__ = ["RuntimeManager", "provisioning_lock"]

logger = logging.getLogger(__name__)

# 安装根目录 -> 下载锁
_PROVISION_LOCKS: dict[str, asyncio.Lock] = {}


def provisioning_lock(install_root: Path) -> asyncio.Lock:
    """获取安装根目录对应的下载锁。"""
    key = str(Path(install_root).absolute())
    lock = _PROVISION_LOCKS.get(key)
    if lock is None:
        lock = _PROVISION_LOCKS[key] = asyncio.Lock()
    return lock


class RuntimeManager:
    """运行时管理器。

    Attributes:
        install_root: 安装根目录
        locator: 运行时探测器
        provisioner: 运行时下载器
    """

    def __init__(
        self,
        install_root: Path,
        *,
        locator: RuntimeLocator | None = None,
        provisioner: RuntimeProvisioner | None = None,
    ) -> None:
        self.install_root = Path(install_root)
        provision_dir = provision_dir_for(self.install_root)
        self.locator = locator or RuntimeLocator(provision_dir)
        self.provisioner = provisioner or RuntimeProvisioner(provision_dir)

    async def ensure(self, distribution_version: str | None) -> RuntimeDescriptor:
        """返回可运行指定游戏版本的运行时，必要时自动下载。

        Raises:
            ProvisionError: 需要下载但下载失败
        """
        required = required_runtime_version(distribution_version)

        async with provisioning_lock(self.install_root):
            found = await self.locator.locate(required)
            if found is not None:
                return found

            logger.info(f"No runtime >= {required} available, downloading")
            return await self.provisioner.provision(distribution_version)

    async def close(self) -> None:
        await self.provisioner.close()
