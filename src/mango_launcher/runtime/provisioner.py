"""运行时自动下载。

使用 aiohttp 从运行时分发 API 下载 JRE 压缩包，解压到下载目录。

流程:
1. 按游戏版本确定运行时主版本
2. 按 {主版本, 操作系统, 架构} 拼接下载 URL
3. 下载到下载目录下的临时文件（手动跟随 301/302 重定向，跳数有上限）
4. 解压到暂存目录
5. 删除压缩包
6. 在解压结果中查找 <dir>/bin/<exe>，找到后移入下载目录

任何一步失败都会清理临时文件和暂存目录，重试时不会复用损坏的产物。
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tarfile
import zipfile
from pathlib import Path
from typing import Callable

import aiohttp
import anyio
from yarl import URL

from ..errors import ProvisionError
from .archive import extract_archive, find_executable
from .platform import HostPlatform, detect_host
from .types import RuntimeDescriptor, RuntimeOrigin
from .versions import required_runtime_version

__all__ = [
    "DEFAULT_ENDPOINT",
    "DEFAULT_MAX_REDIRECTS",
    "RuntimeProvisioner",
]

logger = logging.getLogger(__name__)

# 默认运行时分发 API（Eclipse Temurin）
DEFAULT_ENDPOINT = "https://api.adoptium.net"

# 重定向跳数上限
DEFAULT_MAX_REDIRECTS = 5

_REDIRECT_STATUSES = frozenset({301, 302})
_CHUNK_SIZE = 64 * 1024

# 解压阶段可能抛出的异常（zipfile 对不支持的压缩方式抛 NotImplementedError）
_EXTRACTION_ERRORS = (
    OSError,
    EOFError,
    ValueError,
    NotImplementedError,
    tarfile.TarError,
    zipfile.BadZipFile,
)

# 下载进度回调: (已下载字节, 总字节，未知时为 0)
ProgressCallback = Callable[[int, int], None]


def _discard(path: Path) -> None:
    """删除临时文件，清理失败只记录日志。"""
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Cannot remove {path}: {e}")


class RuntimeProvisioner:
    """下载并解压运行时。

    同一安装根目录下的多次 provision 调用不能并发，由 RuntimeManager 串行化。

    Example:
        provisioner = RuntimeProvisioner(provision_dir_for(root))
        try:
            runtime = await provisioner.provision("1.20.4")
        finally:
            await provisioner.close()
    """

    def __init__(
        self,
        provision_dir: Path,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        host: HostPlatform | None = None,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        session: aiohttp.ClientSession | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """初始化下载器。

        Args:
            provision_dir: 运行时下载目录（R/runtime/java）
            endpoint: 分发 API 根地址
            host: 宿主平台（默认自动识别）
            max_redirects: 重定向跳数上限
            session: 外部 HTTP 会话（可选，外部会话不会被 close() 关闭）
            on_progress: 下载进度回调
        """
        self.provision_dir = Path(provision_dir)
        self.endpoint = endpoint.rstrip("/")
        self.host = host or detect_host()
        self.max_redirects = max_redirects
        self._on_progress = on_progress
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """获取或创建 HTTP 会话。"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=None, sock_connect=30, sock_read=60),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """关闭自建的 HTTP 会话。"""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    def download_url(self, major_version: int) -> str:
        """拼接指定主版本在当前平台上的下载地址。"""
        return (
            f"{self.endpoint}/v3/binary/latest/{major_version}/ga/"
            f"{self.host.os_family.value}/{self.host.arch}/jre/hotspot/normal/eclipse"
        )

    async def provision(self, distribution_version: str | None) -> RuntimeDescriptor:
        """下载并安装运行游戏版本所需的运行时。

        Raises:
            ProvisionError: 下载、解压或查找失败
        """
        major = required_runtime_version(distribution_version)
        url = self.download_url(major)
        archive = self.provision_dir / f"java-{major}.download"
        staging = self.provision_dir / f".staging-{major}"

        logger.info(f"Provisioning runtime {major} from {url}")

        try:
            try:
                self.provision_dir.mkdir(parents=True, exist_ok=True)
                shutil.rmtree(staging, ignore_errors=True)
            except OSError as e:
                raise ProvisionError(f"Cannot prepare {self.provision_dir}: {e}") from e

            await self.download(url, archive)
            try:
                await anyio.to_thread.run_sync(extract_archive, archive, staging)
            except _EXTRACTION_ERRORS as e:
                raise ProvisionError(f"Extraction failed: {e}") from e
            _discard(archive)

            found = await anyio.to_thread.run_sync(find_executable, staging, self.host.exe_name)
            if found is None:
                raise ProvisionError("executable not found after extraction")

            try:
                executable = await anyio.to_thread.run_sync(self._promote, staging, found)
            except OSError as e:
                raise ProvisionError(f"Cannot install runtime: {e}") from e
        finally:
            _discard(archive)
            shutil.rmtree(staging, ignore_errors=True)

        logger.info(f"Runtime {major} installed at {executable}")
        return RuntimeDescriptor(
            executable_path=executable,
            major_version=major,
            origin=RuntimeOrigin.PROVISIONED,
        )

    async def download(self, url: str, dest: Path) -> None:
        """下载 url 到 dest。

        失败（包括取消）时删除已写入的部分文件后再传播异常。

        Raises:
            ProvisionError: 非 200/301/302 状态、重定向过多或网络错误
        """
        try:
            await self._fetch(url, dest)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            _discard(dest)
            raise ProvisionError(f"Download failed: {e}") from e
        except OSError as e:
            _discard(dest)
            raise ProvisionError(f"Cannot write {dest}: {e}") from e
        except BaseException:
            _discard(dest)
            raise

    async def _fetch(self, url: str, dest: Path) -> None:
        session = await self._get_session()
        current = URL(url)

        for hop in range(self.max_redirects + 1):
            async with session.get(current, allow_redirects=False) as resp:
                if resp.status in _REDIRECT_STATUSES:
                    location = resp.headers.get("Location")
                    if not location:
                        raise ProvisionError(
                            f"Redirect without Location header from {current}",
                            status_code=resp.status,
                        )
                    # Location 可能是相对地址
                    current = current.join(URL(location))
                    logger.debug(f"Redirect {resp.status} (hop {hop + 1}) -> {current}")
                    continue

                if resp.status != 200:
                    raise ProvisionError(
                        f"Download failed with HTTP {resp.status}",
                        status_code=resp.status,
                    )

                total = resp.content_length or 0
                received = 0
                with dest.open("wb") as fh:
                    async for chunk in resp.content.iter_chunked(_CHUNK_SIZE):
                        fh.write(chunk)
                        received += len(chunk)
                        if self._on_progress:
                            self._on_progress(received, total)

                logger.debug(f"Downloaded {received} bytes to {dest}")
                return

        raise ProvisionError(f"Too many redirects (>{self.max_redirects})")

    def _promote(self, staging: Path, found: Path) -> Path:
        """把暂存目录中的顶层条目移入下载目录，返回可执行文件的新路径。

        同名的旧条目会被替换。
        """
        relative = found.relative_to(staging)
        for entry in sorted(staging.iterdir()):
            target = self.provision_dir / entry.name
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            elif target.exists() or target.is_symlink():
                target.unlink()
            shutil.move(str(entry), str(target))
        return (self.provision_dir / relative).absolute()
