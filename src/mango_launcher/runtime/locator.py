"""运行时探测。

查找顺序：
1. 系统 PATH 中的运行时（需通过版本校验）
2. 启动器此前下载到 R/runtime/java/ 的运行时（一层目录，不执行，只读 release 文件）

探测过程中的任何错误（命令不存在、非零退出、输出无法解析、超时）
都只会降级到下一步，不会中断整个获取流程。
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path

from ..errors import DiscoveryError
from .platform import HostPlatform, detect_host
from .types import RuntimeDescriptor, RuntimeOrigin
from .versions import parse_major_version

__all__ = ["RuntimeLocator"]

logger = logging.getLogger(__name__)

# 版本查询命令的超时（秒）
DEFAULT_QUERY_TIMEOUT = 10.0

_RELEASE_VERSION_RE = re.compile(r'^JAVA_VERSION="(\d+)(?:\.(\d+))?', re.MULTILINE)


class RuntimeLocator:
    """在宿主机上查找可用的运行时。

    Example:
        locator = RuntimeLocator(provision_dir_for(root))
        runtime = await locator.locate(17)
        if runtime is None:
            runtime = await provisioner.provision("1.20.4")
    """

    def __init__(
        self,
        provision_dir: Path,
        *,
        host: HostPlatform | None = None,
        query_timeout: float = DEFAULT_QUERY_TIMEOUT,
    ) -> None:
        """初始化探测器。

        Args:
            provision_dir: 运行时下载目录（R/runtime/java）
            host: 宿主平台（默认自动识别）
            query_timeout: 单条探测命令的超时（秒）
        """
        self.provision_dir = Path(provision_dir)
        self.host = host or detect_host()
        self.query_timeout = query_timeout

    async def locate(self, min_version: int) -> RuntimeDescriptor | None:
        """查找主版本不低于 min_version 的运行时。

        Returns:
            运行时描述，找不到时返回 None
        """
        system = await self.find_system(min_version)
        if system is not None:
            logger.info(f"Using system runtime: {system.executable_path} (v{system.major_version})")
            return system

        provisioned = self.find_provisioned(min_version)
        if provisioned is not None:
            logger.info(f"Using provisioned runtime: {provisioned.executable_path}")
            return provisioned

        logger.info(f"No runtime >= {min_version} found")
        return None

    async def find_system(self, min_version: int) -> RuntimeDescriptor | None:
        """查找系统安装的运行时，版本低于下限时返回 None。"""
        try:
            path = await self._resolve_command()
            version = await self.query_version(path)
        except DiscoveryError as e:
            logger.debug(f"No usable system runtime: {e}")
            return None

        if version < min_version:
            logger.info(f"System runtime is too old (v{version}), need v{min_version}+")
            return None

        return RuntimeDescriptor(
            executable_path=path,
            major_version=version,
            origin=RuntimeOrigin.SYSTEM,
        )

    def find_provisioned(self, min_version: int) -> RuntimeDescriptor | None:
        """在下载目录中一层查找 <entry>/bin/<exe>。

        按目录名字典序返回第一个匹配；下载步骤保证了版本兼容，这里不再执行运行时。
        release 文件明确记录了低于下限的版本时跳过该目录。
        """
        if not self.provision_dir.is_dir():
            return None

        try:
            entries = sorted(p for p in self.provision_dir.iterdir() if p.is_dir())
        except OSError as e:
            logger.warning(f"Cannot scan {self.provision_dir}: {e}")
            return None

        for entry in entries:
            candidate = entry / "bin" / self.host.exe_name
            if not candidate.is_file():
                continue

            version = self._read_release_version(entry)
            if version is not None and version < min_version:
                logger.debug(f"Skipping {entry.name}: release file reports v{version}, need v{min_version}+")
                continue

            return RuntimeDescriptor(
                executable_path=candidate.absolute(),
                major_version=version or min_version,
                origin=RuntimeOrigin.PROVISIONED,
            )
        return None

    async def query_version(self, executable: Path) -> int:
        """执行 `<exe> -version` 并解析主版本号。

        Raises:
            DiscoveryError: 命令失败或输出无法解析
        """
        returncode, output = await self._run([str(executable), "-version"])
        if returncode != 0:
            raise DiscoveryError(f"{executable} -version exited with code {returncode}")

        version = parse_major_version(output)
        if version is None:
            raise DiscoveryError(f"Cannot parse runtime version from: {output[:200]!r}")
        return version

    async def _resolve_command(self) -> Path:
        """通过 where/which 在 PATH 中查找运行时。"""
        returncode, output = await self._run(self.host.lookup_argv())
        if returncode != 0:
            raise DiscoveryError(f"{self.host.exe_name} not found on PATH")

        # where 可能返回多行，取第一行
        first_line = next((line.strip() for line in output.splitlines() if line.strip()), "")
        if not first_line:
            raise DiscoveryError("Empty command lookup output")

        path = Path(first_line)
        if not path.exists():
            raise DiscoveryError(f"Resolved runtime does not exist: {path}")
        return path

    async def _run(self, argv: list[str]) -> tuple[int, str]:
        """执行命令，返回 (returncode, stdout+stderr)。"""
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise DiscoveryError(f"Cannot run {argv[0]}: {e}") from e

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=self.query_timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise DiscoveryError(f"{argv[0]} timed out after {self.query_timeout}s") from e

        return process.returncode or 0, stdout.decode("utf-8", errors="replace")

    @staticmethod
    def _read_release_version(runtime_home: Path) -> int | None:
        """从运行时目录的 release 文件读取主版本号。

        旧格式 "1.8.0_392" 取第二段，即 8。
        """
        release = runtime_home / "release"
        try:
            match = _RELEASE_VERSION_RE.search(release.read_text(encoding="utf-8", errors="replace"))
        except OSError:
            return None
        if not match:
            return None
        major = int(match.group(1))
        if major == 1 and match.group(2):
            return int(match.group(2))
        return major
