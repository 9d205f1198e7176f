"""运行时压缩包解压与可执行文件查找。

这些都是阻塞的文件系统操作，由调用方放到工作线程中执行。
"""

from __future__ import annotations

import logging
import os
import tarfile
import zipfile
from pathlib import Path

from ..errors import ProvisionError

__all__ = [
    "MAX_SEARCH_DEPTH",
    "extract_archive",
    "find_executable",
]

logger = logging.getLogger(__name__)

# 查找可执行文件时的最大目录深度
MAX_SEARCH_DEPTH = 8


def extract_archive(archive: Path, dest: Path) -> None:
    """按内容识别格式（zip / tar.*）并解压到 dest，保留内部目录结构。

    Raises:
        ProvisionError: 格式不支持或包含越界路径
    """
    dest.mkdir(parents=True, exist_ok=True)

    if zipfile.is_zipfile(archive):
        _extract_zip(archive, dest)
    elif tarfile.is_tarfile(archive):
        _extract_tar(archive, dest)
    else:
        raise ProvisionError(f"Unsupported archive format: {archive.name}")


def _extract_zip(archive: Path, dest: Path) -> None:
    root = dest.resolve()
    with zipfile.ZipFile(archive) as zf:
        for info in zf.infolist():
            target = (dest / info.filename).resolve()
            if target != root and root not in target.parents:
                raise ProvisionError(f"Archive entry escapes destination: {info.filename}")

            extracted = Path(zf.extract(info, dest))

            # zipfile 不会还原权限位，bin/java 需要可执行位
            mode = (info.external_attr >> 16) & 0o777
            if mode and not info.is_dir():
                os.chmod(extracted, mode)


def _extract_tar(archive: Path, dest: Path) -> None:
    with tarfile.open(archive, "r:*") as tf:
        try:
            tf.extractall(dest, filter="data")
        except tarfile.FilterError as e:
            raise ProvisionError(f"Archive entry rejected: {e}") from e


def find_executable(
    root: Path,
    exe_name: str,
    max_depth: int = MAX_SEARCH_DEPTH,
) -> Path | None:
    """深度优先查找 <dir>/bin/<exe_name>。

    遍历顺序：同级目录按名称字典序，进入一个目录时先检查它自己的
    bin/<exe_name>，再依次进入子目录。root 本身不检查。
    不跟随符号链接目录；无权限读取的子树直接跳过。

    Returns:
        第一个匹配的可执行文件路径，找不到时返回 None
    """
    stack: list[tuple[Path, int]] = [
        (child, 1) for child in reversed(_list_dirs(root))
    ]

    while stack:
        current, depth = stack.pop()

        candidate = current / "bin" / exe_name
        if candidate.is_file():
            return candidate

        if depth >= max_depth:
            continue
        stack.extend((child, depth + 1) for child in reversed(_list_dirs(current)))

    return None


def _list_dirs(path: Path) -> list[Path]:
    """按名称排序列出子目录，读取失败时返回空列表。"""
    try:
        return sorted(
            p for p in path.iterdir()
            if p.is_dir() and not p.is_symlink()
        )
    except OSError as e:
        logger.debug(f"Skipping unreadable directory {path}: {e}")
        return []
