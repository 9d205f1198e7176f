"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import io
import sys
import tarfile
from pathlib import Path
from typing import Callable

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# 测试用脚本目录
FIXTURES_DIR = Path(__file__).parent / "fixtures"

# 打包进测试压缩包的运行时顶层目录名
JRE_DIR_NAME = "jdk-17.0.9+9-jre"


def build_jre_tarball(top: str = JRE_DIR_NAME, major: int = 17) -> bytes:
    """构造一个最小的 JRE tar.gz：<top>/bin/java + <top>/release。"""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tf:
        def add(name: str, content: bytes, mode: int) -> None:
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mode = mode
            tf.addfile(info, io.BytesIO(content))

        add(f"{top}/bin/java", b"#!/bin/sh\necho fake\n", 0o755)
        add(f"{top}/release", f'JAVA_VERSION="{major}.0.9"\n'.encode(), 0o644)
    return buffer.getvalue()


@pytest.fixture
def project_root() -> Path:
    """项目根目录。"""
    return PROJECT_ROOT


@pytest.fixture
def fixtures_dir() -> Path:
    """测试脚本目录。"""
    return FIXTURES_DIR


@pytest.fixture
def install_root(tmp_path: Path) -> Path:
    """空的安装根目录。"""
    root = tmp_path / "mango"
    root.mkdir()
    return root


@pytest.fixture
def jre_tarball() -> bytes:
    """测试用 JRE 压缩包内容。"""
    return build_jre_tarball()


@pytest.fixture
def make_runtime(tmp_path: Path) -> Callable[..., Path]:
    """在指定目录下创建 <name>/bin/java，返回可执行文件路径。"""

    def factory(parent: Path | None = None, name: str = JRE_DIR_NAME, exe: str = "java") -> Path:
        base = (parent or tmp_path) / name / "bin"
        base.mkdir(parents=True, exist_ok=True)
        executable = base / exe
        executable.write_text("#!/bin/sh\n", encoding="utf-8")
        executable.chmod(0o755)
        return executable

    return factory
