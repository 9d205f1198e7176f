"""版本解析与宿主平台识别测试。"""

from __future__ import annotations

import pytest

from mango_launcher.runtime.platform import HostPlatform, OSFamily, detect_host
from mango_launcher.runtime.versions import (
    GLOBAL_RUNTIME_FLOOR,
    parse_distribution_version,
    parse_major_version,
    required_runtime_version,
)


class TestRequiredRuntimeVersion:
    """测试运行时版本下限。"""

    @pytest.mark.parametrize("version", [
        "1.20.4",
        "1.18",
        "1.17.1",
        "1.12.2",
        "1.8.9",
        "2.0",
    ])
    def test_known_versions(self, version: str):
        assert required_runtime_version(version) == 17

    @pytest.mark.parametrize("version", [None, "", "   ", "23w13a", "latest", "1"])
    def test_missing_or_malformed_never_below_floor(self, version):
        """缺失或无法解析的版本不会低于全局下限。"""
        assert required_runtime_version(version) >= GLOBAL_RUNTIME_FLOOR

    def test_floor_value(self):
        assert GLOBAL_RUNTIME_FLOOR == 17


class TestParseDistributionVersion:
    """测试游戏版本解析。"""

    def test_three_part(self):
        assert parse_distribution_version("1.20.4") == (1, 20)

    def test_two_part(self):
        assert parse_distribution_version("1.8") == (1, 8)

    def test_leading_whitespace(self):
        assert parse_distribution_version("  1.19.2") == (1, 19)

    def test_snapshot(self):
        assert parse_distribution_version("23w13a") is None

    def test_none(self):
        assert parse_distribution_version(None) is None


class TestParseMajorVersion:
    """测试 java -version 输出解析。"""

    def test_modern_output(self):
        output = (
            'openjdk version "17.0.9" 2023-10-17\n'
            "OpenJDK Runtime Environment Temurin-17.0.9+9 (build 17.0.9+9)\n"
        )
        assert parse_major_version(output) == 17

    def test_single_number(self):
        assert parse_major_version('java version "21" 2023-09-19') == 21

    def test_legacy_output(self):
        """1.8 格式取第一个整数。"""
        assert parse_major_version('java version "1.8.0_381"') == 1

    def test_unparseable(self):
        assert parse_major_version("command not found") is None
        assert parse_major_version("") is None


class TestDetectHost:
    """测试平台映射。"""

    @pytest.mark.parametrize("sys_platform,expected", [
        ("win32", OSFamily.WINDOWS),
        ("cygwin", OSFamily.WINDOWS),
        ("darwin", OSFamily.MAC),
        ("linux", OSFamily.LINUX),
        ("freebsd13", OSFamily.WINDOWS),
    ])
    def test_os_family(self, sys_platform: str, expected: OSFamily):
        assert detect_host(sys_platform, "x86_64").os_family is expected

    @pytest.mark.parametrize("machine,expected", [
        ("x86_64", "x64"),
        ("AMD64", "x64"),
        ("x64", "x64"),
        ("i686", "x86"),
        ("arm64", "x86"),
        ("", "x86"),
    ])
    def test_arch(self, machine: str, expected: str):
        assert detect_host("linux", machine).arch == expected

    def test_windows_exe_and_lookup(self):
        host = HostPlatform(OSFamily.WINDOWS, "x64")
        assert host.exe_name == "java.exe"
        assert host.lookup_argv() == ["where", "java"]

    def test_posix_exe_and_lookup(self):
        host = HostPlatform(OSFamily.LINUX, "x64")
        assert host.exe_name == "java"
        assert host.lookup_argv() == ["which", "java"]
