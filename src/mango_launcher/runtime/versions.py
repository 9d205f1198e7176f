"""版本解析与运行时版本下限策略。

版本下限表按游戏版本从高到低排列，第一个不高于目标版本的阈值生效。
当前所有档位都解析到同一个运行时主版本 17：旧版本用 17 运行也兼容，
表结构保留是为了以后真正分档时只需改表，不要在此之外另造分档规则。
"""

from __future__ import annotations

import re
from typing import Final

__all__ = [
    "GLOBAL_RUNTIME_FLOOR",
    "parse_distribution_version",
    "parse_major_version",
    "required_runtime_version",
]

# 全局最低运行时主版本，任何输入都不会低于它
GLOBAL_RUNTIME_FLOOR: Final[int] = 17

# (游戏版本阈值, 运行时主版本)，必须按阈值降序排列
_VERSION_FLOORS: Final[tuple[tuple[tuple[int, int], int], ...]] = (
    ((1, 18), 17),
    ((1, 17), 17),
    ((0, 0), 17),
)

_DISTRIBUTION_VERSION_RE = re.compile(r"^\s*(\d+)\.(\d+)")
_RUNTIME_VERSION_RE = re.compile(r'version "(\d+)')


def parse_distribution_version(version: str | None) -> tuple[int, int] | None:
    """解析游戏版本的 (major, minor)。

    "1.20.4" -> (1, 20)；快照等无法解析的版本返回 None。
    """
    if not version:
        return None
    match = _DISTRIBUTION_VERSION_RE.match(version)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def parse_major_version(output: str) -> int | None:
    """从 `java -version` 输出中解析主版本号。

    取 `version "<N>` 中的第一个整数，格式不符时返回 None。
    """
    match = _RUNTIME_VERSION_RE.search(output)
    if not match:
        return None
    return int(match.group(1))


def required_runtime_version(distribution_version: str | None) -> int:
    """返回运行指定游戏版本所需的运行时主版本。

    缺失或无法解析的版本使用表中最高的下限，避免下载过旧的运行时。
    """
    highest = max(major for _, major in _VERSION_FLOORS)
    parsed = parse_distribution_version(distribution_version)
    if parsed is None:
        return max(highest, GLOBAL_RUNTIME_FLOOR)

    for threshold, major in _VERSION_FLOORS:
        if parsed >= threshold:
            return max(major, GLOBAL_RUNTIME_FLOOR)
    return max(highest, GLOBAL_RUNTIME_FLOOR)
