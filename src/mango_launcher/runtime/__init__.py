"""运行时获取模块。

提供运行时探测、自动下载和版本下限策略。
"""

from __future__ import annotations

from .locator import RuntimeLocator
from .manager import RuntimeManager
from .platform import HostPlatform, OSFamily, detect_host
from .provisioner import RuntimeProvisioner
from .types import RuntimeDescriptor, RuntimeOrigin, provision_dir_for
from .versions import GLOBAL_RUNTIME_FLOOR, required_runtime_version

__all__ = [
    # Types
    "RuntimeDescriptor",
    "RuntimeOrigin",
    "HostPlatform",
    "OSFamily",
    # Components
    "RuntimeLocator",
    "RuntimeProvisioner",
    "RuntimeManager",
    # Helpers
    "GLOBAL_RUNTIME_FLOOR",
    "detect_host",
    "provision_dir_for",
    "required_runtime_version",
]
