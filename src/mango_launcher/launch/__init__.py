"""启动编排模块。

提供启动配置规划、启动能力适配、事件流和进程监管。
"""

from __future__ import annotations

from .capability import LaunchCapability
from .events import (
    DataLine,
    DebugLine,
    EventHub,
    EventKind,
    ProcessClosed,
    ProgressCategory,
    ProgressEvent,
    ProgressTick,
    Subscription,
    compute_percent,
)
from .planner import plan
from .sidecar import SidecarCapability, parse_sidecar_line
from .supervisor import LaunchSession, ProcessSupervisor, SessionState
from .types import (
    Identity,
    LaunchConfiguration,
    LaunchRequest,
    MemoryBounds,
    Variant,
    WindowSize,
)

__all__ = [
    # Types
    "Variant",
    "Identity",
    "MemoryBounds",
    "WindowSize",
    "LaunchRequest",
    "LaunchConfiguration",
    # Events
    "EventKind",
    "DataLine",
    "DebugLine",
    "ProgressTick",
    "ProcessClosed",
    "ProgressCategory",
    "ProgressEvent",
    "EventHub",
    "Subscription",
    "compute_percent",
    # Planning
    "plan",
    # Capability
    "LaunchCapability",
    "SidecarCapability",
    "parse_sidecar_line",
    # Supervision
    "SessionState",
    "LaunchSession",
    "ProcessSupervisor",
]
