"""启动事件模型与事件流。

启动能力产生四类原始事件（data / progress / close / debug），通过 EventHub
分发给订阅者。每个订阅返回一个 Subscription，由持有者显式取消；
LaunchSession 持有自己的全部订阅，退役时一次性取消，
因此同一个进程事件不会被重复的处理器链消费。

每个事件带有产生它的启动会话 ID，处理器据此忽略其他会话的事件。
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Literal

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    # 原始事件
    "EventKind",
    "RawEventBase",
    "DataLine",
    "DebugLine",
    "ProgressTick",
    "ProcessClosed",
    "RawEvent",
    # 规范化进度
    "ProgressCategory",
    "ProgressEvent",
    "compute_percent",
    # 事件流
    "EventHandler",
    "Subscription",
    "EventHub",
]

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """原始事件类型。"""

    DATA = "data"
    PROGRESS = "progress"
    CLOSE = "close"
    DEBUG = "debug"


class RawEventBase(BaseModel):
    """原始事件基类。

    Attributes:
        session_id: 产生该事件的启动会话 ID
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    kind: EventKind
    session_id: str = ""


class DataLine(RawEventBase):
    """游戏输出的一行日志。"""

    kind: Literal[EventKind.DATA] = EventKind.DATA
    line: str = ""


class DebugLine(RawEventBase):
    """启动器内部的调试输出。

    Attributes:
        severity: debug / error / fatal；fatal 表示启动器自身无法继续
    """

    kind: Literal[EventKind.DEBUG] = EventKind.DEBUG
    line: str = ""
    severity: Literal["debug", "error", "fatal"] = "debug"

    @property
    def is_fatal(self) -> bool:
        return self.severity == "fatal"


class ProgressTick(RawEventBase):
    """下载/安装进度。

    Attributes:
        category: 上游任务类型（assets / natives / classes / ...）
        task: 已完成数量
        total: 总数量
    """

    kind: Literal[EventKind.PROGRESS] = EventKind.PROGRESS
    category: str = ""
    task: int = 0
    total: int = 0


class ProcessClosed(RawEventBase):
    """进程退出。"""

    kind: Literal[EventKind.CLOSE] = EventKind.CLOSE
    code: int = 0


RawEvent = DataLine | DebugLine | ProgressTick | ProcessClosed


class ProgressCategory(str, Enum):
    """规范化后的进度分类。"""

    ASSETS = "assets"
    NATIVES = "natives"
    LIBRARIES = "libraries"
    OTHER = "other"

    @classmethod
    def from_raw(cls, value: str | None) -> "ProgressCategory":
        """映射上游任务类型，未知类型归为 OTHER。"""
        value = (value or "").lower().strip()
        if value == "assets":
            return cls.ASSETS
        if value == "natives":
            return cls.NATIVES
        if value in ("classes", "libraries"):
            return cls.LIBRARIES
        return cls.OTHER


def compute_percent(completed: int, total: int) -> float:
    """计算百分比并限制在 [0, 100]，total 为 0 时返回 0。"""
    if total <= 0:
        return 0.0
    percent = completed / total * 100
    return max(0.0, min(percent, 100.0))


class ProgressEvent(BaseModel):
    """规范化的进度事件。"""

    model_config = ConfigDict(frozen=True)

    category: ProgressCategory = ProgressCategory.OTHER
    completed: int = 0
    total: int = 0
    percent: float = Field(default=0.0, ge=0.0, le=100.0)

    @classmethod
    def create(cls, category: ProgressCategory, completed: int, total: int) -> "ProgressEvent":
        return cls(
            category=category,
            completed=completed,
            total=total,
            percent=compute_percent(completed, total),
        )

    @classmethod
    def from_tick(cls, tick: ProgressTick) -> "ProgressEvent":
        return cls.create(ProgressCategory.from_raw(tick.category), tick.task, tick.total)

    @property
    def is_complete(self) -> bool:
        return self.percent >= 100.0


EventHandler = Callable[[RawEvent], None]


class Subscription:
    """一次事件订阅。

    cancel() 幂等；取消后处理器不会再收到任何事件，
    即使取消发生在同一轮分发过程中。
    """

    __slots__ = ("_hub", "kind", "handler", "_active")

    def __init__(self, hub: "EventHub", kind: EventKind, handler: EventHandler) -> None:
        self._hub = hub
        self.kind = kind
        self.handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._hub._remove(self)

    def __repr__(self) -> str:
        state = "active" if self._active else "cancelled"
        return f"Subscription(kind={self.kind.value}, {state})"


class EventHub:
    """按事件类型分发的同步事件流。

    publish() 在调用方所在的事件循环中按订阅顺序同步调用处理器，
    保持单个进程内事件的发出顺序。

    Example:
        hub = EventHub()
        sub = hub.subscribe(EventKind.DATA, on_line)
        hub.publish(DataLine(line="hello"))
        sub.cancel()
    """

    def __init__(self) -> None:
        self._subscriptions: dict[EventKind, list[Subscription]] = {kind: [] for kind in EventKind}

    def subscribe(self, kind: EventKind | str, handler: EventHandler) -> Subscription:
        """订阅一类事件。"""
        subscription = Subscription(self, EventKind(kind), handler)
        self._subscriptions[subscription.kind].append(subscription)
        return subscription

    def publish(self, event: RawEvent) -> None:
        """分发事件给当前订阅者。"""
        # 拷贝快照：处理器可能在分发过程中取消订阅
        for subscription in list(self._subscriptions[event.kind]):
            if not subscription.active:
                continue
            try:
                subscription.handler(event)
            except Exception as e:
                logger.warning(f"Error in {event.kind.value} handler: {e}")

    def handler_count(self, kind: EventKind | str | None = None) -> int:
        """当前有效订阅数量（kind 为 None 时统计全部类型）。"""
        if kind is None:
            return sum(len(subs) for subs in self._subscriptions.values())
        return len(self._subscriptions[EventKind(kind)])

    def _remove(self, subscription: Subscription) -> None:
        subs = self._subscriptions[subscription.kind]
        if subscription in subs:
            subs.remove(subscription)
