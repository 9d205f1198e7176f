"""前端事件转发。

EventRelay 把启动过程中的状态、进度、日志、退出和错误消息按发出顺序
推送给前端：写入 asyncio 队列（messages() 消费），同时可选地调用 sink 回调。

进度消息限流：两次转发之间至少间隔 interval 秒，
但 100% 的进度总是立即转发，保证终态不会被丢弃。
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterator, Callable, Literal

from pydantic import BaseModel, Field

from .launch.events import ProgressCategory, ProgressEvent

__all__ = [
    "DEFAULT_PROGRESS_INTERVAL",
    "RelayMessage",
    "StatusMessage",
    "ProgressMessage",
    "LogMessage",
    "CloseMessage",
    "ErrorMessage",
    "EventRelay",
]

logger = logging.getLogger(__name__)

# 进度消息最小转发间隔（秒）
DEFAULT_PROGRESS_INTERVAL = 0.5


class RelayMessage(BaseModel):
    """转发消息基类。"""

    type: str
    timestamp: float = Field(default_factory=time.time)


class StatusMessage(RelayMessage):
    type: Literal["status"] = "status"
    text: str = ""


class ProgressMessage(RelayMessage):
    type: Literal["progress"] = "progress"
    category: ProgressCategory = ProgressCategory.OTHER
    completed: int = 0
    total: int = 0
    percent: float = 0.0


class LogMessage(RelayMessage):
    type: Literal["log"] = "log"
    line: str = ""


class CloseMessage(RelayMessage):
    type: Literal["close"] = "close"
    code: int = 0


class ErrorMessage(RelayMessage):
    type: Literal["error"] = "error"
    message: str = ""


MessageSink = Callable[[RelayMessage], None]


class EventRelay:
    """启动事件转发器。

    Example:
        relay = EventRelay(sink=lambda m: print(m.model_dump_json()))
        relay.status("Checking runtime...")
        relay.progress(ProgressEvent.create(ProgressCategory.ASSETS, 5, 10))
    """

    def __init__(
        self,
        *,
        interval: float = DEFAULT_PROGRESS_INTERVAL,
        sink: MessageSink | None = None,
        clock: Callable[[], float] = time.monotonic,
        buffered: bool = True,
    ) -> None:
        """初始化转发器。

        Args:
            interval: 进度消息最小转发间隔（秒）
            sink: 消息回调（可选）
            clock: 单调时钟（测试可替换）
            buffered: 是否写入队列；只用 sink 消费时可关闭，避免队列无限增长
        """
        self.interval = interval
        self._sink = sink
        self._clock = clock
        self._buffered = buffered
        self._queue: asyncio.Queue[RelayMessage | None] = asyncio.Queue()
        self._last_progress_at: float | None = None
        self._closed = False

    def status(self, text: str) -> None:
        self._emit(StatusMessage(text=text))

    def log(self, line: str) -> None:
        self._emit(LogMessage(line=line))

    def close(self, code: int) -> None:
        self._emit(CloseMessage(code=code))

    def error(self, message: str) -> None:
        self._emit(ErrorMessage(message=message))

    def progress(self, event: ProgressEvent) -> bool:
        """转发进度（受限流控制）。

        Returns:
            是否实际转发
        """
        now = self._clock()
        if (
            not event.is_complete
            and self._last_progress_at is not None
            and now - self._last_progress_at < self.interval
        ):
            return False

        self._last_progress_at = now
        self._emit(ProgressMessage(
            category=event.category,
            completed=event.completed,
            total=event.total,
            percent=event.percent,
        ))
        return True

    def reset_throttle(self) -> None:
        """清除限流状态（新一次启动开始时调用）。"""
        self._last_progress_at = None

    def shutdown(self) -> None:
        """结束消息流，messages() 消费完剩余消息后退出。"""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    async def messages(self) -> AsyncIterator[RelayMessage]:
        """按发出顺序消费消息，直到 shutdown()。"""
        while True:
            message = await self._queue.get()
            if message is None:
                return
            yield message

    def drain(self) -> list[RelayMessage]:
        """取出当前队列中的全部消息（不等待）。

        结束标记留在队列中，之后的 messages() 仍会正常退出。
        """
        messages: list[RelayMessage] = []
        while True:
            try:
                message = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return messages
            if message is None:
                self._queue.put_nowait(None)
                return messages
            messages.append(message)

    def _emit(self, message: RelayMessage) -> None:
        if self._closed:
            logger.debug(f"Relay closed, dropping {message.type} message")
            return
        if self._buffered:
            self._queue.put_nowait(message)
        if self._sink:
            try:
                self._sink(message)
            except Exception as e:
                logger.warning(f"Error in relay sink: {e}")
