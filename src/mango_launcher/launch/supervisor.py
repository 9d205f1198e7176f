"""游戏进程监管。

状态机:
    IDLE -> STARTING -> RUNNING -> CLOSED(code)
                 \\____________\\__-> FAILED(error)

每个 supervisor 同一时刻只有一个活动 LaunchSession。
再次 launch() 时，无论旧进程是否已经退出，旧会话的全部事件订阅都会先被取消，
然后才挂载新会话的订阅，避免同一进程事件被重复投递。
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from ..errors import ConfigurationError, ProcessExitError, ProcessStartError
from .capability import LaunchCapability
from .events import (
    DataLine,
    DebugLine,
    EventKind,
    ProcessClosed,
    ProgressEvent,
    ProgressTick,
    RawEvent,
    Subscription,
)
from .types import LaunchConfiguration

if TYPE_CHECKING:
    from ..relay import EventRelay

__all__ = [
    "SessionState",
    "LaunchSession",
    "ProcessSupervisor",
    "SUPERSEDED_MESSAGE",
]

logger = logging.getLogger(__name__)

SUPERSEDED_MESSAGE = "Superseded by a new launch"


class SessionState(str, Enum):
    """启动会话状态。"""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    CLOSED = "closed"
    FAILED = "failed"


@dataclass
class LaunchSession:
    """一次启动的运行态。

    Attributes:
        session_id: 会话 ID，同时用于过滤事件
        config: 启动配置
        subscriptions: 当前有效的事件订阅
        started_at: 创建时间戳
        state: 当前状态
        exit_code: 进程退出码（CLOSED 后有效）
        error: 失败原因
    """

    config: LaunchConfiguration
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    subscriptions: set[Subscription] = field(default_factory=set)
    started_at: float = field(default_factory=time.time)
    state: SessionState = SessionState.IDLE
    exit_code: int | None = None
    error: str | None = None
    _finished: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def is_active(self) -> bool:
        return self.state in (SessionState.STARTING, SessionState.RUNNING)

    @property
    def is_finished(self) -> bool:
        return self._finished.is_set()

    def owns(self, event: RawEvent) -> bool:
        return event.session_id == self.session_id

    def retire(self) -> int:
        """取消全部事件订阅，返回取消的数量。"""
        count = len(self.subscriptions)
        for subscription in self.subscriptions:
            subscription.cancel()
        self.subscriptions.clear()
        return count

    def finish(self, state: SessionState, *, exit_code: int | None = None, error: str | None = None) -> None:
        self.state = state
        self.exit_code = exit_code
        self.error = error
        self._finished.set()

    async def wait(self) -> int | None:
        """等待会话结束，返回退出码（启动失败时为 None）。"""
        await self._finished.wait()
        return self.exit_code


class ProcessSupervisor:
    """游戏进程监管器。

    把启动能力的原始事件规范化后交给 EventRelay：
    - data / debug -> log（fatal 级别的 debug 额外发送 error）
    - progress -> progress（由 relay 限流）
    - close -> close（非零退出码额外发送 error）

    Example:
        supervisor = ProcessSupervisor(SidecarCapability(cmd), relay)
        session = await supervisor.launch(config)
        code = await session.wait()
    """

    def __init__(self, capability: LaunchCapability, relay: EventRelay) -> None:
        self.capability = capability
        self.relay = relay
        self._session: LaunchSession | None = None

    @property
    def session(self) -> LaunchSession | None:
        """当前活动会话。"""
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state if self._session else SessionState.IDLE

    async def launch(self, config: LaunchConfiguration) -> LaunchSession:
        """启动游戏进程。

        Raises:
            ConfigurationError: 运行时可执行文件不存在
            ProcessStartError: 启动能力抛出异常
        """
        self._validate(config)

        previous = self._session
        if previous is not None:
            removed = previous.retire()
            # 被取代的会话不会再收到 close，这里直接结束，避免 wait() 永久阻塞
            if not previous.is_finished:
                previous.finish(SessionState.FAILED, error=SUPERSEDED_MESSAGE)
            logger.info(
                f"Retired previous session {previous.session_id[:8]} "
                f"({previous.state.value}, {removed} handler(s))"
            )
            self._session = None

        session = LaunchSession(config=config)
        self._session = session
        self.relay.reset_throttle()

        session.state = SessionState.STARTING
        self._attach(session)
        logger.info(f"Starting session {session.session_id[:8]} for version {config.version}")

        try:
            await self.capability.start(config, session_id=session.session_id)
        except Exception as e:
            session.retire()
            session.finish(SessionState.FAILED, error=str(e))
            if self._session is session:
                self._session = None
            logger.error(f"Failed to start session {session.session_id[:8]}: {e}")
            raise ProcessStartError(str(e) or type(e).__name__) from e

        # close 可能已在 start 期间到达
        if session.state is SessionState.STARTING:
            session.state = SessionState.RUNNING
        return session

    async def stop(self) -> None:
        """终止当前会话的进程。"""
        if self._session is not None and self._session.is_active:
            await self.capability.stop(self._session.session_id)

    def _validate(self, config: LaunchConfiguration) -> None:
        if not config.version.strip():
            raise ConfigurationError("Distribution version is required")
        if not config.java_path.is_file():
            raise ConfigurationError(f"Runtime executable not found: {config.java_path}")

    def _attach(self, session: LaunchSession) -> None:
        hub = self.capability.events

        def on_line(event: RawEvent) -> None:
            if session.owns(event) and isinstance(event, (DataLine, DebugLine)):
                self.relay.log(event.line)
                if isinstance(event, DebugLine) and event.is_fatal:
                    self.relay.error(event.line)

        def on_progress(event: RawEvent) -> None:
            if session.owns(event) and isinstance(event, ProgressTick):
                self.relay.progress(ProgressEvent.from_tick(event))

        def on_close(event: RawEvent) -> None:
            if session.owns(event) and isinstance(event, ProcessClosed):
                self._on_close(session, event.code)

        session.subscriptions.update({
            hub.subscribe(EventKind.DATA, on_line),
            hub.subscribe(EventKind.PROGRESS, on_progress),
            hub.subscribe(EventKind.CLOSE, on_close),
            hub.subscribe(EventKind.DEBUG, on_line),
        })

    def _on_close(self, session: LaunchSession, code: int) -> None:
        # 先摘除处理器，再发出任何通知
        session.retire()

        error = ProcessExitError(code) if code != 0 else None
        session.finish(SessionState.CLOSED, exit_code=code, error=str(error) if error else None)
        if self._session is session:
            self._session = None

        logger.info(f"Session {session.session_id[:8]} exited with code {code}")
        self.relay.close(code)
        if error is not None:
            self.relay.error(str(error))
