"""ProcessSupervisor 测试。

使用内存中的 FakeCapability 手动发布事件，验证状态机、订阅清理和消息顺序。
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from mango_launcher.errors import ConfigurationError, ProcessStartError
from mango_launcher.launch import (
    DataLine,
    DebugLine,
    LaunchCapability,
    LaunchConfiguration,
    ProcessClosed,
    ProcessSupervisor,
    ProgressTick,
    SessionState,
)
from mango_launcher.launch.supervisor import SUPERSEDED_MESSAGE
from mango_launcher.relay import EventRelay


class FakeCapability(LaunchCapability):
    """记录 start 调用；可以配置为启动失败。"""

    def __init__(self, fail_with: Exception | None = None) -> None:
        super().__init__()
        self.fail_with = fail_with
        self.started: list[str] = []
        self.stopped: list[str] = []

    async def start(self, config: LaunchConfiguration, *, session_id: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.started.append(session_id)

    async def stop(self, session_id: str) -> None:
        self.stopped.append(session_id)

    def emit(self, event) -> None:
        self.events.publish(event)


@pytest.fixture
def config(make_runtime, tmp_path: Path) -> LaunchConfiguration:
    java = make_runtime()
    return LaunchConfiguration(
        version="1.20.4",
        release_type="release",
        root=tmp_path / "mango",
        java_path=java,
        authorization={"name": "Player"},
    )


@pytest.fixture
def relay() -> EventRelay:
    return EventRelay(clock=lambda: 0.0)


class TestLaunch:
    """测试启动与状态。"""

    @pytest.mark.asyncio
    async def test_running_after_start(self, config, relay):
        capability = FakeCapability()
        supervisor = ProcessSupervisor(capability, relay)
        assert supervisor.state is SessionState.IDLE

        session = await supervisor.launch(config)

        assert session.state is SessionState.RUNNING
        assert supervisor.state is SessionState.RUNNING
        assert capability.started == [session.session_id]
        assert capability.events.handler_count() == 4

    @pytest.mark.asyncio
    async def test_missing_executable(self, config, relay, tmp_path: Path):
        capability = FakeCapability()
        supervisor = ProcessSupervisor(capability, relay)
        broken = LaunchConfiguration(
            version=config.version,
            release_type=config.release_type,
            root=config.root,
            java_path=tmp_path / "missing" / "java",
            authorization=config.authorization,
        )

        with pytest.raises(ConfigurationError):
            await supervisor.launch(broken)

        assert supervisor.session is None
        assert capability.started == []
        assert capability.events.handler_count() == 0

    @pytest.mark.asyncio
    async def test_start_failure(self, config, relay):
        capability = FakeCapability(fail_with=OSError("sidecar not found"))
        supervisor = ProcessSupervisor(capability, relay)

        with pytest.raises(ProcessStartError, match="sidecar not found"):
            await supervisor.launch(config)

        assert supervisor.state is SessionState.IDLE
        assert supervisor.session is None
        assert capability.events.handler_count() == 0

    @pytest.mark.asyncio
    async def test_stop_delegates(self, config, relay):
        capability = FakeCapability()
        supervisor = ProcessSupervisor(capability, relay)
        session = await supervisor.launch(config)

        await supervisor.stop()

        assert capability.stopped == [session.session_id]


class TestEventRouting:
    """测试事件转发。"""

    @pytest.mark.asyncio
    async def test_data_debug_progress(self, config, relay):
        capability = FakeCapability()
        supervisor = ProcessSupervisor(capability, relay)
        session = await supervisor.launch(config)
        sid = session.session_id

        capability.emit(DataLine(line="game line", session_id=sid))
        capability.emit(DebugLine(line="debug line", session_id=sid))
        capability.emit(ProgressTick(category="classes", task=2, total=4, session_id=sid))

        messages = relay.drain()
        assert [m.type for m in messages] == ["log", "log", "progress"]
        assert messages[0].line == "game line"
        assert messages[1].line == "debug line"
        assert messages[2].category.value == "libraries"
        assert messages[2].percent == 50.0

    @pytest.mark.asyncio
    async def test_fatal_debug_also_sent_as_error(self, config, relay):
        capability = FakeCapability()
        supervisor = ProcessSupervisor(capability, relay)
        session = await supervisor.launch(config)
        sid = session.session_id

        capability.emit(DebugLine(line="error: recoverable", severity="error", session_id=sid))
        capability.emit(DebugLine(line="fatal: cannot continue", severity="fatal", session_id=sid))

        messages = relay.drain()
        assert [m.type for m in messages] == ["log", "log", "error"]
        assert messages[2].message == "fatal: cannot continue"
        assert supervisor.state is SessionState.RUNNING

    @pytest.mark.asyncio
    async def test_foreign_events_ignored(self, config, relay):
        capability = FakeCapability()
        supervisor = ProcessSupervisor(capability, relay)
        await supervisor.launch(config)

        capability.emit(DataLine(line="other session", session_id="someone-else"))
        capability.emit(ProcessClosed(code=0, session_id="someone-else"))

        assert relay.drain() == []
        assert supervisor.state is SessionState.RUNNING


class TestClose:
    """测试进程退出。"""

    @pytest.mark.asyncio
    async def test_clean_exit(self, config, relay):
        capability = FakeCapability()
        supervisor = ProcessSupervisor(capability, relay)
        session = await supervisor.launch(config)

        capability.emit(ProcessClosed(code=0, session_id=session.session_id))

        messages = relay.drain()
        assert [m.type for m in messages] == ["close"]
        assert messages[0].code == 0
        assert session.state is SessionState.CLOSED
        assert await session.wait() == 0
        assert supervisor.session is None
        assert capability.events.handler_count() == 0

    @pytest.mark.asyncio
    async def test_nonzero_exit_sends_error_after_close(self, config, relay):
        capability = FakeCapability()
        supervisor = ProcessSupervisor(capability, relay)
        session = await supervisor.launch(config)

        capability.emit(ProcessClosed(code=1, session_id=session.session_id))

        messages = relay.drain()
        assert [m.type for m in messages] == ["close", "error"]
        assert messages[0].code == 1
        assert "code 1" in messages[1].message
        assert session.exit_code == 1
        assert session.error is not None

    @pytest.mark.asyncio
    async def test_handlers_removed_before_close_message(self, config):
        """close 消息发出时，会话的处理器已经全部摘除。"""
        capability = FakeCapability()
        counts: list[int] = []
        relay = EventRelay(
            clock=lambda: 0.0,
            sink=lambda m: counts.append(capability.events.handler_count()) if m.type == "close" else None,
        )
        supervisor = ProcessSupervisor(capability, relay)
        session = await supervisor.launch(config)

        capability.emit(ProcessClosed(code=0, session_id=session.session_id))

        assert counts == [0]

    @pytest.mark.asyncio
    async def test_duplicate_close_ignored(self, config, relay):
        capability = FakeCapability()
        supervisor = ProcessSupervisor(capability, relay)
        session = await supervisor.launch(config)

        capability.emit(ProcessClosed(code=0, session_id=session.session_id))
        capability.emit(ProcessClosed(code=0, session_id=session.session_id))

        assert [m.type for m in relay.drain()] == ["close"]


class TestRelaunch:
    """测试重复启动时的订阅清理。"""

    @pytest.mark.asyncio
    async def test_second_launch_single_handler_set(self, config, relay):
        capability = FakeCapability()
        supervisor = ProcessSupervisor(capability, relay)

        first = await supervisor.launch(config)
        second = await supervisor.launch(config)

        assert capability.events.handler_count() == 4
        assert first.session_id != second.session_id
        assert first.subscriptions == set()

        capability.emit(DataLine(line="only once", session_id=second.session_id))
        assert [m.line for m in relay.drain()] == ["only once"]

    @pytest.mark.asyncio
    async def test_retired_process_cannot_feed_new_session(self, config, relay):
        capability = FakeCapability()
        supervisor = ProcessSupervisor(capability, relay)

        first = await supervisor.launch(config)
        second = await supervisor.launch(config)

        capability.emit(DataLine(line="stale", session_id=first.session_id))
        capability.emit(ProcessClosed(code=1, session_id=first.session_id))

        assert relay.drain() == []
        assert second.state is SessionState.RUNNING
        assert supervisor.session is second

    @pytest.mark.asyncio
    async def test_superseded_session_wait_returns(self, config, relay):
        capability = FakeCapability()
        supervisor = ProcessSupervisor(capability, relay)

        first = await supervisor.launch(config)
        await supervisor.launch(config)

        assert await asyncio.wait_for(first.wait(), timeout=1) is None
        assert first.state is SessionState.FAILED
        assert first.error == SUPERSEDED_MESSAGE

    @pytest.mark.asyncio
    async def test_closed_session_keeps_exit_code_on_relaunch(self, config, relay):
        capability = FakeCapability()
        supervisor = ProcessSupervisor(capability, relay)

        first = await supervisor.launch(config)
        capability.emit(ProcessClosed(code=0, session_id=first.session_id))
        await supervisor.launch(config)

        assert first.state is SessionState.CLOSED
        assert first.exit_code == 0
        assert first.error is None

    @pytest.mark.asyncio
    async def test_relaunch_after_close(self, config, relay):
        capability = FakeCapability()
        supervisor = ProcessSupervisor(capability, relay)

        first = await supervisor.launch(config)
        capability.emit(ProcessClosed(code=0, session_id=first.session_id))
        relay.drain()

        second = await supervisor.launch(config)
        capability.emit(DataLine(line="fresh", session_id=second.session_id))

        assert capability.events.handler_count() == 4
        assert [m.line for m in relay.drain()] == ["fresh"]

    @pytest.mark.asyncio
    async def test_relaunch_after_failure(self, config, relay):
        capability = FakeCapability(fail_with=OSError("nope"))
        supervisor = ProcessSupervisor(capability, relay)
        with pytest.raises(ProcessStartError):
            await supervisor.launch(config)

        capability.fail_with = None
        session = await supervisor.launch(config)

        assert session.state is SessionState.RUNNING
        assert capability.events.handler_count() == 4
