"""启动能力抽象。

启动能力负责真正拉起游戏（下载游戏文件、拼装参数、启动进程），
对本模块来说是黑盒：它只需要接收 LaunchConfiguration，
并把 data / progress / close / debug 四类事件发布到自己的 EventHub。
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from .events import EventHub
from .types import LaunchConfiguration

__all__ = ["LaunchCapability"]


class LaunchCapability(ABC):
    """启动能力抽象基类。

    子类需要实现：
    - start(): 启动进程；成功返回即视为进程已开始运行，失败直接抛出异常
    - stop(): 终止指定会话的进程（可选）

    发布的每个事件都必须带上 start() 收到的 session_id。
    """

    def __init__(self) -> None:
        self.events = EventHub()

    @abstractmethod
    async def start(self, config: LaunchConfiguration, *, session_id: str) -> None:
        """启动游戏进程。"""
        ...

    async def stop(self, session_id: str) -> None:
        """终止会话对应的进程，默认不支持。"""
        return None

    async def aclose(self) -> None:
        """释放全部资源。"""
        return None
