"""
app.services.connection
~~~~~~~~~~~~~~~~~~~~~~~

聊天连接的抽象 —— 核心层只依赖这个协议，不直接接触 WebSocket。

``deliver()`` 是同步、非阻塞的：实现方把事件放进自己的发送队列，
由传输层的写协程按顺序发出。已断开的连接上调用 ``deliver()`` 静默忽略。
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from app.schemas.chat_events import ServerEvent


@runtime_checkable
class ChatConnection(Protocol):
    """一个在线连接。

    Attributes:
        connection_id: 连接唯一标识（用于日志与限流）。
    """

    connection_id: str

    def deliver(self, event: ServerEvent) -> None:
        """投递一个出站事件（尽力而为，最多一次）。"""
        ...
