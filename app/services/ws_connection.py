"""
app.services.ws_connection
~~~~~~~~~~~~~~~~~~~~~~~~~~

``ChatConnection`` 的 WebSocket 实现。

每个连接持有一个有界的发送队列 ``outbox`` 和一个写协程：
``deliver()`` 只负责入队（不阻塞广播方），写协程按入队顺序发出，
因此同一连接收到的事件顺序与广播顺序一致。慢客户端把队列塞满后，
新事件直接丢弃；连接关闭后 ``deliver()`` 静默忽略。
"""
from __future__ import annotations

import asyncio
import uuid

from fastapi import WebSocket

from app.core.logging import get_logger
from app.core.settings import settings
from app.schemas.chat_events import ServerEvent

logger = get_logger(__name__)


class WebSocketConnection:
    """一个 WebSocket 聊天连接。

    Attributes:
        connection_id: 连接唯一标识。
        websocket: 底层 FastAPI WebSocket。
    """

    def __init__(self, websocket: WebSocket, outbox_size: int = settings.WS_OUTBOX_SIZE) -> None:
        self.connection_id: str = uuid.uuid4().hex[:12]
        self.websocket = websocket
        self._outbox: asyncio.Queue[ServerEvent | None] = asyncio.Queue(maxsize=outbox_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, event: ServerEvent) -> None:
        """把事件放入发送队列；连接已关闭或队列已满时丢弃。"""
        if self._closed:
            return
        try:
            self._outbox.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "发送队列已满，丢弃事件 | conn=%s | type=%s",
                self.connection_id, event.type,
            )

    async def run_writer(self) -> None:
        """写协程：按顺序把队列中的事件发送到客户端，直到收到结束信号。"""
        while True:
            event = await self._outbox.get()
            if event is None:
                break
            try:
                await self.websocket.send_json(event.to_wire())
            except Exception as e:
                # 对端已断开：后续事件全部丢弃
                logger.debug("写入失败，停止发送 | conn=%s | %s", self.connection_id, e)
                self._closed = True
                break

    def close(self) -> None:
        """标记关闭并通知写协程在发完已入队事件后退出。"""
        if self._closed:
            return
        self._closed = True
        try:
            self._outbox.put_nowait(None)
        except asyncio.QueueFull:
            # 队列满时丢掉最早的一个事件，为结束信号腾位置
            self._outbox.get_nowait()
            self._outbox.put_nowait(None)

    def __repr__(self) -> str:
        return f"WebSocketConnection(id={self.connection_id!r})"
