"""
app.api.chat_ws
~~~~~~~~~~~~~~~

聊天 WebSocket 网关 —— 核心层中唯一做网络 I/O 的部分。

提供 ``/ws/chat`` 端点。连接建立后处于未加入状态，客户端通过
``join`` / ``leave`` / ``send`` 事件与 ``BroadcastEngine`` 交互（协议见
``app.schemas.chat_events``）。

每个连接运行三个协程:
  - 接收协程：读取帧、解析事件、限流，放入处理队列；
  - 处理协程：按到达顺序把事件交给引擎，断线后仍会处理完已入队的事件；
  - 写协程：把引擎投递到本连接的出站事件按顺序写回客户端。

连接断开（无论是否发送过 ``leave``）时，网关代其离开最后所在的房间，
保证其他成员一定能收到离开通知。
"""
from __future__ import annotations

import asyncio
import contextlib
from typing import assert_never

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState
from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import ChatError
from app.core.logging import get_logger, request_id_ctx_var
from app.core.rate_limit import WebSocketRateLimiter
from app.core.settings import settings
from app.schemas.chat_events import (
    ClientEvent,
    ErrorEvent,
    JoinEvent,
    LeaveEvent,
    SendEvent,
    parse_inbound,
)
from app.services.broadcast_engine import BroadcastEngine
from app.services.ws_connection import WebSocketConnection

logger = get_logger(__name__)

router: APIRouter = APIRouter()

# 写协程在连接关闭后最多再等待的时间（秒）
_WRITER_DRAIN_TIMEOUT = 1.0


async def dispatch_event(
    engine: BroadcastEngine,
    connection: WebSocketConnection,
    event: ClientEvent,
) -> None:
    """把一个入站事件交给引擎处理。引擎抛出的业务异常由调用方回显。"""
    match event:
        case JoinEvent():
            engine.on_join(connection, event.room_id, event.nickname, is_host=event.is_host)
        case LeaveEvent():
            engine.on_leave(connection, event.room_id, event.nickname)
        case SendEvent():
            await engine.on_send(connection, event.room_id, event.sender, event.text)
        case _:
            assert_never(event)


@router.websocket("/ws/chat")
async def websocket_chat_endpoint(websocket: WebSocket) -> None:
    """WebSocket 聊天端点。

    Args:
        websocket: FastAPI WebSocket 连接对象。
    """
    connection = WebSocketConnection(websocket)
    token = request_id_ctx_var.set(f"ws-{connection.connection_id[:8]}")

    try:
        engine: BroadcastEngine = websocket.app.state.engine
        await websocket.accept()
        logger.info("连接已建立 | conn=%s", connection.connection_id)

        writer = asyncio.create_task(connection.run_writer())
        ws_limiter = WebSocketRateLimiter(interval_seconds=settings.WS_RATE_LIMIT_INTERVAL)
        # 接收与处理解耦：处理再慢，接收端也能按到达时间正确限流
        queue: asyncio.Queue[ClientEvent | None] = asyncio.Queue(maxsize=settings.WS_INBOX_SIZE)

        receive_failed = False

        async def receive_loop() -> None:
            nonlocal receive_failed
            try:
                while True:
                    message = await websocket.receive()
                    if message["type"] == "websocket.disconnect":
                        raise WebSocketDisconnect(message.get("code", 1000))
                    # 文本帧与二进制帧都按 JSON 解析
                    raw = message.get("text") or message.get("bytes")
                    if not raw:
                        connection.deliver(ErrorEvent(message="Malformed event"))
                        continue
                    try:
                        event = parse_inbound(raw)
                    except PydanticValidationError:
                        connection.deliver(ErrorEvent(message="Malformed event"))
                        continue

                    if isinstance(event, SendEvent) and not ws_limiter.is_allowed(
                        connection.connection_id,
                    ):
                        connection.deliver(
                            ErrorEvent(message="You are sending messages too fast"),
                        )
                        continue

                    try:
                        queue.put_nowait(event)
                    except asyncio.QueueFull:
                        connection.deliver(ErrorEvent(message="Server is busy, please retry"))
                        logger.warning("入站队列已满，丢弃事件 | conn=%s", connection.connection_id)
            except WebSocketDisconnect:
                pass  # 正常断开
            except Exception as e:
                receive_failed = True
                logger.error("WebSocket 接收异常: %s", e, exc_info=True)
            finally:
                await queue.put(None)  # 通知处理协程结束

        async def process_loop() -> None:
            while True:
                event = await queue.get()
                if event is None:
                    break
                try:
                    await dispatch_event(engine, connection, event)
                except ChatError as e:
                    # 业务错误只回显给发起方
                    connection.deliver(ErrorEvent(message=e.message))
                except Exception as e:
                    logger.error("事件处理异常: %s", e, exc_info=True)
                    connection.deliver(ErrorEvent(message="Internal server error"))

        try:
            await asyncio.gather(receive_loop(), process_loop())
        finally:
            engine.on_disconnect(connection)
            connection.close()
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(writer, timeout=_WRITER_DRAIN_TIMEOUT)
            ws_limiter.remove_client(connection.connection_id)
            if receive_failed and websocket.client_state == WebSocketState.CONNECTED:
                # 接收异常退出时对端可能仍在线，显式关闭
                await websocket.close(code=1011)
            logger.info("连接已断开 | conn=%s", connection.connection_id)

    finally:
        request_id_ctx_var.reset(token)
