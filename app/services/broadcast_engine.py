"""
app.services.broadcast_engine
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

广播引擎 —— 把入站的 join / leave / send 事件转换为持久化记录和房间内广播。

每个 (连接, 房间) 的状态机: ``Unjoined → Joined → Left``，``Left`` 之后可以重新加入
任意房间。

顺序保证:
  - 同一房间内的消息按“先接受、先持久化、先广播”的顺序处理，
    持久化 + 广播作为一个整体在房间级 ``asyncio.Lock`` 内完成；
  - 不同房间之间互不阻塞，没有顺序保证；
  - 加入/离开通知在注册表更新之后立即生成，期间不会让出事件循环。

失败语义:
  - ``ValidationError`` / ``StorageError`` 只抛给调用方（网关回显给发起连接），
    房间内其他人看不到，注册表不受影响；
  - 未持久化成功的消息绝不广播，也不重试。
"""
from __future__ import annotations

import asyncio
import weakref
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Protocol

from app.core.exceptions import StorageError, ValidationError
from app.core.logging import get_logger
from app.core.settings import settings
from app.schemas.chat_events import (
    NewMessageEvent,
    ServerEvent,
    UserJoinedEvent,
    UserLeftEvent,
)
from app.schemas.chat_room import ChatMessage
from app.services.connection import ChatConnection
from app.services.connection_registry import ConnectionRegistry

logger = get_logger(__name__)


class MessageStore(Protocol):
    """引擎依赖的消息存储接口（``MessageRepository`` 满足此协议）。"""

    async def append(self, room_id: str, sender: str, text: str) -> ChatMessage: ...

    async def list_by_room(self, room_id: str, limit: int = ...) -> list[ChatMessage]: ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BroadcastEngine:
    """房间广播状态机。

    Attributes:
        registry: 连接注册表（由应用生命周期创建并注入）。
        store: 消息存储。
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        store: MessageStore,
        max_nickname_length: int = settings.MAX_NICKNAME_LENGTH,
        max_message_length: int = settings.MAX_MESSAGE_LENGTH,
    ) -> None:
        self.registry = registry
        self.store = store
        self.max_nickname_length = max_nickname_length
        self.max_message_length = max_message_length
        # 房间级发送锁；没有协程持有时自动回收
        self._send_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    # ── join / leave ────────────────────────────────────────────────

    def on_join(
        self,
        connection: ChatConnection,
        room_id: str,
        nickname: str,
        is_host: bool = False,
    ) -> None:
        """连接以 ``nickname`` 加入房间，并通知房间内的其他成员。

        通知不回显给加入者，也不落库。已在该房间内的连接再次加入时
        只更新昵称，不再重复通知。

        Raises:
            ValidationError: 房间 ID 为空，或昵称为空 / 超长。
        """
        room_id = room_id.strip()
        nickname = nickname.strip()
        if not room_id:
            raise ValidationError("Room ID is required")
        if not nickname:
            raise ValidationError("Nickname is required")
        if len(nickname) > self.max_nickname_length:
            raise ValidationError(
                f"Nickname must be at most {self.max_nickname_length} characters",
            )

        previous = self.registry.membership_of(connection)
        self.registry.register(connection, room_id, nickname)
        if previous is not None and previous.room_id == room_id:
            logger.debug(
                "重复加入，跳过通知 | room=%s | conn=%s", room_id, connection.connection_id,
            )
            return

        logger.info(
            "%s (%s) 加入房间 | room=%s | conn=%s | 在线: %d",
            nickname, "host" if is_host else "guest", room_id, connection.connection_id,
            self.registry.online_count(room_id),
        )

        notice = UserJoinedEvent(
            sender=nickname,
            text=f"{nickname} joined the room",
            timestamp=_utc_now(),
        )
        targets = self.registry.members_of(room_id) - {connection}
        self._fan_out(targets, notice)

    def on_leave(self, connection: ChatConnection, room_id: str, nickname: str = "") -> bool:
        """连接离开房间，并通知仍在房间内的成员。

        连接不在该房间时是空操作：不通知、不报错。通知使用加入时登记的昵称，
        登记昵称缺失时才使用调用方传入的 ``nickname``。

        Returns:
            是否真的发生了离开。
        """
        room_id = room_id.strip()
        membership = self.registry.unregister(connection, room_id)
        if membership is None:
            logger.debug(
                "忽略离开事件，连接不在房间内 | room=%s | conn=%s",
                room_id, connection.connection_id,
            )
            return False

        name = membership.nickname or nickname.strip()
        logger.info(
            "%s 离开房间 | room=%s | conn=%s | 在线: %d",
            name, room_id, connection.connection_id,
            self.registry.online_count(room_id),
        )
        notice = UserLeftEvent(
            sender=name,
            text=f"{name} left the room",
            timestamp=_utc_now(),
        )
        self._fan_out(self.registry.members_of(room_id), notice)
        return True

    def on_disconnect(self, connection: ChatConnection) -> bool:
        """连接断开（非主动 leave）时，代其离开最后所在的房间。"""
        membership = self.registry.membership_of(connection)
        if membership is None:
            return False
        return self.on_leave(connection, membership.room_id, membership.nickname)

    # ── send ────────────────────────────────────────────────────────

    async def on_send(
        self,
        connection: ChatConnection,
        room_id: str,
        sender: str,
        text: str,
    ) -> ChatMessage:
        """校验、持久化并向房间全体成员（含发送者）广播一条消息。

        持久化 + 广播不受调用方取消的影响：发送者中途断线时，
        已被接受的消息仍会写入并广播。

        Raises:
            ValidationError: 房间 ID / 发送者 / 文本为空，或文本超长。
            StorageError: 持久化失败，消息被丢弃。
        """
        room_id = room_id.strip()
        sender = sender.strip()
        text = text.strip()
        if not room_id or not sender or not text:
            raise ValidationError("Invalid message data")
        if len(text) > self.max_message_length:
            raise ValidationError(
                f"Message must be at most {self.max_message_length} characters",
            )

        return await asyncio.shield(
            self._persist_and_broadcast(connection, room_id, sender, text),
        )

    async def _persist_and_broadcast(
        self,
        connection: ChatConnection,
        room_id: str,
        sender: str,
        text: str,
    ) -> ChatMessage:
        async with self._send_lock(room_id):
            try:
                message = await self.store.append(room_id, sender, text)
            except StorageError:
                raise
            except Exception as e:
                logger.error("消息持久化异常 | room=%s | %s", room_id, e, exc_info=True)
                raise StorageError() from e

            delivered = self._fan_out(
                self.registry.members_of(room_id),
                NewMessageEvent.from_message(message),
            )
        logger.debug(
            "消息已广播 | room=%s | id=%s | conn=%s | 送达 %d 个连接",
            room_id, message.id, connection.connection_id, delivered,
        )
        return message

    def _send_lock(self, room_id: str) -> asyncio.Lock:
        lock = self._send_locks.get(room_id)
        if lock is None:
            lock = asyncio.Lock()
            self._send_locks[room_id] = lock
        return lock

    # ── fan-out ─────────────────────────────────────────────────────

    def _fan_out(self, targets: Iterable[ChatConnection], event: ServerEvent) -> int:
        """向成员快照投递事件，单个连接失败不影响其他连接。"""
        delivered = 0
        for connection in targets:
            try:
                connection.deliver(event)
            except Exception as e:
                logger.warning(
                    "事件投递失败 | conn=%s | type=%s | %s",
                    connection.connection_id, event.type, e,
                )
                continue
            delivered += 1
        return delivered
