"""
app.services.connection_registry
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

连接注册表 —— 维护 ``room_id → 在线连接集合`` 与 ``连接 → 昵称`` 两张映射。

这是核心层唯一被并发修改的共享状态。所有读写都在同一把锁内完成，
锁只覆盖字典操作本身，绝不跨越网络 I/O 或数据库调用。
``members_of()`` 返回快照，调用方拿到后成员可能已经变化。
"""
from __future__ import annotations

import threading
from dataclasses import dataclass

from app.core.logging import get_logger
from app.services.connection import ChatConnection

logger = get_logger(__name__)


@dataclass(frozen=True)
class Membership:
    """一个连接当前所在的房间及其声明的昵称。"""

    room_id: str
    nickname: str


class ConnectionRegistry:
    """房间成员注册表。

    每个连接同一时间最多属于一个房间：在另一个房间重新注册时，
    旧房间的成员资格会被静默移除（不发离开通知）。昵称允许重复。
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rooms: dict[str, set[ChatConnection]] = {}
        self._memberships: dict[ChatConnection, Membership] = {}

    def register(
        self, connection: ChatConnection, room_id: str, nickname: str,
    ) -> str | None:
        """把连接加入房间并记录昵称。

        对同一连接重复调用是幂等的（昵称以最后一次为准）。

        Returns:
            因本次注册而被腾出的旧房间 ID；没有则为 ``None``。
        """
        with self._lock:
            previous = self._memberships.get(connection)
            vacated: str | None = None
            if previous is not None and previous.room_id != room_id:
                self._discard(connection, previous.room_id)
                vacated = previous.room_id

            self._rooms.setdefault(room_id, set()).add(connection)
            self._memberships[connection] = Membership(room_id=room_id, nickname=nickname)

        if vacated is not None:
            logger.info(
                "连接切换房间，已离开旧房间 | conn=%s | from=%s | to=%s",
                connection.connection_id, vacated, room_id,
            )
        return vacated

    def unregister(self, connection: ChatConnection, room_id: str) -> Membership | None:
        """把连接移出房间。

        连接不在该房间时什么也不做（覆盖断线与主动离开的竞态）。

        Returns:
            被移除的成员资格；未移除任何东西时为 ``None``。
        """
        with self._lock:
            membership = self._memberships.get(connection)
            if membership is None or membership.room_id != room_id:
                return None
            del self._memberships[connection]
            self._discard(connection, room_id)
        return membership

    def members_of(self, room_id: str) -> frozenset[ChatConnection]:
        """返回房间当前成员的快照。"""
        with self._lock:
            return frozenset(self._rooms.get(room_id, ()))

    def membership_of(self, connection: ChatConnection) -> Membership | None:
        """返回连接当前的成员资格（未加入任何房间时为 ``None``）。"""
        with self._lock:
            return self._memberships.get(connection)

    def online_count(self, room_id: str) -> int:
        with self._lock:
            return len(self._rooms.get(room_id, ()))

    @property
    def room_count(self) -> int:
        """当前至少有一个在线连接的房间数。"""
        with self._lock:
            return len(self._rooms)

    @property
    def connection_count(self) -> int:
        """当前已加入房间的连接总数。"""
        with self._lock:
            return len(self._memberships)

    def _discard(self, connection: ChatConnection, room_id: str) -> None:
        # 调用方必须已持有锁
        members = self._rooms.get(room_id)
        if not members:
            return
        members.discard(connection)
        if not members:
            # 清理空房间，避免字典无限增长
            del self._rooms[room_id]
