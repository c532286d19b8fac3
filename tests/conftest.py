"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— 用内存替身替换 MongoDB 与 WebSocket，
使单元测试可在无数据库、无网络环境下快速运行。
"""
from __future__ import annotations

import itertools
import os
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET", "test-secret-key")
os.environ.setdefault("WS_RATE_LIMIT_INTERVAL", "0")

from app.core.exceptions import StorageError  # noqa: E402
from app.core.rate_limit import limiter  # noqa: E402
from app.main import app  # noqa: E402
from app.schemas.chat_events import ServerEvent  # noqa: E402
from app.schemas.chat_room import ChatMessage  # noqa: E402
from app.services.broadcast_engine import BroadcastEngine  # noqa: E402
from app.services.connection_registry import ConnectionRegistry  # noqa: E402


class FakeConnection:
    """记录收到的所有出站事件的假连接。"""

    def __init__(self, connection_id: str) -> None:
        self.connection_id = connection_id
        self.events: list[ServerEvent] = []

    def deliver(self, event: ServerEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[ServerEvent]:
        return [e for e in self.events if e.type == event_type]

    def __repr__(self) -> str:
        return f"FakeConnection({self.connection_id!r})"


class InMemoryMessageStore:
    """``MessageStore`` 的内存实现，时间戳单调递增，便于断言顺序。

    Attributes:
        fail: 为 True 时 ``append`` 抛出 ``StorageError``。
    """

    def __init__(self) -> None:
        self.messages: list[ChatMessage] = []
        self.fail = False
        self._ids = itertools.count(1)
        self._base = datetime(2024, 1, 1, tzinfo=timezone.utc)

    async def append(self, room_id: str, sender: str, text: str) -> ChatMessage:
        if self.fail:
            raise StorageError()
        seq = next(self._ids)
        message = ChatMessage(
            id=f"msg-{seq}",
            room_id=room_id,
            sender=sender,
            text=text,
            timestamp=self._base + timedelta(milliseconds=seq),
        )
        self.messages.append(message)
        return message

    async def list_by_room(self, room_id: str, limit: int = 100) -> list[ChatMessage]:
        in_room = [m for m in self.messages if m.room_id == room_id]
        in_room.sort(key=lambda m: m.timestamp)
        return in_room[:limit]


@pytest.fixture()
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture()
def store() -> InMemoryMessageStore:
    return InMemoryMessageStore()


@pytest.fixture()
def engine(registry: ConnectionRegistry, store: InMemoryMessageStore) -> BroadcastEngine:
    return BroadcastEngine(registry=registry, store=store)


@pytest.fixture()
def alice() -> FakeConnection:
    return FakeConnection("alice-conn")


@pytest.fixture()
def bob() -> FakeConnection:
    return FakeConnection("bob-conn")


@pytest.fixture()
def carol() -> FakeConnection:
    return FakeConnection("carol-conn")


@pytest.fixture()
def make_connection():
    """按 ID 构造假连接的工厂。"""
    return FakeConnection


@pytest.fixture()
def client(store: InMemoryMessageStore) -> Iterator[TestClient]:
    """带完整生命周期的 TestClient，MongoDB 连接被 mock 掉。

    进入 ``with`` 后再把 ``app.state`` 上的存储替换为内存实现；
    所有 WebSocket 会话共享同一个事件循环。
    """
    with (
        patch("app.main.connect_mongo", new=AsyncMock(return_value=MagicMock())),
        patch("app.main.close_mongo", new=AsyncMock()),
    ):
        with TestClient(app) as test_client:
            registry = ConnectionRegistry()
            app.state.registry = registry
            app.state.message_repo = store
            app.state.room_repo = AsyncMock()
            app.state.engine = BroadcastEngine(registry=registry, store=store)
            limiter.reset()
            yield test_client
