"""
app.api.deps
~~~~~~~~~~~~

FastAPI 依赖 —— 从 ``app.state`` 取出在 lifespan 中创建的服务实例。
"""
from __future__ import annotations

from fastapi import Request

from app.db.message_repository import MessageRepository
from app.db.room_repository import RoomRepository
from app.services.connection_registry import ConnectionRegistry


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.registry


def get_message_repo(request: Request) -> MessageRepository:
    return request.app.state.message_repo


def get_room_repo(request: Request) -> RoomRepository:
    return request.app.state.room_repo
