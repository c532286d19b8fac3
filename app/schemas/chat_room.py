"""
app.schemas.chat_room
~~~~~~~~~~~~~~~~~~~~~

房间与聊天消息的领域模型，以及 HTTP 接口的请求/响应模型。
"""
from __future__ import annotations

from datetime import datetime

from pydantic import Field

from app.core.settings import settings
from app.schemas.base import CamelModel


# ── 领域模型 ──────────────────────────────────────────────────────────

class ChatMessage(CamelModel):
    """一条已持久化的聊天消息，写入后不再修改。"""

    id: str = Field(..., description="消息 ID（MongoDB ObjectId 字符串）")
    room_id: str = Field(..., description="所属房间公开 ID")
    sender: str = Field(..., description="发送者昵称")
    text: str = Field(..., description="消息文本（已去除首尾空白）")
    timestamp: datetime = Field(..., description="服务端写入时间（UTC）")


class Room(CamelModel):
    """房间元数据，由 RoomRepository 在创建时生成。"""

    room_id: str = Field(..., description="房间公开短 ID")
    name: str = Field(..., description="房间名称")
    owner_id: str = Field(..., description="创建者用户 ID")
    created_at: datetime = Field(..., description="创建时间（UTC）")


# ── HTTP 请求/响应 ────────────────────────────────────────────────────

class CreateRoomRequest(CamelModel):
    """创建房间请求体。"""

    name: str = Field(
        ...,
        min_length=1,
        max_length=settings.MAX_ROOM_NAME_LENGTH,
        description="房间名称",
    )


class RoomData(CamelModel):
    """房间详情。"""

    room_id: str = Field(..., description="房间公开短 ID")
    name: str = Field(..., description="房间名称")
    created_at: datetime = Field(..., description="创建时间")
    online_count: int = Field(default=0, description="当前在线连接数")
    url: str = Field(..., description="聊天页面路径")

    @classmethod
    def from_room(cls, room: Room, online_count: int = 0) -> RoomData:
        return cls(
            room_id=room.room_id,
            name=room.name,
            created_at=room.created_at,
            online_count=online_count,
            url=f"/room/{room.room_id}",
        )


class MessageListResponse(CamelModel):
    """历史消息回放，``{"messages": [...]}``。"""

    messages: list[ChatMessage] = Field(..., description="按时间正序排列的消息")
