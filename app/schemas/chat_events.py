"""
app.schemas.chat_events
~~~~~~~~~~~~~~~~~~~~~~~

聊天 WebSocket 协议 —— 入站 / 出站事件的封闭标签联合类型。

所有帧都是 JSON 对象，通过 ``type`` 字段区分事件，字段名使用 camelCase:

入站（客户端 → 服务端）:
  - ``{"type": "join",  "roomId": ..., "nickname": ..., "isHost": false}``
  - ``{"type": "leave", "roomId": ..., "nickname": ...}``
  - ``{"type": "send",  "roomId": ..., "sender": ..., "text": ...}``

出站（服务端 → 客户端）:
  - ``new-message`` —— 已持久化的聊天消息（含服务端 id 与时间戳）
  - ``user-joined`` / ``user-left`` —— 系统通知，不落库
  - ``error`` —— 只发给出错的那个连接
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import Field, TypeAdapter

from app.schemas.base import CamelModel
from app.schemas.chat_room import ChatMessage


# ── 入站事件 ──────────────────────────────────────────────────────────
# 入站字段只做类型约束，长度与空值校验交给 BroadcastEngine，
# 这样校验失败可以按业务错误回显，而不是协议错误。

class JoinEvent(CamelModel):
    type: Literal["join"] = "join"
    room_id: str
    nickname: str
    # 仅用于日志区分房主与访客，不影响权限
    is_host: bool = False


class LeaveEvent(CamelModel):
    type: Literal["leave"] = "leave"
    room_id: str
    nickname: str = ""


class SendEvent(CamelModel):
    type: Literal["send"] = "send"
    room_id: str
    sender: str
    text: str


ClientEvent = Union[JoinEvent, LeaveEvent, SendEvent]

InboundEvent = Annotated[
    ClientEvent,
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter[InboundEvent] = TypeAdapter(InboundEvent)


def parse_inbound(raw: str | bytes) -> ClientEvent:
    """把一帧 JSON 文本解析为入站事件。

    Raises:
        pydantic.ValidationError: JSON 非法、``type`` 未知或缺少字段。
    """
    return _inbound_adapter.validate_json(raw)


# ── 出站事件 ──────────────────────────────────────────────────────────

class NewMessageEvent(CamelModel):
    """广播给房间全体成员（含发送者）的已持久化消息。"""

    type: Literal["new-message"] = "new-message"
    id: str
    room_id: str
    sender: str
    text: str
    timestamp: datetime

    @classmethod
    def from_message(cls, message: ChatMessage) -> NewMessageEvent:
        return cls(
            id=message.id,
            room_id=message.room_id,
            sender=message.sender,
            text=message.text,
            timestamp=message.timestamp,
        )


class UserJoinedEvent(CamelModel):
    """加入通知，不发给加入者本人。"""

    type: Literal["user-joined"] = "user-joined"
    sender: str
    text: str
    timestamp: datetime
    is_system_message: Literal[True] = True


class UserLeftEvent(CamelModel):
    """离开通知，只发给仍在房间内的成员。"""

    type: Literal["user-left"] = "user-left"
    sender: str
    text: str
    timestamp: datetime
    is_system_message: Literal[True] = True


class ErrorEvent(CamelModel):
    type: Literal["error"] = "error"
    message: str


ServerEvent = Union[NewMessageEvent, UserJoinedEvent, UserLeftEvent, ErrorEvent]

OutboundEvent = Annotated[
    ServerEvent,
    Field(discriminator="type"),
]

_outbound_adapter: TypeAdapter[OutboundEvent] = TypeAdapter(OutboundEvent)


def parse_outbound(raw: str | bytes | dict) -> ServerEvent:
    """解析出站事件（客户端工具与测试使用）。"""
    if isinstance(raw, dict):
        return _outbound_adapter.validate_python(raw)
    return _outbound_adapter.validate_json(raw)
