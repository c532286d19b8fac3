"""
app.core.exceptions
~~~~~~~~~~~~~~~~~~~

聊天系统的业务异常体系。

所有异常都继承 ``ChatError``，``message`` 属性是可以直接回显给客户端的文本：

  - ``ValidationError``     → 输入为空或格式不合法，只反馈给发起方
  - ``StorageError``        → 持久化失败，消息被丢弃，不重试
  - ``RoomNotFoundError``   → 房间不存在，仅由 HTTP 层抛出（404）
  - ``AuthenticationError`` → 缺少或无效的登录凭证（401）
"""
from __future__ import annotations


class ChatError(Exception):
    """所有业务异常的基类。"""

    default_message: str = "Unexpected error"

    def __init__(self, message: str | None = None) -> None:
        self.message: str = message or self.default_message
        super().__init__(self.message)


class ValidationError(ChatError):
    """客户端输入不合法（空字段、超长等）。"""

    default_message = "Invalid message data"


class StorageError(ChatError):
    """消息存储不可用或写入/读取失败。"""

    default_message = "Failed to send message"


class RoomNotFoundError(ChatError):
    """按 room_id 找不到房间。"""

    default_message = "Room not found"

    def __init__(self, room_id: str) -> None:
        self.room_id = room_id
        super().__init__(f"Room not found: {room_id}")


class AuthenticationError(ChatError):
    """缺少或无效的登录凭证。"""

    default_message = "Authentication required"
