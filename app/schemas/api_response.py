"""
app.schemas.api_response
~~~~~~~~~~~~~~~~~~~~~~~~

房间管理接口的统一应答体，错误响应也复用此结构。

聊天历史接口 ``GET /api/messages/{room_id}`` 是客户端协议的一部分，
直接返回 ``{"messages": [...]}``，不经过此包装。
"""
from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from app.core.exceptions import ChatError

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """统一 JSON 应答体。

    .. code-block:: json

        {"code": 200, "data": {...}, "msg": "success"}

    Attributes:
        code: 业务状态码，与 HTTP 状态码一致。
        data: 实际业务数据。
        msg: 人类可读的状态消息。
    """

    code: int = Field(default=200, description="业务状态码")
    data: T = Field(..., description="业务数据")
    msg: str = Field(default="success", description="状态消息")

    @classmethod
    def ok(cls, data: T, msg: str = "success") -> ApiResponse[T]:
        """快捷构造成功响应。"""
        return cls(code=200, data=data, msg=msg)

    @classmethod
    def fail(cls, msg: str = "error", code: int = 500, data: Any = None) -> ApiResponse[Any]:
        """快捷构造失败响应。"""
        return cls(code=code, data=data, msg=msg)

    @classmethod
    def from_error(cls, exc: ChatError, code: int) -> ApiResponse[Any]:
        """把业务异常转换为失败响应。"""
        return cls.fail(msg=exc.message, code=code)
