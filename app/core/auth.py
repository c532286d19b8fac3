"""
app.core.auth
~~~~~~~~~~~~~

登录凭证校验 —— 只用于房间创建/列表接口，聊天核心不做身份认证。

Token 为 HS256 JWT，载荷包含 ``userId`` 与 ``email``。
优先从 Cookie ``auth-token`` 读取，其次读取 ``Authorization: Bearer`` 头。
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Request
from pydantic import BaseModel, Field

from app.core.exceptions import AuthenticationError
from app.core.settings import settings


class AuthUser(BaseModel):
    """已认证的房间创建者。"""

    user_id: str = Field(..., description="用户 ID")
    email: str = Field(default="", description="用户邮箱")


def create_access_token(
    user_id: str,
    email: str = "",
    expires_in: timedelta | None = None,
) -> str:
    """签发访问 Token。

    Args:
        user_id: 用户 ID。
        email: 用户邮箱。
        expires_in: 有效期，默认 ``settings.JWT_EXPIRE_MINUTES``。
    """
    expire = datetime.now(timezone.utc) + (
        expires_in or timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
    )
    payload = {"userId": user_id, "email": email, "exp": expire}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> AuthUser:
    """校验并解析 Token。

    Raises:
        AuthenticationError: 签名错误、过期或缺少 ``userId``。
    """
    try:
        payload = jwt.decode(
            token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM],
        )
    except jwt.PyJWTError as e:
        raise AuthenticationError("Invalid token") from e

    user_id = payload.get("userId")
    if not user_id:
        raise AuthenticationError("Invalid token")
    return AuthUser(user_id=str(user_id), email=payload.get("email", ""))


def _extract_token(request: Request) -> str | None:
    token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if token:
        return token
    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


async def get_current_user(request: Request) -> AuthUser:
    """FastAPI 依赖：解析当前请求的登录用户，未登录时抛出 ``AuthenticationError``。"""
    token = _extract_token(request)
    if token is None:
        raise AuthenticationError()
    return decode_access_token(token)
