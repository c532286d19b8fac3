"""
tests.test_auth
~~~~~~~~~~~~~~~

登录凭证签发 / 校验测试。
"""
from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

import jwt
import pytest

from app.core.auth import (
    create_access_token,
    decode_access_token,
    get_current_user,
)
from app.core.exceptions import AuthenticationError
from app.core.settings import settings


def make_request(cookies: dict | None = None, headers: dict | None = None) -> MagicMock:
    request = MagicMock()
    request.cookies = cookies or {}
    request.headers = headers or {}
    return request


class TestToken:
    """测试 Token 签发与解析。"""

    def test_round_trip(self) -> None:
        token = create_access_token("user-1", "a@example.com")

        user = decode_access_token(token)

        assert user.user_id == "user-1"
        assert user.email == "a@example.com"

    def test_expired_token_rejected(self) -> None:
        token = create_access_token("user-1", expires_in=timedelta(seconds=-1))

        with pytest.raises(AuthenticationError):
            decode_access_token(token)

    def test_wrong_signature_rejected(self) -> None:
        token = jwt.encode({"userId": "user-1"}, "other-secret", algorithm="HS256")

        with pytest.raises(AuthenticationError) as exc_info:
            decode_access_token(token)

        assert exc_info.value.message == "Invalid token"

    def test_missing_user_id_rejected(self) -> None:
        token = jwt.encode(
            {"email": "a@example.com"}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM,
        )

        with pytest.raises(AuthenticationError):
            decode_access_token(token)

    def test_garbage_rejected(self) -> None:
        with pytest.raises(AuthenticationError):
            decode_access_token("not-a-jwt")


class TestGetCurrentUser:
    """测试 FastAPI 依赖 get_current_user。"""

    @pytest.mark.asyncio
    async def test_cookie_token(self) -> None:
        token = create_access_token("user-1")
        request = make_request(cookies={settings.AUTH_COOKIE_NAME: token})

        user = await get_current_user(request)

        assert user.user_id == "user-1"

    @pytest.mark.asyncio
    async def test_bearer_token(self) -> None:
        token = create_access_token("user-2")
        request = make_request(headers={"Authorization": f"Bearer {token}"})

        user = await get_current_user(request)

        assert user.user_id == "user-2"

    @pytest.mark.asyncio
    async def test_cookie_takes_precedence(self) -> None:
        request = make_request(
            cookies={settings.AUTH_COOKIE_NAME: create_access_token("from-cookie")},
            headers={"Authorization": f"Bearer {create_access_token('from-header')}"},
        )

        user = await get_current_user(request)

        assert user.user_id == "from-cookie"

    @pytest.mark.asyncio
    async def test_missing_token(self) -> None:
        with pytest.raises(AuthenticationError) as exc_info:
            await get_current_user(make_request())

        assert exc_info.value.message == "Authentication required"

    @pytest.mark.asyncio
    async def test_non_bearer_scheme_ignored(self) -> None:
        request = make_request(headers={"Authorization": "Basic dXNlcjpwYXNz"})

        with pytest.raises(AuthenticationError):
            await get_current_user(request)
