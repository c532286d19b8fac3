"""
app.db
~~~~~~

聊天室的 MongoDB 连接生命周期。

``connect_mongo()`` 在 lifespan 启动时建立连接池、ping 目标库，返回数据库句柄
交给各仓库；``close_mongo()`` 在关闭时释放连接池。连接失败时抛出
``StorageError``，应用不会带着不可用的存储启动。
"""
from __future__ import annotations

from urllib.parse import urlparse, urlunparse

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.core.exceptions import StorageError
from app.core.logging import get_logger
from app.core.settings import settings

logger = get_logger(__name__)

# 启动时选择服务器的超时（毫秒）
_SERVER_SELECTION_TIMEOUT_MS = 5000

_client: AsyncIOMotorClient | None = None


def _mask_uri(uri: str) -> str:
    """隐藏 URI 中的密码，只用于日志。"""
    parsed = urlparse(uri)
    if not parsed.password:
        return uri
    host = parsed.hostname or ""
    if parsed.port:
        host = f"{host}:{parsed.port}"
    return urlunparse(parsed._replace(netloc=f"{parsed.username}:***@{host}"))


async def connect_mongo(
    uri: str = settings.MONGO_URI,
    db_name: str = settings.MONGO_DB_NAME,
) -> AsyncIOMotorDatabase:
    """建立连接池并返回聊天数据库。

    ``tz_aware=True``：读回的时间戳带 UTC 时区，与广播出去的值一致。

    Raises:
        StorageError: ping 失败（服务不可达或认证失败）。
    """
    global _client
    client = AsyncIOMotorClient(
        uri,
        tz_aware=True,
        serverSelectionTimeoutMS=_SERVER_SELECTION_TIMEOUT_MS,
    )
    db = client[db_name]
    try:
        await db.command("ping")
    except PyMongoError as e:
        client.close()
        logger.error("MongoDB 连接失败 | uri=%s | %s", _mask_uri(uri), e)
        raise StorageError("MongoDB unavailable") from e

    _client = client
    logger.info("MongoDB 已连接 | uri=%s | db=%s", _mask_uri(uri), db_name)
    return db


async def close_mongo() -> None:
    """释放连接池，可重复调用。"""
    global _client
    if _client is None:
        return
    _client.close()
    _client = None
    logger.info("MongoDB 连接已关闭")
