"""
app.db.message_repository
~~~~~~~~~~~~~~~~~~~~~~~~~

聊天消息持久化仓库 —— 封装 MongoDB ``messages`` 集合的追加与查询。

只追加、不修改、不删除。每条消息一个文档，排序键为 ``timestamp`` 正序，
同一毫秒内的消息按 ``_id``（插入顺序）排列。
驱动层异常统一转换为 ``StorageError``。
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from app.core.exceptions import StorageError
from app.core.logging import get_logger
from app.core.settings import settings
from app.schemas.chat_room import ChatMessage

logger = get_logger(__name__)

# 集合名称
_COLLECTION_NAME = "messages"

# 排序：时间正序，同一时间按插入顺序
_SORT_ORDER = [("timestamp", ASCENDING), ("_id", ASCENDING)]


def _utc_now_millis() -> datetime:
    """当前 UTC 时间，截断到毫秒（BSON 日期精度），保证读回值与广播值一致。"""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def _to_message(doc: dict[str, Any]) -> ChatMessage:
    return ChatMessage(
        id=str(doc["_id"]),
        room_id=doc["roomId"],
        sender=doc["sender"],
        text=doc["text"],
        timestamp=doc["timestamp"],
    )


class MessageRepository:
    """聊天消息持久化仓库。

    Attributes:
        db: MongoDB 数据库实例。
    """

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self.db = db
        self._collection = db[_COLLECTION_NAME]
        self._indexes_created = False

    async def _ensure_indexes(self) -> None:
        """确保索引已创建（惰性，首次操作时执行一次）。"""
        if self._indexes_created:
            return
        # 复合索引：按房间分区 + 按时间排序
        await self._collection.create_index(
            [("roomId", ASCENDING), ("timestamp", ASCENDING)],
            name="idx_room_time",
        )
        self._indexes_created = True
        logger.debug("messages 索引已就绪")

    async def append(self, room_id: str, sender: str, text: str) -> ChatMessage:
        """追加一条消息，返回带服务端 ID 和时间戳的记录。

        Args:
            room_id: 房间公开 ID。
            sender: 发送者昵称。
            text: 消息文本（调用方已校验并去除首尾空白）。

        Raises:
            StorageError: 数据库不可用或写入失败。
        """
        doc: dict[str, Any] = {
            "roomId": room_id,
            "sender": sender,
            "text": text,
            "timestamp": _utc_now_millis(),
        }
        try:
            await self._ensure_indexes()
            result = await self._collection.insert_one(doc)
        except PyMongoError as e:
            logger.error("消息写入失败 | room=%s | %s", room_id, e, exc_info=True)
            raise StorageError() from e

        doc["_id"] = result.inserted_id
        return _to_message(doc)

    async def list_by_room(
        self,
        room_id: str,
        limit: int = settings.HISTORY_LIMIT,
    ) -> list[ChatMessage]:
        """获取指定房间的历史消息，按时间正序。

        先排序再截断（head-limit）：消息超过 ``limit`` 条时返回最早的 ``limit`` 条。

        Args:
            room_id: 房间公开 ID。
            limit: 最大返回条数。

        Raises:
            StorageError: 数据库不可用或查询失败。
        """
        try:
            await self._ensure_indexes()
            cursor = (
                self._collection
                .find({"roomId": room_id})
                .sort(_SORT_ORDER)
                .limit(limit)
            )
            docs = await cursor.to_list(length=limit)
        except PyMongoError as e:
            logger.error("历史消息查询失败 | room=%s | %s", room_id, e, exc_info=True)
            raise StorageError("Failed to load messages") from e
        return [_to_message(doc) for doc in docs]

    async def count_by_room(self, room_id: str) -> int:
        """获取指定房间的消息总数。"""
        try:
            await self._ensure_indexes()
            return await self._collection.count_documents({"roomId": room_id})
        except PyMongoError as e:
            raise StorageError("Failed to count messages") from e
