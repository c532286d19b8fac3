"""
app.db.room_repository
~~~~~~~~~~~~~~~~~~~~~~

房间目录 —— 封装 MongoDB ``rooms`` 集合。

房间创建后只读：``roomId`` 在创建时随机生成（nanoid 字母表，默认 8 位），
由唯一索引保证全局唯一，碰撞时重新生成。
"""
from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.exceptions import RoomNotFoundError, StorageError
from app.core.logging import get_logger
from app.core.settings import settings
from app.schemas.chat_room import Room

logger = get_logger(__name__)

_COLLECTION_NAME = "rooms"

# URL 安全字母表（与 nanoid 默认一致）
_ROOM_ID_ALPHABET = "useandom-26T198340PX75pxJACKVERYMINDBUSHWOLF_GQZbfghjklqvwyzrict"
_MAX_CREATE_ATTEMPTS = 5


def generate_room_id(length: int = settings.ROOM_ID_LENGTH) -> str:
    """生成随机房间公开 ID。"""
    return "".join(secrets.choice(_ROOM_ID_ALPHABET) for _ in range(length))


def _to_room(doc: dict[str, Any]) -> Room:
    return Room(
        room_id=doc["roomId"],
        name=doc["name"],
        owner_id=str(doc["createdBy"]),
        created_at=doc["createdAt"],
    )


class RoomRepository:
    """房间元数据仓库。

    Attributes:
        db: MongoDB 数据库实例。
    """

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self.db = db
        self._collection = db[_COLLECTION_NAME]
        self._indexes_created = False

    async def _ensure_indexes(self) -> None:
        if self._indexes_created:
            return
        await self._collection.create_index(
            [("roomId", ASCENDING)], name="uniq_room_id", unique=True,
        )
        await self._collection.create_index(
            [("createdBy", ASCENDING), ("createdAt", DESCENDING)],
            name="idx_owner_time",
        )
        self._indexes_created = True
        logger.debug("rooms 索引已就绪")

    async def create(self, name: str, owner_id: str) -> Room:
        """创建房间并分配新的 ``roomId``。

        Args:
            name: 房间名称（已去除首尾空白）。
            owner_id: 创建者用户 ID。

        Raises:
            StorageError: 写入失败，或多次生成的 ID 均发生碰撞。
        """
        try:
            await self._ensure_indexes()
            for _ in range(_MAX_CREATE_ATTEMPTS):
                now = datetime.now(timezone.utc)
                now = now.replace(microsecond=now.microsecond // 1000 * 1000)
                doc = {
                    "roomId": generate_room_id(),
                    "name": name,
                    "createdBy": owner_id,
                    "createdAt": now,
                    "updatedAt": now,
                }
                try:
                    await self._collection.insert_one(doc)
                except DuplicateKeyError:
                    logger.warning("roomId 碰撞，重新生成 | roomId=%s", doc["roomId"])
                    continue
                logger.info("房间已创建 | roomId=%s | owner=%s", doc["roomId"], owner_id)
                return _to_room(doc)
        except PyMongoError as e:
            logger.error("房间创建失败: %s", e, exc_info=True)
            raise StorageError("Failed to create room") from e
        raise StorageError("Failed to allocate room id")

    async def find_by_room_id(self, room_id: str) -> Room:
        """按公开 ID 查找房间。

        Raises:
            RoomNotFoundError: 房间不存在。
            StorageError: 查询失败。
        """
        try:
            doc = await self._collection.find_one({"roomId": room_id})
        except PyMongoError as e:
            raise StorageError("Failed to load room") from e
        if doc is None:
            raise RoomNotFoundError(room_id)
        return _to_room(doc)

    async def list_by_owner(self, owner_id: str) -> list[Room]:
        """列出某个用户创建的房间，最新的在前。"""
        try:
            cursor = (
                self._collection
                .find({"createdBy": owner_id})
                .sort("createdAt", DESCENDING)
            )
            docs = await cursor.to_list(length=None)
        except PyMongoError as e:
            raise StorageError("Failed to list rooms") from e
        return [_to_room(doc) for doc in docs]
