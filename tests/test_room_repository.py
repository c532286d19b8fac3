"""
tests.test_room_repository
~~~~~~~~~~~~~~~~~~~~~~~~~~

RoomRepository 单元测试（MongoDB 集合使用 mock）。
"""
from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from app.core.exceptions import RoomNotFoundError, StorageError
from app.db.room_repository import _ROOM_ID_ALPHABET, RoomRepository, generate_room_id


def make_repo(collection: MagicMock) -> RoomRepository:
    db = MagicMock()
    db.__getitem__.return_value = collection
    return RoomRepository(db)


def make_collection() -> MagicMock:
    collection = MagicMock()
    collection.create_index = AsyncMock()
    collection.insert_one = AsyncMock()
    collection.find_one = AsyncMock(return_value=None)
    return collection


def test_generate_room_id_shape() -> None:
    room_id = generate_room_id()

    assert len(room_id) == 8
    assert set(room_id) <= set(_ROOM_ID_ALPHABET)
    assert generate_room_id(12) != generate_room_id(12)


class TestCreate:
    """测试房间创建。"""

    @pytest.mark.asyncio
    async def test_create_persists_room(self) -> None:
        collection = make_collection()
        repo = make_repo(collection)

        room = await repo.create("Lobby", "user-1")

        doc = collection.insert_one.call_args[0][0]
        assert doc["name"] == "Lobby"
        assert doc["createdBy"] == "user-1"
        assert doc["roomId"] == room.room_id
        assert room.owner_id == "user-1"
        assert room.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_duplicate_room_id_is_regenerated(self) -> None:
        """roomId 碰撞时重新生成，直到写入成功。"""
        collection = make_collection()
        collection.insert_one.side_effect = [DuplicateKeyError("dup"), None]
        repo = make_repo(collection)

        room = await repo.create("Lobby", "user-1")

        assert collection.insert_one.await_count == 2
        assert room.room_id == collection.insert_one.call_args_list[1][0][0]["roomId"]

    @pytest.mark.asyncio
    async def test_gives_up_after_repeated_collisions(self) -> None:
        collection = make_collection()
        collection.insert_one.side_effect = DuplicateKeyError("dup")
        repo = make_repo(collection)

        with pytest.raises(StorageError):
            await repo.create("Lobby", "user-1")

    @pytest.mark.asyncio
    async def test_driver_error_becomes_storage_error(self) -> None:
        collection = make_collection()
        collection.insert_one.side_effect = ServerSelectionTimeoutError("down")
        repo = make_repo(collection)

        with pytest.raises(StorageError) as exc_info:
            await repo.create("Lobby", "user-1")

        assert exc_info.value.message == "Failed to create room"


class TestFind:
    """测试房间查询。"""

    @pytest.mark.asyncio
    async def test_find_existing_room(self) -> None:
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        collection = make_collection()
        collection.find_one.return_value = {
            "roomId": "abc12345",
            "name": "Lobby",
            "createdBy": "user-1",
            "createdAt": created,
        }
        repo = make_repo(collection)

        room = await repo.find_by_room_id("abc12345")

        assert room.name == "Lobby"
        assert room.created_at == created
        collection.find_one.assert_awaited_once_with({"roomId": "abc12345"})

    @pytest.mark.asyncio
    async def test_missing_room_raises_not_found(self) -> None:
        repo = make_repo(make_collection())

        with pytest.raises(RoomNotFoundError) as exc_info:
            await repo.find_by_room_id("missing1")

        assert exc_info.value.room_id == "missing1"

    @pytest.mark.asyncio
    async def test_list_by_owner(self) -> None:
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        cursor = MagicMock()
        cursor.sort.return_value = cursor
        cursor.to_list = AsyncMock(return_value=[
            {"roomId": "b", "name": "B", "createdBy": "user-1", "createdAt": created},
            {"roomId": "a", "name": "A", "createdBy": "user-1", "createdAt": created},
        ])
        collection = make_collection()
        collection.find.return_value = cursor
        repo = make_repo(collection)

        rooms = await repo.list_by_owner("user-1")

        assert [r.room_id for r in rooms] == ["b", "a"]
        collection.find.assert_called_once_with({"createdBy": "user-1"})
