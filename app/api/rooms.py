"""
app.api.rooms
~~~~~~~~~~~~~

房间 REST 接口 —— 房间管理 + 历史回放。

路由前缀 ``/api``。

端点:
  - ``POST /rooms/create``          → 创建房间（需登录）
  - ``GET  /rooms``                 → 当前用户创建的房间列表（需登录）
  - ``GET  /room/{room_id}``        → 房间详情（不存在返回 404）
  - ``GET  /messages/{room_id}``    → 历史消息回放（最多 100 条，按时间正序）
"""
from fastapi import APIRouter, Depends, Request

from app.api.deps import get_message_repo, get_registry, get_room_repo
from app.core.auth import AuthUser, get_current_user
from app.core.exceptions import ValidationError
from app.core.rate_limit import limiter
from app.core.settings import settings
from app.db.message_repository import MessageRepository
from app.db.room_repository import RoomRepository
from app.schemas.api_response import ApiResponse
from app.schemas.chat_room import CreateRoomRequest, MessageListResponse, RoomData
from app.services.connection_registry import ConnectionRegistry

router: APIRouter = APIRouter()


# ── 房间管理端点 ──────────────────────────────────────────────────────

@router.post("/rooms/create", summary="创建房间", response_model=ApiResponse[RoomData])
@limiter.limit("5/second")
async def create_room(
    request: Request,
    body: CreateRoomRequest,
    user: AuthUser = Depends(get_current_user),
    rooms: RoomRepository = Depends(get_room_repo),
):
    """为当前登录用户创建房间，返回带公开 ID 的房间信息。"""
    name = body.name.strip()
    if not name:
        raise ValidationError("Please provide room name")
    room = await rooms.create(name=name, owner_id=user.user_id)
    return ApiResponse.ok(data=RoomData.from_room(room), msg="Room created successfully")


@router.get("/rooms", summary="我的房间列表", response_model=ApiResponse[list[RoomData]])
@limiter.limit("10/second")
async def list_my_rooms(
    request: Request,
    user: AuthUser = Depends(get_current_user),
    rooms: RoomRepository = Depends(get_room_repo),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """返回当前用户创建的全部房间（最新的在前）。"""
    owned = await rooms.list_by_owner(user.user_id)
    data = [RoomData.from_room(room, registry.online_count(room.room_id)) for room in owned]
    return ApiResponse.ok(data=data)


@router.get("/room/{room_id}", summary="获取房间详情", response_model=ApiResponse[RoomData])
@limiter.limit("10/second")
async def room_info(
    request: Request,
    room_id: str,
    rooms: RoomRepository = Depends(get_room_repo),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """返回房间名称与在线人数。房间不存在时返回 404。

    Args:
        room_id: 房间公开 ID。
    """
    room = await rooms.find_by_room_id(room_id)
    return ApiResponse.ok(data=RoomData.from_room(room, registry.online_count(room_id)))


# ── 历史回放端点 ──────────────────────────────────────────────────────

@router.get(
    "/messages/{room_id}",
    summary="获取历史消息",
    response_model=MessageListResponse,
)
@limiter.limit("10/second")
async def list_messages(
    request: Request,
    room_id: str,
    messages: MessageRepository = Depends(get_message_repo),
):
    """加入房间时回放历史：最多返回 ``HISTORY_LIMIT`` 条，按时间正序。

    消息超过上限时返回最早的那一批（先排序后截断）。
    """
    history = await messages.list_by_room(room_id, limit=settings.HISTORY_LIMIT)
    return MessageListResponse(messages=history)
