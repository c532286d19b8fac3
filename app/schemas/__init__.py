"""
app.schemas
~~~~~~~~~~~
Pydantic schemas and models for the API and the chat wire protocol.
"""
from app.schemas.api_response import ApiResponse
from app.schemas.chat_events import (
    ErrorEvent,
    JoinEvent,
    LeaveEvent,
    NewMessageEvent,
    SendEvent,
    UserJoinedEvent,
    UserLeftEvent,
)
from app.schemas.chat_room import (
    ChatMessage,
    CreateRoomRequest,
    MessageListResponse,
    Room,
    RoomData,
)

# Call model_rebuild to resolve forward references in generic Pydantic models.
ApiResponse.model_rebuild()
