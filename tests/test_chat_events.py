"""
tests.test_chat_events
~~~~~~~~~~~~~~~~~~~~~~

WebSocket 协议事件的解析与序列化测试。
"""
from __future__ import annotations

import json
from datetime import datetime, timezone

import pydantic
import pytest

from app.schemas.chat_events import (
    ErrorEvent,
    JoinEvent,
    LeaveEvent,
    NewMessageEvent,
    SendEvent,
    UserLeftEvent,
    parse_inbound,
    parse_outbound,
)
from app.schemas.chat_room import ChatMessage


class TestParseInbound:
    """测试入站帧解析。"""

    def test_join(self) -> None:
        event = parse_inbound('{"type": "join", "roomId": "abc12345", "nickname": "alice"}')

        assert isinstance(event, JoinEvent)
        assert event.room_id == "abc12345"
        assert event.nickname == "alice"
        assert event.is_host is False

    def test_join_as_host(self) -> None:
        event = parse_inbound(
            '{"type": "join", "roomId": "abc12345", "nickname": "alice", "isHost": true}',
        )

        assert event.is_host is True

    def test_leave_without_nickname(self) -> None:
        event = parse_inbound('{"type": "leave", "roomId": "abc12345"}')

        assert isinstance(event, LeaveEvent)
        assert event.nickname == ""

    def test_send(self) -> None:
        event = parse_inbound(json.dumps({
            "type": "send", "roomId": "abc12345", "sender": "alice", "text": "hi",
        }))

        assert isinstance(event, SendEvent)
        assert (event.sender, event.text) == ("alice", "hi")

    def test_blank_text_is_left_to_business_validation(self) -> None:
        """空白文本在协议层是合法的，由 BroadcastEngine 拒绝。"""
        event = parse_inbound('{"type": "send", "roomId": "r", "sender": "a", "text": "  "}')

        assert event.text == "  "

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            '{"type": "shout", "roomId": "r"}',
            '{"roomId": "r", "nickname": "a"}',
            '{"type": "send", "roomId": "r", "sender": "a"}',
            '{"type": "join", "roomId": 123, "nickname": "a"}',
            "[]",
        ],
    )
    def test_malformed_frames_rejected(self, raw: str) -> None:
        with pytest.raises(pydantic.ValidationError):
            parse_inbound(raw)


class TestOutboundWire:
    """测试出站事件的 camelCase 序列化。"""

    def test_new_message_wire_shape(self) -> None:
        message = ChatMessage(
            id="65a0c0ffee",
            room_id="abc12345",
            sender="alice",
            text="hi",
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

        wire = NewMessageEvent.from_message(message).to_wire()

        assert wire["type"] == "new-message"
        assert wire["roomId"] == "abc12345"
        assert wire["id"] == "65a0c0ffee"
        assert wire["timestamp"].startswith("2024-01-01T00:00:00")
        assert "room_id" not in wire

    def test_system_notice_flag(self) -> None:
        event = UserLeftEvent(
            sender="bob",
            text="bob left the room",
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

        wire = event.to_wire()

        assert wire["type"] == "user-left"
        assert wire["isSystemMessage"] is True

    def test_error_event(self) -> None:
        assert ErrorEvent(message="Invalid message data").to_wire() == {
            "type": "error",
            "message": "Invalid message data",
        }

    def test_parse_outbound_from_dict(self) -> None:
        wire = {
            "type": "user-joined",
            "sender": "bob",
            "text": "bob joined the room",
            "timestamp": "2024-01-01T00:00:00Z",
            "isSystemMessage": True,
        }

        event = parse_outbound(wire)

        assert event.type == "user-joined"
        assert event.sender == "bob"
