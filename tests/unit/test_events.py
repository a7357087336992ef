import pytest
from pydantic import ValidationError

from chat_relay.core.errors import InvalidFrameError
from chat_relay.schemas.events import (
    AuthenticateEvent,
    ChatMessageBroadcast,
    ConnectionEvent,
    TypingEvent,
    UserInfoEvent,
    parse_frame,
)
from chat_relay.utils.time_utils import isoformat_z


class TestParseFrame:
    """수신 프레임 파싱 테스트"""

    def test_object(self):
        assert parse_frame('{"type": "typing_start"}') == {"type": "typing_start"}

    def test_bytes(self):
        assert parse_frame(b'{"type": "typing_stop"}') == {"type": "typing_stop"}

    @pytest.mark.parametrize("raw", ["", "nope", "{", "[]", "1", None, b"\xff\xfe"])
    def test_invalid(self, raw):
        with pytest.raises(InvalidFrameError) as exc_info:
            parse_frame(raw)
        assert exc_info.value.message == "Invalid message format"


class TestInboundEvents:
    """수신 이벤트 스키마 테스트"""

    def test_authenticate_alias(self):
        event = AuthenticateEvent.model_validate({"type": "authenticate", "idToken": "abc"})
        assert event.id_token == "abc"

    def test_typing_flag(self):
        assert TypingEvent.model_validate({"type": "typing_start"}).is_typing is True
        assert TypingEvent.model_validate({"type": "typing_stop"}).is_typing is False

    def test_user_info_extra_fields(self):
        event = UserInfoEvent.model_validate({"type": "user_info", "userInfo": {"name": "Neo", "avatar": "x"}})
        assert event.user_info.name == "Neo"

    def test_user_info_requires_object(self):
        with pytest.raises(ValidationError):
            UserInfoEvent.model_validate({"type": "user_info", "userInfo": "Neo"})


class TestOutboundEvents:
    """송신 프레임 형식 테스트"""

    def test_connection_frame(self):
        frame = ConnectionEvent(client_id="abc123").to_frame()
        assert frame["type"] == "connection"
        assert frame["clientId"] == "abc123"
        assert frame["message"] == "Connected to WebSocket server"
        assert "timestamp" in frame

    def test_chat_frame_uses_camel_case_and_drops_missing_fields(self):
        frame = ChatMessageBroadcast(id=7, user="Guest", message="hi", sender_id="c1").to_frame()
        assert frame["senderId"] == "c1"
        assert "senderUid" not in frame
        assert "userEmail" not in frame

    def test_timestamp_format(self):
        from datetime import datetime, timezone
        assert isoformat_z(datetime(2024, 1, 1, 12, 30, tzinfo=timezone.utc)) == "2024-01-01T12:30:00.000Z"
