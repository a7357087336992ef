"""
WebSocket 프레임 스키마

클라이언트와 주고받는 모든 프레임은 문자열 `type` 필드를 가진 JSON 객체 하나입니다.
"""

import json
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from chat_relay.core.errors import InvalidFrameError
from chat_relay.schemas.user import Identity, UserProfile
from chat_relay.utils.time_utils import utc_timestamp


# =============================================================================
# 수신 프레임
# =============================================================================

class InboundEvent(BaseModel):
    """클라이언트 → 서버 프레임 기본 스키마"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str


class AuthenticateEvent(InboundEvent):
    type: Literal["authenticate"] = "authenticate"
    id_token: str = Field(..., alias="idToken", min_length=1, description="ID 토큰")


class ChatMessageEvent(InboundEvent):
    type: Literal["chat_message"] = "chat_message"
    message: str = Field(..., min_length=1, description="메시지 본문")
    # 클라이언트가 보낸 발신자 이름은 신뢰하지 않습니다
    user: Optional[str] = Field(None, description="클라이언트가 주장하는 발신자 이름")


class TypingEvent(InboundEvent):
    type: Literal["typing_start", "typing_stop"]

    @property
    def is_typing(self) -> bool:
        return self.type == "typing_start"


class UserInfoEvent(InboundEvent):
    type: Literal["user_info"] = "user_info"
    user_info: UserProfile = Field(..., alias="userInfo", description="프로필 필드")


def parse_frame(raw: Any) -> Dict[str, Any]:
    """
    수신한 텍스트 프레임을 JSON 객체로 파싱합니다.

    Raises:
        InvalidFrameError: JSON이 아니거나 객체가 아닌 경우
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidFrameError() from e

    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise InvalidFrameError() from e

    if not isinstance(data, dict):
        raise InvalidFrameError()
    return data


# =============================================================================
# 송신 프레임
# =============================================================================

class OutboundEvent(BaseModel):
    """서버 → 클라이언트 프레임 기본 스키마"""
    model_config = ConfigDict(populate_by_name=True)

    type: str
    timestamp: str = Field(default_factory=utc_timestamp)

    def to_frame(self) -> Dict[str, Any]:
        """전송용 dict (camelCase, None 필드 제외)"""
        return self.model_dump(by_alias=True, exclude_none=True)


class ConnectionEvent(OutboundEvent):
    type: Literal["connection"] = "connection"
    message: str = "Connected to WebSocket server"
    client_id: str = Field(..., alias="clientId")


class AuthenticationSuccessEvent(OutboundEvent):
    type: Literal["authentication_success"] = "authentication_success"
    user: Identity


class AuthenticationErrorEvent(OutboundEvent):
    type: Literal["authentication_error"] = "authentication_error"
    message: str


class ChatMessageBroadcast(OutboundEvent):
    type: Literal["chat_message"] = "chat_message"
    id: int
    user: str
    user_email: Optional[str] = Field(None, alias="userEmail")
    message: str
    sender_id: str = Field(..., alias="senderId")
    sender_uid: Optional[str] = Field(None, alias="senderUid")


class TypingStatusEvent(OutboundEvent):
    type: Literal["typing_status"] = "typing_status"
    sender_id: str = Field(..., alias="senderId")
    sender_name: Optional[str] = Field(None, alias="senderName")
    is_typing: bool = Field(..., alias="isTyping")


class UserCountEvent(OutboundEvent):
    type: Literal["user_count"] = "user_count"
    count: int


class ErrorEvent(OutboundEvent):
    type: Literal["error"] = "error"
    message: str
