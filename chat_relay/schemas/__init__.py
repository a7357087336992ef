from .user import Identity, UserProfile, TokenVerifyRequest, TokenVerifyResponse
from .events import (
    InboundEvent,
    AuthenticateEvent,
    ChatMessageEvent,
    TypingEvent,
    UserInfoEvent,
    OutboundEvent,
    ConnectionEvent,
    AuthenticationSuccessEvent,
    AuthenticationErrorEvent,
    ChatMessageBroadcast,
    TypingStatusEvent,
    UserCountEvent,
    ErrorEvent,
    parse_frame,
)
