"""
WebSocket 실시간 채팅 릴레이 모듈

주요 구성 요소:
- connection_registry: 살아있는 연결 저장소
- session: 연결별 인증 상태 머신
- broadcaster: 대상 연결 집합으로의 이벤트 전달, 메시지 ID 카운터
- handlers: 수신 프레임 타입별 처리
- auth: 토큰 검증
- relay: 위 구성 요소를 묶은 릴레이
"""

from .auth import JWTTokenVerifier, StaticTokenVerifier, TokenVerifier, verify_with_timeout
from .broadcaster import Broadcaster, MessageIdSequence
from .connection_registry import Connection, ConnectionRegistry
from .handlers import MessageRouter
from .relay import ChatRelay
from .session import Session, SessionState

__all__ = [
    "Broadcaster",
    "ChatRelay",
    "Connection",
    "ConnectionRegistry",
    "JWTTokenVerifier",
    "MessageIdSequence",
    "MessageRouter",
    "Session",
    "SessionState",
    "StaticTokenVerifier",
    "TokenVerifier",
    "verify_with_timeout",
]
