"""
연결별 세션 상태 머신

CONNECTED → AUTHENTICATING → AUTHENTICATED, 어느 상태에서든 → CLOSED.
인증 실패 시 AUTHENTICATING → CONNECTED로 돌아가 재시도할 수 있습니다.
"""

from enum import Enum

from chat_relay.core.errors import InvalidTransitionError


class SessionState(str, Enum):
    CONNECTED = "connected"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


class Session:
    """
    하나의 연결에 대한 인증 상태.

    auth_required가 False이면 AUTHENTICATING 단계 없이 AUTHENTICATED 상태에서
    시작하며, 브로드캐스트 대상 판정에서 항상 인증된 연결로 취급됩니다.
    """

    def __init__(self, auth_required: bool = True):
        self.auth_required = auth_required
        self.state = SessionState.CONNECTED if auth_required else SessionState.AUTHENTICATED

    def __repr__(self) -> str:
        return f"<Session state={self.state.value}>"

    @property
    def is_authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED

    @property
    def is_closed(self) -> bool:
        return self.state == SessionState.CLOSED

    def begin_authentication(self):
        self._transition(SessionState.CONNECTED, SessionState.AUTHENTICATING, "submit_credential")

    def complete_authentication(self):
        self._transition(SessionState.AUTHENTICATING, SessionState.AUTHENTICATED, "verify_ok")

    def fail_authentication(self):
        self._transition(SessionState.AUTHENTICATING, SessionState.CONNECTED, "verify_fail")

    def close(self) -> SessionState:
        """CLOSED로 전이하고 직전 상태를 반환합니다."""
        previous = self.state
        self.state = SessionState.CLOSED
        return previous

    def _transition(self, expected: SessionState, target: SessionState, action: str):
        if not self.auth_required or self.state != expected:
            raise InvalidTransitionError(self.state.value, action)
        self.state = target
