import asyncio
import logging
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from chat_relay.core.errors import RelayError
from chat_relay.schemas.user import Identity, UserProfile
from chat_relay.utils.time_utils import utc_now
from chat_relay.websockets.session import Session

logger = logging.getLogger(__name__)

ANONYMOUS_NAME = "Anonymous"


@dataclass(eq=False)
class Connection:
    """WebSocket 연결 하나의 상태"""
    client_id: str
    websocket: Any
    session: Session
    connected_at: datetime = field(default_factory=utc_now)
    last_seen: datetime = field(default_factory=utc_now)
    identity: Optional[Identity] = None
    profile: Optional[UserProfile] = None
    # 진행 중인 토큰 검증 태스크 (연결당 최대 하나)
    auth_task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def is_authenticated(self) -> bool:
        return self.session.is_authenticated

    @property
    def display_name(self) -> str:
        """브로드캐스트에 쓰는 발신자 이름 (서버가 보관한 정보만 사용)"""
        if self.identity and self.identity.name:
            return self.identity.name
        if self.profile and self.profile.name:
            return self.profile.name
        if self.identity and self.identity.email:
            return self.identity.email
        return ANONYMOUS_NAME


class ConnectionRegistry:
    """
    현재 살아있는 연결의 단일 저장소.

    WebSocket 객체를 키로 하며, 모든 변경은 락 안에서 await 없이 수행됩니다.
    """

    def __init__(self, auth_required: bool = True):
        self.auth_required = auth_required
        # {websocket: Connection}
        self._connections: Dict[Any, Connection] = {}
        # 발급된 client_id (중복 방지용)
        self._client_ids: Set[str] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, websocket) -> bool:
        return websocket in self._connections

    def register(self, websocket) -> str:
        """새 연결을 등록하고 client_id를 반환합니다."""
        with self._lock:
            existing = self._connections.get(websocket)
            if existing is not None:
                return existing.client_id

            client_id = self._generate_client_id()
            connection = Connection(
                client_id=client_id,
                websocket=websocket,
                session=Session(auth_required=self.auth_required),
            )
            self._connections[websocket] = connection
            self._client_ids.add(client_id)

        logger.debug(f"Registered client {client_id} ({len(self._connections)} connections)")
        return client_id

    def lookup(self, websocket) -> Optional[Connection]:
        return self._connections.get(websocket)

    def is_live(self, connection: Connection) -> bool:
        """연결이 아직 등록되어 있는지 확인합니다."""
        return self._connections.get(connection.websocket) is connection

    def touch(self, websocket) -> Optional[Connection]:
        connection = self._connections.get(websocket)
        if connection is not None:
            connection.last_seen = utc_now()
        return connection

    def update_identity(self, websocket, identity: Identity) -> Optional[Connection]:
        """
        검증이 끝난 신원을 연결에 묶고 AUTHENTICATED로 전이합니다.

        검증 도중 연결이 끊겼다면 아무 것도 하지 않고 None을 반환합니다.

        Raises:
            RelayError: 이미 신원이 묶인 연결인 경우
            InvalidTransitionError: 세션이 AUTHENTICATING 상태가 아닌 경우
        """
        with self._lock:
            connection = self._connections.get(websocket)
            if connection is None:
                return None
            if connection.identity is not None:
                raise RelayError("Identity is already bound to this connection")
            connection.session.complete_authentication()
            connection.identity = identity
        return connection

    def update_profile(self, websocket, profile: UserProfile) -> Optional[Connection]:
        with self._lock:
            connection = self._connections.get(websocket)
            if connection is not None:
                connection.profile = profile
        return connection

    def remove(self, websocket) -> Optional[Connection]:
        """
        연결을 제거합니다. 이미 제거된 연결이면 None을 반환합니다.

        에러 핸들러와 종료 핸들러에서 중복 호출되어도 안전합니다.
        """
        with self._lock:
            connection = self._connections.pop(websocket, None)
            if connection is None:
                return None
            self._client_ids.discard(connection.client_id)
            connection.session.close()

        logger.debug(f"Removed client {connection.client_id} ({len(self._connections)} connections)")
        return connection

    def connections(self) -> List[Connection]:
        """현재 연결 목록의 스냅샷"""
        with self._lock:
            return list(self._connections.values())

    def authenticated_count(self) -> int:
        with self._lock:
            return sum(1 for c in self._connections.values() if c.is_authenticated)

    def _generate_client_id(self) -> str:
        client_id = secrets.token_hex(6)
        while client_id in self._client_ids:
            client_id = secrets.token_hex(6)
        return client_id
