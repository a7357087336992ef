import asyncio
import logging
from typing import Optional

from fastapi import status

from chat_relay.core.config import Settings
from chat_relay.core.logging import log_websocket_event
from chat_relay.schemas.events import ConnectionEvent
from chat_relay.schemas.user import Identity
from chat_relay.websockets.auth import JWTTokenVerifier, TokenVerifier, verify_with_timeout
from chat_relay.websockets.broadcaster import Broadcaster, MessageIdSequence, is_open
from chat_relay.websockets.connection_registry import Connection, ConnectionRegistry
from chat_relay.websockets.handlers import MessageRouter

logger = logging.getLogger(__name__)


class ChatRelay:
    """레지스트리, 메시지 ID 카운터, 브로드캐스터, 라우터를 하나로 묶은 릴레이"""

    def __init__(self, settings: Settings, verifier: Optional[TokenVerifier] = None):
        self.settings = settings
        if settings.auth_required and verifier is None:
            verifier = JWTTokenVerifier(settings)
        self.verifier = verifier if settings.auth_required else None

        self.registry = ConnectionRegistry(auth_required=settings.auth_required)
        self.sequence = MessageIdSequence()
        self.broadcaster = Broadcaster(self.registry, send_timeout=settings.send_timeout_seconds)
        self.router = MessageRouter(
            settings,
            self.registry,
            self.broadcaster,
            self.sequence,
            verifier=self.verifier,
        )

    @property
    def auth_required(self) -> bool:
        return self.settings.auth_required

    async def connect(self, websocket) -> Connection:
        """WebSocket 연결을 수락하고 등록한 뒤 접속자 수를 다시 알립니다."""
        await websocket.accept()

        client_id = self.registry.register(websocket)
        connection = self.registry.lookup(websocket)
        log_websocket_event(logger, "connected", client_id, total=len(self.registry))

        await self.broadcaster.send_personal(connection, ConnectionEvent(client_id=client_id))
        await self.broadcaster.recompute_and_publish_presence()
        return connection

    async def handle_inbound(self, websocket, raw, wait: bool = True) -> Optional[asyncio.Task]:
        """
        수신 프레임 하나를 처리합니다.

        authenticate 프레임은 토큰 검증을 별도 태스크로 시작합니다. wait=False이면
        검증 완료를 기다리지 않고 태스크를 돌려주므로, 수신 루프는 검증 중에도
        다음 프레임과 연결 종료를 계속 읽을 수 있습니다.
        """
        task = await self.router.handle_inbound(websocket, raw)
        if task is not None and wait:
            # 취소된 검증도 예외 없이 기다립니다
            await asyncio.wait({task})
        return task

    async def disconnect(self, websocket) -> Optional[Connection]:
        """
        연결을 레지스트리에서 제거하고 접속자 수를 다시 알립니다.

        이미 제거된 연결이면 아무 것도 하지 않습니다.
        """
        connection = self.registry.remove(websocket)
        if connection is None:
            return None
        self.router.cancel_authentication(connection)

        log_websocket_event(logger, "disconnected", connection.client_id, total=len(self.registry))
        await self.broadcaster.recompute_and_publish_presence()
        return connection

    async def verify_token(self, token: str) -> Identity:
        """
        HTTP 검증 엔드포인트용 단건 토큰 검증

        Raises:
            InvalidCredentialError: 검증 실패 또는 시간 초과
        """
        return await verify_with_timeout(self.verifier, token, self.settings.auth_timeout_seconds)

    async def shutdown(self):
        """열려 있는 모든 연결을 닫고 레지스트리를 비웁니다."""
        for connection in self.registry.connections():
            self.registry.remove(connection.websocket)
            self.router.cancel_authentication(connection)
            if not is_open(connection.websocket):
                continue
            try:
                await connection.websocket.close(code=status.WS_1001_GOING_AWAY)
            except Exception as e:
                logger.warning(f"Failed to close client {connection.client_id}: {e}")

        logger.info("All WebSocket connections closed")
