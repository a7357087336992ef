import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Type

from pydantic import ValidationError

from chat_relay.core.config import Settings
from chat_relay.core.errors import InvalidCredentialError, InvalidFrameError
from chat_relay.core.logging import log_authentication_event
from chat_relay.schemas.events import (
    AuthenticateEvent,
    AuthenticationErrorEvent,
    AuthenticationSuccessEvent,
    ChatMessageBroadcast,
    ChatMessageEvent,
    ErrorEvent,
    InboundEvent,
    TypingEvent,
    TypingStatusEvent,
    UserInfoEvent,
    parse_frame,
)
from chat_relay.websockets.auth import TokenVerifier, verify_with_timeout
from chat_relay.websockets.broadcaster import Broadcaster, MessageIdSequence
from chat_relay.websockets.connection_registry import Connection, ConnectionRegistry
from chat_relay.websockets.session import SessionState

logger = logging.getLogger(__name__)

INVALID_FORMAT_MESSAGE = "Invalid message format"
CHAT_AUTH_REQUIRED_MESSAGE = "Authentication required to send messages"
TYPING_AUTH_REQUIRED_MESSAGE = "Authentication required to send typing status"
AUTH_DISABLED_MESSAGE = "Authentication is not enabled on this server"
ALREADY_AUTHENTICATED_MESSAGE = "Already authenticated"
AUTH_IN_PROGRESS_MESSAGE = "Authentication already in progress"


@dataclass(frozen=True)
class Route:
    model: Type[InboundEvent]
    # 백그라운드 작업을 시작한 핸들러는 그 태스크를 반환합니다
    handler: Callable[[Connection, Any], Awaitable[Optional[asyncio.Task]]]
    # 인증되지 않은 연결에서 받았을 때 보낼 에러 메시지 (None이면 인증 불필요)
    auth_required_message: Optional[str] = None


class MessageRouter:
    """WebSocket으로 받은 프레임을 타입별 핸들러로 분배합니다."""

    def __init__(
        self,
        settings: Settings,
        registry: ConnectionRegistry,
        broadcaster: Broadcaster,
        sequence: MessageIdSequence,
        verifier: Optional[TokenVerifier] = None,
    ):
        self.settings = settings
        self.registry = registry
        self.broadcaster = broadcaster
        self.sequence = sequence
        self.verifier = verifier
        self.routes: Dict[str, Route] = {
            "authenticate": Route(AuthenticateEvent, self._handle_authenticate),
            "chat_message": Route(ChatMessageEvent, self._handle_chat_message, CHAT_AUTH_REQUIRED_MESSAGE),
            "typing_start": Route(TypingEvent, self._handle_typing, TYPING_AUTH_REQUIRED_MESSAGE),
            "typing_stop": Route(TypingEvent, self._handle_typing, TYPING_AUTH_REQUIRED_MESSAGE),
            "user_info": Route(UserInfoEvent, self._handle_user_info),
        }

    async def handle_inbound(self, websocket, raw: Any) -> Optional[asyncio.Task]:
        """
        수신 프레임 하나를 처리합니다.

        Args:
            websocket: 프레임을 보낸 WebSocket 연결 객체
            raw: 수신한 텍스트(또는 바이트) 프레임

        Returns:
            authenticate 프레임이면 시작된 토큰 검증 태스크, 그 외에는 None
        """
        connection = self.registry.touch(websocket)
        if connection is None:
            logger.error("Message received from unregistered WebSocket connection")
            return

        try:
            data = parse_frame(raw)
        except InvalidFrameError as e:
            logger.warning(f"Error parsing message from {connection.client_id}: {e}")
            await self._reply_error(connection, INVALID_FORMAT_MESSAGE)
            return

        message_type = data.get("type")
        route = self.routes.get(message_type) if isinstance(message_type, str) else None
        if route is None:
            logger.info(f"Unknown message type from {connection.client_id}: {message_type!r}")
            return

        if route.auth_required_message and not connection.is_authenticated:
            logger.warning(f"Rejected {message_type} from unauthenticated client {connection.client_id}")
            await self._reply_error(connection, route.auth_required_message)
            return

        try:
            event = route.model.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Invalid {message_type} payload from {connection.client_id}: {e.error_count()} errors")
            await self._reply_error(connection, INVALID_FORMAT_MESSAGE)
            return

        return await route.handler(connection, event)

    async def _handle_authenticate(self, connection: Connection, event: AuthenticateEvent) -> Optional[asyncio.Task]:
        """
        상태를 확인하고 AUTHENTICATING으로 전이한 뒤 토큰 검증을 별도 태스크로 시작합니다.

        검증이 진행되는 동안에도 연결의 수신 루프는 계속 프레임(종료 포함)을 읽을 수 있습니다.
        """
        if self.verifier is None or not self.settings.auth_required:
            await self._reply_error(connection, AUTH_DISABLED_MESSAGE)
            return None

        state = connection.session.state
        if state == SessionState.AUTHENTICATED:
            await self._reply_error(connection, ALREADY_AUTHENTICATED_MESSAGE)
            return None
        if state == SessionState.AUTHENTICATING:
            await self._reply_error(connection, AUTH_IN_PROGRESS_MESSAGE)
            return None

        connection.session.begin_authentication()
        task = asyncio.create_task(self._authenticate(connection, event.id_token))
        task.add_done_callback(lambda done: _log_task_failure(done, connection.client_id))
        connection.auth_task = task
        return task

    async def _authenticate(self, connection: Connection, token: str):
        try:
            identity = await verify_with_timeout(self.verifier, token, self.settings.auth_timeout_seconds)
        except InvalidCredentialError as e:
            if self.registry.is_live(connection):
                connection.session.fail_authentication()
                log_authentication_event(logger, "verify", connection.client_id, success=False, reason=e.message)
                await self.broadcaster.send_personal(connection, AuthenticationErrorEvent(message=e.message))
            return
        except asyncio.CancelledError:
            # 취소되어도 AUTHENTICATING에 머무르지 않게 합니다
            if connection.session.state == SessionState.AUTHENTICATING:
                connection.session.fail_authentication()
            raise

        if self.registry.update_identity(connection.websocket, identity) is None:
            logger.info(f"Client {connection.client_id} disconnected during authentication")
            return

        log_authentication_event(logger, "verify", connection.client_id, user_id=identity.uid)
        await self.broadcaster.send_personal(connection, AuthenticationSuccessEvent(user=identity))
        await self.broadcaster.recompute_and_publish_presence()

    def cancel_authentication(self, connection: Connection):
        """진행 중인 토큰 검증이 있으면 취소합니다."""
        task = connection.auth_task
        if task is not None and not task.done():
            task.cancel()

    async def _handle_chat_message(self, connection: Connection, event: ChatMessageEvent):
        identity = connection.identity
        if event.user and event.user != connection.display_name:
            logger.debug(f"Ignoring client-declared sender {event.user!r} from {connection.client_id}")

        broadcast = ChatMessageBroadcast(
            id=self.sequence.next_id(),
            user=connection.display_name,
            user_email=identity.email if identity else None,
            message=event.message,
            sender_id=connection.client_id,
            sender_uid=identity.uid if identity else None,
        )
        delivered = await self.broadcaster.broadcast_to_authenticated(broadcast)
        logger.info(f"Chat message {broadcast.id} from {connection.client_id} sent to {delivered} clients")

    async def _handle_typing(self, connection: Connection, event: TypingEvent):
        status = TypingStatusEvent(
            sender_id=connection.client_id,
            sender_name=connection.display_name,
            is_typing=event.is_typing,
        )
        await self.broadcaster.broadcast_to_authenticated_except(status, connection.client_id)

    async def _handle_user_info(self, connection: Connection, event: UserInfoEvent):
        self.registry.update_profile(connection.websocket, event.user_info)
        logger.info(f"Updated user info for {connection.client_id}: name={event.user_info.name!r}")

    async def _reply_error(self, connection: Connection, message: str):
        await self.broadcaster.send_personal(connection, ErrorEvent(message=message))


def _log_task_failure(task: asyncio.Task, client_id: str):
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Authentication task failed for client {client_id}: {error}", exc_info=error)
