import asyncio
import itertools
import logging
import threading
from typing import Any, Callable, Dict, Optional

from starlette.websockets import WebSocketState

from chat_relay.core.logging import log_broadcast
from chat_relay.schemas.events import OutboundEvent, UserCountEvent
from chat_relay.websockets.connection_registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)


class MessageIdSequence:
    """프로세스 전체에서 공유하는 채팅 메시지 ID 카운터 (1부터 시작)"""

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)
        self._lock = threading.Lock()
        self._last: Optional[int] = None

    @property
    def last_id(self) -> Optional[int]:
        return self._last

    def next_id(self) -> int:
        with self._lock:
            self._last = next(self._counter)
            return self._last


def is_open(websocket) -> bool:
    """전송 계층이 아직 열려 있는지 확인합니다."""
    return (
        getattr(websocket, "client_state", None) == WebSocketState.CONNECTED
        and getattr(websocket, "application_state", None) == WebSocketState.CONNECTED
    )


class Broadcaster:
    """
    이벤트를 대상 연결 집합에 전달합니다.

    대상 목록은 호출마다 레지스트리에서 새로 뽑고, 각 전송 직전에 다시 확인합니다.
    수신자별 전송은 동시에 진행되며 각각 send_timeout 안에 끝나지 않으면 건너뜁니다.
    수신자 하나의 실패나 지연은 로그만 남기고 나머지 수신자에게 계속 전달합니다.
    """

    def __init__(self, registry: ConnectionRegistry, send_timeout: float = 5.0):
        self.registry = registry
        self.send_timeout = send_timeout

    async def broadcast_to_all(self, event: OutboundEvent) -> int:
        """인증 여부와 관계없이 열려 있는 모든 연결에 전송합니다."""
        return await self._deliver(event, lambda connection: True)

    async def broadcast_to_authenticated(self, event: OutboundEvent) -> int:
        return await self._deliver(event, lambda connection: connection.is_authenticated)

    async def broadcast_to_authenticated_except(self, event: OutboundEvent, exclude_client_id: str) -> int:
        return await self._deliver(
            event,
            lambda connection: connection.is_authenticated and connection.client_id != exclude_client_id,
        )

    async def recompute_and_publish_presence(self) -> int:
        """인증된 연결 수를 다시 세어 모든 연결에 user_count로 알립니다."""
        count = self.registry.authenticated_count()
        await self.broadcast_to_all(UserCountEvent(count=count))
        logger.info(f"Broadcasting user count: {count}")
        return count

    async def send_personal(self, connection: Connection, event: OutboundEvent) -> bool:
        """특정 연결 하나에만 전송합니다."""
        return await self._send(connection, event.to_frame(), event.type)

    async def _deliver(self, event: OutboundEvent, predicate: Callable[[Connection], bool]) -> int:
        frame = event.to_frame()
        skipped = 0
        targets = []

        for connection in self.registry.connections():
            if not predicate(connection):
                continue
            if not is_open(connection.websocket):
                skipped += 1
                continue
            targets.append(connection)

        results = await asyncio.gather(
            *(self._send(connection, frame, event.type) for connection in targets)
        )
        delivered = sum(1 for sent in results if sent)
        skipped += len(results) - delivered

        log_broadcast(logger, event.type, delivered, skipped)
        return delivered

    async def _send(self, connection: Connection, frame: Dict[str, Any], event_type: str) -> bool:
        # 열거 이후 끊긴 연결은 건너뜁니다
        if not self.registry.is_live(connection) or not is_open(connection.websocket):
            return False
        try:
            await asyncio.wait_for(connection.websocket.send_json(frame), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Timed out sending {event_type} to client {connection.client_id}")
            return False
        except Exception as e:
            logger.warning(f"Failed to send {event_type} to client {connection.client_id}: {e}")
            return False
