import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from chat_relay.core.logging import clear_connection_context, set_connection_context
from chat_relay.schemas.events import ErrorEvent
from chat_relay.websockets.relay import ChatRelay

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    채팅 릴레이 WebSocket 연결 엔드포인트

    연결 직후 connection 프레임과 접속자 수를 받고, 이후 authenticate,
    chat_message, typing_start/typing_stop, user_info 프레임을 보낼 수 있습니다.
    """
    relay: ChatRelay = websocket.app.state.relay

    # 1. 연결 등록
    connection = await relay.connect(websocket)
    client_id = connection.client_id
    set_connection_context(client_id)

    try:
        # 2. 메시지 수신 루프
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")

            # 토큰 검증은 별도 태스크에서 끝나므로 인증된 사용자 ID는 여기서 로그 컨텍스트에 반영합니다
            if connection.identity is not None:
                set_connection_context(client_id, connection.identity.uid)

            try:
                # 토큰 검증은 기다리지 않고 다음 프레임을 계속 읽습니다
                await relay.handle_inbound(websocket, raw, wait=False)
            except Exception as e:
                logger.error(f"Error processing message from client {client_id}: {e}", exc_info=True)
                sent = await relay.broadcaster.send_personal(
                    connection, ErrorEvent(message="Failed to process message")
                )
                if not sent:
                    # 연결이 끊어진 경우 루프 종료
                    break

    except WebSocketDisconnect as e:
        # 정상적인 연결 해제
        logger.info(f"Client {client_id} disconnected (code={e.code})")

    except Exception as e:
        logger.error(f"WebSocket error for client {client_id}: {e}")

    finally:
        # 3. 연결 해제 처리 (진행 중인 토큰 검증도 취소)
        # 엔드포인트 태스크가 취소되어도 접속자 수 알림까지 끝나도록 shield로 감쌉니다
        try:
            await asyncio.shield(relay.disconnect(websocket))
        finally:
            clear_connection_context()
