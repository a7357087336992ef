from fastapi import Request

from chat_relay.websockets.relay import ChatRelay


def get_relay(request: Request) -> ChatRelay:
    """앱에 연결된 ChatRelay 인스턴스를 반환합니다."""
    return request.app.state.relay
