"""
WebSocket 전체 흐름 통합 테스트

TestClient로 실제 WebSocket 세션을 열어 연결 → 인증 → 채팅 → 해제 흐름을 검증합니다.
"""

import asyncio
import time

import pytest
from fastapi.testclient import TestClient

from chat_relay.main import create_app

from conftest import ALICE, BOB


class SlowVerifier:
    """일정 시간 뒤에 ALICE 신원을 돌려주는 검증기"""

    def __init__(self, delay: float):
        self.delay = delay

    async def verify(self, token: str):
        await asyncio.sleep(self.delay)
        return ALICE


def receive_type(websocket, frame_type: str) -> dict:
    """지정한 타입의 프레임이 올 때까지 읽습니다."""
    while True:
        frame = websocket.receive_json()
        if frame["type"] == frame_type:
            return frame


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def test_client(app):
    with TestClient(app) as client:
        yield client


class TestAuthenticatedFlow:
    """인증 모드 전체 흐름"""

    def test_two_users_chat(self, test_client, make_token):
        with test_client.websocket_connect("/ws") as alice:
            assert alice.receive_json()["type"] == "connection"
            assert receive_type(alice, "user_count")["count"] == 0

            with test_client.websocket_connect("/ws") as bob:
                bob_welcome = bob.receive_json()
                assert bob_welcome["type"] == "connection"
                assert receive_type(bob, "user_count")["count"] == 0
                assert receive_type(alice, "user_count")["count"] == 0

                alice.send_json({"type": "authenticate", "idToken": make_token(ALICE)})
                success = alice.receive_json()
                assert success["type"] == "authentication_success"
                assert success["user"] == {"uid": "u1", "email": "alice@example.com", "name": "Alice"}
                assert receive_type(alice, "user_count")["count"] == 1
                assert receive_type(bob, "user_count")["count"] == 1

                bob.send_json({"type": "authenticate", "idToken": make_token(BOB)})
                assert bob.receive_json()["type"] == "authentication_success"
                assert receive_type(bob, "user_count")["count"] == 2
                assert receive_type(alice, "user_count")["count"] == 2

                alice.send_json({"type": "chat_message", "message": "hi", "user": "Mallory"})
                for websocket in (alice, bob):
                    chat = receive_type(websocket, "chat_message")
                    assert chat["id"] == 1
                    assert chat["user"] == "Alice"
                    assert chat["senderUid"] == "u1"
                    assert chat["message"] == "hi"

                health = test_client.get("/health").json()
                assert health["connectedClients"] == 2

            # bob 연결 해제 후 접속자 수 갱신
            assert receive_type(alice, "user_count")["count"] == 1

    def test_chat_before_authentication(self, test_client, make_token):
        with test_client.websocket_connect("/ws") as member, test_client.websocket_connect("/ws") as guest:
            member.send_json({"type": "authenticate", "idToken": make_token(BOB)})
            receive_type(member, "authentication_success")

            guest.send_json({"type": "chat_message", "message": "let me in"})
            error = receive_type(guest, "error")
            assert error["message"].startswith("Authentication required")

            member.send_json({"type": "chat_message", "message": "members only"})
            chat = receive_type(member, "chat_message")
            # 거부된 메시지는 어디에도 전달되지 않았으므로 첫 메시지 ID는 1입니다
            assert chat["id"] == 1
            assert chat["message"] == "members only"

    def test_invalid_frame_keeps_connection_open(self, test_client, make_token):
        with test_client.websocket_connect("/ws") as websocket:
            websocket.send_text("definitely not json")
            error = receive_type(websocket, "error")
            assert error["message"] == "Invalid message format"

            websocket.send_json({"type": "authenticate", "idToken": make_token(ALICE)})
            assert receive_type(websocket, "authentication_success")["user"]["uid"] == "u1"

    def test_bad_credential_then_retry(self, test_client, make_token):
        with test_client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "authenticate", "idToken": "expired-or-forged"})
            assert receive_type(websocket, "authentication_error")["message"]

            websocket.send_json({"type": "authenticate", "idToken": make_token(ALICE)})
            assert receive_type(websocket, "authentication_success")["user"]["name"] == "Alice"

    def test_typing_is_not_echoed(self, test_client, make_token):
        with test_client.websocket_connect("/ws") as alice, test_client.websocket_connect("/ws") as bob:
            alice.send_json({"type": "authenticate", "idToken": make_token(ALICE)})
            receive_type(alice, "authentication_success")
            bob.send_json({"type": "authenticate", "idToken": make_token(BOB)})
            receive_type(bob, "authentication_success")

            alice.send_json({"type": "typing_start"})
            status = receive_type(bob, "typing_status")
            assert status["isTyping"] is True
            assert status["senderName"] == "Alice"

            # alice가 받는 다음 프레임은 자신의 typing_status가 아니라 채팅 메시지입니다
            alice.send_json({"type": "chat_message", "message": "done typing"})
            frame = alice.receive_json()
            while frame["type"] == "user_count":
                frame = alice.receive_json()
            assert frame["type"] == "chat_message"

    def test_binary_frame(self, test_client, make_token):
        with test_client.websocket_connect("/ws") as websocket:
            websocket.send_bytes(f'{{"type": "authenticate", "idToken": "{make_token(ALICE)}"}}'.encode())
            assert receive_type(websocket, "authentication_success")["user"]["uid"] == "u1"

    def test_close_during_verification_is_not_counted(self, settings):
        app = create_app(settings, verifier=SlowVerifier(0.5))
        with TestClient(app) as client:
            with client.websocket_connect("/ws") as observer:
                receive_type(observer, "user_count")

                with client.websocket_connect("/ws") as pending:
                    receive_type(pending, "user_count")
                    pending.send_json({"type": "authenticate", "idToken": "slow"})
                    # 검증이 끝나기 전에 클라이언트가 연결을 닫습니다
                    pending.close(1000)
                    time.sleep(0.8)

                observer.send_text("not json")
                counts = []
                frame = observer.receive_json()
                while frame["type"] != "error":
                    if frame["type"] == "user_count":
                        counts.append(frame["count"])
                    frame = observer.receive_json()

                assert counts
                assert all(count == 0 for count in counts)
                assert app.state.relay.registry.authenticated_count() == 0


class TestUnauthenticatedFlow:
    """인증 비활성화 모드 전체 흐름"""

    def test_open_chat(self, no_auth_settings):
        app = create_app(no_auth_settings)
        with TestClient(app) as client:
            with client.websocket_connect("/ws") as first:
                receive_type(first, "connection")
                assert receive_type(first, "user_count")["count"] == 1

                with client.websocket_connect("/ws") as second:
                    assert receive_type(second, "user_count")["count"] == 2
                    assert receive_type(first, "user_count")["count"] == 2

                    first.send_json({"type": "user_info", "userInfo": {"name": "Trinity"}})
                    first.send_json({"type": "chat_message", "message": "hello"})
                    chat = receive_type(second, "chat_message")
                    assert chat["user"] == "Trinity"
                    assert chat["id"] == 1

                    second.send_json({"type": "chat_message", "message": "hey"})
                    chat = receive_type(first, "chat_message")
                    while chat["id"] == 1:
                        chat = receive_type(first, "chat_message")
                    assert chat["id"] == 2
                    assert chat["user"] == "Anonymous"

                assert receive_type(first, "user_count")["count"] == 1
