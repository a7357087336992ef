import pytest
import pytest_asyncio
from typing import AsyncGenerator, List
from httpx import AsyncClient, ASGITransport
from starlette.websockets import WebSocketState

from chat_relay.core.config import Settings
from chat_relay.main import create_app
from chat_relay.schemas.user import Identity
from chat_relay.utils.auth import create_access_token
from chat_relay.websockets.auth import StaticTokenVerifier
from chat_relay.websockets.relay import ChatRelay


TEST_SECRET_KEY = "test-secret-key"

ALICE = Identity(uid="u1", email="alice@example.com", name="Alice")
BOB = Identity(uid="u2", email="bob@example.com", name="Bob")
CAROL = Identity(uid="u3", email="carol@example.com", name="Carol")


class FakeWebSocket:
    """테스트용 WebSocket: 전송한 프레임을 기록합니다."""

    def __init__(self, fail_on_send: bool = False):
        self.sent: List[dict] = []
        self.fail_on_send = fail_on_send
        self.client_state = WebSocketState.CONNECTING
        self.application_state = WebSocketState.CONNECTING
        self.close_code = None
        self.before_send = None

    async def accept(self):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def send_json(self, data: dict):
        if self.before_send is not None:
            await self.before_send(self)
        if self.fail_on_send:
            raise RuntimeError("send failed")
        if self.application_state != WebSocketState.CONNECTED:
            raise RuntimeError("Cannot call send once a close message has been sent.")
        self.sent.append(data)

    async def close(self, code: int = 1000):
        self.close_code = code
        self.client_state = WebSocketState.DISCONNECTED
        self.application_state = WebSocketState.DISCONNECTED

    def frames(self, frame_type: str) -> List[dict]:
        return [frame for frame in self.sent if frame["type"] == frame_type]

    def last(self, frame_type: str) -> dict:
        return self.frames(frame_type)[-1]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        auth_required=True,
        secret_key=TEST_SECRET_KEY,
        algorithm="HS256",
        auth_timeout_seconds=1.0,
    )


@pytest.fixture
def no_auth_settings() -> Settings:
    return Settings(_env_file=None, auth_required=False, secret_key=TEST_SECRET_KEY)


@pytest.fixture
def verifier() -> StaticTokenVerifier:
    return StaticTokenVerifier({
        "token-alice": ALICE,
        "token-bob": BOB,
        "token-carol": CAROL,
    })


@pytest.fixture
def relay(settings, verifier) -> ChatRelay:
    return ChatRelay(settings, verifier=verifier)


@pytest.fixture
def no_auth_relay(no_auth_settings) -> ChatRelay:
    return ChatRelay(no_auth_settings)


@pytest.fixture
def make_token(settings):
    """설정된 키로 서명한 JWT 생성기"""
    def _make_token(identity: Identity, **claims) -> str:
        data = {"sub": identity.uid, "email": identity.email, "name": identity.name}
        data.update(claims)
        return create_access_token(data, settings=settings)
    return _make_token


@pytest.fixture
def connect(relay):
    """relay에 FakeWebSocket을 연결하는 헬퍼"""
    async def _connect(target: ChatRelay = None, **kwargs) -> FakeWebSocket:
        websocket = FakeWebSocket(**kwargs)
        await (target or relay).connect(websocket)
        return websocket
    return _connect


@pytest.fixture
def authenticated(relay, connect):
    """연결 후 인증까지 마친 FakeWebSocket 생성 헬퍼"""
    async def _authenticated(token: str) -> FakeWebSocket:
        websocket = await connect()
        await relay.handle_inbound(websocket, f'{{"type": "authenticate", "idToken": "{token}"}}')
        assert websocket.frames("authentication_success")
        return websocket
    return _authenticated


@pytest_asyncio.fixture
async def client(settings) -> AsyncGenerator[AsyncClient, None]:
    """테스트용 비동기 HTTP 클라이언트"""
    app = create_app(settings)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def pytest_configure(config):
    """pytest 설정"""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )
