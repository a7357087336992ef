import asyncio
import logging
from typing import Dict, Optional, Protocol

from starlette.concurrency import run_in_threadpool

from chat_relay.core.config import Settings
from chat_relay.core.errors import InvalidCredentialError
from chat_relay.schemas.user import Identity
from chat_relay.utils.auth import decode_access_token

logger = logging.getLogger(__name__)


class TokenVerifier(Protocol):
    """인증 제공자 경계: 토큰을 검증하고 신원을 돌려줍니다."""

    async def verify(self, token: str) -> Identity:
        """
        Raises:
            InvalidCredentialError: 유효하지 않거나 만료된 토큰
        """
        ...


class JWTTokenVerifier:
    """설정된 키로 서명된 JWT 액세스 토큰을 검증합니다."""

    def __init__(self, settings: Settings):
        self.settings = settings

    async def verify(self, token: str) -> Identity:
        if not token:
            raise InvalidCredentialError("Missing credential")

        # Bearer 접두사 제거
        if token.startswith("Bearer "):
            token = token[len("Bearer "):].strip()

        payload = await run_in_threadpool(decode_access_token, token, self.settings)
        if not payload:
            raise InvalidCredentialError()

        uid = payload.get("sub")
        if not uid:
            logger.warning("Token missing user ID (sub)")
            raise InvalidCredentialError("Token missing subject")

        return identity_from_claims(payload)


class StaticTokenVerifier:
    """미리 정한 토큰 → 신원 매핑으로 검증합니다. 로컬 개발과 테스트용."""

    def __init__(self, identities: Dict[str, Identity]):
        self.identities = dict(identities)

    async def verify(self, token: str) -> Identity:
        identity = self.identities.get(token)
        if identity is None:
            raise InvalidCredentialError()
        return identity


def identity_from_claims(claims: dict) -> Identity:
    """토큰 클레임을 Identity로 정규화합니다."""
    email: Optional[str] = claims.get("email")
    name: Optional[str] = claims.get("name")
    if not name and email:
        name = email.split("@", 1)[0]
    return Identity(uid=str(claims["sub"]), email=email, name=name)


async def verify_with_timeout(verifier: TokenVerifier, token: str, timeout: Optional[float]) -> Identity:
    """
    제한 시간 안에 토큰을 검증합니다.

    시간 초과와 검증기 내부 오류는 모두 InvalidCredentialError로 변환되어
    세션이 AUTHENTICATING 상태에 머무르지 않도록 합니다.
    """
    try:
        return await asyncio.wait_for(verifier.verify(token), timeout=timeout)
    except InvalidCredentialError:
        raise
    except asyncio.TimeoutError as e:
        logger.warning(f"Token verification timed out after {timeout}s")
        raise InvalidCredentialError("Authentication timed out") from e
    except Exception as e:
        logger.error(f"Token verifier error: {e}", exc_info=True)
        raise InvalidCredentialError("Authentication failed") from e
