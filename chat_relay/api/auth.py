import logging

from fastapi import APIRouter, Depends

from chat_relay.api.dependencies import get_relay
from chat_relay.core.errors import AuthenticationException, FeatureDisabledException, InvalidCredentialError
from chat_relay.schemas.user import TokenVerifyRequest, TokenVerifyResponse
from chat_relay.websockets.relay import ChatRelay

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/verify", response_model=TokenVerifyResponse)
async def verify_token(body: TokenVerifyRequest, relay: ChatRelay = Depends(get_relay)):
    """
    ID 토큰을 한 번 검증하고 정규화된 사용자 정보를 반환합니다.

    WebSocket 연결 없이 클라이언트가 로그인 상태를 확인할 때 사용합니다.
    """
    if not relay.auth_required:
        raise FeatureDisabledException("Authentication is not enabled on this server")

    try:
        identity = await relay.verify_token(body.id_token)
    except InvalidCredentialError as e:
        logger.warning(f"Token verification failed: {e.message}")
        raise AuthenticationException(e.message)

    return TokenVerifyResponse(user=identity)
