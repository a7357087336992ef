from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from chat_relay.core.config import Settings, settings as default_settings


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None,
    settings: Optional[Settings] = None,
) -> str:
    settings = settings or default_settings
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(hours=settings.access_token_expire_hours)
    to_encode.update({"exp": expire})
    if settings.token_issuer and "iss" not in to_encode:
        to_encode["iss"] = settings.token_issuer
    if settings.token_audience and "aud" not in to_encode:
        to_encode["aud"] = settings.token_audience
    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    return encoded_jwt


def decode_access_token(token: str, settings: Optional[Settings] = None) -> Optional[Dict[str, Any]]:
    """토큰을 검증하고 payload를 반환합니다. 유효하지 않으면 None."""
    settings = settings or default_settings
    options = {"verify_aud": settings.token_audience is not None}
    try:
        return jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
            audience=settings.token_audience,
            issuer=settings.token_issuer,
            options=options,
        )
    except JWTError:
        return None
