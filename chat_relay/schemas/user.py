from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class Identity(BaseModel):
    """토큰 검증으로 확인된 사용자 식별 정보"""
    model_config = ConfigDict(frozen=True)

    uid: str = Field(..., min_length=1, description="인증 제공자의 subject ID")
    email: Optional[str] = Field(None, description="이메일")
    name: Optional[str] = Field(None, description="표시 이름")


class UserProfile(BaseModel):
    """클라이언트가 user_info로 보내는 프로필 필드"""
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = Field(None, max_length=100, description="표시 이름")


class TokenVerifyRequest(BaseModel):
    """토큰 단건 검증 요청"""
    model_config = ConfigDict(populate_by_name=True)

    id_token: str = Field(..., alias="idToken", min_length=1, description="ID 토큰")


class TokenVerifyResponse(BaseModel):
    """토큰 단건 검증 응답"""
    success: bool = True
    user: Identity
