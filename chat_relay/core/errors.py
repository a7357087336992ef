from typing import Optional, Dict, Any
from fastapi import HTTPException, status
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """표준 에러 응답 모델"""
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None
    status_code: int


# =============================================================================
# 릴레이 도메인 예외
# =============================================================================

class RelayError(Exception):
    """릴레이 처리 중 발생하는 예외의 기본 클래스"""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidFrameError(RelayError):
    """JSON이 아니거나 형식이 맞지 않는 수신 프레임"""

    def __init__(self, message: str = "Invalid message format"):
        super().__init__(message)


class InvalidCredentialError(RelayError):
    """유효하지 않거나 만료된 인증 토큰"""

    def __init__(self, message: str = "Invalid or expired credential"):
        super().__init__(message)


class InvalidTransitionError(RelayError):
    """세션 상태 머신에서 허용되지 않는 전이"""

    def __init__(self, current: str, action: str):
        self.current = current
        self.action = action
        super().__init__(f"Cannot {action} from state {current}")


# =============================================================================
# HTTP 예외
# =============================================================================

class BaseCustomException(HTTPException):
    """기본 커스텀 예외 클래스"""
    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error = error
        self.message = message
        self.details = details
        self.status_code = status_code  # status_code를 먼저 설정
        super().__init__(status_code=status_code, detail=self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        """예외를 딕셔너리로 변환"""
        return {
            "error": self.error,
            "message": self.message,
            "details": self.details,
            "status_code": self.status_code
        }


class AuthenticationException(BaseCustomException):
    """인증 실패 예외"""
    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error="authentication_error",
            message=message,
            details=details
        )


class FeatureDisabledException(BaseCustomException):
    """비활성화된 기능 요청 예외"""
    def __init__(
        self,
        message: str = "Feature is not enabled",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error="feature_disabled",
            message=message,
            details=details
        )


def create_error_response(
    error: str,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None
) -> ErrorResponse:
    """표준 에러 응답 생성"""
    return ErrorResponse(
        error=error,
        message=message,
        details=details,
        status_code=status_code
    )
