"""
Chat Relay Configuration

환경 변수를 통한 설정 관리
"""

from typing import List, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()  # .env 파일 로드


class Settings(BaseSettings):
    """Chat Relay 설정"""

    # Application
    app_name: str = "Chat Relay"
    version: str = "1.0.0"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # Authentication
    # False이면 모든 연결을 인증된 것으로 취급합니다 (인증 절차 없음)
    auth_required: bool = True
    secret_key: str = "your-secret-key-here"
    algorithm: str = "HS256"
    token_audience: Optional[str] = None
    token_issuer: Optional[str] = None
    access_token_expire_hours: int = 2
    auth_timeout_seconds: float = 10.0

    # WebSocket
    # 수신자 하나에 대한 전송 대기 한도 (초과 시 해당 수신자만 건너뜀)
    send_timeout_seconds: float = 5.0

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]

    # Logging
    log_dir: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # 추가 환경변수 무시


settings = Settings()
