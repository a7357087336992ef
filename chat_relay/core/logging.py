"""
구조화된 로깅 시스템

JSON 형식의 구조화된 로그를 제공하여 연결 단위 추적과 모니터링을 용이하게 합니다.
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional
from contextvars import ContextVar

from chat_relay.core.config import Settings

# 컨텍스트 변수로 연결별 추적 정보 저장
client_id_var: ContextVar[Optional[str]] = ContextVar('client_id', default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar('user_id', default=None)

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'exc_info', 'exc_text', 'stack_info',
    'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'getMessage',
    'taskName', 'message', 'asctime',
}


class StructuredFormatter(logging.Formatter):
    """구조화된 JSON 로그 포매터"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # 컨텍스트 정보 추가
        client_id = client_id_var.get()
        if client_id:
            log_data["client_id"] = client_id

        user_id = user_id_var.get()
        if user_id:
            log_data["user_id"] = user_id

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }

        # 추가 데이터 (extra 필드)
        extra_data = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith('_')
        }
        if extra_data:
            log_data["extra"] = extra_data

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(settings: Settings):
    """로깅 시스템 초기화"""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)

    # 기존 핸들러 제거
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    if settings.debug:
        # 개발 환경: 사람이 읽기 쉬운 형식
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
    else:
        # 프로덕션 환경: 구조화된 JSON 형식
        console_handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(console_handler)

    if settings.log_dir:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        # 파일 핸들러 (항상 구조화된 형식)
        file_handler = logging.FileHandler(log_dir / "relay.log", encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

        # 에러 전용 파일 핸들러
        error_handler = logging.FileHandler(log_dir / "error.log", encoding='utf-8')
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(error_handler)

    # 외부 라이브러리 로그 레벨 조정
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def set_connection_context(client_id: str, user_id: Optional[str] = None):
    """연결 컨텍스트 설정"""
    client_id_var.set(client_id)
    if user_id:
        user_id_var.set(user_id)


def clear_connection_context():
    """연결 컨텍스트 초기화"""
    client_id_var.set(None)
    user_id_var.set(None)


def log_websocket_event(
    logger: logging.Logger,
    event: str,
    client_id: str,
    **extra
):
    """WebSocket 이벤트 로그"""
    logger.info(
        f"WebSocket {event} - Client {client_id}",
        extra={
            "event_type": "websocket",
            "event": event,
            "client_id": client_id,
            **extra
        }
    )


def log_authentication_event(
    logger: logging.Logger,
    event: str,
    client_id: str,
    user_id: Optional[str] = None,
    success: bool = True,
    **extra
):
    """인증 이벤트 로그"""
    logger.log(
        logging.INFO if success else logging.WARNING,
        f"Auth {event} - {'Success' if success else 'Failed'}",
        extra={
            "event_type": "authentication",
            "event": event,
            "client_id": client_id,
            "user_id": user_id,
            "success": success,
            **extra
        }
    )


def log_broadcast(
    logger: logging.Logger,
    message_type: str,
    delivered: int,
    skipped: int = 0,
    **extra
):
    """브로드캐스트 결과 로그"""
    logger.debug(
        f"Broadcast {message_type} - delivered to {delivered} clients",
        extra={
            "event_type": "broadcast",
            "message_type": message_type,
            "delivered": delivered,
            "skipped": skipped,
            **extra
        }
    )
