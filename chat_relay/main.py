"""
Chat Relay - FastAPI Application

WebSocket 연결을 인증하고 채팅 메시지, 타이핑 상태, 접속자 수를 중계하는 서버
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from chat_relay import api
from chat_relay.api import include_routers
from chat_relay.core.config import Settings, settings as default_settings
from chat_relay.core.logging import setup_logging
from chat_relay.middleware import create_http_exception_handler
from chat_relay.websockets.auth import TokenVerifier
from chat_relay.websockets.relay import ChatRelay

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, verifier: Optional[TokenVerifier] = None) -> FastAPI:
    settings = settings or default_settings
    relay = ChatRelay(settings, verifier=verifier)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        setup_logging(settings)
        logger.info(
            f"{settings.app_name} starting up (authentication {'required' if settings.auth_required else 'disabled'})"
        )
        yield
        # Shutdown
        logger.info(f"{settings.app_name} shutting down...")
        await relay.shutdown()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.relay = relay

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(HTTPException, create_http_exception_handler())

    # Include routers
    include_routers(app, api.__name__, api.__path__)

    @app.get("/")
    async def root():
        return {
            "service": settings.app_name,
            "version": settings.version,
            "status": "running"
        }

    return app


app = create_app()


def run():
    import uvicorn
    uvicorn.run(
        "chat_relay.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug
    )


if __name__ == "__main__":
    run()
