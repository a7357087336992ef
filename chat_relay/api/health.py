from fastapi import APIRouter, Depends

from chat_relay.api.dependencies import get_relay
from chat_relay.utils.time_utils import utc_timestamp
from chat_relay.websockets.relay import ChatRelay

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(relay: ChatRelay = Depends(get_relay)):
    """Relay health check endpoint"""
    return {
        "status": "WebSocket server is running",
        "timestamp": utc_timestamp(),
        "connectedClients": len(relay.registry),
    }


@router.get("/health/live")
async def liveness_check():
    """Kubernetes liveness probe endpoint"""
    return {"status": "alive", "timestamp": utc_timestamp()}
