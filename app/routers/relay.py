"""Relay root — health probe and the push channel share ``/``."""

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from app.routers.webhook import get_broker
from app.schemas.relay import HealthResponse
from app.services.relay_broker import RelayBroker

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=HealthResponse)
async def health(broker: RelayBroker = Depends(get_broker)):
    clients, buffered = broker.stats()
    return HealthResponse(clients=clients, buffer_size=buffered)


@router.websocket("/")
async def push_channel(ws: WebSocket):
    """Push channel for chat clients.

    Server sends: {"type": "SYSTEM", "text": "..."} once, then every buffered
    payload oldest-first, then live payloads as they arrive.
    Client frames are ignored; reading them only detects disconnects.
    """
    broker: RelayBroker = ws.app.state.broker
    await ws.accept()
    session = broker.open_session(ws)
    logger.info("[WS %s] New chat client connected", session.id)

    await broker.on_client_connected(session)
    try:
        while not session.is_closed:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                break
    except WebSocketDisconnect:
        pass
    except RuntimeError as exc:
        # Raised when the writer already closed the socket underneath us
        logger.debug("[WS %s] Receive loop ended: %s", session.id, exc)
    finally:
        await session.close("client disconnected")
