"""Webhook ingestion — the workflow engine posts its replies here."""

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from app.services.relay_broker import RelayBroker

logger = logging.getLogger(__name__)

router = APIRouter()

_PREVIEW_CHARS = 150


def get_broker(request: Request) -> RelayBroker:
    return request.app.state.broker


def decode_body(body: bytes) -> Any:
    """Parse the request body permissively.

    An empty body is an empty object; anything that is not valid JSON is
    relayed as an opaque string instead of being rejected.  ``NaN`` and
    ``Infinity`` are kept as strings so every relayed frame stays strict JSON.
    """
    if not body.strip():
        return {}
    text = body.decode("utf-8", errors="replace")
    try:
        return json.loads(text, parse_constant=str)
    except ValueError:
        logger.warning("[POST] Body is not valid JSON, relaying it as plain text")
        return text


@router.post("/webhook-receiver", response_class=PlainTextResponse)
async def webhook_receiver(request: Request, broker: RelayBroker = Depends(get_broker)):
    """Accept any payload and always answer 200 so the workflow never fails."""
    payload = decode_body(await request.body())
    logger.info("[POST] Raw webhook received: %s", json.dumps(payload)[:_PREVIEW_CHARS])

    try:
        await broker.on_inbound_payload(payload)
    except Exception:
        logger.exception("[RELAY] Failed to relay payload")

    return PlainTextResponse("OK", status_code=200)
