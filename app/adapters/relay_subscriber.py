"""Relay push-channel subscriber with automatic reconnect.

Keeps at most one WebSocket to the relay open.  Whenever it closes, fails,
or cannot be opened, a new attempt is made after a fixed delay, forever.
The socket and the reconnect delay live in the same task, so they can never
overlap and ``stop()`` tears both down with a single cancel.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import websockets

from app.schemas.chat import DebugInfo, Message, SenderType
from app.services.normalizer import extract_display_text

logger = logging.getLogger(__name__)

CONTROL_FRAME_TYPE = "SYSTEM"


def frame_to_message(data: Any) -> Message:
    """Wrap a decoded relay frame as a bot chat message."""
    return Message(
        text=extract_display_text(data),
        sender=SenderType.BOT,
        debug_info=DebugInfo(status=200, body=data),
    )


class RelaySubscriber:
    """Consumes relay frames and hands chat messages to ``on_message``."""

    def __init__(
        self,
        url: str,
        on_message: Callable[[Message], None],
        *,
        reconnect_delay: float = 5.0,
        on_status: Callable[[bool], None] | None = None,
        connect: Callable[[str], Awaitable[Any]] = websockets.connect,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.url = url
        self.reconnect_delay = reconnect_delay
        self.connection_attempts = 0
        self.online = False
        self._on_message = on_message
        self._on_status = on_status
        self._connect = connect
        self._sleep = sleep
        self._ws: Any = None
        self._task: asyncio.Task | None = None

    # ── Lifecycle ────────────────────────────────────────────────────

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name="relay-subscriber")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._ws is not None:
            with contextlib.suppress(Exception):
                await self._ws.close()
            self._ws = None
        self._set_online(False)

    async def __aenter__(self) -> RelaySubscriber:
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    # ── Connection loop ──────────────────────────────────────────────

    async def _run(self) -> None:
        while True:
            try:
                await self._listen()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("[WS] Connection error: %s", exc or type(exc).__name__)
            self._set_online(False)
            logger.info("[WS] Disconnected. Reconnecting in %.1fs...", self.reconnect_delay)
            await self._sleep(self.reconnect_delay)

    async def _listen(self) -> None:
        self.connection_attempts += 1
        logger.info("[WS] Connecting to relay: %s", self.url)
        ws = await self._connect(self.url)
        self._ws = ws
        try:
            logger.info("[WS] Connected to relay server")
            self._set_online(True)
            async for raw in ws:
                self.handle_frame(raw)
        finally:
            self._ws = None
            with contextlib.suppress(Exception):
                await ws.close()

    def _set_online(self, online: bool) -> None:
        if online == self.online:
            return
        self.online = online
        if self._on_status is not None:
            self._on_status(online)

    # ── Frames ───────────────────────────────────────────────────────

    def handle_frame(self, raw: str | bytes) -> Message | None:
        """Decode one frame; control frames are consumed, not delivered."""
        try:
            data = json.loads(raw)
        except ValueError as exc:
            logger.error("[WS] Could not decode frame: %s", exc)
            return None

        if isinstance(data, dict) and data.get("type") == CONTROL_FRAME_TYPE:
            logger.info("[WS System] %s", data.get("text"))
            return None

        logger.debug("[WS] Inbound payload: %s", data)
        message = frame_to_message(data)
        try:
            self._on_message(message)
        except Exception:
            logger.exception("[WS] Error delivering inbound message")
        return message
