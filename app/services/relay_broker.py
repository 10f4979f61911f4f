"""Relay broker — fans webhook payloads out to every push-channel subscriber.

The broker owns two pieces of shared state: the rolling history and the set
of live sessions.  Both are only touched while holding ``_lock``, and the
work done under it is pure in-memory enqueueing, so a slow subscriber can
never stall ingestion.  Every session drains its own outbox from its own
writer task; a failed or timed-out send closes that session and nothing
else.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any, Protocol

from app.schemas.relay import ControlFrame
from app.services.history import HistoryBuffer
from app.services.normalizer import normalize, to_wire

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """The subset of a server-side WebSocket the broker needs."""

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class SessionState(StrEnum):
    OPEN = "open"
    REPLAYING = "replaying"
    LIVE = "live"
    CLOSED = "closed"


class PushSession:
    """One subscriber connection and its outbound frame queue."""

    def __init__(
        self,
        transport: Transport,
        *,
        send_timeout: float = 10.0,
        outbox_size: int = 256,
        on_closed: Callable[[PushSession], Awaitable[None]] | None = None,
    ) -> None:
        self.id = uuid.uuid4().hex[:8]
        self.state = SessionState.OPEN
        self._transport = transport
        self._send_timeout = send_timeout
        self._outbox: asyncio.Queue[str] = asyncio.Queue(maxsize=outbox_size)
        self._on_closed = on_closed
        self._writer: asyncio.Task | None = None
        self._closer: asyncio.Task | None = None
        self._closing = False

    @property
    def is_closed(self) -> bool:
        return self._closing or self.state == SessionState.CLOSED

    def enqueue(self, frame: str) -> bool:
        """Queue a frame without waiting. Returns False if the session is gone."""
        if self.is_closed:
            return False
        try:
            self._outbox.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning("[WS %s] Outbox full, dropping subscriber", self.id)
            self._closing = True
            self._closer = asyncio.get_running_loop().create_task(self._finish("outbox full"))
            return False
        return True

    def start(self) -> None:
        if self._writer is None and not self.is_closed:
            self._writer = asyncio.create_task(self._drain(), name=f"push-session-{self.id}")

    async def _drain(self) -> None:
        while True:
            frame = await self._outbox.get()
            try:
                await asyncio.wait_for(self._transport.send_text(frame), timeout=self._send_timeout)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("[WS %s] Send failed (%s), closing session", self.id, exc or type(exc).__name__)
                self._closing = True
                await self._finish("send failed")
                return

    async def close(self, reason: str = "closed") -> None:
        """Tear the session down. Safe to call more than once."""
        if self._closing:
            if self._closer is not None and self._closer is not asyncio.current_task():
                await self._closer
            return
        self._closing = True
        await self._finish(reason)

    async def _finish(self, reason: str) -> None:
        if self.state == SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        writer = self._writer
        if writer is not None and writer is not asyncio.current_task():
            writer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await writer
        # The peer may already be gone; closing twice is harmless
        with contextlib.suppress(Exception):
            await self._transport.close()
        logger.info("[WS %s] Session closed (%s)", self.id, reason)
        if self._on_closed is not None:
            await self._on_closed(self)


class RelayBroker:
    """Single serialization point for history and subscriber registration."""

    def __init__(
        self,
        history_size: int = 50,
        *,
        send_timeout: float = 10.0,
        outbox_size: int = 256,
        greeting: str = "Connected to relay server.",
    ) -> None:
        self._history = HistoryBuffer(history_size)
        self._sessions: set[PushSession] = set()
        self._lock = asyncio.Lock()
        self._send_timeout = send_timeout
        self._outbox_size = outbox_size
        self._greeting = greeting

    # ── Sessions ─────────────────────────────────────────────────────

    def open_session(self, transport: Transport) -> PushSession:
        # Room for greeting + full replay on top of the live allowance
        return PushSession(
            transport,
            send_timeout=self._send_timeout,
            outbox_size=self._outbox_size + self._history.capacity + 1,
            on_closed=self.on_client_closed,
        )

    async def on_client_connected(self, session: PushSession) -> None:
        """Greet, replay history, then make the session eligible for fan-out."""
        async with self._lock:
            session.state = SessionState.REPLAYING
            session.enqueue(ControlFrame(text=self._greeting).model_dump_json())
            backlog = self._history.snapshot()
            for frame in backlog:
                session.enqueue(frame)
            if session.is_closed:
                return
            self._sessions.add(session)
            session.state = SessionState.LIVE
        if backlog:
            logger.info("[WS %s] Replaying %d buffered message(s)", session.id, len(backlog))
        session.start()

    async def on_client_closed(self, session: PushSession) -> None:
        async with self._lock:
            self._sessions.discard(session)

    # ── Ingestion ────────────────────────────────────────────────────

    async def on_inbound_payload(self, raw: Any) -> int:
        """Normalize, remember and fan out one payload.

        Returns the number of subscribers the frame was queued for.
        """
        wire = to_wire(normalize(raw))
        async with self._lock:
            self._history.append(wire)
            delivered = sum(1 for session in list(self._sessions) if session.enqueue(wire))
            buffered = len(self._history)
        logger.info(
            "[RELAY] Sent to %d client(s). Buffered (%d msgs).", delivered, buffered,
        )
        return delivered

    # ── Introspection / shutdown ─────────────────────────────────────

    def stats(self) -> tuple[int, int]:
        """Return ``(open sessions, buffered messages)``."""
        return len(self._sessions), len(self._history)

    def history(self) -> list[str]:
        return self._history.snapshot()

    async def close_all(self) -> None:
        async with self._lock:
            sessions = list(self._sessions)
        for session in sessions:
            await session.close("relay shutting down")
