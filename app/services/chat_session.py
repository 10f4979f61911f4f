"""Chat session — client-side state behind the chat UI.

Owns the outbound ``ConnectionStatus``, the message list and the inbound
relay subscription.  The UI only reads ``messages``/``status`` and calls
``connect``, ``send`` and ``simulate_inbound``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from app.adapters.relay_subscriber import RelaySubscriber, frame_to_message
from app.adapters.workflow import OK, WorkflowClient
from app.config import settings
from app.schemas.chat import ConnectionStatus, DebugInfo, Message, SenderType

logger = logging.getLogger(__name__)

# Identical messages within this window are treated as a replay duplicate
DUPLICATE_WINDOW = timedelta(seconds=1)


class ChatSessionError(Exception):
    """Base error for chat session misuse."""


class NotConnectedError(ChatSessionError):
    pass


class ConnectionInProgressError(ChatSessionError):
    pass


class ChatSession:
    def __init__(
        self,
        workflow: WorkflowClient | None = None,
        *,
        relay_url: str | None = None,
        chat_id: str | None = None,
        on_message: Callable[[Message], None] | None = None,
        subscriber_factory: Callable[..., RelaySubscriber] = RelaySubscriber,
    ) -> None:
        self.workflow = workflow or WorkflowClient(
            max_attempts=settings.validate_attempts,
            retry_delay=settings.validate_retry_delay,
            timeout=settings.request_timeout,
        )
        self.relay_url = relay_url or settings.relay_ws_url
        self.chat_id = chat_id or settings.chat_id
        self.status = ConnectionStatus.IDLE
        self.retry_count = 0
        self.webhook_url: str | None = None
        self.inbound_connected = False
        self.messages: list[Message] = []
        self._on_message = on_message
        self._subscriber_factory = subscriber_factory
        self._subscriber: RelaySubscriber | None = None

    # ── Messages ─────────────────────────────────────────────────────

    def add_message(
        self, text: str, sender: SenderType, debug_info: DebugInfo | None = None,
    ) -> Message | None:
        """Append a message unless an identical one was added within the last second."""
        now = datetime.now(timezone.utc)
        for existing in self.messages:
            if existing.text == text and existing.sender == sender and now - existing.timestamp < DUPLICATE_WINDOW:
                return None
        message = Message(text=text, sender=sender, timestamp=now, debug_info=debug_info)
        self._append(message)
        return message

    def add_system_message(self, text: str) -> Message | None:
        return self.add_message(text, SenderType.SYSTEM)

    def _append(self, message: Message) -> None:
        self.messages.append(message)
        if self._on_message is not None:
            self._on_message(message)

    def _receive(self, message: Message) -> None:
        self.add_message(message.text, message.sender, message.debug_info)

    # ── Outbound ─────────────────────────────────────────────────────

    async def connect(self, url: str) -> ConnectionStatus:
        """Validate the workflow URL; the only way out of ERROR is calling this again."""
        url = url.strip()
        if not url:
            return self.status
        if self.status == ConnectionStatus.CONNECTING:
            raise ConnectionInProgressError("A connection attempt is already running")

        self.status = ConnectionStatus.CONNECTING
        self.retry_count = 0

        def _failed(attempt: int, reason: str) -> None:
            self.retry_count = attempt

        if await self.workflow.validate(url, on_attempt_failed=_failed):
            self.status = ConnectionStatus.CONNECTED
            self.webhook_url = url
            self.add_system_message("Connection established via GET (status 200). Webhook active.")
        else:
            self.status = ConnectionStatus.ERROR
            self.add_system_message(
                f"Failed to connect after {self.workflow.max_attempts} attempts. "
                "Check the URL and that the workflow accepts GET."
            )
        return self.status

    async def send(self, text: str) -> Message | None:
        """Post a user message. Failures add a notice but never change ``status``."""
        if not text.strip():
            return None
        if self.status != ConnectionStatus.CONNECTED or self.webhook_url is None:
            raise NotConnectedError("Chat is not connected to a workflow")

        message = self.add_message(text, SenderType.USER)
        status_code = await self.workflow.send(self.webhook_url, text, self.chat_id)
        if status_code is None:
            self.add_system_message("Connection error while sending message.")
        elif status_code != OK:
            self.add_system_message(f"Send failed: server responded with status {status_code}")
        return message

    # ── Inbound ──────────────────────────────────────────────────────

    def simulate_inbound(self, raw_json: str) -> Message | None:
        """Inject a payload by hand, as if the relay had delivered it."""
        if self.status != ConnectionStatus.CONNECTED:
            raise NotConnectedError("Chat is not connected to a workflow")
        try:
            body: Any = json.loads(raw_json)
        except ValueError as exc:
            raise ValueError(f"Invalid JSON for simulation: {exc}") from exc
        message = frame_to_message(body)
        return self.add_message(message.text, message.sender, message.debug_info)

    def _set_inbound(self, online: bool) -> None:
        self.inbound_connected = online

    def start_inbound(self) -> RelaySubscriber:
        if self._subscriber is None:
            self._subscriber = self._subscriber_factory(
                self.relay_url,
                self._receive,
                reconnect_delay=settings.reconnect_delay,
                on_status=self._set_inbound,
            )
            self._subscriber.start()
        return self._subscriber

    async def aclose(self) -> None:
        if self._subscriber is not None:
            await self._subscriber.stop()
            self._subscriber = None
        await self.workflow.aclose()
