"""Chat-side data shapes consumed by the UI."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SenderType(StrEnum):
    USER = "USER"
    BOT = "BOT"
    SYSTEM = "SYSTEM"


class ConnectionStatus(StrEnum):
    """Outbound connection state. Sending is only allowed when CONNECTED."""

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    ERROR = "ERROR"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DebugInfo(BaseModel):
    """Attached to every message that arrived through the relay."""

    status: int
    body: Any = None
    timestamp: str = Field(default_factory=lambda: _utcnow().isoformat())


class Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    text: str
    sender: SenderType
    timestamp: datetime = Field(default_factory=_utcnow)
    debug_info: DebugInfo | None = Field(default=None, alias="debugInfo")
