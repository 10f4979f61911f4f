"""Relay wire and HTTP schemas."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ControlFrame(BaseModel):
    """Reserved push-channel frame; clients never render it as chat content."""

    type: Literal["SYSTEM"] = "SYSTEM"
    text: str


class HealthResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "active"
    clients: int
    buffer_size: int = Field(alias="bufferSize")
