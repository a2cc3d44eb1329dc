"""Conversation session configuration."""

from enum import Enum

from pydantic import BaseModel, Field


class SessionMode(str, Enum):
    """How activities are delivered to the session."""

    PUSH = "push"
    """Persistent WebSocket stream."""

    PULL = "pull"
    """HTTP polling loop."""


class SessionConfig(BaseModel):
    """Options accepted when starting a conversation."""

    mode: SessionMode = Field(
        default=SessionMode.PUSH,
        description="Delivery mode, fixed for the session's lifetime",
    )
    auto_reconnect: bool = Field(
        default=True,
        description="Reconnect the push channel when it closes unexpectedly",
    )
    poll_interval: float = Field(
        default=1.0,
        gt=0,
        description="Seconds between the end of one poll and the next",
    )
    refresh_margin: float = Field(
        default=60.0,
        ge=0,
        description="Seconds before token expiry at which to refresh",
    )
