"""Session state for a single conversation."""

from datetime import UTC, datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from chatline.config.models.session import SessionMode


def utc_now() -> datetime:
    """Return current UTC time."""
    return datetime.now(UTC)


class LifecycleState(str, Enum):
    """Lifecycle of a conversation session."""

    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class Credential(BaseModel):
    """Bearer token together with its absolute expiry.

    Frozen: a refresh or reconnect replaces the whole credential.
    """

    model_config = ConfigDict(frozen=True)

    token: str = Field(..., description="Bearer token")
    expires_at: datetime = Field(..., description="Absolute expiry (UTC)")

    @classmethod
    def issue(cls, token: str, expires_in: float, now: datetime | None = None) -> "Credential":
        """Build a credential that expires ``expires_in`` seconds from now."""
        issued_at = now or utc_now()
        return cls(token=token, expires_at=issued_at + timedelta(seconds=expires_in))


class SessionState(BaseModel):
    """Mutable state shared by the channel, the poller and the refresher."""

    model_config = ConfigDict(frozen=False, validate_assignment=True)

    user_id: str = Field(..., description="Local participant")
    conversation_id: str = Field(..., description="Current conversation id")
    credential: Credential = Field(..., description="Current bearer token")
    stream_url: str | None = Field(default=None, description="Push channel endpoint")
    mode: SessionMode = Field(default=SessionMode.PUSH, description="Delivery mode")
    watermark: int | None = Field(default=None, description="Newest watermark seen")
    lifecycle: LifecycleState = Field(
        default=LifecycleState.ACTIVE, description="Lifecycle state"
    )

    @property
    def closed(self) -> bool:
        return self.lifecycle == LifecycleState.CLOSED

    @property
    def token(self) -> str:
        return self.credential.token

    def apply_grant(
        self,
        *,
        conversation_id: str,
        credential: Credential,
        stream_url: str | None = None,
    ) -> None:
        """Replace conversation id, credential and stream URL in one step.

        Must not await, so no other task observes a partial update.
        """
        self.conversation_id = conversation_id
        self.credential = credential
        if stream_url is not None:
            self.stream_url = stream_url
