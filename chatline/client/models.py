"""Wire models exchanged with the Direct Line API.

Only the fields the session manager inspects are typed. Everything else on
an activity is kept as extra data and sent back unchanged.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChannelAccount(BaseModel):
    """Sender or recipient of an activity."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="Channel-specific participant id")
    name: str | None = Field(default=None, description="Display name")


class Activity(BaseModel):
    """A single conversational activity (message, typing, endOfConversation...)."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: str = Field(default="message", description="Activity type")
    id: str | None = Field(default=None, description="Server-assigned id")
    from_: ChannelAccount | None = Field(
        default=None, alias="from", description="Sender"
    )
    text: str | None = Field(default=None, description="Message text")
    timestamp: str | None = Field(default=None, description="Server timestamp")

    @property
    def sender_id(self) -> str | None:
        """Id of the sender, if the activity carries one."""
        return self.from_.id if self.from_ else None

    def to_wire(self) -> dict[str, Any]:
        """Serialize with Direct Line field names."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ActivitySet(BaseModel):
    """A batch of activities plus the watermark that follows them."""

    activities: list[Activity] = Field(default_factory=list)
    watermark: str | int | None = Field(
        default=None, description="Marker of the newest activity in the batch"
    )


class ConversationGrant(BaseModel):
    """Response of starting a conversation."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    conversation_id: str = Field(..., alias="conversationId")
    token: str
    expires_in: int = Field(..., description="Token lifetime in seconds")
    stream_url: str | None = Field(default=None, alias="streamUrl")


class TokenGrant(BaseModel):
    """Response of refreshing a token."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    conversation_id: str = Field(..., alias="conversationId")
    token: str
    expires_in: int = Field(..., description="Token lifetime in seconds")


class ReconnectGrant(BaseModel):
    """Response of reconnecting to a conversation."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    conversation_id: str = Field(..., alias="conversationId")
    token: str
    stream_url: str = Field(..., alias="streamUrl")
