"""chatline: conversation session manager for Direct Line style bot endpoints."""

from chatline.client import Activity, ActivitySet, ChannelAccount, DirectLineClient
from chatline.config.models.session import SessionConfig, SessionMode
from chatline.conversation import (
    Conversation,
    ConversationError,
    ConversationEvent,
    ErrorCode,
    Subscription,
)

__version__ = "1.1.1"

__all__ = [
    "Activity",
    "ActivitySet",
    "ChannelAccount",
    "Conversation",
    "ConversationError",
    "ConversationEvent",
    "DirectLineClient",
    "ErrorCode",
    "SessionConfig",
    "SessionMode",
    "Subscription",
]
