"""Conversation sessions: orchestration, delivery channels and ledger."""

from chatline.conversation.errors import (
    ChannelError,
    ChannelParseFailedError,
    ConversationClosedError,
    ConversationError,
    CreationFailedError,
    ErrorCode,
    PollFailedError,
    ReconnectFailedError,
    RefreshFailedError,
    SendFailedError,
)
from chatline.conversation.events import ConversationEvent, EventHub, Subscription
from chatline.conversation.ledger import ActivityLedger
from chatline.conversation.models import Credential, LifecycleState, SessionState
from chatline.conversation.refresh import TokenRefresher
from chatline.conversation.session import Conversation

__all__ = [
    "ActivityLedger",
    "ChannelError",
    "ChannelParseFailedError",
    "Conversation",
    "ConversationClosedError",
    "ConversationError",
    "ConversationEvent",
    "CreationFailedError",
    "Credential",
    "ErrorCode",
    "EventHub",
    "LifecycleState",
    "PollFailedError",
    "ReconnectFailedError",
    "RefreshFailedError",
    "SendFailedError",
    "SessionState",
    "Subscription",
    "TokenRefresher",
]
