"""Error taxonomy for conversation sessions.

Errors raised to the caller (start, send, end) and errors emitted on the
``error`` notification share one hierarchy. Each keeps the failed transport
or parse exception in ``cause``.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    CREATION_FAILED = "creation-failed"
    """Starting the conversation failed."""

    SEND_FAILED = "send-failed"
    """Posting an activity failed."""

    CONVERSATION_CLOSED = "conversation-closed"
    """The conversation was already cleaned up."""

    CHANNEL_PARSE_FAILED = "ws-parsing-failed"
    """A push channel message could not be parsed."""

    CHANNEL_ERROR = "ws-error"
    """The push channel reported a transport error."""

    RECONNECT_FAILED = "reconnect-error"
    """Recreating the push channel failed."""

    POLL_FAILED = "polling-error"
    """Fetching activities failed; polling stopped."""

    REFRESH_FAILED = "token-refresh-error"
    """Refreshing the token failed; renewal stopped."""


class ConversationError(Exception):
    """Base exception for all conversation errors."""

    error_code: ErrorCode

    def __init__(self, message: str | None = None, cause: BaseException | None = None) -> None:
        self.message = message or self.error_code.value
        self.cause = cause
        super().__init__(self.message)
        if cause is not None:
            self.__cause__ = cause


class CreationFailedError(ConversationError):
    """Raised when the initial handshake fails."""

    error_code = ErrorCode.CREATION_FAILED


class SendFailedError(ConversationError):
    """Raised when an outbound activity cannot be delivered."""

    error_code = ErrorCode.SEND_FAILED


class ConversationClosedError(ConversationError):
    """Raised when sending on a conversation that was cleaned up."""

    error_code = ErrorCode.CONVERSATION_CLOSED


class ChannelParseFailedError(ConversationError):
    """Emitted when a push message is not a valid activity set."""

    error_code = ErrorCode.CHANNEL_PARSE_FAILED


class ChannelError(ConversationError):
    """Emitted when the push channel reports a transport error."""

    error_code = ErrorCode.CHANNEL_ERROR


class ReconnectFailedError(ConversationError):
    """Emitted when the reconnect sequence fails at any step."""

    error_code = ErrorCode.RECONNECT_FAILED


class PollFailedError(ConversationError):
    """Emitted when a poll fetch fails."""

    error_code = ErrorCode.POLL_FAILED


class RefreshFailedError(ConversationError):
    """Emitted when the token refresh fails."""

    error_code = ErrorCode.REFRESH_FAILED
