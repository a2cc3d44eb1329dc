"""Push delivery: activity sets streamed over a WebSocket."""

import asyncio
from collections.abc import Callable
from typing import Any

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosedError

from chatline.client.models import ActivitySet
from chatline.conversation.channels.base import DeliveryChannel
from chatline.conversation.errors import (
    ChannelError,
    ChannelParseFailedError,
    ConversationError,
)
from chatline.observability.logging import get_logger
from chatline.observability.metrics import ERRORS

logger = get_logger(__name__)

# Close code reported when the peer sent none or the socket never opened
ABNORMAL_CLOSURE = 1006

Connect = Callable[[str], Any]


def _noop(*_args: Any) -> None:
    return None


class PushChannel(DeliveryChannel):
    """One WebSocket connection to a conversation stream.

    Received frames are parsed into activity sets and passed to
    ``on_activities``. The channel never reconnects on its own: when the
    connection ends without ``stop()`` it calls ``on_closed`` with the close
    code and leaves recovery to its owner.
    """

    def __init__(
        self,
        url: str,
        on_activities: Callable[[ActivitySet], Any],
        on_error: Callable[[ConversationError], Any],
        on_closed: Callable[[int], Any],
        connect: Connect = websockets.connect,
    ):
        """Initialize the channel. Nothing connects until ``open()``.

        Args:
            url: Stream URL returned by the conversation endpoint
            on_activities: Receives every parsed activity set
            on_error: Receives parse and transport errors
            on_closed: Receives the close code of an unsolicited close
            connect: Factory returning an async context manager that yields
                an async-iterable connection with a ``close_code``
        """
        self.url = url
        self._on_activities = on_activities
        self._on_error = on_error
        self._on_closed = on_closed
        self._connect = connect
        self._task: asyncio.Task | None = None
        self._stopped = False

    @property
    def active(self) -> bool:
        return not self._stopped and self._task is not None and not self._task.done()

    @property
    def stopped(self) -> bool:
        return self._stopped

    def open(self) -> None:
        """Start the reader task."""
        if self._task is not None or self._stopped:
            return
        self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        """Terminate the connection and drop every callback."""
        if self._stopped:
            return
        self._stopped = True
        self._on_activities = _noop
        self._on_error = _noop
        self._on_closed = _noop
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()

    async def _run(self) -> None:
        code = ABNORMAL_CLOSURE
        try:
            async with self._connect(self.url) as connection:
                logger.info("push_channel_opened", url=self.url)
                try:
                    async for message in connection:
                        self._handle_message(message)
                except ConnectionClosedError as e:
                    self._report_error(e)
                code = connection.close_code or ABNORMAL_CLOSURE
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._report_error(e)

        if self._stopped:
            return

        logger.info("push_channel_closed", url=self.url, code=code)
        self._on_closed(code)

    def _handle_message(self, message: str | bytes) -> None:
        # Empty frames are keep-alives
        if not message:
            return

        try:
            activity_set = ActivitySet.model_validate_json(message)
        except ValidationError as e:
            ERRORS.labels(error_code=ChannelParseFailedError.error_code.value).inc()
            logger.warning("push_message_unparsable", url=self.url, error=str(e))
            self._on_error(ChannelParseFailedError(cause=e))
            return

        self._on_activities(activity_set)

    def _report_error(self, error: Exception) -> None:
        if self._stopped:
            return
        ERRORS.labels(error_code=ChannelError.error_code.value).inc()
        logger.warning(
            "push_channel_error",
            url=self.url,
            error=str(error),
            error_type=type(error).__name__,
        )
        self._on_error(ChannelError(cause=error))
