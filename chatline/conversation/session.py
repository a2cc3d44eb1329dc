"""Conversation session orchestrator.

Usage:
    from chatline import Conversation, SessionConfig, SessionMode

    conversation = await Conversation.start(
        user_id="user-1",
        secret=directline_secret,
        config=SessionConfig(mode=SessionMode.PULL),
    )
    conversation.on_activities(lambda batch: print([a.text for a in batch]))
    await conversation.send_message("Hello!")
    ...
    await conversation.end()
"""

import asyncio
from collections.abc import Coroutine, Sequence
from typing import Any

from chatline.client.client import DirectLineClient, DirectLineClientError
from chatline.client.models import Activity, ActivitySet, ChannelAccount
from chatline.config import get_settings
from chatline.config.models.session import SessionConfig, SessionMode
from chatline.conversation.channels.pull import PullChannel
from chatline.conversation.channels.push import Connect, PushChannel
from chatline.conversation.errors import (
    ConversationClosedError,
    ConversationError,
    CreationFailedError,
    ReconnectFailedError,
    SendFailedError,
)
from chatline.conversation.events import (
    ConversationEvent,
    EventHub,
    Listener,
    Subscription,
)
from chatline.conversation.ledger import ActivityLedger
from chatline.conversation.models import Credential, LifecycleState, SessionState
from chatline.conversation.refresh import TokenRefresher
from chatline.observability.logging import get_logger
from chatline.observability.metrics import ACTIVE_SESSIONS, ERRORS, RECONNECTS

logger = get_logger(__name__)

END_OF_CONVERSATION = "endOfConversation"


class Conversation:
    """One conversation with a remote bot.

    Owns the session state, the activity ledger, the token refresher and
    the delivery channel matching the configured mode. All of them run as
    tasks and timers on the current event loop and only mutate state
    between awaits, so no locking is needed.

    Background failures (channel, poll, refresh, reconnect) are emitted on
    the ``error`` event and never raised; the conversation keeps running in
    a degraded state until the consumer restarts the failed part or calls
    ``cleanup()``.
    """

    def __init__(
        self,
        *,
        state: SessionState,
        client: DirectLineClient,
        config: SessionConfig | None = None,
        owns_client: bool = False,
        connect: Connect | None = None,
    ):
        """Create the session. Prefer ``Conversation.start``.

        Must be called with a running event loop: the push channel and the
        token refresher are started right away.
        """
        self.config = config or SessionConfig(mode=state.mode)
        self._state = state
        self._client = client
        self._owns_client = owns_client
        self._connect = connect
        self._events = EventHub()
        self._ledger = ActivityLedger(state, self._events, on_advance=self._poll_gap)
        self._poller = PullChannel(
            state,
            client,
            self._ledger,
            self._events,
            poll_interval=self.config.poll_interval,
        )
        self._refresher = TokenRefresher(
            state,
            client,
            self._events,
            refresh_margin=self.config.refresh_margin,
        )
        self._channel: PushChannel | None = None
        self._tasks: set[asyncio.Task] = set()
        self._ended = False

        if state.mode == SessionMode.PUSH:
            self._open_channel()
        self._refresher.start()

        ACTIVE_SESSIONS.labels(mode=state.mode.value).inc()
        logger.info(
            "conversation_started",
            conversation_id=state.conversation_id,
            user_id=state.user_id,
            mode=state.mode.value,
        )

    @classmethod
    async def start(
        cls,
        user_id: str,
        secret: str,
        endpoint: str | None = None,
        config: SessionConfig | None = None,
        *,
        client: DirectLineClient | None = None,
        connect: Connect | None = None,
    ) -> "Conversation":
        """Start a new conversation.

        Args:
            user_id: Id of the local participant
            secret: Direct Line secret
            endpoint: Direct Line base URL (defaults to settings)
            config: Session options; the `session` settings section when omitted
            client: Existing client to use instead of creating one
            connect: WebSocket connect factory (used by tests)

        Returns:
            An active conversation

        Raises:
            CreationFailedError: If the conversation could not be created, or
                push mode was requested and the grant carries no stream URL
        """
        if config is None:
            config = get_settings().session
        owns_client = client is None
        if client is None:
            client = DirectLineClient.from_settings(endpoint=endpoint)

        try:
            grant = await client.create_conversation(secret)
        except DirectLineClientError as e:
            logger.error("conversation_creation_failed", user_id=user_id, error=str(e))
            if owns_client:
                await client.close()
            raise CreationFailedError(cause=e) from e

        if config.mode == SessionMode.PUSH and grant.stream_url is None:
            logger.error(
                "stream_url_missing",
                conversation_id=grant.conversation_id,
                user_id=user_id,
            )
            if owns_client:
                await client.close()
            raise CreationFailedError("conversation grant has no stream URL")

        state = SessionState(
            user_id=user_id,
            conversation_id=grant.conversation_id,
            credential=Credential.issue(grant.token, grant.expires_in),
            stream_url=grant.stream_url,
            mode=config.mode,
        )
        return cls(
            state=state,
            client=client,
            config=config,
            owns_client=owns_client,
            connect=connect,
        )

    async def __aenter__(self) -> "Conversation":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    # State accessors

    @property
    def user_id(self) -> str:
        return self._state.user_id

    @property
    def conversation_id(self) -> str:
        return self._state.conversation_id

    @property
    def token(self) -> str:
        return self._state.token

    @property
    def watermark(self) -> int | None:
        return self._state.watermark

    @property
    def mode(self) -> SessionMode:
        return self._state.mode

    @property
    def lifecycle(self) -> LifecycleState:
        return self._state.lifecycle

    @property
    def is_polling(self) -> bool:
        return self._poller.running

    @property
    def is_refreshing(self) -> bool:
        return self._refresher.active

    @property
    def channel(self) -> PushChannel | None:
        """The live push channel, None in pull mode or after a failed reconnect."""
        return self._channel

    @property
    def activities(self) -> list[Activity]:
        return self._ledger.activities

    def get_activities(self) -> list[Activity]:
        """Return every activity received or sent locally, in order."""
        return self._ledger.activities

    def get_user_id(self) -> str:
        return self._state.user_id

    def get_foreign_activities(self) -> list[Activity]:
        """Return activities not sent by the local user."""
        return self.filter_out_own(self._ledger.activities)

    def filter_out_own(self, activities: Sequence[Activity]) -> list[Activity]:
        return [a for a in activities if a.sender_id != self._state.user_id]

    # Notifications

    def subscribe(self, event: ConversationEvent | str, listener: Listener) -> Subscription:
        """Register a listener; release it with ``Subscription.release()``."""
        return self._events.subscribe(event, listener)

    def on_activities(self, listener: Listener) -> Subscription:
        return self.subscribe(ConversationEvent.ACTIVITIES, listener)

    def on_error(self, listener: Listener) -> Subscription:
        return self.subscribe(ConversationEvent.ERROR, listener)

    def on_closed(self, listener: Listener) -> Subscription:
        return self.subscribe(ConversationEvent.CLOSED, listener)

    # Outbound

    async def send(
        self,
        payload: Activity | dict[str, Any],
        auto_start_pull: bool = True,
    ) -> dict:
        """Send an activity to the bot.

        In pull mode the first successful send starts polling, unless
        ``auto_start_pull`` is False or polling already runs.

        Returns:
            Server acknowledgement

        Raises:
            ConversationClosedError: If the conversation was cleaned up
            SendFailedError: If the activity could not be posted
        """
        if self._state.lifecycle != LifecycleState.ACTIVE:
            raise ConversationClosedError()

        try:
            ack = await self._client.send_activity(
                self._state.conversation_id,
                self._state.token,
                payload,
            )
        except DirectLineClientError as e:
            logger.warning(
                "activity_send_failed",
                conversation_id=self._state.conversation_id,
                error=str(e),
            )
            raise SendFailedError(cause=e) from e

        if (
            self._state.mode == SessionMode.PULL
            and auto_start_pull
            and not self._poller.running
            and not self._state.closed
        ):
            await self._poller.start()

        return ack

    async def send_message(self, text: str) -> dict:
        """Send a text message from the local user."""
        return await self.send(
            Activity(type="message", from_=ChannelAccount(id=self._state.user_id), text=text)
        )

    async def end(self, cleanup: bool = True) -> dict:
        """End the conversation.

        The end-of-conversation activity is appended to the local log since
        the server does not echo it back.

        Does nothing once the conversation was cleaned up.

        Args:
            cleanup: Tear the session down afterwards

        Returns:
            Server acknowledgement, empty when nothing was sent
        """
        if self._state.lifecycle != LifecycleState.ACTIVE:
            return {}

        marker = Activity(
            type=END_OF_CONVERSATION,
            from_=ChannelAccount(id=self._state.user_id),
        )
        ack = await self.send(marker, auto_start_pull=not cleanup)

        if not self._ended:
            self._ended = True
            self._ledger.append_local(marker)

        logger.info("conversation_ended", conversation_id=self._state.conversation_id)

        if cleanup:
            self.cleanup()
        return ack

    # Restarts

    async def start_polling(self) -> bool:
        """Start the poll loop; resolves after its first cycle."""
        return await self._poller.start()

    def stop_polling(self) -> None:
        self._poller.stop()

    def start_token_refresh(self) -> float:
        """(Re)schedule token renewal; returns the delay in seconds."""
        if self._state.lifecycle != LifecycleState.ACTIVE:
            raise ConversationClosedError()
        return self._refresher.start()

    def stop_token_refresh(self) -> None:
        self._refresher.stop()

    async def reconnect(self) -> bool:
        """Replace the push channel with one on a fresh stream URL.

        Failures are emitted as ``ReconnectFailedError`` and leave the
        conversation without a live channel.

        Returns:
            True if a new channel was opened
        """
        if self._state.mode != SessionMode.PUSH or self._state.lifecycle != LifecycleState.ACTIVE:
            return False

        try:
            grant = await self._client.reconnect_conversation(
                self._state.conversation_id,
                self._state.token,
                self._state.watermark,
            )
            if self._state.closed:
                return False

            self._state.apply_grant(
                conversation_id=grant.conversation_id,
                credential=Credential(
                    token=grant.token,
                    expires_at=self._state.credential.expires_at,
                ),
                stream_url=grant.stream_url,
            )
            self._close_channel()
            self._open_channel()
        except Exception as e:
            if self._state.closed:
                return False
            self._close_channel()
            RECONNECTS.labels(outcome="failed").inc()
            self._emit_error(ReconnectFailedError(cause=e))
            logger.error(
                "reconnect_failed",
                conversation_id=self._state.conversation_id,
                error=str(e),
            )
            return False

        RECONNECTS.labels(outcome="succeeded").inc()
        logger.info(
            "reconnected",
            conversation_id=self._state.conversation_id,
            watermark=self._state.watermark,
        )
        return True

    # Teardown

    def cleanup(self) -> None:
        """Stop polling, token renewal and the push channel, drop listeners.

        Idempotent. A channel close caused by the teardown itself is
        suppressed, so it neither reconnects nor notifies.
        """
        if self._state.lifecycle != LifecycleState.ACTIVE:
            return

        self._state.lifecycle = LifecycleState.CLOSING
        self._poller.stop()
        self._refresher.stop()
        self._close_channel()

        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        self._tasks.clear()

        # Listeners last, so errors raised above still reach the consumer
        self._events.close()
        self._state.lifecycle = LifecycleState.CLOSED

        ACTIVE_SESSIONS.labels(mode=self._state.mode.value).dec()
        logger.info("conversation_cleaned_up", conversation_id=self._state.conversation_id)

    async def close(self) -> None:
        """Clean up and close the HTTP client if this conversation created it."""
        self.cleanup()
        if self._owns_client:
            self._owns_client = False
            await self._client.close()

    # Internals

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _emit_error(self, error: ConversationError) -> None:
        ERRORS.labels(error_code=error.error_code.value).inc()
        self._events.emit(ConversationEvent.ERROR, error)

    def _poll_gap(self) -> None:
        self._poller.poll_once()

    def _open_channel(self) -> None:
        if self._state.stream_url is None:
            logger.warning(
                "stream_url_missing",
                conversation_id=self._state.conversation_id,
            )
            return

        kwargs = {"connect": self._connect} if self._connect is not None else {}
        channel = PushChannel(
            self._state.stream_url,
            on_activities=self._on_channel_activities,
            on_error=self._on_channel_error,
            on_closed=self._on_channel_closed,
            **kwargs,
        )
        self._channel = channel
        channel.open()

    def _close_channel(self) -> None:
        if self._channel is not None:
            self._channel.stop()
            self._channel = None

    def _on_channel_activities(self, activity_set: ActivitySet) -> None:
        self._ledger.ingest_set(activity_set)

    def _on_channel_error(self, error: ConversationError) -> None:
        # Metrics are recorded by the channel itself
        self._events.emit(ConversationEvent.ERROR, error)

    def _on_channel_closed(self, code: int) -> None:
        if self._state.lifecycle != LifecycleState.ACTIVE:
            return
        self._spawn(self._handle_channel_closed(code))

    async def _handle_channel_closed(self, code: int) -> None:
        logger.warning(
            "channel_closed_unexpectedly",
            conversation_id=self._state.conversation_id,
            code=code,
            auto_reconnect=self.config.auto_reconnect,
        )
        if self.config.auto_reconnect:
            await self.reconnect()

        if self._state.lifecycle == LifecycleState.ACTIVE:
            self._events.emit(ConversationEvent.CLOSED, code)
