"""Consumer notifications.

A conversation notifies its consumer through three events. Every
subscription gets its own handle, so cleanup releases exactly the
subscriptions made through the conversation and nothing else.
"""

import asyncio
import inspect
from collections.abc import Callable
from enum import Enum
from typing import Any

from chatline.observability.logging import get_logger

logger = get_logger(__name__)

Listener = Callable[[Any], Any]


class ConversationEvent(str, Enum):
    """Notification kinds."""

    ACTIVITIES = "activities"
    """Payload: list of newly ingested activities."""

    ERROR = "error"
    """Payload: a ConversationError."""

    CLOSED = "closed"
    """Payload: the push channel close code."""


class Subscription:
    """Handle for one registered listener."""

    def __init__(self, hub: "EventHub", event: ConversationEvent, listener: Listener):
        self.event = event
        self.listener = listener
        self._hub = hub

    @property
    def active(self) -> bool:
        return self._hub.is_subscribed(self)

    def release(self) -> None:
        """Stop receiving notifications. Safe to call more than once."""
        self._hub.release(self)


class EventHub:
    """Registry of listeners per notification kind.

    Listeners may be plain callables or coroutine functions; coroutines are
    scheduled as tasks on the running loop. A failing listener is logged and
    never affects the emitter or other listeners.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[ConversationEvent, list[Subscription]] = {
            event: [] for event in ConversationEvent
        }
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    def subscribe(self, event: ConversationEvent | str, listener: Listener) -> Subscription:
        """Register a listener and return its handle."""
        kind = ConversationEvent(event)
        subscription = Subscription(self, kind, listener)
        if not self._closed:
            self._subscriptions[kind].append(subscription)
        return subscription

    def is_subscribed(self, subscription: Subscription) -> bool:
        return subscription in self._subscriptions[subscription.event]

    def release(self, subscription: Subscription) -> None:
        try:
            self._subscriptions[subscription.event].remove(subscription)
        except ValueError:
            pass

    def listener_count(self, event: ConversationEvent | str) -> int:
        return len(self._subscriptions[ConversationEvent(event)])

    def emit(self, event: ConversationEvent, payload: Any) -> None:
        """Deliver a payload to every listener of the event."""
        if self._closed:
            return

        for subscription in list(self._subscriptions[event]):
            # An earlier listener may have closed the hub or released this one
            if self._closed:
                return
            if not subscription.active:
                continue
            try:
                result = subscription.listener(payload)
            except Exception as e:
                logger.error(
                    "listener_failed",
                    event=event.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._on_listener_done)

    def _on_listener_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "listener_failed",
                error=str(error),
                error_type=type(error).__name__,
            )

    def close(self) -> None:
        """Release every subscription and drop further emissions."""
        self._closed = True
        for subscriptions in self._subscriptions.values():
            subscriptions.clear()
