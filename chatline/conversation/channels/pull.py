"""Pull delivery: poll the activities endpoint on a fixed cadence."""

import asyncio

from chatline.client.client import DirectLineClient
from chatline.conversation.channels.base import DeliveryChannel
from chatline.conversation.errors import PollFailedError
from chatline.conversation.events import ConversationEvent, EventHub
from chatline.conversation.ledger import ActivityLedger
from chatline.conversation.models import SessionState
from chatline.observability.logging import get_logger
from chatline.observability.metrics import ERRORS, POLL_CYCLES

logger = get_logger(__name__)


class PullChannel(DeliveryChannel):
    """Single-flight polling loop.

    Each regular cycle fetches activities newer than the session watermark,
    hands them to the ledger and schedules the next cycle ``poll_interval``
    seconds after it finished. A failed fetch stops the loop; it only
    resumes through ``start()``.

    Direct cycles (``poll_once``) run exactly once and never reschedule.
    They may overlap the regular loop, the ledger discards whichever
    response turns out stale.
    """

    def __init__(
        self,
        state: SessionState,
        client: DirectLineClient,
        ledger: ActivityLedger,
        events: EventHub,
        poll_interval: float = 1.0,
    ):
        self._state = state
        self._client = client
        self._ledger = ledger
        self._events = events
        self._poll_interval = poll_interval
        self._running = False
        # Bumped by start() and stop(); cycles of an older loop never reschedule
        self._generation = 0
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def active(self) -> bool:
        return self._running

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> bool:
        """Start the regular loop and wait for its first cycle.

        Returns:
            False if the loop was already running or the first cycle failed
        """
        if self._running or self._state.closed:
            return False

        self._running = True
        self._generation += 1
        logger.info("polling_started", conversation_id=self._state.conversation_id)
        return await self._cycle(generation=self._generation)

    def poll_once(self) -> asyncio.Task | None:
        """Schedule one direct cycle."""
        if self._state.closed:
            return None
        return self._track(asyncio.create_task(self._cycle()))

    def stop(self) -> None:
        """Cancel the pending cycle and every in-flight one."""
        self._running = False
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        self._tasks.clear()

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _schedule_next(self) -> None:
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._poll_interval, self._run_scheduled)

    def _run_scheduled(self) -> None:
        self._handle = None
        if self._running:
            self._track(asyncio.create_task(self._cycle(generation=self._generation)))

    def _is_current(self, generation: int | None) -> bool:
        return generation is not None and self._running and generation == self._generation

    async def _cycle(self, generation: int | None = None) -> bool:
        """Run one fetch.

        Args:
            generation: Loop the cycle belongs to, None for a direct cycle
        """
        kind = "direct" if generation is None else "regular"
        try:
            batch = await self._client.fetch_activities(
                self._state.conversation_id,
                self._state.token,
                self._state.watermark,
            )
        except Exception as e:
            if self._state.closed:
                return False
            if self._is_current(generation):
                self._running = False
            POLL_CYCLES.labels(kind=kind, outcome="failed").inc()
            ERRORS.labels(error_code=PollFailedError.error_code.value).inc()
            logger.error(
                "poll_failed",
                conversation_id=self._state.conversation_id,
                kind=kind,
                error=str(e),
            )
            self._events.emit(ConversationEvent.ERROR, PollFailedError(cause=e))
            return False

        if self._state.closed:
            return False

        POLL_CYCLES.labels(kind=kind, outcome="succeeded").inc()
        self._ledger.ingest_set(batch)

        if self._is_current(generation):
            self._schedule_next()
        return True
