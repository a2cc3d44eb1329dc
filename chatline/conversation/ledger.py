"""Activity ledger: ordered, deduplicated record of received activities."""

from collections.abc import Callable, Sequence

from chatline.client.models import Activity, ActivitySet
from chatline.config.models.session import SessionMode
from chatline.conversation.events import ConversationEvent, EventHub
from chatline.conversation.models import SessionState
from chatline.observability.logging import get_logger
from chatline.observability.metrics import (
    ACTIVITIES_DELIVERED,
    BATCHES_DISCARDED,
    BATCHES_INGESTED,
)

logger = get_logger(__name__)


def parse_watermark(value: str | int | None) -> int | None:
    """Convert a wire watermark to an int, None when absent or not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


class ActivityLedger:
    """Append-only activity log guarded by the session watermark.

    A batch is accepted only if its watermark is strictly greater than the
    current one; anything else is a stale or duplicate delivery and is
    dropped whole. This is what keeps notifications in watermark order when
    the push stream, the poll loop and direct polls race each other.
    """

    def __init__(
        self,
        state: SessionState,
        events: EventHub,
        on_advance: Callable[[], None] | None = None,
    ):
        """Initialize the ledger.

        Args:
            state: Session state owning the watermark
            events: Hub used to notify the consumer
            on_advance: Called in pull mode when the watermark advanced, before
                the consumer is notified (used to trigger a direct poll)
        """
        self._state = state
        self._events = events
        self._on_advance = on_advance
        self._activities: list[Activity] = []

    @property
    def activities(self) -> list[Activity]:
        return list(self._activities)

    @property
    def watermark(self) -> int | None:
        return self._state.watermark

    def __len__(self) -> int:
        return len(self._activities)

    def ingest(self, watermark: str | int | None, activities: Sequence[Activity]) -> bool:
        """Incorporate a batch if it advances the watermark.

        Returns:
            True if the batch was accepted
        """
        if self._state.closed:
            return False

        mode = self._state.mode.value
        new_watermark = parse_watermark(watermark)
        current = self._state.watermark

        if new_watermark is None or (current is not None and new_watermark <= current):
            BATCHES_DISCARDED.labels(mode=mode).inc()
            logger.debug(
                "batch_discarded",
                conversation_id=self._state.conversation_id,
                watermark=watermark,
                current_watermark=current,
                count=len(activities),
            )
            return False

        batch = list(activities)
        self._state.watermark = new_watermark
        self._activities.extend(batch)
        BATCHES_INGESTED.labels(mode=mode).inc()
        ACTIVITIES_DELIVERED.labels(mode=mode).inc(len(batch))

        logger.debug(
            "batch_ingested",
            conversation_id=self._state.conversation_id,
            watermark=new_watermark,
            count=len(batch),
        )

        # Catch up on activities produced while this response was in flight
        if self._state.mode == SessionMode.PULL and self._on_advance is not None:
            self._on_advance()

        if batch:
            self._events.emit(ConversationEvent.ACTIVITIES, batch)

        return True

    def ingest_set(self, activity_set: ActivitySet) -> bool:
        return self.ingest(activity_set.watermark, activity_set.activities)

    def append_local(self, activity: Activity) -> None:
        """Record an activity the server will never echo back."""
        self._activities.append(activity)
