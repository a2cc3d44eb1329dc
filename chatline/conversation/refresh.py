"""Token lifecycle: renew the session credential before it expires."""

import asyncio
from collections.abc import Callable
from datetime import datetime

from chatline.client.client import DirectLineClient
from chatline.conversation.errors import RefreshFailedError
from chatline.conversation.events import ConversationEvent, EventHub
from chatline.conversation.models import Credential, SessionState, utc_now
from chatline.observability.logging import get_logger
from chatline.observability.metrics import ERRORS, TOKEN_REFRESHES

logger = get_logger(__name__)


class TokenRefresher:
    """Keeps exactly one renewal timer outstanding for a session.

    The renewal fires ``refresh_margin`` seconds before the credential
    expires. A successful refresh schedules the next renewal from the new
    expiry; a failed one emits ``RefreshFailedError`` and stops until
    ``start()`` is called again.
    """

    def __init__(
        self,
        state: SessionState,
        client: DirectLineClient,
        events: EventHub,
        refresh_margin: float = 60.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._state = state
        self._client = client
        self._events = events
        self._refresh_margin = refresh_margin
        self._clock = clock
        self._handle: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None

    @property
    def active(self) -> bool:
        """True while a renewal is scheduled or running."""
        return self._handle is not None or (self._task is not None and not self._task.done())

    def delay(self) -> float:
        """Seconds until the renewal is due (may be negative)."""
        remaining = (self._state.credential.expires_at - self._clock()).total_seconds()
        return remaining - self._refresh_margin

    def start(self) -> float:
        """Schedule the renewal, replacing any previous one.

        Returns:
            The delay in seconds the renewal was scheduled with
        """
        self.stop()
        delay = max(0.0, self.delay())
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self._fire)

        logger.debug(
            "token_refresh_scheduled",
            conversation_id=self._state.conversation_id,
            delay_seconds=delay,
        )
        return delay

    def stop(self) -> None:
        """Cancel the outstanding renewal, if any."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        # A refresh that reschedules itself must not cancel its own task
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
        self._task = None

    def _fire(self) -> None:
        self._handle = None
        self._task = asyncio.create_task(self.refresh())

    async def refresh(self) -> bool:
        """Refresh the token now and reschedule on success.

        Returns:
            True if the credential was replaced
        """
        try:
            grant = await self._client.refresh_token(self._state.token)
        except Exception as e:
            if self._state.closed:
                return False
            TOKEN_REFRESHES.labels(outcome="failed").inc()
            ERRORS.labels(error_code=RefreshFailedError.error_code.value).inc()
            logger.error(
                "token_refresh_failed",
                conversation_id=self._state.conversation_id,
                error=str(e),
            )
            self._events.emit(ConversationEvent.ERROR, RefreshFailedError(cause=e))
            return False

        if self._state.closed:
            return False

        self._state.apply_grant(
            conversation_id=grant.conversation_id,
            credential=Credential.issue(grant.token, grant.expires_in, now=self._clock()),
        )
        TOKEN_REFRESHES.labels(outcome="succeeded").inc()
        logger.info(
            "token_refreshed",
            conversation_id=grant.conversation_id,
            expires_in=grant.expires_in,
        )

        self.start()
        return True
