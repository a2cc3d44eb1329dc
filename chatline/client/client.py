"""Direct Line API client.

Provides the HTTP calls a conversation session needs: starting a
conversation, refreshing its token, reconnecting the stream, sending and
fetching activities.

Usage:
    from chatline.client import DirectLineClient

    async with DirectLineClient() as client:
        grant = await client.create_conversation(secret)
        await client.send_activity(
            grant.conversation_id,
            grant.token,
            {"type": "message", "from": {"id": "user-1"}, "text": "Hello!"},
        )
"""

import asyncio
from typing import Any

import httpx
from pydantic import ValidationError

from chatline.client.models import (
    Activity,
    ActivitySet,
    ConversationGrant,
    ReconnectGrant,
    TokenGrant,
)
from chatline.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_ENDPOINT = "https://directline.botframework.com/v3/directline"

# Methods that are safe to retry after the server answered with 429/5xx
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})


class DirectLineClientError(Exception):
    """Raised for any failed Direct Line call."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


class DirectLineClient:
    """Async client for one Direct Line endpoint.

    Attributes:
        endpoint: Base URL of the Direct Line API
        max_retries: Retries for network errors and retryable responses
        retry_backoff: Base delay of the exponential back-off, in seconds
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_backoff: float = 0.1,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            endpoint: Base URL of the Direct Line API
            timeout: Request timeout in seconds
            max_retries: Retries before a call is reported as failed
            retry_backoff: Base delay of the exponential back-off
            transport: Optional httpx transport (used by tests)
        """
        self.endpoint = endpoint.rstrip("/")
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self._client = httpx.AsyncClient(
            base_url=self.endpoint,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, endpoint: str | None = None) -> "DirectLineClient":
        """Create a client from the loaded chatline settings."""
        from chatline.config import get_settings

        config = get_settings().directline
        return cls(
            endpoint=endpoint or config.endpoint,
            timeout=config.timeout,
            max_retries=config.max_retries,
            retry_backoff=config.retry_backoff,
        )

    async def __aenter__(self) -> "DirectLineClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    def _headers(self, token: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }

    def _retry_delay(self, attempt: int) -> float:
        return self.retry_backoff * (2**attempt)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: str,
        json: dict | None = None,
        params: dict | None = None,
    ) -> dict:
        """Make an API request, retrying transient failures."""
        attempt = 0
        while True:
            try:
                response = await self._client.request(
                    method=method,
                    url=path,
                    headers=self._headers(token),
                    json=json,
                    params=params,
                )
            except httpx.HTTPError as e:
                if attempt < self.max_retries:
                    logger.warning(
                        "directline_request_retry",
                        method=method,
                        path=path,
                        attempt=attempt + 1,
                        error=str(e),
                    )
                    await asyncio.sleep(self._retry_delay(attempt))
                    attempt += 1
                    continue
                raise DirectLineClientError(f"{method} {path} failed: {e}") from e

            retryable = response.status_code == 429 or response.status_code >= 500
            if retryable and method in IDEMPOTENT_METHODS and attempt < self.max_retries:
                logger.warning(
                    "directline_request_retry",
                    method=method,
                    path=path,
                    attempt=attempt + 1,
                    status_code=response.status_code,
                )
                await asyncio.sleep(self._retry_delay(attempt))
                attempt += 1
                continue

            if response.status_code >= 400:
                details = None
                try:
                    details = response.json()
                    message = details.get("error", {}).get("message", response.text)
                except (ValueError, AttributeError):
                    message = response.text

                raise DirectLineClientError(
                    message=message or f"HTTP {response.status_code}",
                    status_code=response.status_code,
                    details=details,
                )

            if response.status_code == 204 or not response.content:
                return {}

            try:
                return response.json()
            except ValueError as e:
                raise DirectLineClientError(
                    "Response is not valid JSON",
                    status_code=response.status_code,
                ) from e

    def _parse(self, model: type, data: dict):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise DirectLineClientError(
                f"Unexpected {model.__name__} response", details=e.errors()
            ) from e

    async def create_conversation(self, secret: str) -> ConversationGrant:
        """Start a new conversation using the Direct Line secret."""
        data = await self._request("POST", "/conversations", token=secret, json={})
        return self._parse(ConversationGrant, data)

    async def refresh_token(self, token: str) -> TokenGrant:
        """Exchange a token that is about to expire for a fresh one."""
        data = await self._request("POST", "/tokens/refresh", token=token, json={})
        return self._parse(TokenGrant, data)

    async def reconnect_conversation(
        self,
        conversation_id: str,
        token: str,
        watermark: int | None = None,
    ) -> ReconnectGrant:
        """Get a new stream URL for an existing conversation.

        Args:
            conversation_id: Conversation to resume
            token: Current token
            watermark: Resume hint, the newest watermark already seen
        """
        params = {"watermark": str(watermark)} if watermark is not None else None
        data = await self._request(
            "GET",
            f"/conversations/{conversation_id}",
            token=token,
            params=params,
        )
        return self._parse(ReconnectGrant, data)

    async def send_activity(
        self,
        conversation_id: str,
        token: str,
        payload: Activity | dict[str, Any],
    ) -> dict:
        """Post an activity to the conversation.

        Returns:
            The server acknowledgement (usually ``{"id": ...}``)
        """
        body = payload.to_wire() if isinstance(payload, Activity) else payload
        return await self._request(
            "POST",
            f"/conversations/{conversation_id}/activities",
            token=token,
            json=body,
        )

    async def fetch_activities(
        self,
        conversation_id: str,
        token: str,
        watermark: int | None = None,
    ) -> ActivitySet:
        """Get activities newer than the watermark (all of them when None)."""
        params = {"watermark": str(watermark)} if watermark is not None else None
        data = await self._request(
            "GET",
            f"/conversations/{conversation_id}/activities",
            token=token,
            params=params,
        )
        return self._parse(ActivitySet, data)
