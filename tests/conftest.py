"""Shared test fixtures for the chatline test suite."""

from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock

import pytest

from chatline.client.client import DirectLineClient
from chatline.client.models import ActivitySet
from tests.factories import FakeConnector


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Clear the settings cache before and after each test.

    This ensures test isolation for configuration tests.
    """
    from chatline.config import get_settings
    from chatline.config.settings import set_toml_config

    get_settings.cache_clear()
    set_toml_config({})
    yield
    get_settings.cache_clear()
    set_toml_config({})


@pytest.fixture
def client() -> MagicMock:
    """DirectLineClient double whose calls succeed with empty results."""
    mock = MagicMock(spec=DirectLineClient)
    mock.create_conversation = AsyncMock()
    mock.refresh_token = AsyncMock()
    mock.reconnect_conversation = AsyncMock()
    mock.send_activity = AsyncMock(return_value={"id": "conv-1|0000001"})
    mock.fetch_activities = AsyncMock(return_value=ActivitySet(activities=[], watermark=None))
    mock.close = AsyncMock()
    return mock


@pytest.fixture
def connector() -> FakeConnector:
    """WebSocket connect factory handing out fake sockets."""
    return FakeConnector()
