"""Test factories for creating test data."""

from tests.factories.conversation import (
    ActivityFactory,
    FakeConnector,
    FakeSocket,
    SessionStateFactory,
    settle,
)

__all__ = [
    "ActivityFactory",
    "FakeConnector",
    "FakeSocket",
    "SessionStateFactory",
    "settle",
]
