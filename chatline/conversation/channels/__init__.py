"""Delivery channels: push (WebSocket stream) and pull (HTTP polling)."""

from chatline.conversation.channels.base import DeliveryChannel
from chatline.conversation.channels.pull import PullChannel
from chatline.conversation.channels.push import ABNORMAL_CLOSURE, PushChannel

__all__ = ["ABNORMAL_CLOSURE", "DeliveryChannel", "PullChannel", "PushChannel"]
