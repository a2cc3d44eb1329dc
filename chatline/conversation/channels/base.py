"""DeliveryChannel abstract interface."""

from abc import ABC, abstractmethod


class DeliveryChannel(ABC):
    """Source of activity batches for a conversation.

    Implementations feed what they receive into the activity ledger and
    report failures as error notifications, never by raising.
    """

    @property
    @abstractmethod
    def active(self) -> bool:
        """True while the channel is delivering (or about to)."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop delivering immediately. Must be idempotent and synchronous."""
        pass
