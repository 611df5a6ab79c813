"""Channel gateway port — abstract interface for delivering over one transport."""

from abc import ABC, abstractmethod

from courier.event.event import Channel


class ChannelGateway(ABC):
    """Delivers a notification event over a single channel."""

    channel: Channel

    @abstractmethod
    def deliver(self, event) -> None:
        """Deliver the event.

        Raises:
            DeliveryFailure: with a human-readable reason when delivery fails.
        """
        ...
