"""Queue transport port — abstract interface for the notification broker.

One exchange, two routes: ``SEND`` feeds the live queue consumed by delivery
workers, ``DEAD_LETTER`` feeds the dead-letter queue. Messages carry an
integer priority in [1, 10] that orders delivery within a queue.

Consumers receive a ``Delivery`` handle and must settle it exactly once with
``complete()``, ``retry()``, ``escalate()`` or ``release()``. How each of
those maps onto broker ack/nack semantics is the transport's business, which
keeps the retry and dead-letter policy broker-agnostic.
"""

import json
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, replace
from enum import Enum

from courier.config import QueueConfig
from courier.errors import DeliveryAlreadySettled

MIN_PRIORITY = 1
MAX_PRIORITY = 10


class Route(Enum):
    SEND = "send"
    DEAD_LETTER = "dead_letter"


def clamp_priority(priority: int) -> int:
    return max(MIN_PRIORITY, min(MAX_PRIORITY, int(priority)))


@dataclass(frozen=True)
class QueueMessage:
    """Routing hints for one event. Consumers re-read state from the event store."""

    event_id: str
    channel: str
    priority: int
    notification_type: str | None = None
    attempt: int = 0

    @classmethod
    def for_event(cls, event, priority: int) -> "QueueMessage":
        return cls(
            event_id=str(event.id),
            channel=event.channel,
            priority=clamp_priority(priority),
            notification_type=event.notification_type,
            attempt=event.retry_count or 0,
        )

    def to_json(self) -> str:
        return json.dumps(asdict(self), sort_keys=True)

    @classmethod
    def from_json(cls, raw) -> "QueueMessage":
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
        return cls(
            event_id=str(data["event_id"]),
            channel=data["channel"],
            priority=clamp_priority(data.get("priority", MIN_PRIORITY)),
            notification_type=data.get("notification_type"),
            attempt=int(data.get("attempt", 0)),
        )


class Delivery(ABC):
    """A message handed to one consumer, awaiting settlement."""

    def __init__(self, transport: "QueueTransport", route: Route, message: QueueMessage, redelivered: bool = False):
        self.transport = transport
        self.route = route
        self.message = message
        self.redelivered = redelivered
        self.outcome: str | None = None
        self._lock = threading.Lock()

    @property
    def settled(self) -> bool:
        return self.outcome is not None

    def _ensure_open(self):
        if self.settled:
            raise DeliveryAlreadySettled(
                f"Delivery of event {self.message.event_id} already settled ({self.outcome})"
            )

    def _settle(self, outcome: str, action) -> None:
        with self._lock:
            self._ensure_open()
            action()
            self.outcome = outcome

    def complete(self) -> None:
        """Acknowledge: the message is permanently removed from its queue."""
        self._settle("completed", self._ack)

    def retry(self, priority: int) -> None:
        """Publish a fresh copy to the live route, then acknowledge this one.

        The original is acknowledged rather than rejected so that the broker's
        own redelivery and the explicit re-publish never both fire.
        """
        self._ensure_open()
        retried = replace(self.message, priority=clamp_priority(priority), attempt=self.message.attempt + 1)
        self.transport.publish(Route.SEND, retried, retried.priority)
        self._settle("retried", self._ack)

    def escalate(self) -> None:
        """Hand the message to the dead-letter route and acknowledge this one."""
        self._ensure_open()
        self.transport.publish(Route.DEAD_LETTER, self.message, self.message.priority)
        self._settle("escalated", self._ack)

    def release(self) -> None:
        """Give the message back unprocessed so the transport redelivers it."""
        self._settle("released", self._requeue)

    @abstractmethod
    def _ack(self) -> None: ...

    @abstractmethod
    def _requeue(self) -> None: ...


class QueueTransport(ABC):
    """Durable, priority-aware, at-least-once publish/consume transport."""

    def __init__(self, config: QueueConfig | None = None):
        self.config = config or QueueConfig()

    def queue_name(self, route: Route) -> str:
        if route == Route.SEND:
            return self.config.main_queue
        return self.config.dead_letter_queue

    def routing_key(self, route: Route) -> str:
        if route == Route.SEND:
            return self.config.send_routing_key
        return self.config.dead_letter_routing_key

    @abstractmethod
    def publish(self, route: Route, message: QueueMessage, priority: int) -> None:
        """Publish a message. Raises ``TransportFailure`` when the broker refuses it."""
        ...

    @abstractmethod
    def consume(self, route: Route, timeout: float | None = None) -> Delivery | None:
        """Take the highest-priority message from a route, or ``None`` on timeout."""
        ...

    def recover_in_flight(self, route: Route = Route.SEND) -> int:
        """Requeue messages a crashed consumer left unacknowledged and return how many.

        Transports whose in-flight state dies with the process have nothing to recover.
        """
        return 0

    def close(self) -> None:
        """Release broker connections."""
