"""In-memory queue transport — process-local broker for tests and single-node runs.

Each route is a heap ordered by priority (highest first) then publish order.
Consumed messages stay in flight until their delivery is settled; released
messages go back on the heap flagged as redelivered.
"""

import heapq
import itertools
import threading
import time
from dataclasses import dataclass

from courier.config import QueueConfig
from courier.errors import TransportFailure
from courier.transport.port import Delivery, QueueMessage, QueueTransport, Route, clamp_priority


@dataclass(frozen=True)
class PublishedMessage:
    route: Route
    message: QueueMessage
    priority: int


class InMemoryDelivery(Delivery):
    def __init__(self, transport, route, message, redelivered, tag, priority):
        super().__init__(transport, route, message, redelivered)
        self.tag = tag
        self.priority = priority

    def _ack(self) -> None:
        self.transport._ack(self.tag)

    def _requeue(self) -> None:
        self.transport._requeue(self.tag)


class InMemoryQueueTransport(QueueTransport):
    """Queue transport that keeps messages in process memory and records every publish."""

    def __init__(self, config: QueueConfig | None = None):
        super().__init__(config)
        self._queues: dict[Route, list] = {route: [] for route in Route}
        self._in_flight: dict[int, tuple[Route, QueueMessage, int]] = {}
        self._sequence = itertools.count()
        self._tags = itertools.count(1)
        self._condition = threading.Condition()
        self.published: list[PublishedMessage] = []
        self.should_accept = True
        self.failure_reason = "Queue transport unavailable"

    def configure(self, should_accept: bool = True, failure_reason: str = "Queue transport unavailable"):
        """Configure the fake broker behavior for testing."""
        self.should_accept = should_accept
        self.failure_reason = failure_reason

    # -------------------------------------------------------------------
    # Port
    # -------------------------------------------------------------------
    def publish(self, route: Route, message: QueueMessage, priority: int) -> None:
        if not self.should_accept:
            raise TransportFailure(self.failure_reason)

        priority = clamp_priority(priority)
        with self._condition:
            self._push(route, message, priority, redelivered=False)
            self.published.append(PublishedMessage(route=route, message=message, priority=priority))
            self._condition.notify()

    def consume(self, route: Route, timeout: float | None = None) -> Delivery | None:
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._condition:
            while not self._queues[route]:
                if deadline is None:
                    return None
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._condition.wait(remaining)

            _, _, priority, message, redelivered = heapq.heappop(self._queues[route])
            tag = next(self._tags)
            self._in_flight[tag] = (route, message, priority)

        return InMemoryDelivery(self, route, message, redelivered, tag, priority)

    # -------------------------------------------------------------------
    # Settlement
    # -------------------------------------------------------------------
    def _push(self, route, message, priority, redelivered):
        heapq.heappush(self._queues[route], (-priority, next(self._sequence), priority, message, redelivered))

    def _ack(self, tag: int) -> None:
        with self._condition:
            self._in_flight.pop(tag, None)

    def _requeue(self, tag: int) -> None:
        with self._condition:
            entry = self._in_flight.pop(tag, None)
            if entry is None:
                return
            route, message, priority = entry
            self._push(route, message, priority, redelivered=True)
            self._condition.notify()

    # -------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------
    def pending(self, route: Route = Route.SEND) -> list[QueueMessage]:
        """Messages waiting on a route, in delivery order."""
        with self._condition:
            return [entry[3] for entry in sorted(self._queues[route])]

    def depth(self, route: Route = Route.SEND) -> int:
        with self._condition:
            return len(self._queues[route])

    @property
    def in_flight(self) -> int:
        with self._condition:
            return len(self._in_flight)

    def published_to(self, route: Route) -> list[PublishedMessage]:
        return [record for record in self.published if record.route == route]

    def reset(self):
        """Drop all queued, in-flight and recorded messages (useful between tests)."""
        with self._condition:
            for queue in self._queues.values():
                queue.clear()
            self._in_flight.clear()
            self.published.clear()
        self.should_accept = True
        self.failure_reason = "Queue transport unavailable"
