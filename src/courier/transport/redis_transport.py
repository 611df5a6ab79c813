"""Redis queue transport — sorted-set priority queues with in-flight tracking.

Each route is a sorted set ``<exchange>:<queue>`` scored so that the lowest
score is the highest priority, oldest first. Taking a message moves it into
the ``<exchange>:<queue>:inflight`` hash in one atomic script; settling a
delivery removes it from there, and ``recover_in_flight()`` puts back any
messages a crashed consumer never settled.
"""

import json
import time
from uuid import uuid4

import structlog
from redis import Redis
from redis.exceptions import RedisError

from courier.config import QueueConfig
from courier.errors import TransportFailure
from courier.transport.port import MAX_PRIORITY, Delivery, QueueMessage, QueueTransport, Route, clamp_priority

logger = structlog.get_logger(__name__)

# Publish order fits comfortably below this; priority bands sit above it.
_PRIORITY_BAND = 10**13

_TAKE_SCRIPT = """
local popped = redis.call('ZPOPMIN', KEYS[1])
if #popped == 0 then
    return nil
end
redis.call('HSET', KEYS[2], ARGV[1], popped[1])
return popped
"""


class RedisDelivery(Delivery):
    def __init__(self, transport, route, message, redelivered, tag, envelope):
        super().__init__(transport, route, message, redelivered)
        self.tag = tag
        self.envelope = envelope

    def _ack(self) -> None:
        self.transport._ack(self.route, self.tag)

    def _requeue(self) -> None:
        self.transport._requeue(self.route, self.tag, self.envelope)


class RedisQueueTransport(QueueTransport):
    def __init__(
        self,
        redis: Redis | None = None,
        url: str = "redis://localhost:6379/0",
        config: QueueConfig | None = None,
        poll_interval: float = 0.2,
    ):
        super().__init__(config)
        self.redis = redis if redis is not None else Redis.from_url(url)
        self.poll_interval = poll_interval
        self._take = self.redis.register_script(_TAKE_SCRIPT)

    def queue_key(self, route: Route) -> str:
        return f"{self.config.exchange}:{self.queue_name(route)}"

    def in_flight_key(self, route: Route) -> str:
        return f"{self.queue_key(route)}:inflight"

    def _score(self, priority: int) -> int:
        sequence = self.redis.incr(f"{self.config.exchange}:sequence")
        return (MAX_PRIORITY - clamp_priority(priority)) * _PRIORITY_BAND + sequence

    def _enqueue(self, route: Route, envelope: dict, priority: int) -> None:
        member = json.dumps(envelope, sort_keys=True)
        self.redis.zadd(self.queue_key(route), {member: self._score(priority)})

    # -------------------------------------------------------------------
    # Port
    # -------------------------------------------------------------------
    def publish(self, route: Route, message: QueueMessage, priority: int) -> None:
        priority = clamp_priority(priority)
        envelope = {
            "id": uuid4().hex,
            "priority": priority,
            "redelivered": False,
            "message": json.loads(message.to_json()),
        }
        try:
            self._enqueue(route, envelope, priority)
        except RedisError as exc:
            raise TransportFailure(f"Publish to {self.routing_key(route)} failed: {exc}") from exc

        logger.debug(
            "Message published",
            routing_key=self.routing_key(route),
            event_id=message.event_id,
            priority=priority,
        )

    def consume(self, route: Route, timeout: float | None = None) -> Delivery | None:
        deadline = time.monotonic() + (timeout or 0)
        while True:
            tag = uuid4().hex
            try:
                popped = self._take(keys=[self.queue_key(route), self.in_flight_key(route)], args=[tag])
            except RedisError as exc:
                raise TransportFailure(f"Consume from {self.queue_name(route)} failed: {exc}") from exc

            if popped:
                envelope = json.loads(popped[0])
                message = QueueMessage.from_json(json.dumps(envelope["message"]))
                return RedisDelivery(self, route, message, envelope.get("redelivered", False), tag, envelope)

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            time.sleep(min(self.poll_interval, remaining))

    def close(self) -> None:
        self.redis.close()

    # -------------------------------------------------------------------
    # Settlement
    # -------------------------------------------------------------------
    def _ack(self, route: Route, tag: str) -> None:
        try:
            self.redis.hdel(self.in_flight_key(route), tag)
        except RedisError as exc:
            raise TransportFailure(f"Acknowledge on {self.queue_name(route)} failed: {exc}") from exc

    def _requeue(self, route: Route, tag: str, envelope: dict) -> None:
        envelope = dict(envelope, redelivered=True)
        try:
            self._enqueue(route, envelope, envelope["priority"])
            self.redis.hdel(self.in_flight_key(route), tag)
        except RedisError as exc:
            raise TransportFailure(f"Requeue on {self.queue_name(route)} failed: {exc}") from exc

    def recover_in_flight(self, route: Route = Route.SEND) -> int:
        """Requeue every message left in flight, e.g. by a consumer that crashed."""
        recovered = 0
        try:
            for tag, member in self.redis.hgetall(self.in_flight_key(route)).items():
                self._requeue(route, tag, json.loads(member))
                recovered += 1
        except RedisError as exc:
            raise TransportFailure(f"In-flight recovery on {self.queue_name(route)} failed: {exc}") from exc

        if recovered:
            logger.warning("Recovered in-flight messages", queue=self.queue_name(route), count=recovered)
        return recovered
