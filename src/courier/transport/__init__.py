"""Queue transport registry.

``build_transport`` picks the implementation named by configuration:
``memory`` (default) or ``redis``.
"""

from courier.config import CourierConfig
from courier.transport.memory import InMemoryQueueTransport
from courier.transport.port import Delivery, QueueMessage, QueueTransport, Route, clamp_priority


def build_transport(config: CourierConfig) -> QueueTransport:
    if config.transport == "memory":
        return InMemoryQueueTransport(config.queue)
    if config.transport == "redis":
        from courier.transport.redis_transport import RedisQueueTransport

        return RedisQueueTransport(url=config.redis_url, config=config.queue)
    raise ValueError(f"Unknown queue transport: {config.transport}")


__all__ = [
    "Delivery",
    "InMemoryQueueTransport",
    "QueueMessage",
    "QueueTransport",
    "Route",
    "build_transport",
    "clamp_priority",
]
