"""Orchestrator configuration.

Queue names, retry policy and sweep cadence are passed explicitly into the
Dispatcher, Delivery Worker, Dead-Letter Handler and Sweeper constructors.
``CourierConfig.from_env()`` builds them from ``COURIER_*`` variables.
"""

import os
from dataclasses import dataclass, field


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


@dataclass(frozen=True)
class QueueConfig:
    """Names of the exchange, queues and routing keys."""

    exchange: str = "notification.exchange"
    main_queue: str = "notification.queue"
    dead_letter_queue: str = "notification.dlq"
    send_routing_key: str = "notification.send"
    dead_letter_routing_key: str = "notification.dlq"


@dataclass(frozen=True)
class DeliveryConfig:
    retry_limit: int = 3
    delivery_timeout: float = 30.0
    consume_timeout: float = 1.0


@dataclass(frozen=True)
class SweepConfig:
    interval: float = 60.0
    batch_size: int = 100
    # Seconds a QUEUED row may sit untouched before reconciliation re-publishes it.
    # Zero disables reconciliation.
    reconcile_after: float = 0.0


@dataclass(frozen=True)
class CourierConfig:
    queue: QueueConfig = field(default_factory=QueueConfig)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    sweep: SweepConfig = field(default_factory=SweepConfig)
    transport: str = "memory"
    redis_url: str = "redis://localhost:6379/0"

    @classmethod
    def from_env(cls) -> "CourierConfig":
        return cls(
            queue=QueueConfig(
                exchange=os.getenv("COURIER_EXCHANGE", QueueConfig.exchange),
                main_queue=os.getenv("COURIER_MAIN_QUEUE", QueueConfig.main_queue),
                dead_letter_queue=os.getenv("COURIER_DLQ", QueueConfig.dead_letter_queue),
                send_routing_key=os.getenv("COURIER_SEND_KEY", QueueConfig.send_routing_key),
                dead_letter_routing_key=os.getenv("COURIER_DLQ_KEY", QueueConfig.dead_letter_routing_key),
            ),
            delivery=DeliveryConfig(
                retry_limit=_env_int("COURIER_RETRY_LIMIT", DeliveryConfig.retry_limit),
                delivery_timeout=_env_float("COURIER_DELIVERY_TIMEOUT", DeliveryConfig.delivery_timeout),
                consume_timeout=_env_float("COURIER_CONSUME_TIMEOUT", DeliveryConfig.consume_timeout),
            ),
            sweep=SweepConfig(
                interval=_env_float("COURIER_SWEEP_INTERVAL", SweepConfig.interval),
                batch_size=_env_int("COURIER_SWEEP_BATCH", SweepConfig.batch_size),
                reconcile_after=_env_float("COURIER_RECONCILE_AFTER", SweepConfig.reconcile_after),
            ),
            transport=os.getenv("COURIER_TRANSPORT", "memory").lower(),
            redis_url=os.getenv("COURIER_REDIS_URL", "redis://localhost:6379/0"),
        )
