"""Runtime wiring for the orchestrator.

Provides get_services() / set_services() so the API, the process runner and
tests share one transport and one set of components:
- InMemoryQueueTransport by default
- RedisQueueTransport when COURIER_TRANSPORT=redis
"""

from dataclasses import dataclass

from courier.config import CourierConfig
from courier.event.dead_letter import DeadLetterHandler
from courier.event.dispatcher import Dispatcher
from courier.event.sweeper import ScheduledSweeper
from courier.event.worker import DeliveryWorker
from courier.transport import build_transport
from courier.transport.port import QueueTransport


@dataclass
class Services:
    config: CourierConfig
    transport: QueueTransport
    dispatcher: Dispatcher
    worker: DeliveryWorker
    dead_letter: DeadLetterHandler
    sweeper: ScheduledSweeper

    @classmethod
    def build(cls, config: CourierConfig | None = None, transport: QueueTransport | None = None, clock=None):
        config = config or CourierConfig.from_env()
        transport = transport or build_transport(config)
        return cls(
            config=config,
            transport=transport,
            dispatcher=Dispatcher(transport, config.delivery, clock=clock),
            worker=DeliveryWorker(transport, config.delivery, clock=clock),
            dead_letter=DeadLetterHandler(clock=clock),
            sweeper=ScheduledSweeper(transport, config.sweep, clock=clock),
        )

    def close(self) -> None:
        self.worker.close()
        self.transport.close()


_current_services: Services | None = None


def get_services() -> Services:
    """Return the active services, building them from the environment on first use."""
    global _current_services
    if _current_services is None:
        _current_services = Services.build()
    return _current_services


def set_services(services: Services) -> None:
    """Override the active services (useful for tests)."""
    global _current_services
    _current_services = services


def reset_services() -> None:
    global _current_services
    if _current_services is not None:
        _current_services.close()
    _current_services = None
