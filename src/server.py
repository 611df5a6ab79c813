"""Courier runtime runner.

Starts the background side of the orchestrator:
- Delivery workers: consume the live queue and deliver through the channel gateways
- Dead-letter consumer: finalises exhausted events and raises operator alerts
- Sweeper: promotes due scheduled notifications every interval

Usage:
    python src/server.py                  # 4 delivery workers, DLQ consumer, sweeper
    python src/server.py --workers 8      # More delivery workers
    python src/server.py --no-sweeper     # Run the sweeper elsewhere
"""

import argparse
import os
import signal
import threading
from contextlib import asynccontextmanager

import structlog

from courier.domain import courier
from courier.errors import TransportFailure
from courier.event.consumer import consume_forever
from courier.event.sweeper import SweepTimer
from courier.services import get_services
from courier.transport.port import Route

logger = structlog.get_logger(__name__)


class Runtime:
    """Owns the consumer threads and the sweeper timer for one process."""

    def __init__(self, workers: int = 4, dead_letter_workers: int = 1, sweeper: bool = True, services=None):
        self.workers = workers
        self.dead_letter_workers = dead_letter_workers
        self.run_sweeper = sweeper
        self.services = services
        self.stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self._timer: SweepTimer | None = None

    def _consumer(self, name, route, handler) -> threading.Thread:
        services = self.services
        return threading.Thread(
            target=consume_forever,
            name=name,
            args=(services.transport, route, handler, self.stop_event, services.config.delivery.consume_timeout),
            daemon=True,
        )

    def start(self) -> None:
        if self.services is None:
            with courier.domain_context():
                self.services = get_services()
        services = self.services

        self.recover_in_flight()

        for index in range(self.workers):
            self._threads.append(self._consumer(f"courier-worker-{index}", Route.SEND, services.worker.on_message))
        for index in range(self.dead_letter_workers):
            self._threads.append(
                self._consumer(f"courier-dlq-{index}", Route.DEAD_LETTER, services.dead_letter.on_dead_letter)
            )
        for thread in self._threads:
            thread.start()

        if self.run_sweeper:
            self._timer = SweepTimer(services.sweeper)
            self._timer.start()

        logger.info(
            "Courier runtime started",
            workers=self.workers,
            dead_letter_workers=self.dead_letter_workers,
            sweeper=self.run_sweeper,
            transport=services.config.transport,
        )

    def recover_in_flight(self) -> dict[str, int]:
        """Put messages left unacknowledged by a previous process back on their queues."""
        recovered = {}
        for route in (Route.SEND, Route.DEAD_LETTER):
            try:
                recovered[route.value] = self.services.transport.recover_in_flight(route)
            except TransportFailure as exc:
                logger.error("In-flight recovery failed", route=route.value, error=str(exc))
                recovered[route.value] = 0
        if any(recovered.values()):
            logger.warning("Recovered in-flight messages on startup", **recovered)
        return recovered

    def stop(self, timeout: float = 5.0) -> None:
        self.stop_event.set()
        if self._timer is not None:
            self._timer.stop()
        for thread in self._threads:
            thread.join(timeout)
        if self._timer is not None:
            self._timer.join(timeout)
        if self.services is not None:
            self.services.close()
        logger.info("Courier runtime stopped")

    def wait(self) -> None:
        while not self.stop_event.wait(1.0):
            pass


def embedded_workers_enabled() -> bool:
    return os.getenv("COURIER_EMBEDDED_WORKERS", "").lower() in ("1", "true", "yes")


@asynccontextmanager
async def embedded_lifespan(app):
    """FastAPI lifespan that runs a ``Runtime`` inside the API process.

    Enabled by COURIER_EMBEDDED_WORKERS; the worker count comes from COURIER_WORKERS.
    """
    if not embedded_workers_enabled():
        yield
        return

    runtime = Runtime(workers=int(os.getenv("COURIER_WORKERS", "2")))
    runtime.start()
    app.state.runtime = runtime
    try:
        yield
    finally:
        runtime.stop()


def main():
    parser = argparse.ArgumentParser(description="Courier runtime runner")
    parser.add_argument("--workers", type=int, default=4, help="Delivery worker threads (default: 4)")
    parser.add_argument("--dlq-workers", type=int, default=1, help="Dead-letter consumer threads (default: 1)")
    parser.add_argument("--no-sweeper", action="store_true", help="Do not run the scheduled sweeper")
    args = parser.parse_args()

    courier.init()

    runtime = Runtime(workers=args.workers, dead_letter_workers=args.dlq_workers, sweeper=not args.no_sweeper)
    signal.signal(signal.SIGTERM, lambda *_: runtime.stop_event.set())

    runtime.start()
    try:
        runtime.wait()
    except KeyboardInterrupt:
        pass
    finally:
        runtime.stop()


if __name__ == "__main__":
    main()
