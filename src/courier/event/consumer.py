"""Blocking consumer loop shared by the delivery workers and the dead-letter handler."""

import threading

import structlog

from courier.domain import courier
from courier.errors import TransportFailure
from courier.transport.port import QueueTransport, Route
from courier.utils.logging import add_context, clear_context

logger = structlog.get_logger(__name__)


def consume_forever(
    transport: QueueTransport,
    route: Route,
    handler,
    stop: threading.Event,
    poll_timeout: float = 1.0,
) -> int:
    """Feed messages from ``route`` to ``handler`` until ``stop`` is set.

    Each message is handled inside its own domain context. Returns the
    number of messages handled.
    """
    handled = 0
    add_context(consumer=threading.current_thread().name)
    log = logger.bind(queue=transport.queue_name(route))
    log.info("Consumer started")

    while not stop.is_set():
        try:
            delivery = transport.consume(route, timeout=poll_timeout)
        except TransportFailure as exc:
            log.error("Consume failed, backing off", error=str(exc))
            stop.wait(poll_timeout)
            continue

        if delivery is None:
            continue

        with courier.domain_context():
            try:
                handler(delivery)
            except Exception:
                log.exception("Unhandled error while handling message", event_id=delivery.message.event_id)
                if not delivery.settled:
                    try:
                        delivery.release()
                    except TransportFailure as exc:
                        log.error("Failed to release message", error=str(exc))
        handled += 1

    log.info("Consumer stopped", handled=handled)
    clear_context()
    return handled
