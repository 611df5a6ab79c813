"""Delivery Worker — consumes the live queue and drives the event state machine.

For every message the worker re-reads the event from the store, attempts
delivery through the channel's gateway, and settles the message:

    success                     → DELIVERED,        delivery.complete()
    failure, below the limit    → RETRY_SCHEDULED,  delivery.retry(priority)
    failure that hits the limit → RETRY_SCHEDULED, FAILED, delivery.escalate()

Every failed attempt is counted, so an event with a limit of 3 is tried
three times before it is handed to the dead-letter queue.

Store or broker trouble while handling a message is logged and the message
is released for redelivery. Delivery failures never leave the worker.
"""

import threading
from datetime import UTC, datetime

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from courier.channel import get_gateway
from courier.config import DeliveryConfig
from courier.errors import DeliveryFailure, PersistenceFailure, TransportFailure
from courier.event.event import EventStatus, NotificationEvent
from courier.transport.port import Delivery, QueueTransport

logger = structlog.get_logger(__name__)


def load_event(event_id) -> NotificationEvent | None:
    """Fetch an event from the store; ``None`` when it does not exist."""
    try:
        return current_domain.repository_for(NotificationEvent).get(event_id)
    except ObjectNotFoundError:
        return None
    except Exception as exc:
        raise PersistenceFailure(f"Failed to load event {event_id}: {exc}") from exc


def save_event(event: NotificationEvent) -> None:
    try:
        current_domain.repository_for(NotificationEvent).add(event)
    except ValidationError:
        raise
    except Exception as exc:
        raise PersistenceFailure(f"Failed to save event {event.id}: {exc}") from exc


def release_quietly(delivery: Delivery, log) -> None:
    """Release a delivery for redelivery, logging if the broker refuses."""
    if delivery.settled:
        return
    try:
        delivery.release()
    except TransportFailure as exc:
        log.error("Failed to release message; broker redelivery will recover it", error=str(exc))


class DeliveryWorker:
    def __init__(
        self,
        transport: QueueTransport,
        config: DeliveryConfig | None = None,
        gateways=None,
        clock=None,
    ):
        self.transport = transport
        self.config = config or DeliveryConfig()
        self.gateways = gateways or get_gateway
        self.clock = clock or (lambda: datetime.now(UTC))
        self._attempts: set[threading.Thread] = set()
        self._attempts_lock = threading.Lock()

    @property
    def attempts_running(self) -> int:
        with self._attempts_lock:
            return len(self._attempts)

    def close(self, timeout: float | None = 1.0) -> None:
        """Wait up to ``timeout`` seconds for gateway calls that are still running."""
        with self._attempts_lock:
            running = list(self._attempts)
        for thread in running:
            thread.join(timeout)

    # -------------------------------------------------------------------
    # Consumer entrypoint
    # -------------------------------------------------------------------
    def on_message(self, delivery: Delivery) -> str | None:
        """Handle one live-queue message and return how it was settled."""
        message = delivery.message
        log = logger.bind(event_id=message.event_id, attempt=message.attempt, redelivered=delivery.redelivered)

        try:
            event = load_event(message.event_id)
        except PersistenceFailure as exc:
            log.error("Event store unavailable, releasing message", error=str(exc))
            release_quietly(delivery, log)
            return delivery.outcome

        try:
            if event is None:
                log.warning("Message references unknown event, discarding")
                delivery.complete()
            elif event.current_status == EventStatus.FAILED:
                # FAILED was persisted but the dead-letter publish never happened
                log.warning("Failed event redelivered, escalating to dead-letter queue")
                delivery.escalate()
            elif event.is_terminal:
                log.info("Event already settled, skipping duplicate message", status=event.status)
                delivery.complete()
            elif not event.is_deliverable:
                log.warning("Event not awaiting delivery, dropping message", status=event.status)
                delivery.complete()
            else:
                self._process(event, delivery, log)
        except (PersistenceFailure, TransportFailure) as exc:
            log.error("Message handling interrupted, releasing for redelivery", error=str(exc))
            release_quietly(delivery, log)

        return delivery.outcome

    # -------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------
    def attempt(self, event: NotificationEvent) -> None:
        """Deliver through the channel's gateway, bounded by the per-attempt timeout.

        Each attempt runs on its own thread, so the timeout covers the gateway
        call alone and never time spent waiting for a free slot.

        Raises:
            DeliveryFailure: for gateway errors, unknown channels and timeouts alike.
        """
        try:
            gateway = self.gateways(event.channel)
        except (KeyError, ValueError) as exc:
            raise DeliveryFailure(f"Unsupported channel: {event.channel}") from exc

        timeout = self.config.delivery_timeout or None
        errors: list[Exception] = []

        def _deliver():
            try:
                gateway.deliver(event)
            except Exception as exc:
                errors.append(exc)
            finally:
                with self._attempts_lock:
                    self._attempts.discard(threading.current_thread())

        thread = threading.Thread(target=_deliver, name=f"courier-deliver-{event.id}", daemon=True)
        with self._attempts_lock:
            self._attempts.add(thread)
        thread.start()
        thread.join(timeout)

        if thread.is_alive():
            raise DeliveryFailure(f"Delivery timed out after {timeout}s")
        if errors:
            error = errors[0]
            if isinstance(error, DeliveryFailure):
                raise error
            if isinstance(error, TimeoutError):
                raise DeliveryFailure(str(error) or "Gateway timed out") from error
            raise DeliveryFailure(str(error) or error.__class__.__name__) from error

    def _process(self, event: NotificationEvent, delivery: Delivery, log) -> None:
        log.info("Delivering notification", channel=event.channel, retry_count=event.retry_count)

        try:
            self.attempt(event)
        except DeliveryFailure as failure:
            self._handle_failure(event, delivery, failure.reason, log)
            return

        event.mark_delivered(self.clock())
        save_event(event)
        delivery.complete()
        log.info("Notification delivered", channel=event.channel)

    def _handle_failure(self, event: NotificationEvent, delivery: Delivery, reason: str, log) -> None:
        now = self.clock()

        if event.can_retry:
            event.schedule_retry(reason, now)
            save_event(event)
            log.warning(
                "Delivery attempt failed",
                reason=reason,
                retry_count=event.retry_count,
                max_retries=event.max_retries,
            )
            if event.can_retry:
                delivery.retry(event.publish_priority)
                return

        event.mark_failed(reason, now)
        save_event(event)
        log.error("Max retries exceeded, moving to dead-letter queue", reason=reason, retry_count=event.retry_count)
        delivery.escalate()
