"""Dead-Letter Handler — consumes the dead-letter queue.

Moves FAILED events to their terminal DEAD_LETTERED state and raises an
operator alert. Messages for events already dead-lettered are duplicates
and are simply acknowledged.
"""

from datetime import UTC, datetime

import structlog

from courier.errors import PersistenceFailure, TransportFailure
from courier.event.event import EventStatus
from courier.event.worker import load_event, release_quietly, save_event
from courier.transport.port import Delivery

logger = structlog.get_logger(__name__)


class DeadLetterHandler:
    def __init__(self, clock=None):
        self.clock = clock or (lambda: datetime.now(UTC))

    def on_dead_letter(self, delivery: Delivery) -> str | None:
        log = logger.bind(event_id=delivery.message.event_id, channel=delivery.message.channel)

        try:
            event = load_event(delivery.message.event_id)
            if event is None:
                log.warning("Dead-lettered message references unknown event, discarding")
            elif event.current_status == EventStatus.FAILED:
                event.mark_dead_lettered(self.clock())
                save_event(event)
                log.error(
                    "Notification dead-lettered, operator attention required",
                    recipient=event.recipient,
                    retry_count=event.retry_count,
                    reason=event.failure_reason,
                )
            elif event.current_status == EventStatus.DEAD_LETTERED:
                log.info("Event already dead-lettered, acknowledging duplicate")
            else:
                log.warning("Dead-lettered message for event not in FAILED state", status=event.status)
            delivery.complete()
        except (PersistenceFailure, TransportFailure) as exc:
            log.error("Dead-letter handling interrupted, releasing for redelivery", error=str(exc))
            release_quietly(delivery, log)

        return delivery.outcome
