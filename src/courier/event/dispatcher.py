"""Dispatcher — accepts notification requests and hands them to the queue.

Validates and normalises a request, persists the event with its final
pre-publish status, and publishes immediate events to the live route.
Deferred events are left SCHEDULED for the sweeper.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from courier.config import DeliveryConfig
from courier.errors import PersistenceFailure, TransportFailure
from courier.event.event import Channel, NotificationEvent, Priority, as_utc
from courier.rule.rule import resolve_retry_limit
from courier.transport.port import QueueMessage, QueueTransport, Route

logger = structlog.get_logger(__name__)

_CHANNELS = {channel.value for channel in Channel}
_PRIORITIES = {priority.value for priority in Priority}


@dataclass(frozen=True)
class NotificationRequest:
    recipient: str | None
    message: str | None
    channel: str | None = None
    priority: str | None = None
    notification_type: str | None = None
    subject: str | None = None
    scheduled_time: str | datetime | None = None


@dataclass(frozen=True)
class SubmissionReceipt:
    event_id: str
    status: str
    publish_priority: int | None = None


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_scheduled_time(value) -> datetime | None:
    """Parse an ISO-8601 date-time; naive values are taken as UTC.

    Raises:
        ValueError: when the value cannot be parsed.
    """
    if _blank(value):
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str):
        raise ValueError(f"Unsupported scheduled time: {value!r}")
    return as_utc(datetime.fromisoformat(value.strip()))


def normalize(request: NotificationRequest) -> dict:
    """Validate a request and return the canonical field values.

    Raises:
        ValidationError: listing every invalid field.
    """
    errors: dict[str, list[str]] = {}

    if _blank(request.recipient):
        errors.setdefault("recipient", []).append("Recipient is required")
    if _blank(request.message):
        errors.setdefault("message", []).append("Message is required")

    channel = Channel.EMAIL.value if _blank(request.channel) else str(request.channel).strip().upper()
    if channel not in _CHANNELS:
        errors.setdefault("channel", []).append(
            f"Invalid channel: {channel}. Allowed: {', '.join(sorted(_CHANNELS))}"
        )

    priority = Priority.MEDIUM.value if _blank(request.priority) else str(request.priority).strip().upper()
    if priority not in _PRIORITIES:
        errors.setdefault("priority", []).append(
            f"Invalid priority: {priority}. Allowed: LOW, MEDIUM, HIGH, CRITICAL"
        )

    scheduled_at = None
    try:
        scheduled_at = parse_scheduled_time(request.scheduled_time)
    except ValueError:
        errors.setdefault("scheduled_time", []).append(
            "Invalid scheduled time format. Use ISO-8601, e.g. 2026-01-06T15:30:00"
        )

    if errors:
        raise ValidationError(errors)

    return {
        "recipient": request.recipient.strip(),
        "message": request.message.strip(),
        "channel": channel,
        "priority": priority,
        "notification_type": None if _blank(request.notification_type) else request.notification_type.strip(),
        "subject": None if _blank(request.subject) else request.subject.strip(),
        "scheduled_at": scheduled_at,
    }


class Dispatcher:
    def __init__(self, transport: QueueTransport, config: DeliveryConfig | None = None, clock=None):
        self.transport = transport
        self.config = config or DeliveryConfig()
        self.clock = clock or (lambda: datetime.now(UTC))

    def submit(self, request: NotificationRequest) -> SubmissionReceipt:
        """Persist a notification event and enqueue it unless deferred.

        Raises:
            ValidationError: the request is malformed; nothing was persisted.
            PersistenceFailure: the event could not be stored.
            TransportFailure: the event was stored but could not be published.
        """
        fields = normalize(request)
        now = self.clock()

        repo = current_domain.repository_for(NotificationEvent)
        try:
            max_retries = resolve_retry_limit(fields["notification_type"], self.config.retry_limit)
            event = NotificationEvent.create(**fields, max_retries=max_retries, now=now)
            repo.add(event)
        except ValidationError:
            raise
        except Exception as exc:
            logger.error("Failed to persist notification event", error=str(exc))
            raise PersistenceFailure(f"Failed to persist notification: {exc}") from exc

        log = logger.bind(event_id=str(event.id), channel=event.channel, priority=event.priority)
        log.info("Notification event created", status=event.status)

        if event.is_deferred:
            log.info("Notification deferred until scheduled time", scheduled_at=str(event.scheduled_at))
            return SubmissionReceipt(event_id=str(event.id), status=event.status)

        publish_priority = event.publish_priority

        try:
            self.transport.publish(Route.SEND, QueueMessage.for_event(event, publish_priority), publish_priority)
        except TransportFailure as exc:
            log.error("Queue publish failed, event left QUEUED for re-publish", error=str(exc))
            raise
        except Exception as exc:
            log.error("Queue publish failed, event left QUEUED for re-publish", error=str(exc))
            raise TransportFailure(f"Failed to publish notification: {exc}") from exc

        log.info("Notification published", publish_priority=publish_priority)
        return SubmissionReceipt(event_id=str(event.id), status=event.status, publish_priority=publish_priority)
