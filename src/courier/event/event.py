"""NotificationEvent aggregate — one notification and its delivery lifecycle.

Recipient, message, channel, priority and schedule are fixed at creation.
Status, retry count and failure reason are mutated only through the
transition methods below, each of which raises a domain event that the
audit trail records.

State Machine:
    SCHEDULED → QUEUED
    QUEUED → DELIVERED
    QUEUED → RETRY_SCHEDULED → (picked up again) → DELIVERED | RETRY_SCHEDULED | FAILED
    RETRY_SCHEDULED → FAILED           (the attempt that reached the limit)
    QUEUED → FAILED → DEAD_LETTERED    (zero retry limit)
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Integer, String, Text

from courier.domain import courier
from courier.event.events import (
    NotificationCreated,
    NotificationDeadLettered,
    NotificationDelivered,
    NotificationFailed,
    NotificationQueued,
    NotificationRepublished,
    NotificationRetryScheduled,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Channel(Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    PUSH = "PUSH"


class Priority(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class EventStatus(Enum):
    SCHEDULED = "SCHEDULED"
    QUEUED = "QUEUED"
    RETRY_SCHEDULED = "RETRY_SCHEDULED"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    DEAD_LETTERED = "DEAD_LETTERED"


class AuditAction(Enum):
    CREATED = "CREATED"
    QUEUED = "QUEUED"
    REPUBLISHED = "REPUBLISHED"
    SENT = "SENT"
    RETRY_SCHEDULED = "RETRY_SCHEDULED"
    FAILED = "FAILED"
    DEAD_LETTERED = "DEAD_LETTERED"


DEFAULT_SUBJECT = "Notification"

# Numeric transport priority, 1 (lowest) to 10 (highest)
_PRIORITY_VALUES = {
    Priority.CRITICAL.value: 10,
    Priority.HIGH.value: 7,
    Priority.MEDIUM.value: 5,
    Priority.LOW.value: 1,
}
UNRECOGNIZED_PRIORITY_VALUE = 3


def priority_value(priority) -> int:
    """Map a priority name to its numeric publish priority.

    Total and case-insensitive: anything unrecognised maps to 3.
    """
    if isinstance(priority, Priority):
        priority = priority.value
    if not isinstance(priority, str):
        return UNRECOGNIZED_PRIORITY_VALUE
    return _PRIORITY_VALUES.get(priority.strip().upper(), UNRECOGNIZED_PRIORITY_VALUE)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalise a datetime to an aware UTC value; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# ---------------------------------------------------------------------------
# State Machine
# ---------------------------------------------------------------------------
_VALID_TRANSITIONS = {
    EventStatus.SCHEDULED: {EventStatus.QUEUED},
    EventStatus.QUEUED: {
        EventStatus.DELIVERED,
        EventStatus.RETRY_SCHEDULED,
        EventStatus.FAILED,
    },
    EventStatus.RETRY_SCHEDULED: {
        EventStatus.QUEUED,
        EventStatus.DELIVERED,
        EventStatus.RETRY_SCHEDULED,
        EventStatus.FAILED,
    },
    EventStatus.FAILED: {EventStatus.DEAD_LETTERED},
    EventStatus.DELIVERED: set(),  # Terminal
    EventStatus.DEAD_LETTERED: set(),  # Terminal
}

DELIVERABLE_STATUSES = frozenset({EventStatus.QUEUED, EventStatus.RETRY_SCHEDULED})
TERMINAL_STATUSES = frozenset({EventStatus.DELIVERED, EventStatus.DEAD_LETTERED})


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@courier.aggregate
class NotificationEvent:
    """A single notification bound for one channel."""

    # Immutable on create
    recipient: String(max_length=500, required=True)
    message: Text(required=True)
    subject: String(max_length=500)
    channel: String(choices=Channel, required=True)
    notification_type: String(max_length=200)
    priority: String(choices=Priority, default=Priority.MEDIUM.value)
    scheduled_at: DateTime()

    # Lifecycle
    status: String(choices=EventStatus, required=True)
    retry_count: Integer(default=0, min_value=0)
    max_retries: Integer(default=3, min_value=0)
    failure_reason: Text()

    created_at: DateTime()
    updated_at: DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        recipient,
        message,
        channel=Channel.EMAIL.value,
        priority=Priority.MEDIUM.value,
        notification_type=None,
        subject=None,
        scheduled_at=None,
        max_retries=3,
        now=None,
    ):
        """Create an event as SCHEDULED when due in the future, otherwise QUEUED."""
        now = as_utc(now) or datetime.now(UTC)
        scheduled_at = as_utc(scheduled_at)
        deferred = scheduled_at is not None and scheduled_at > now
        status = EventStatus.SCHEDULED if deferred else EventStatus.QUEUED

        event = cls(
            recipient=recipient,
            message=message,
            subject=subject or DEFAULT_SUBJECT,
            channel=channel,
            notification_type=notification_type,
            priority=priority,
            scheduled_at=scheduled_at,
            status=status.value,
            retry_count=0,
            max_retries=max_retries,
            created_at=now,
            updated_at=now,
        )

        detail = (
            f"Notification scheduled for {scheduled_at.isoformat()}"
            if deferred
            else "Notification created and queued"
        )
        event.raise_(
            NotificationCreated(
                event_id=str(event.id),
                action=AuditAction.CREATED.value,
                detail=detail,
                occurred_at=now,
                channel=channel,
                priority=priority,
                status=status.value,
                notification_type=notification_type,
                scheduled_at=scheduled_at,
            )
        )

        return event

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> EventStatus:
        return EventStatus(self.status)

    @property
    def is_deferred(self) -> bool:
        return self.current_status == EventStatus.SCHEDULED

    @property
    def is_deliverable(self) -> bool:
        return self.current_status in DELIVERABLE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.current_status in TERMINAL_STATUSES

    @property
    def can_retry(self) -> bool:
        return self.retry_count < self.max_retries

    @property
    def publish_priority(self) -> int:
        return priority_value(self.priority)

    def is_due(self, as_of) -> bool:
        return (
            self.current_status == EventStatus.SCHEDULED
            and self.scheduled_at is not None
            and as_utc(self.scheduled_at) <= as_utc(as_of)
        )

    # -------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        current = self.current_status
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def _touch(self, now):
        """Advance ``updated_at``; it never moves backwards."""
        now = as_utc(now) or datetime.now(UTC)
        previous = as_utc(self.updated_at)
        if previous is not None and previous > now:
            now = previous
        self.updated_at = now
        return now

    def mark_queued(self, now=None):
        """Promote a due SCHEDULED event to the live queue."""
        self._assert_can_transition(EventStatus.QUEUED)

        now = self._touch(now)
        self.status = EventStatus.QUEUED.value

        self.raise_(
            NotificationQueued(
                event_id=str(self.id),
                action=AuditAction.QUEUED.value,
                detail="Scheduled notification is due and was queued",
                occurred_at=now,
            )
        )

    def mark_republished(self, now=None):
        """Record that a QUEUED event was published again by reconciliation."""
        if self.current_status != EventStatus.QUEUED:
            raise ValidationError({"status": ["Only queued notifications can be republished"]})

        now = self._touch(now)

        self.raise_(
            NotificationRepublished(
                event_id=str(self.id),
                action=AuditAction.REPUBLISHED.value,
                detail="Queued notification re-published by reconciliation",
                occurred_at=now,
            )
        )

    def mark_delivered(self, now=None):
        self._assert_can_transition(EventStatus.DELIVERED)

        now = self._touch(now)
        self.status = EventStatus.DELIVERED.value

        self.raise_(
            NotificationDelivered(
                event_id=str(self.id),
                action=AuditAction.SENT.value,
                detail=f"Notification sent successfully to {self.recipient}",
                occurred_at=now,
                channel=self.channel,
            )
        )

    def schedule_retry(self, reason, now=None):
        """Count a failed attempt against the retry limit.

        Once the count reaches ``max_retries`` the caller fails the event
        instead of re-publishing it.
        """
        self._assert_can_transition(EventStatus.RETRY_SCHEDULED)
        if not self.can_retry:
            raise ValidationError({"retry_count": ["Maximum retry attempts exceeded"]})

        now = self._touch(now)
        self.failure_reason = reason
        self.retry_count = self.retry_count + 1
        self.status = EventStatus.RETRY_SCHEDULED.value

        self.raise_(
            NotificationRetryScheduled(
                event_id=str(self.id),
                action=AuditAction.RETRY_SCHEDULED.value,
                detail=f"Delivery attempt {self.retry_count} of {self.max_retries} failed: {reason}",
                occurred_at=now,
                reason=reason,
                retry_count=self.retry_count,
                max_retries=self.max_retries,
            )
        )

    def mark_failed(self, reason, now=None):
        """Record the final failed attempt once retries are exhausted."""
        self._assert_can_transition(EventStatus.FAILED)
        if self.can_retry:
            raise ValidationError({"retry_count": ["Retries remain; schedule a retry instead"]})

        now = self._touch(now)
        self.failure_reason = reason
        self.status = EventStatus.FAILED.value

        self.raise_(
            NotificationFailed(
                event_id=str(self.id),
                action=AuditAction.FAILED.value,
                detail=f"Max retries ({self.max_retries}) exceeded: {reason}",
                occurred_at=now,
                reason=reason,
                retry_count=self.retry_count,
            )
        )

    def mark_dead_lettered(self, now=None):
        self._assert_can_transition(EventStatus.DEAD_LETTERED)

        now = self._touch(now)
        self.status = EventStatus.DEAD_LETTERED.value

        self.raise_(
            NotificationDeadLettered(
                event_id=str(self.id),
                action=AuditAction.DEAD_LETTERED.value,
                detail=f"Moved to dead-letter queue after max retries: {self.failure_reason}",
                occurred_at=now,
                reason=self.failure_reason,
            )
        )
