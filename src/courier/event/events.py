"""Domain events for the NotificationEvent aggregate.

Each event is one state transition. They all carry the same audit envelope
(``event_id``, ``action``, ``detail``, ``occurred_at``) so the audit trail can
consume them without knowing the state machine.
"""

from protean.fields import DateTime, Identifier, Integer, String, Text

from courier.domain import courier


@courier.event(part_of="NotificationEvent")
class NotificationCreated:
    """A notification request was accepted and persisted."""

    __version__ = 1

    event_id: Identifier(required=True)
    action: String(required=True, max_length=50)
    detail: Text()
    occurred_at: DateTime(required=True)
    channel: String(required=True, max_length=20)
    priority: String(required=True, max_length=20)
    status: String(required=True, max_length=30)
    notification_type: String(max_length=200)
    scheduled_at: DateTime()


@courier.event(part_of="NotificationEvent")
class NotificationQueued:
    """A scheduled notification became due and was promoted to the live queue."""

    __version__ = 1

    event_id: Identifier(required=True)
    action: String(required=True, max_length=50)
    detail: Text()
    occurred_at: DateTime(required=True)


@courier.event(part_of="NotificationEvent")
class NotificationRepublished:
    """A QUEUED notification was published again by reconciliation."""

    __version__ = 1

    event_id: Identifier(required=True)
    action: String(required=True, max_length=50)
    detail: Text()
    occurred_at: DateTime(required=True)


@courier.event(part_of="NotificationEvent")
class NotificationDelivered:
    """The channel gateway accepted the notification."""

    __version__ = 1

    event_id: Identifier(required=True)
    action: String(required=True, max_length=50)
    detail: Text()
    occurred_at: DateTime(required=True)
    channel: String(required=True, max_length=20)


@courier.event(part_of="NotificationEvent")
class NotificationRetryScheduled:
    """A delivery attempt failed and the notification was re-queued."""

    __version__ = 1

    event_id: Identifier(required=True)
    action: String(required=True, max_length=50)
    detail: Text()
    occurred_at: DateTime(required=True)
    reason: Text(required=True)
    retry_count: Integer(required=True)
    max_retries: Integer(required=True)


@courier.event(part_of="NotificationEvent")
class NotificationFailed:
    """A delivery attempt failed with no retries left."""

    __version__ = 1

    event_id: Identifier(required=True)
    action: String(required=True, max_length=50)
    detail: Text()
    occurred_at: DateTime(required=True)
    reason: Text(required=True)
    retry_count: Integer(required=True)


@courier.event(part_of="NotificationEvent")
class NotificationDeadLettered:
    """A failed notification reached its terminal dead-letter state."""

    __version__ = 1

    event_id: Identifier(required=True)
    action: String(required=True, max_length=50)
    detail: Text()
    occurred_at: DateTime(required=True)
    reason: Text()
