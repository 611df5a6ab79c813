"""Tests for NotificationEvent creation, queries and lifecycle events."""

from datetime import UTC, datetime, timedelta

import pytest
from protean.exceptions import ValidationError

from courier.event.event import (
    DEFAULT_SUBJECT,
    AuditAction,
    Channel,
    EventStatus,
    NotificationEvent,
    Priority,
)
from courier.event.events import NotificationCreated

NOW = datetime(2026, 1, 6, 12, 0, tzinfo=UTC)


def _make_event(**overrides):
    defaults = {
        "recipient": "user@example.com",
        "message": "Your order has shipped",
        "channel": Channel.EMAIL.value,
        "priority": Priority.HIGH.value,
        "notification_type": "ORDER_SHIPPED",
        "now": NOW,
    }
    defaults.update(overrides)
    return NotificationEvent.create(**defaults)


class TestNotificationEventCreation:
    def test_immediate_event_is_queued(self):
        event = _make_event()
        assert event.status == EventStatus.QUEUED.value
        assert event.retry_count == 0
        assert event.max_retries == 3
        assert event.created_at == NOW
        assert event.updated_at == NOW

    def test_future_event_is_scheduled(self):
        event = _make_event(scheduled_at=NOW + timedelta(hours=1))
        assert event.status == EventStatus.SCHEDULED.value
        assert event.is_deferred is True

    def test_past_schedule_is_queued_immediately(self):
        event = _make_event(scheduled_at=NOW - timedelta(minutes=5))
        assert event.status == EventStatus.QUEUED.value

    def test_schedule_equal_to_now_is_not_deferred(self):
        event = _make_event(scheduled_at=NOW)
        assert event.status == EventStatus.QUEUED.value

    def test_naive_schedule_is_taken_as_utc(self):
        event = _make_event(scheduled_at=datetime(2026, 1, 6, 13, 0))
        assert event.status == EventStatus.SCHEDULED.value
        assert event.scheduled_at.tzinfo is not None

    def test_subject_defaults_to_notification(self):
        event = _make_event(subject=None)
        assert event.subject == DEFAULT_SUBJECT

    def test_explicit_subject_is_kept(self):
        event = _make_event(subject="Shipping update")
        assert event.subject == "Shipping update"

    def test_max_retries_is_configurable(self):
        event = _make_event(max_retries=5)
        assert event.max_retries == 5

    def test_each_event_gets_unique_id(self):
        assert _make_event().id != _make_event().id

    def test_unknown_channel_rejected(self):
        with pytest.raises(ValidationError):
            _make_event(channel="FAX")

    def test_missing_recipient_rejected(self):
        with pytest.raises(ValidationError):
            _make_event(recipient=None)


class TestNotificationCreatedEvent:
    def test_created_event_raised_for_queued(self):
        event = _make_event()
        assert len(event._events) == 1
        raised = event._events[0]
        assert isinstance(raised, NotificationCreated)
        assert raised.event_id == str(event.id)
        assert raised.action == AuditAction.CREATED.value
        assert raised.detail == "Notification created and queued"
        assert raised.status == EventStatus.QUEUED.value

    def test_created_event_detail_for_scheduled(self):
        scheduled_at = NOW + timedelta(days=1)
        event = _make_event(scheduled_at=scheduled_at)
        raised = event._events[0]
        assert raised.detail == f"Notification scheduled for {scheduled_at.isoformat()}"
        assert raised.status == EventStatus.SCHEDULED.value


class TestNotificationEventQueries:
    def test_queued_event_is_deliverable(self):
        assert _make_event().is_deliverable is True

    def test_scheduled_event_is_not_deliverable(self):
        event = _make_event(scheduled_at=NOW + timedelta(hours=1))
        assert event.is_deliverable is False

    def test_is_due_at_schedule_time(self):
        scheduled_at = NOW + timedelta(hours=1)
        event = _make_event(scheduled_at=scheduled_at)
        assert event.is_due(NOW) is False
        assert event.is_due(scheduled_at) is True
        assert event.is_due(scheduled_at + timedelta(seconds=1)) is True

    def test_queued_event_is_never_due(self):
        assert _make_event().is_due(NOW + timedelta(days=1)) is False

    def test_publish_priority_follows_priority_name(self):
        assert _make_event(priority=Priority.CRITICAL.value).publish_priority == 10
        assert _make_event(priority=Priority.LOW.value).publish_priority == 1

    def test_can_retry_until_limit(self):
        event = _make_event(max_retries=1)
        assert event.can_retry is True
        event.schedule_retry("boom", NOW)
        assert event.can_retry is False

    def test_zero_retry_limit_never_retries(self):
        assert _make_event(max_retries=0).can_retry is False
