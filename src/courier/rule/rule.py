"""NotificationRule aggregate — per-notification-type delivery overrides.

An active rule for a notification type sets the publish priority used for
that type and the retry limit applied to events created for it. Types with
no active rule fall back to the event's own priority and the configured
retry limit.
"""

from datetime import UTC, datetime

import structlog
from protean.fields import Boolean, DateTime, Integer, String
from protean.utils.globals import current_domain

from courier.domain import courier
from courier.event.event import NotificationEvent, Priority, priority_value

logger = structlog.get_logger(__name__)


@courier.aggregate
class NotificationRule:
    notification_type: String(max_length=200, required=True, unique=True)
    priority: String(choices=Priority, default=Priority.MEDIUM.value)
    retry_limit: Integer(default=3, min_value=0, max_value=20)
    is_active: Boolean(default=True)

    created_at: DateTime()
    updated_at: DateTime()

    @classmethod
    def create(cls, notification_type, priority=Priority.MEDIUM.value, retry_limit=3, is_active=True):
        now = datetime.now(UTC)
        return cls(
            notification_type=notification_type,
            priority=priority,
            retry_limit=retry_limit,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )

    def update(self, priority=None, retry_limit=None, is_active=None):
        if priority is not None:
            self.priority = priority
        if retry_limit is not None:
            self.retry_limit = retry_limit
        if is_active is not None:
            self.is_active = is_active
        self.updated_at = datetime.now(UTC)


def find_rule(notification_type) -> NotificationRule | None:
    """Return the rule for a notification type, active or not."""
    if not notification_type:
        return None
    rules = (
        current_domain.repository_for(NotificationRule)
        ._dao.query.filter(notification_type=notification_type)
        .all()
        .items
    )
    return rules[0] if rules else None


def active_rule(notification_type) -> NotificationRule | None:
    rule = find_rule(notification_type)
    if rule is not None and rule.is_active:
        return rule
    return None


def resolve_priority(event: NotificationEvent) -> int:
    """Numeric publish priority for an event, honouring an active rule for its type."""
    rule = active_rule(event.notification_type)
    if rule is not None:
        logger.debug(
            "Priority taken from notification rule",
            event_id=str(event.id),
            notification_type=event.notification_type,
            priority=rule.priority,
        )
        return priority_value(rule.priority)
    return priority_value(event.priority)


def resolve_retry_limit(notification_type, default: int) -> int:
    rule = active_rule(notification_type)
    return rule.retry_limit if rule is not None else default
