"""AuditLogEntry — append-only trail of every NotificationEvent transition.

The projector is the only writer. It consumes the aggregate's domain events,
so the state machine never touches audit storage directly and nothing reads
the trail to make delivery decisions.
"""

from uuid import uuid4

from protean.core.projector import on
from protean.fields import DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from courier.domain import courier
from courier.event.event import NotificationEvent
from courier.event.events import (
    NotificationCreated,
    NotificationDeadLettered,
    NotificationDelivered,
    NotificationFailed,
    NotificationQueued,
    NotificationRepublished,
    NotificationRetryScheduled,
)


@courier.projection
class AuditLogEntry:
    entry_id: Identifier(identifier=True, required=True)
    event_id: Identifier(required=True)
    action: String(required=True, max_length=50)
    details: Text()
    timestamp: DateTime(required=True)
    position: Integer(required=True)


def audit_trail(event_id) -> list[AuditLogEntry]:
    """Audit entries for one event in insertion order."""
    return (
        current_domain.repository_for(AuditLogEntry)
        ._dao.query.filter(event_id=str(event_id))
        .order_by("position")
        .limit(1000)
        .all()
        .items
    )


@courier.projector(projector_for=AuditLogEntry, aggregates=[NotificationEvent])
class AuditTrailProjector:
    def _append(self, event):
        repo = current_domain.repository_for(AuditLogEntry)
        position = repo._dao.query.filter(event_id=str(event.event_id)).all().total + 1
        repo.add(
            AuditLogEntry(
                entry_id=str(uuid4()),
                event_id=event.event_id,
                action=event.action,
                details=event.detail,
                timestamp=event.occurred_at,
                position=position,
            )
        )

    @on(NotificationCreated)
    def on_created(self, event):
        self._append(event)

    @on(NotificationQueued)
    def on_queued(self, event):
        self._append(event)

    @on(NotificationRepublished)
    def on_republished(self, event):
        self._append(event)

    @on(NotificationDelivered)
    def on_delivered(self, event):
        self._append(event)

    @on(NotificationRetryScheduled)
    def on_retry_scheduled(self, event):
        self._append(event)

    @on(NotificationFailed)
    def on_failed(self, event):
        self._append(event)

    @on(NotificationDeadLettered)
    def on_dead_lettered(self, event):
        self._append(event)
