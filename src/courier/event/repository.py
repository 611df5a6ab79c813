"""Repository for the NotificationEvent aggregate — the event store query surface."""

from datetime import datetime

from courier.domain import courier
from courier.event.event import EventStatus, NotificationEvent, as_utc


@courier.repository(part_of=NotificationEvent)
class NotificationEventRepository:
    """Event store for notification events.

    The base repository provides ``get`` and ``add``; the methods here are the
    queries the orchestrator and the status API rely on.
    """

    def due_scheduled(self, as_of: datetime, limit: int = 100) -> list[NotificationEvent]:
        """SCHEDULED events whose dispatch time is at or before ``as_of``."""
        return (
            self._dao.query.filter(
                status=EventStatus.SCHEDULED.value,
                scheduled_at__lte=as_utc(as_of),
            )
            .limit(limit)
            .all()
            .items
        )

    def stuck_queued(self, older_than: datetime, limit: int = 100) -> list[NotificationEvent]:
        """QUEUED events not touched since ``older_than``."""
        return (
            self._dao.query.filter(
                status=EventStatus.QUEUED.value,
                updated_at__lt=as_utc(older_than),
            )
            .limit(limit)
            .all()
            .items
        )

    def find(
        self,
        status: str | None = None,
        priority: str | None = None,
        channel: str | None = None,
        created_since: datetime | None = None,
        limit: int = 100,
    ) -> list[NotificationEvent]:
        """Filter events, newest first. Filters left as ``None`` are ignored."""
        criteria = {}
        if status:
            criteria["status"] = status.strip().upper()
        if priority:
            criteria["priority"] = priority.strip().upper()
        if channel:
            criteria["channel"] = channel.strip().upper()
        if created_since is not None:
            criteria["created_at__gte"] = as_utc(created_since)

        query = self._dao.query
        if criteria:
            query = query.filter(**criteria)
        return query.order_by("-created_at").limit(limit).all().items
