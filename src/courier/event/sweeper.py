"""Scheduled Sweeper — promotes due SCHEDULED events onto the live queue.

Each promotion persists QUEUED before publishing, so a crash between the two
leaves a QUEUED row that the optional reconciliation pass re-publishes.
Overlapping sweeps are never run; a sweep requested while one is in
progress returns immediately.
"""

import threading
from datetime import UTC, datetime, timedelta

import structlog
from protean.utils.globals import current_domain

from courier.config import SweepConfig
from courier.domain import courier
from courier.errors import DispatchError, PersistenceFailure, TransportFailure
from courier.event.event import NotificationEvent, as_utc
from courier.event.worker import save_event
from courier.rule.rule import resolve_priority
from courier.transport.port import QueueMessage, QueueTransport, Route

logger = structlog.get_logger(__name__)


class ScheduledSweeper:
    def __init__(self, transport: QueueTransport, config: SweepConfig | None = None, clock=None):
        self.transport = transport
        self.config = config or SweepConfig()
        self.clock = clock or (lambda: datetime.now(UTC))
        self._guard = threading.Lock()

    @property
    def running(self) -> bool:
        return self._guard.locked()

    def _repository(self):
        return current_domain.repository_for(NotificationEvent)

    def _publish(self, event: NotificationEvent) -> None:
        try:
            priority = resolve_priority(event)
        except Exception as exc:
            raise PersistenceFailure(f"Failed to resolve priority: {exc}") from exc
        try:
            self.transport.publish(Route.SEND, QueueMessage.for_event(event, priority), priority)
        except TransportFailure:
            raise
        except Exception as exc:
            raise TransportFailure(f"Failed to publish notification: {exc}") from exc

    # -------------------------------------------------------------------
    # Sweep
    # -------------------------------------------------------------------
    def sweep(self, now: datetime | None = None) -> int:
        """Promote every due SCHEDULED event; returns how many were published.

        Raises:
            PersistenceFailure: the store could not be read or written.
            TransportFailure: a promoted event could not be published; it
                stays QUEUED for reconciliation.
        """
        if not self._guard.acquire(blocking=False):
            logger.info("Sweep already in progress, skipping")
            return 0

        try:
            as_of = as_utc(now) or self.clock()
            promoted = self._promote_due(as_of)
            if self.config.reconcile_after > 0:
                promoted += self._reconcile(as_of, self.config.reconcile_after)
            return promoted
        finally:
            self._guard.release()

    def _promote_due(self, as_of: datetime) -> int:
        promoted = 0
        while True:
            try:
                batch = self._repository().due_scheduled(as_of, limit=self.config.batch_size)
            except Exception as exc:
                raise PersistenceFailure(f"Failed to query scheduled events: {exc}") from exc
            due = [event for event in batch if event.is_due(as_of)]
            if not due:
                break

            for event in due:
                event.mark_queued(as_of)
                save_event(event)
                self._publish(event)
                promoted += 1
                logger.info(
                    "Scheduled notification queued",
                    event_id=str(event.id),
                    scheduled_at=str(event.scheduled_at),
                )

            if len(batch) < self.config.batch_size:
                break

        if promoted:
            logger.info("Sweep complete", promoted=promoted)
        return promoted

    def reconcile(self, now: datetime | None = None, older_than: float | None = None) -> int:
        """Re-publish QUEUED events untouched for longer than ``older_than`` seconds.

        ``older_than`` defaults to the configured ``reconcile_after``; zero disables.
        """
        grace = self.config.reconcile_after if older_than is None else older_than
        if grace <= 0:
            return 0
        if not self._guard.acquire(blocking=False):
            return 0
        try:
            return self._reconcile(as_utc(now) or self.clock(), grace)
        finally:
            self._guard.release()

    def _reconcile(self, as_of: datetime, grace: float) -> int:
        cutoff = as_of - timedelta(seconds=grace)
        try:
            stuck = self._repository().stuck_queued(cutoff, limit=self.config.batch_size)
        except Exception as exc:
            raise PersistenceFailure(f"Failed to query queued events: {exc}") from exc

        for event in stuck:
            event.mark_republished(as_of)
            save_event(event)
            self._publish(event)
            logger.warning("Stale queued notification re-published", event_id=str(event.id))
        return len(stuck)


class SweepTimer(threading.Thread):
    """Background thread that runs a sweep every ``interval`` seconds until stopped."""

    def __init__(self, sweeper: ScheduledSweeper, interval: float | None = None):
        super().__init__(name="courier-sweeper", daemon=True)
        self.sweeper = sweeper
        self.interval = interval if interval is not None else sweeper.config.interval
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def run_once(self) -> int:
        with courier.domain_context():
            try:
                return self.sweeper.sweep()
            except DispatchError as exc:
                logger.error("Sweep failed, will retry next interval", error=str(exc))
                return 0

    def run(self) -> None:
        logger.info("Sweeper started", interval=self.interval)
        while not self._stop_event.wait(self.interval):
            self.run_once()
        logger.info("Sweeper stopped")
