"""FastAPI routes for Courier.

Thin adapters over the Dispatcher, the event store queries and the audit
trail. No business logic — just schema→request→response translation.
"""

from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, HTTPException, Query
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from courier.api.schemas import (
    AuditEntryResponse,
    AuditTrailResponse,
    HealthResponse,
    NotificationListResponse,
    NotificationResponse,
    ProcessScheduledRequest,
    ProcessScheduledResponse,
    RuleResponse,
    SendNotificationRequest,
    SendNotificationResponse,
    UpsertRuleRequest,
)
from courier.audit.audit_log import audit_trail
from courier.event.dispatcher import NotificationRequest
from courier.event.event import NotificationEvent, priority_value
from courier.rule.rule import NotificationRule, find_rule
from courier.services import get_services
from courier.transport.memory import InMemoryQueueTransport

router = APIRouter(prefix="/notifications", tags=["notifications"])

_DATE_RANGES = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "all": None,
}


def _to_response(event: NotificationEvent) -> NotificationResponse:
    return NotificationResponse(
        event_id=str(event.id),
        recipient=event.recipient,
        subject=event.subject,
        message=event.message,
        channel=event.channel,
        priority=event.priority,
        notification_type=event.notification_type,
        status=event.status,
        retry_count=event.retry_count,
        max_retries=event.max_retries,
        failure_reason=event.failure_reason,
        scheduled_at=event.scheduled_at,
        created_at=event.created_at,
        updated_at=event.updated_at,
    )


def _list_response(events) -> NotificationListResponse:
    return NotificationListResponse(count=len(events), notifications=[_to_response(e) for e in events])


def _rule_response(rule: NotificationRule) -> RuleResponse:
    return RuleResponse(
        notification_type=rule.notification_type,
        priority=rule.priority,
        publish_priority=priority_value(rule.priority),
        retry_limit=rule.retry_limit,
        is_active=rule.is_active,
    )


def _get_event(event_id: str) -> NotificationEvent:
    try:
        return current_domain.repository_for(NotificationEvent).get(event_id)
    except ObjectNotFoundError:
        raise HTTPException(status_code=404, detail=f"Notification {event_id} not found")


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------
@router.post("/send", status_code=202, response_model=SendNotificationResponse)
async def send_notification(body: SendNotificationRequest) -> SendNotificationResponse:
    """Accept a notification for delivery, now or at its scheduled time."""
    receipt = get_services().dispatcher.submit(
        NotificationRequest(
            recipient=body.recipient,
            message=body.message,
            channel=body.channel,
            priority=body.priority,
            notification_type=body.notification_type,
            subject=body.subject,
            scheduled_time=body.scheduled_time,
        )
    )
    message = (
        "Notification scheduled for later delivery"
        if receipt.status == "SCHEDULED"
        else "Notification queued for delivery"
    )
    return SendNotificationResponse(event_id=receipt.event_id, event_status=receipt.status, message=message)


# ---------------------------------------------------------------------------
# Status and history
# ---------------------------------------------------------------------------
@router.get("/status/{event_id}", response_model=NotificationResponse)
async def get_status(event_id: str) -> NotificationResponse:
    return _to_response(_get_event(event_id))


@router.get("/history", response_model=NotificationListResponse)
async def get_history(limit: int = Query(100, ge=1, le=1000)) -> NotificationListResponse:
    """Most recent notifications first."""
    events = current_domain.repository_for(NotificationEvent).find(limit=limit)
    return _list_response(events)


@router.get("/filter", response_model=NotificationListResponse)
async def filter_notifications(
    status: str | None = None,
    priority: str | None = None,
    channel: str | None = None,
    date_range: str = Query("all", alias="dateRange"),
    limit: int = Query(100, ge=1, le=1000),
) -> NotificationListResponse:
    """Filter by any combination of status, priority, channel and age (24h, 7d, 30d, all)."""
    key = date_range.strip().lower()
    if key not in _DATE_RANGES:
        raise HTTPException(status_code=400, detail=f"Invalid date range: {date_range}. Allowed: 24h, 7d, 30d, all")

    window = _DATE_RANGES[key]
    created_since = datetime.now(UTC) - window if window is not None else None
    events = current_domain.repository_for(NotificationEvent).find(
        status=status,
        priority=priority,
        channel=channel,
        created_since=created_since,
        limit=limit,
    )
    return _list_response(events)


@router.get("/{event_id}/audit", response_model=AuditTrailResponse)
async def get_audit_trail(event_id: str) -> AuditTrailResponse:
    _get_event(event_id)
    return AuditTrailResponse(
        event_id=event_id,
        entries=[
            AuditEntryResponse(action=entry.action, details=entry.details, timestamp=entry.timestamp)
            for entry in audit_trail(event_id)
        ],
    )


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------
@router.get("/rules/{notification_type}", response_model=RuleResponse)
async def get_rule(notification_type: str) -> RuleResponse:
    rule = find_rule(notification_type)
    if rule is None:
        raise HTTPException(status_code=404, detail=f"No rule for notification type {notification_type}")
    return _rule_response(rule)


@router.put("/rules/{notification_type}", response_model=RuleResponse)
async def upsert_rule(notification_type: str, body: UpsertRuleRequest) -> RuleResponse:
    """Create or update the delivery rule for a notification type."""
    rule = find_rule(notification_type)
    priority = body.priority.strip().upper() if body.priority else None
    if rule is None:
        rule = NotificationRule.create(
            notification_type=notification_type,
            priority=priority or "MEDIUM",
            retry_limit=body.retry_limit if body.retry_limit is not None else get_services().config.delivery.retry_limit,
            is_active=body.is_active if body.is_active is not None else True,
        )
    else:
        rule.update(priority=priority, retry_limit=body.retry_limit, is_active=body.is_active)
    current_domain.repository_for(NotificationRule).add(rule)
    return _rule_response(rule)


# ---------------------------------------------------------------------------
# Maintenance — periodic background job endpoints
# ---------------------------------------------------------------------------
@router.post("/maintenance/process-scheduled", response_model=ProcessScheduledResponse)
async def process_scheduled(body: ProcessScheduledRequest | None = None) -> ProcessScheduledResponse:
    """Run one sweep on demand. Safe to call repeatedly."""
    promoted = get_services().sweeper.sweep(body.as_of if body else None)
    return ProcessScheduledResponse(promoted=promoted)


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    services = get_services()
    transport = services.transport
    depth = transport.depth() if isinstance(transport, InMemoryQueueTransport) else None
    return HealthResponse(transport=services.config.transport, queue_depth=depth)
