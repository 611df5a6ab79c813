"""Pydantic request/response models for the Courier API.

API schemas are separate from the domain objects (anti-corruption pattern).
Field names follow the original HTTP contract: ``eventId``, ``scheduledTime``
and friends are accepted as aliases.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Request Models
# ---------------------------------------------------------------------------
class SendNotificationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recipient: str | None = Field(None, examples=["user@example.com"])
    message: str | None = Field(None, examples=["Your order has shipped"])
    channel: str | None = Field(None, examples=["EMAIL"], description="EMAIL, SMS or PUSH")
    priority: str | None = Field(None, examples=["HIGH"], description="LOW, MEDIUM, HIGH or CRITICAL")
    notification_type: str | None = Field(None, alias="notificationType", examples=["ORDER_SHIPPED"])
    subject: str | None = None
    scheduled_time: str | None = Field(
        None,
        alias="scheduledTime",
        examples=["2026-01-06T15:30:00"],
        description="ISO-8601 date-time; naive values are taken as UTC",
    )


class UpsertRuleRequest(BaseModel):
    priority: str | None = Field(None, examples=["CRITICAL"])
    retry_limit: int | None = Field(None, ge=0, le=20)
    is_active: bool | None = None


class ProcessScheduledRequest(BaseModel):
    as_of: datetime | None = None


# ---------------------------------------------------------------------------
# Response Models
# ---------------------------------------------------------------------------
class SendNotificationResponse(BaseModel):
    status: str = "accepted"
    event_id: str
    event_status: str
    message: str


class NotificationResponse(BaseModel):
    event_id: str
    recipient: str
    subject: str | None = None
    message: str
    channel: str
    priority: str
    notification_type: str | None = None
    status: str
    retry_count: int
    max_retries: int
    failure_reason: str | None = None
    scheduled_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class NotificationListResponse(BaseModel):
    count: int
    notifications: list[NotificationResponse]


class AuditEntryResponse(BaseModel):
    action: str
    details: str | None = None
    timestamp: datetime


class AuditTrailResponse(BaseModel):
    event_id: str
    entries: list[AuditEntryResponse]


class RuleResponse(BaseModel):
    notification_type: str
    priority: str
    publish_priority: int
    retry_limit: int
    is_active: bool


class ProcessScheduledResponse(BaseModel):
    status: str = "ok"
    promoted: int = 0


class HealthResponse(BaseModel):
    status: str = "UP"
    service: str = "courier"
    transport: str
    queue_depth: int | None = None
