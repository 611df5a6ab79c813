"""Fake channel gateways — record deliveries in memory for test assertions."""

import time
from uuid import uuid4

from courier.channel.gateway import ChannelGateway
from courier.errors import DeliveryFailure
from courier.event.event import Channel


class FakeGateway(ChannelGateway):
    default_failure_reason = "Delivery failed"

    def __init__(self):
        self.delivered: list[dict] = []
        self.attempts = 0
        self.should_succeed = True
        self.failure_reason = self.default_failure_reason
        self.failures_remaining = 0
        self.delay = 0.0

    def configure(self, should_succeed: bool = True, failure_reason: str | None = None, delay: float = 0.0):
        """Configure the fake gateway behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason or self.default_failure_reason
        self.delay = delay

    def fail_next(self, times: int, failure_reason: str | None = None):
        """Fail the next ``times`` deliveries, then succeed again."""
        self.failures_remaining = times
        self.failure_reason = failure_reason or self.default_failure_reason

    def deliver(self, event) -> None:
        self.attempts += 1
        if self.delay:
            time.sleep(self.delay)

        if self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise DeliveryFailure(self.failure_reason)
        if not self.should_succeed:
            raise DeliveryFailure(self.failure_reason)

        record = self._record(event)
        record["message_id"] = f"{self.channel.value.lower()}-{uuid4().hex[:12]}"
        record["event_id"] = str(event.id)
        self.delivered.append(record)

    def _record(self, event) -> dict:
        return {"to": event.recipient, "body": event.message}

    def reset(self):
        """Clear recorded deliveries (useful between tests)."""
        self.delivered.clear()
        self.attempts = 0
        self.should_succeed = True
        self.failure_reason = self.default_failure_reason
        self.failures_remaining = 0
        self.delay = 0.0


class FakeEmailGateway(FakeGateway):
    channel = Channel.EMAIL
    default_failure_reason = "Email delivery failed"

    def _record(self, event) -> dict:
        return {"to": event.recipient, "subject": event.subject, "body": event.message}


class FakeSmsGateway(FakeGateway):
    channel = Channel.SMS
    default_failure_reason = "SMS delivery failed"


class FakePushGateway(FakeGateway):
    channel = Channel.PUSH
    default_failure_reason = "Push delivery failed"

    def _record(self, event) -> dict:
        return {"device_token": event.recipient, "title": event.subject, "body": event.message}
