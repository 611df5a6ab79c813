"""Shared BDD fixtures and step definitions for notification delivery."""

from types import SimpleNamespace

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then

from courier.audit.audit_log import audit_trail
from courier.channel import get_gateway
from courier.config import DeliveryConfig
from courier.event.dead_letter import DeadLetterHandler
from courier.event.dispatcher import Dispatcher
from courier.event.event import NotificationEvent
from courier.event.sweeper import ScheduledSweeper
from courier.event.worker import DeliveryWorker
from courier.transport.memory import InMemoryQueueTransport
from courier.transport.port import Route


@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


@pytest.fixture()
def build_stack(clock):
    """Factory wiring an in-memory transport to every orchestrator component."""
    workers = []

    def _build(retry_limit=3):
        transport = InMemoryQueueTransport()
        config = DeliveryConfig(retry_limit=retry_limit)
        worker = DeliveryWorker(transport, config, clock=clock)
        workers.append(worker)
        return SimpleNamespace(
            transport=transport,
            dispatcher=Dispatcher(transport, config, clock=clock),
            worker=worker,
            dead_letter=DeadLetterHandler(clock=clock),
            sweeper=ScheduledSweeper(transport, clock=clock),
        )

    yield _build
    for worker in workers:
        worker.close()


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a running courier", target_fixture="stack")
def running_courier(build_stack):
    return build_stack()


@given(
    parsers.cfparse("a running courier with a retry limit of {limit:d}"),
    target_fixture="stack",
)
def running_courier_with_limit(build_stack, limit):
    return build_stack(retry_limit=limit)


@given(parsers.cfparse('the {channel} provider rejects every message with "{reason}"'))
def failing_provider(channel, reason):
    get_gateway(channel).configure(should_succeed=False, failure_reason=reason)


@given(parsers.cfparse("the {channel} provider fails the next {count:d} attempts"))
def flaky_provider(channel, count):
    get_gateway(channel).fail_next(count)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
def _event(event_id):
    return current_domain.repository_for(NotificationEvent).get(event_id)


@then(parsers.cfparse('the notification status is "{status}"'))
def notification_status_is(notification, status):
    assert _event(notification).status == status


@then(parsers.cfparse("the retry count is {count:d}"))
def retry_count_is(notification, count):
    assert _event(notification).retry_count == count


@then(parsers.cfparse('the failure reason is "{reason}"'))
def failure_reason_is(notification, reason):
    assert _event(notification).failure_reason == reason


@then(parsers.cfparse('the audit trail reads "{actions}"'))
def audit_trail_reads(notification, actions):
    expected = [action.strip() for action in actions.split(",")]
    assert [entry.action for entry in audit_trail(notification)] == expected


@then(parsers.cfparse("the {channel} provider has delivered {count:d}"))
def provider_delivered(channel, count):
    assert len(get_gateway(channel).delivered) == count


@then(parsers.cfparse("the send queue depth is {count:d}"))
def send_queue_depth(stack, count):
    assert stack.transport.depth(Route.SEND) == count
