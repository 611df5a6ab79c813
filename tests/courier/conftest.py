from datetime import UTC, datetime

import pytest
from protean.integrations.pytest import DomainFixture

from courier.channel import reset_gateways
from courier.services import reset_services


@pytest.fixture(scope="session")
def courier_bed():
    from courier.domain import courier

    bed = DomainFixture(courier)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(courier_bed):
    with courier_bed.domain_context():
        yield

        from protean import current_domain

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()

        # Drain event stores
        current_domain.event_store.store._data_reset()


@pytest.fixture(autouse=True)
def _reset_singletons():
    reset_gateways()
    reset_services()
    yield
    reset_gateways()
    reset_services()


class FixedClock:
    """Controllable clock for deterministic time-dependent tests."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2026, 1, 6, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta):
        self.now = self.now + delta
        return self.now


@pytest.fixture()
def clock():
    return FixedClock()
