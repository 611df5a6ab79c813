"""Courier bounded context — reliable multi-channel notification delivery.

Accepts notification requests, persists them as trackable events, and drives
each one through a queue-backed delivery lifecycle: immediate or scheduled
dispatch, bounded retry, and dead-letter escalation. Every state transition
is recorded in an append-only audit trail.
"""

import structlog
from protean.domain import Domain

from courier.utils.logging import configure_logging

configure_logging()

courier = Domain(name="courier")

logger = structlog.get_logger(__name__)
