"""Failure taxonomy for the delivery lifecycle.

Validation problems are reported with protean's ``ValidationError``; the
classes here cover what can go wrong after a request has been accepted.
"""


class DeliveryFailure(Exception):
    """A channel gateway could not complete delivery.

    Absorbed by the Delivery Worker's retry/dead-letter path; never surfaces
    to the submitter.
    """

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class DispatchError(Exception):
    """Generic failure after validation while dispatching or sweeping."""


class TransportFailure(DispatchError):
    """The queue transport could not accept a publish or settle a delivery."""


class PersistenceFailure(DispatchError):
    """The event store could not be read or written."""


class DeliveryAlreadySettled(RuntimeError):
    """A delivery handle was completed, retried, escalated or released twice."""
