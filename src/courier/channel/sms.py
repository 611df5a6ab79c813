"""SMS gateway — delivers through an HTTP SMS provider API."""

import re

import httpx
import structlog

from courier.channel.gateway import ChannelGateway
from courier.errors import DeliveryFailure
from courier.event.event import Channel

logger = structlog.get_logger(__name__)

MAX_SMS_LENGTH = 1600

_E164 = re.compile(r"^\+\d{11,15}$")


def normalize_phone_number(raw: str) -> str:
    """Reduce a recipient to E.164 form; bare 10-digit numbers are taken as North American."""
    cleaned = re.sub(r"[^0-9+]", "", raw or "")
    if cleaned.startswith("+"):
        return cleaned
    if len(cleaned) == 10:
        return f"+1{cleaned}"
    return f"+{cleaned}"


def is_valid_phone_number(number: str) -> bool:
    return bool(_E164.match(number))


class SmsGateway(ChannelGateway):
    """Posts ``{"from", "to", "body"}`` JSON to the provider's message endpoint."""

    channel = Channel.SMS

    def __init__(self, endpoint: str, api_key: str, sender: str, timeout: float = 10.0, client: httpx.Client | None = None):
        self.endpoint = endpoint
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def deliver(self, event) -> None:
        recipient = normalize_phone_number(event.recipient)
        if not is_valid_phone_number(recipient):
            raise DeliveryFailure(f"SMS: invalid phone number format: {event.recipient}")

        body = event.message
        if len(body) > MAX_SMS_LENGTH:
            logger.warning("SMS body truncated", event_id=str(event.id), original_len=len(body))
            body = body[:MAX_SMS_LENGTH]

        try:
            response = self._get_client().post(
                self.endpoint,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"from": self.sender, "to": recipient, "body": body},
            )
        except httpx.TimeoutException as exc:
            raise DeliveryFailure(f"SMS: provider timed out after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise DeliveryFailure(f"SMS: {exc}") from exc

        if response.status_code >= 400:
            raise DeliveryFailure(f"SMS: provider rejected message (HTTP {response.status_code}): {response.text[:200]}")

        logger.info("SMS sent", event_id=str(event.id), recipient=recipient)
