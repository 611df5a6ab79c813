"""Push gateway — delivers through an FCM-style HTTP push endpoint."""

import httpx
import structlog

from courier.channel.gateway import ChannelGateway
from courier.errors import DeliveryFailure
from courier.event.event import Channel

logger = structlog.get_logger(__name__)


class PushGateway(ChannelGateway):
    channel = Channel.PUSH

    def __init__(self, endpoint: str, server_key: str, timeout: float = 10.0, client: httpx.Client | None = None):
        self.endpoint = endpoint
        self.server_key = server_key
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

    def build_payload(self, event) -> dict:
        return {
            "to": event.recipient,
            "notification": {"title": event.subject or "", "body": event.message},
            "data": {
                "event_id": str(event.id),
                "notification_type": event.notification_type or "",
                "priority": event.priority,
            },
        }

    def deliver(self, event) -> None:
        try:
            response = self._get_client().post(
                self.endpoint,
                headers={"Authorization": f"key={self.server_key}"},
                json=self.build_payload(event),
            )
        except httpx.TimeoutException as exc:
            raise DeliveryFailure(f"PUSH: gateway timed out after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise DeliveryFailure(f"PUSH: {exc}") from exc

        if response.status_code >= 400:
            raise DeliveryFailure(f"PUSH: gateway rejected message (HTTP {response.status_code}): {response.text[:200]}")

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if payload.get("failure"):
            results = payload.get("results") or [{}]
            raise DeliveryFailure(f"PUSH: {results[0].get('error', 'device token rejected')}")

        logger.info("Push sent", event_id=str(event.id))
