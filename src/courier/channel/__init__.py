"""Channel gateway registry — one gateway per canonical channel.

Fake gateways are used unless the channel's provider is configured through
environment variables:

    EMAIL  COURIER_SMTP_HOST (+ _PORT, _USERNAME, _PASSWORD, _FROM, _REPLY_TO)
    SMS    COURIER_SMS_ENDPOINT, COURIER_SMS_API_KEY, COURIER_SMS_SENDER
    PUSH   COURIER_PUSH_ENDPOINT, COURIER_PUSH_SERVER_KEY
"""

import os
import threading

from courier.channel.gateway import ChannelGateway
from courier.event.event import Channel

_gateway_instances: dict[Channel, ChannelGateway] = {}
_lock = threading.Lock()


def _build_email() -> ChannelGateway:
    host = os.getenv("COURIER_SMTP_HOST")
    if not host:
        from courier.channel.fake import FakeEmailGateway

        return FakeEmailGateway()

    from courier.channel.smtp import EmailGateway

    return EmailGateway(
        host=host,
        port=int(os.getenv("COURIER_SMTP_PORT", "587")),
        username=os.getenv("COURIER_SMTP_USERNAME"),
        password=os.getenv("COURIER_SMTP_PASSWORD"),
        from_address=os.getenv("COURIER_SMTP_FROM", "no-reply@localhost"),
        reply_to=os.getenv("COURIER_SMTP_REPLY_TO"),
        use_tls=os.getenv("COURIER_SMTP_TLS", "true").lower() != "false",
    )


def _build_sms() -> ChannelGateway:
    endpoint = os.getenv("COURIER_SMS_ENDPOINT")
    if not endpoint:
        from courier.channel.fake import FakeSmsGateway

        return FakeSmsGateway()

    from courier.channel.sms import SmsGateway

    return SmsGateway(
        endpoint=endpoint,
        api_key=os.getenv("COURIER_SMS_API_KEY", ""),
        sender=os.getenv("COURIER_SMS_SENDER", ""),
    )


def _build_push() -> ChannelGateway:
    endpoint = os.getenv("COURIER_PUSH_ENDPOINT")
    if not endpoint:
        from courier.channel.fake import FakePushGateway

        return FakePushGateway()

    from courier.channel.push import PushGateway

    return PushGateway(endpoint=endpoint, server_key=os.getenv("COURIER_PUSH_SERVER_KEY", ""))


_FACTORIES = {
    Channel.EMAIL: _build_email,
    Channel.SMS: _build_sms,
    Channel.PUSH: _build_push,
}


def get_gateway(channel) -> ChannelGateway:
    """Return the gateway for a channel (singleton per channel).

    Args:
        channel: A ``Channel`` member or its canonical value ("EMAIL", "SMS", "PUSH").
    """
    channel = Channel(channel)
    gateway = _gateway_instances.get(channel)
    if gateway is None:
        with _lock:
            gateway = _gateway_instances.get(channel)
            if gateway is None:
                gateway = _gateway_instances[channel] = _FACTORIES[channel]()
    return gateway


def set_gateway(channel, gateway: ChannelGateway) -> None:
    """Override the gateway for a channel (useful for tests)."""
    with _lock:
        _gateway_instances[Channel(channel)] = gateway


def reset_gateways():
    """Reset all gateway singletons (useful for testing)."""
    with _lock:
        _gateway_instances.clear()
