"""Tests for channel gateways — fakes, the registry, SMTP email, HTTP SMS and push."""

import json
import smtplib
import threading
import time
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import httpx
import pytest

import courier.channel as channel_registry
from courier.channel import get_gateway, reset_gateways, set_gateway
from courier.channel.fake import FakeEmailGateway, FakePushGateway, FakeSmsGateway
from courier.channel.push import PushGateway
from courier.channel.sms import MAX_SMS_LENGTH, SmsGateway, is_valid_phone_number, normalize_phone_number
from courier.channel.smtp import EmailGateway, render_html, resolve_subject
from courier.errors import DeliveryFailure
from courier.event.event import Channel


def _event(**overrides):
    defaults = {
        "id": "evt-123",
        "recipient": "user@example.com",
        "message": "Your order has shipped",
        "subject": "Shipping update",
        "channel": "EMAIL",
        "priority": "HIGH",
        "notification_type": "ORDER_SHIPPED",
    }
    defaults.update(overrides)
    return SimpleNamespace(**defaults)


def _sms_event(**overrides):
    return _event(**{"channel": "SMS", "recipient": "+15551234567", **overrides})


def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


# ---------------------------------------------------------------
# Registry
# ---------------------------------------------------------------
class TestGatewayRegistry:
    def setup_method(self):
        reset_gateways()

    def test_fakes_by_default(self, monkeypatch):
        for name in ("COURIER_SMTP_HOST", "COURIER_SMS_ENDPOINT", "COURIER_PUSH_ENDPOINT"):
            monkeypatch.delenv(name, raising=False)

        assert isinstance(get_gateway("EMAIL"), FakeEmailGateway)
        assert isinstance(get_gateway("SMS"), FakeSmsGateway)
        assert isinstance(get_gateway("PUSH"), FakePushGateway)

    def test_singleton_per_channel(self):
        assert get_gateway("SMS") is get_gateway("SMS")

    def test_unknown_channel_rejected(self):
        with pytest.raises(ValueError):
            get_gateway("FAX")

    def test_set_gateway_overrides(self):
        custom = FakeSmsGateway()
        set_gateway("SMS", custom)
        assert get_gateway("SMS") is custom

    def test_live_gateway_selected_by_environment(self, monkeypatch):
        monkeypatch.setenv("COURIER_SMS_ENDPOINT", "https://sms.example.com/messages")
        assert isinstance(get_gateway("SMS"), SmsGateway)

    def test_concurrent_lookups_build_one_gateway(self, monkeypatch):
        built = []

        def _slow_build():
            time.sleep(0.05)
            gateway = FakeSmsGateway()
            built.append(gateway)
            return gateway

        monkeypatch.setitem(channel_registry._FACTORIES, Channel.SMS, _slow_build)
        barrier = threading.Barrier(8)
        seen = []

        def _lookup():
            barrier.wait()
            seen.append(get_gateway("SMS"))

        threads = [threading.Thread(target=_lookup) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(2.0)

        assert len(built) == 1
        assert len(seen) == 8
        assert all(gateway is built[0] for gateway in seen)


# ---------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------
class TestFakeGateways:
    def test_records_delivery(self):
        gateway = FakeEmailGateway()
        gateway.deliver(_event())

        assert gateway.attempts == 1
        assert gateway.delivered[0]["to"] == "user@example.com"
        assert gateway.delivered[0]["subject"] == "Shipping update"
        assert gateway.delivered[0]["message_id"].startswith("email-")

    def test_configured_failure(self):
        gateway = FakeSmsGateway()
        gateway.configure(should_succeed=False, failure_reason="Invalid number")

        with pytest.raises(DeliveryFailure) as exc:
            gateway.deliver(_event())

        assert exc.value.reason == "Invalid number"
        assert gateway.delivered == []

    def test_fail_next_then_recover(self):
        gateway = FakePushGateway()
        gateway.fail_next(2)

        for _ in range(2):
            with pytest.raises(DeliveryFailure):
                gateway.deliver(_event())
        gateway.deliver(_event())

        assert gateway.attempts == 3
        assert len(gateway.delivered) == 1
        assert gateway.delivered[0]["device_token"] == "user@example.com"

    def test_reset(self):
        gateway = FakeEmailGateway()
        gateway.configure(should_succeed=False)
        gateway.reset()

        gateway.deliver(_event())
        assert len(gateway.delivered) == 1


# ---------------------------------------------------------------
# SMTP email
# ---------------------------------------------------------------
class TestEmailRendering:
    def test_subject_used_when_present(self):
        assert resolve_subject(_event()) == "Shipping update"

    def test_subject_falls_back_to_type_and_id(self):
        assert resolve_subject(_event(subject=" ")) == "[Notification] ORDER_SHIPPED | ID evt-123"

    def test_html_escapes_message(self):
        body = render_html(_event(message="<script>alert('x')</script>"))
        assert "<script>" not in body
        assert "&lt;script&gt;" in body

    def test_message_has_text_and_html_parts(self):
        gateway = EmailGateway(host="smtp.example.com", from_address="noreply@example.com")
        message = gateway.build_message(_event())

        assert message["To"] == "user@example.com"
        assert message["From"] == "noreply@example.com"
        assert message["Reply-To"] == "noreply@example.com"
        assert [part.get_content_type() for part in message.iter_parts()] == ["text/plain", "text/html"]


class TestEmailGateway:
    def test_sends_over_smtp(self):
        gateway = EmailGateway(host="smtp.example.com", port=2525, username="bot", password="secret")
        with patch("courier.channel.smtp.smtplib.SMTP") as smtp_cls:
            smtp = smtp_cls.return_value.__enter__.return_value
            gateway.deliver(_event())

        smtp_cls.assert_called_once_with("smtp.example.com", 2525, timeout=30.0)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("bot", "secret")
        smtp.send_message.assert_called_once()

    def test_smtp_error_is_delivery_failure(self):
        gateway = EmailGateway(host="smtp.example.com", use_tls=False)
        with patch("courier.channel.smtp.smtplib.SMTP") as smtp_cls:
            smtp = smtp_cls.return_value.__enter__.return_value
            smtp.send_message.side_effect = smtplib.SMTPRecipientsRefused({"user@example.com": (550, b"no")})

            with pytest.raises(DeliveryFailure) as exc:
                gateway.deliver(_event())

        assert exc.value.reason.startswith("EMAIL: ")
        smtp.starttls.assert_not_called()

    def test_connection_error_is_delivery_failure(self):
        gateway = EmailGateway(host="smtp.example.com")
        with patch("courier.channel.smtp.smtplib.SMTP", side_effect=ConnectionRefusedError("refused")):
            with pytest.raises(DeliveryFailure):
                gateway.deliver(_event())


# ---------------------------------------------------------------
# HTTP SMS
# ---------------------------------------------------------------
class TestSmsGateway:
    def test_posts_message(self):
        captured = {}

        def handler(request):
            captured["request"] = request
            return httpx.Response(201, json={"sid": "SM123"})

        gateway = SmsGateway("https://sms.example.com/messages", "key-1", "+15550000000", client=_client(handler))
        gateway.deliver(_event(recipient="+15551234567", message="hi"))

        request = captured["request"]
        assert request.headers["Authorization"] == "Bearer key-1"
        assert json.loads(request.read()) == {"from": "+15550000000", "to": "+15551234567", "body": "hi"}

    def test_long_body_truncated(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.read())["body"])
            return httpx.Response(200)

        gateway = SmsGateway("https://sms.example.com/messages", "key", "sender", client=_client(handler))
        gateway.deliver(_sms_event(message="x" * (MAX_SMS_LENGTH + 50)))

        assert len(bodies[0]) == MAX_SMS_LENGTH

    def test_provider_rejection_is_delivery_failure(self):
        gateway = SmsGateway(
            "https://sms.example.com/messages",
            "key",
            "sender",
            client=_client(lambda request: httpx.Response(400, text="invalid 'To' number")),
        )

        with pytest.raises(DeliveryFailure) as exc:
            gateway.deliver(_sms_event())

        assert "HTTP 400" in exc.value.reason
        assert "invalid 'To' number" in exc.value.reason

    def test_timeout_is_delivery_failure(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        gateway = SmsGateway("https://sms.example.com/messages", "key", "sender", client=_client(handler))

        with pytest.raises(DeliveryFailure, match="timed out"):
            gateway.deliver(_sms_event())

    def test_recipient_normalized_before_sending(self):
        sent_to = []

        def handler(request):
            sent_to.append(json.loads(request.read())["to"])
            return httpx.Response(201)

        gateway = SmsGateway("https://sms.example.com/messages", "key", "sender", client=_client(handler))
        gateway.deliver(_sms_event(recipient="(555) 123-4567"))

        assert sent_to == ["+15551234567"]

    def test_invalid_number_rejected_without_calling_provider(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(201)

        gateway = SmsGateway("https://sms.example.com/messages", "key", "sender", client=_client(handler))

        with pytest.raises(DeliveryFailure) as exc:
            gateway.deliver(_sms_event(recipient="user@example.com"))

        assert exc.value.reason == "SMS: invalid phone number format: user@example.com"
        assert calls == []


class TestPhoneNumbers:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("(555) 123-4567", "+15551234567"),
            ("15551234567", "+15551234567"),
            ("+44 20 7946 0958", "+442079460958"),
            ("555.123.4567", "+15551234567"),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_phone_number(raw) == expected

    @pytest.mark.parametrize("number", ["+1555123", "+", "+1234567890123456"])
    def test_invalid_numbers(self, number):
        assert not is_valid_phone_number(normalize_phone_number(number))


# ---------------------------------------------------------------
# HTTP push
# ---------------------------------------------------------------
class TestPushGateway:
    def test_payload(self):
        gateway = PushGateway("https://push.example.com/send", "server-key")
        payload = gateway.build_payload(_event(recipient="device-token"))

        assert payload["to"] == "device-token"
        assert payload["notification"] == {"title": "Shipping update", "body": "Your order has shipped"}
        assert payload["data"]["event_id"] == "evt-123"

    def test_successful_send(self):
        headers = {}

        def handler(request):
            headers["authorization"] = request.headers["Authorization"]
            return httpx.Response(200, json={"success": 1, "failure": 0})

        gateway = PushGateway("https://push.example.com/send", "server-key", client=_client(handler))
        gateway.deliver(_event())

        assert headers["authorization"] == "key=server-key"

    def test_rejected_token_is_delivery_failure(self):
        gateway = PushGateway(
            "https://push.example.com/send",
            "server-key",
            client=_client(
                lambda request: httpx.Response(200, json={"failure": 1, "results": [{"error": "NotRegistered"}]})
            ),
        )

        with pytest.raises(DeliveryFailure) as exc:
            gateway.deliver(_event())

        assert exc.value.reason == "PUSH: NotRegistered"

    def test_server_error_is_delivery_failure(self):
        gateway = PushGateway(
            "https://push.example.com/send",
            "server-key",
            client=_client(lambda request: httpx.Response(503, text="unavailable")),
        )

        with pytest.raises(DeliveryFailure, match="HTTP 503"):
            gateway.deliver(_event())

    def test_close_releases_client(self):
        client = MagicMock()
        gateway = PushGateway("https://push.example.com/send", "server-key", client=client)

        gateway.close()

        client.close.assert_called_once()
