"""Email gateway — delivers over SMTP as a multipart text/HTML message."""

import html
import smtplib
from datetime import UTC, datetime
from email.message import EmailMessage
from email.utils import make_msgid

import structlog

from courier.channel.gateway import ChannelGateway
from courier.errors import DeliveryFailure
from courier.event.event import Channel

logger = structlog.get_logger(__name__)

_HTML_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>{subject}</title></head>
<body style="margin:0;padding:40px 0;background-color:#0f172a;font-family:sans-serif;">
  <table width="600" align="center" style="background-color:#1e293b;border-radius:16px;border:1px solid #334155;">
    <tr><td style="padding:40px 48px 24px;">
      <div style="color:#818cf8;font-size:12px;font-weight:600;text-transform:uppercase;">{notification_type}</div>
      <h1 style="margin:0;font-size:28px;color:#f8fafc;">New Notification</h1>
    </td></tr>
    <tr><td style="padding:0 48px 32px;color:#cbd5e1;font-size:16px;line-height:1.7;">
      <p>Hello,</p>
      <p>{message}</p>
      <table width="100%" style="background-color:#0f172a;border-radius:12px;padding:20px;color:#f8fafc;font-size:14px;">
        <tr><td style="color:#64748b;">Channel</td><td>{channel}</td></tr>
        <tr><td style="color:#64748b;">Event ID</td><td style="font-family:monospace;">{event_id}</td></tr>
        <tr><td style="color:#64748b;">Time</td><td>{timestamp}</td></tr>
      </table>
    </td></tr>
    <tr><td style="padding:32px 48px;border-top:1px solid #334155;color:#94a3b8;font-size:13px;text-align:center;">
      This is an automated message. Please do not reply.
    </td></tr>
  </table>
</body>
</html>
"""


def resolve_subject(event) -> str:
    if event.subject and event.subject.strip():
        return event.subject
    notification_type = event.notification_type or "Update"
    return f"[Notification] {notification_type} | ID {event.id}"


def render_html(event, now: datetime | None = None) -> str:
    """Render the HTML body; user-supplied text is escaped."""
    now = now or datetime.now(UTC)
    return _HTML_TEMPLATE.format(
        subject=html.escape(resolve_subject(event)),
        notification_type=html.escape(event.notification_type or "N/A"),
        message=html.escape(event.message or ""),
        channel=html.escape(event.channel or Channel.EMAIL.value),
        event_id=html.escape(str(event.id)),
        timestamp=now.strftime("%Y-%m-%d %H:%M:%S %Z"),
    )


class EmailGateway(ChannelGateway):
    channel = Channel.EMAIL

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        from_address: str = "no-reply@localhost",
        reply_to: str | None = None,
        use_tls: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_address = from_address.strip()
        self.reply_to = (reply_to or from_address).strip()
        self.use_tls = use_tls
        self.timeout = timeout

    def build_message(self, event) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = resolve_subject(event)
        message["From"] = self.from_address
        message["To"] = event.recipient
        message["Reply-To"] = self.reply_to
        message["Message-ID"] = make_msgid(domain=self.from_address.rpartition("@")[2] or None)
        message.set_content(event.message)
        message.add_alternative(render_html(event), subtype="html")
        return message

    def deliver(self, event) -> None:
        message = self.build_message(event)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryFailure(f"EMAIL: {exc}") from exc

        logger.info("Email sent", event_id=str(event.id), recipient=event.recipient)
