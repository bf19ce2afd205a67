"""Outbound email: templates, SMTP transport and a best-effort dispatcher."""

import asyncio
import html
import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from typing import Optional, Protocol

from ..core.config import Settings
from ..core.observability import metrics_collector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutboundEmail:
    """A rendered email ready for a transport."""

    to: str
    subject: str
    text: str
    html: Optional[str] = None


class EmailTransport(Protocol):
    """Anything that can deliver an :class:`OutboundEmail` or raise trying."""

    async def send(self, email: OutboundEmail) -> None:
        ...


class SmtpEmailTransport:
    """
    Deliver mail through an SMTP relay.

    Port 465 uses implicit TLS; other ports optionally upgrade with STARTTLS.
    ``smtplib`` is blocking, so each send runs in a worker thread.
    """

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["SmtpEmailTransport"]:
        """Build a transport from settings, or None when no SMTP host is configured."""
        if not settings.email_enabled:
            return None
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.email_from,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout=settings.smtp_timeout_seconds,
        )

    def build_message(self, email: OutboundEmail) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = email.subject
        msg["From"] = self.sender
        msg["To"] = email.to
        msg.set_content(email.text)
        if email.html:
            msg.add_alternative(email.html, subtype="html")
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        if self.port == 465:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)

        with server:
            if self.use_tls and self.port != 465:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)

    async def send(self, email: OutboundEmail) -> None:
        await asyncio.to_thread(self._deliver, self.build_message(email))


class EmailDispatcher:
    """
    Best-effort email sender.

    :meth:`send` never raises: an unconfigured transport, a transport error
    or a send slower than ``timeout_seconds`` are logged, counted and
    reported as ``False``.
    """

    def __init__(self, transport: Optional[EmailTransport], timeout_seconds: float = 10.0):
        self.transport = transport
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailDispatcher":
        return cls(SmtpEmailTransport.from_settings(settings), settings.smtp_timeout_seconds)

    @property
    def enabled(self) -> bool:
        return self.transport is not None

    async def send(self, email: OutboundEmail) -> bool:
        if self.transport is None:
            metrics_collector.record_email("disabled")
            logger.warning(
                "Email service not configured, skipping email",
                extra={"to": email.to, "subject": email.subject}
            )
            return False

        try:
            await asyncio.wait_for(self.transport.send(email), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            metrics_collector.record_email("timeout")
            logger.error(
                "Email send timed out",
                extra={"to": email.to, "timeout_seconds": self.timeout_seconds}
            )
            return False
        except Exception as e:
            metrics_collector.record_email("failed")
            logger.error(
                "Failed to send email",
                extra={"to": email.to, "subject": email.subject, "error": str(e)}
            )
            return False

        metrics_collector.record_email("sent")
        logger.info("Email sent", extra={"to": email.to, "subject": email.subject})
        return True


# Templates

SEVERITY_COLORS = {
    "low": "#17a2b8",
    "medium": "#ffc107",
    "high": "#fd7e14",
    "critical": "#dc3545",
}

_BASE_STYLE = """
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
    .container { max-width: 600px; margin: 0 auto; padding: 20px; }
    .content { background: #f9f9f9; padding: 30px; border-radius: 0 0 10px 10px; }
"""


def format_money(amount_minor: int, currency: str) -> str:
    return f"{currency} {amount_minor / 100:,.2f}"


def emergency_alert_email(
    to: str,
    name: str,
    tour_title: str,
    alert_title: str,
    alert_message: str,
    severity: str,
) -> OutboundEmail:
    """Urgent alert to a traveller, with the header coloured by severity."""
    color = SEVERITY_COLORS.get(severity, SEVERITY_COLORS["critical"])
    e = html.escape
    body = f"""<!DOCTYPE html>
<html>
<head>
  <style>{_BASE_STYLE}
    .header {{ background: {color}; color: white; padding: 30px; text-align: center; border-radius: 10px 10px 0 0; }}
    .alert-box {{ background: white; padding: 20px; border-radius: 8px; border-left: 4px solid {color}; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>🚨 {e(alert_title)}</h1></div>
    <div class="content">
      <p>Dear {e(name)},</p>
      <p>This is an urgent notification regarding your tour: <strong>{e(tour_title)}</strong></p>
      <div class="alert-box"><p>{e(alert_message)}</p></div>
      <p>Please check the app for more details and follow any instructions from your tour guide.</p>
      <p>Stay safe!</p>
    </div>
  </div>
</body>
</html>"""

    text = (
        f"URGENT ALERT\n\n{alert_title}\n\nDear {name},\n\n{alert_message}\n\n"
        f"Please check the app for more details.\n\nTour: {tour_title}"
    )
    return OutboundEmail(
        to=to,
        subject=f"🚨 URGENT: {alert_title} - {tour_title}",
        text=text,
        html=body,
    )


def booking_confirmation_email(
    to: str,
    name: str,
    tour_title: str,
    starts_at: datetime,
    ends_at: datetime,
    traveller_count: int,
    total_amount: int,
    currency: str,
    booking_id: str,
) -> OutboundEmail:
    e = html.escape
    total = format_money(total_amount, currency)
    start = starts_at.strftime("%d %b %Y")
    end = ends_at.strftime("%d %b %Y")
    rows = [
        ("Booking ID", booking_id),
        ("Start Date", start),
        ("End Date", end),
        ("Travellers", str(traveller_count)),
        ("Total Amount", total),
    ]
    details = "\n".join(
        f'      <div class="detail-row"><span>{label}:</span> <strong>{e(value)}</strong></div>'
        for label, value in rows
    )
    body = f"""<!DOCTYPE html>
<html>
<head>
  <style>{_BASE_STYLE}
    .header {{ background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; padding: 30px; text-align: center; border-radius: 10px 10px 0 0; }}
    .details {{ background: white; padding: 20px; border-radius: 8px; margin: 20px 0; }}
    .detail-row {{ padding: 10px 0; border-bottom: 1px solid #eee; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>Booking Confirmed!</h1></div>
    <div class="content">
      <p>Dear {e(name)},</p>
      <p>Thank you for booking with us. Your journey awaits.</p>
      <div class="details">
      <h3>{e(tour_title)}</h3>
{details}
      </div>
      <p>We'll send you the detailed itinerary and updates closer to your departure date.</p>
    </div>
  </div>
</body>
</html>"""

    text = (
        f"Booking Confirmed!\n\nDear {name},\n\nYour booking for {tour_title} has been confirmed.\n\n"
        f"Booking ID: {booking_id}\nStart Date: {start}\nEnd Date: {end}\n"
        f"Travellers: {traveller_count}\nTotal: {total}\n"
    )
    return OutboundEmail(
        to=to,
        subject=f"Booking Confirmed - {tour_title}",
        text=text,
        html=body,
    )
