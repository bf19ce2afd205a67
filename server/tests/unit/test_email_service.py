"""Unit tests for the email dispatcher and templates."""

import asyncio
from datetime import datetime

import pytest

from conftest import FailingTransport, RecordingTransport
from travelcore.core.config import Settings
from travelcore.services.email_service import (
    EmailDispatcher,
    OutboundEmail,
    SmtpEmailTransport,
    booking_confirmation_email,
    emergency_alert_email,
    format_money,
)


def message(to: str = "alice@example.com") -> OutboundEmail:
    return OutboundEmail(to=to, subject="Hello", text="Plain body", html="<p>Rich body</p>")


@pytest.mark.asyncio
async def test_send_through_transport():
    transport = RecordingTransport()

    assert await EmailDispatcher(transport).send(message()) is True
    assert transport.sent[0].subject == "Hello"


@pytest.mark.asyncio
async def test_unconfigured_dispatcher_reports_false():
    dispatcher = EmailDispatcher(None)

    assert not dispatcher.enabled
    assert await dispatcher.send(message()) is False


@pytest.mark.asyncio
async def test_transport_error_is_swallowed():
    assert await EmailDispatcher(FailingTransport()).send(message()) is False


@pytest.mark.asyncio
async def test_slow_transport_times_out():
    class SlowTransport:
        async def send(self, email):
            await asyncio.sleep(5)

    assert await EmailDispatcher(SlowTransport(), timeout_seconds=0.05).send(message()) is False


def test_from_settings_without_host_is_disabled():
    assert SmtpEmailTransport.from_settings(Settings(smtp_host=None)) is None
    assert not EmailDispatcher.from_settings(Settings(smtp_host=None)).enabled


def test_smtp_message_has_text_and_html_parts():
    transport = SmtpEmailTransport(host="smtp.example.com", port=587, sender="tours@example.com")

    msg = transport.build_message(message())

    assert msg["To"] == "alice@example.com"
    assert msg["From"] == "tours@example.com"
    assert msg["Subject"] == "Hello"
    assert msg.get_body(("plain",)).get_content().strip() == "Plain body"
    assert "Rich body" in msg.get_body(("html",)).get_content()


def test_emergency_template_escapes_user_content():
    email = emergency_alert_email(
        to="alice@example.com",
        name="Alice",
        tour_title="Fjords <b>Deluxe</b>",
        alert_title="Storm",
        alert_message="<script>alert(1)</script> Stay indoors",
        severity="high",
    )

    assert "<script>" not in email.html
    assert "&lt;script&gt;" in email.html
    assert "#fd7e14" in email.html
    assert "Stay indoors" in email.text
    assert email.subject == "🚨 URGENT: Storm - Fjords <b>Deluxe</b>"


def test_booking_confirmation_template():
    email = booking_confirmation_email(
        to="alice@example.com",
        name="Alice",
        tour_title="Northern Lights",
        starts_at=datetime(2026, 12, 1, 9, 0),
        ends_at=datetime(2026, 12, 6, 18, 0),
        traveller_count=2,
        total_amount=259800,
        currency="USD",
        booking_id="b-123",
    )

    assert email.subject == "Booking Confirmed - Northern Lights"
    assert "USD 2,598.00" in email.text
    assert "01 Dec 2026" in email.html
    assert "b-123" in email.html


def test_format_money():
    assert format_money(5, "EUR") == "EUR 0.05"
