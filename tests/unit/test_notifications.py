import smtplib
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from booking_engine.core.config import settings
from booking_engine.models.booking import Booking
from booking_engine.models.business import Business
from booking_engine.models.customer import Customer
from booking_engine.services.notification_service import (
    BookingNotifier,
    send_email,
)

TASK = "booking_engine.services.notification_service.send_email_task"

START = datetime(2026, 3, 3, 15, 0, tzinfo=timezone.utc)


def make_parties(customer_email="dana@example.test"):
    business = Business(
        name="Test Studio",
        email="owner@studio.test",
        timezone="Europe/London",
        booking_message="Please arrive five minutes early.",
    )
    customer = Customer(name="Dana", phone="555-0199", email=customer_email)
    booking = Booking(
        status="confirmed",
        start_time=START,
        end_time=START + timedelta(hours=1),
        cancelled_by="customer",
        cancellation_reason="Travel",
    )
    return booking, business, customer


class TestBookingNotifier:
    @patch(TASK)
    def test_booking_created_notifies_both_parties(self, mock_task):
        mock_delay = mock_task.delay
        booking, business, customer = make_parties()

        BookingNotifier().booking_created(booking, business, customer)

        assert mock_delay.call_count == 2
        to_customer, to_business = mock_delay.call_args_list
        assert to_customer.args[0] == "dana@example.test"
        assert "Tuesday 03 March 2026, 15:00" in to_customer.args[2]
        assert "Please arrive five minutes early." in to_customer.args[2]
        assert to_business.args[0] == "owner@studio.test"

    @patch(TASK)
    def test_customer_without_email_is_skipped(self, mock_task):
        mock_delay = mock_task.delay
        booking, business, customer = make_parties(customer_email=None)

        BookingNotifier().booking_cancelled(booking, business, customer)

        mock_delay.assert_called_once()
        assert mock_delay.call_args.args[0] == "owner@studio.test"
        assert "Reason: Travel" in mock_delay.call_args.args[2]

    @patch(TASK)
    def test_booking_rescheduled(self, mock_task):
        mock_delay = mock_task.delay
        original, business, customer = make_parties()
        replacement = Booking(start_time=START + timedelta(days=1))

        BookingNotifier().booking_rescheduled(original, replacement, business, customer)

        body = mock_delay.call_args_list[0].args[2]
        assert "Tuesday 03 March 2026, 15:00" in body
        assert "Wednesday 04 March 2026, 15:00" in body

    @patch(TASK)
    def test_enqueue_failure_is_swallowed(self, mock_task):
        mock_task.delay.side_effect = ConnectionError("broker down")
        booking, business, customer = make_parties()

        BookingNotifier().booking_created(booking, business, customer)

        assert mock_task.delay.call_count == 2


class TestSendEmail:
    def test_skipped_without_smtp_host(self):
        with patch.object(settings, "SMTP_HOST", None):
            assert send_email("dana@example.test", "Hi", "Body") is False

    def test_sends_over_smtp(self):
        with patch.object(settings, "SMTP_HOST", "smtp.test"), patch.object(
            settings, "SMTP_USE_TLS", True
        ), patch.object(settings, "SMTP_USERNAME", "user"), patch.object(
            settings, "SMTP_PASSWORD", "pass"
        ), patch(
            "booking_engine.services.notification_service.smtplib.SMTP"
        ) as mock_smtp:
            assert send_email("dana@example.test", "Hi", "Body") is True

        server = mock_smtp.return_value
        mock_smtp.assert_called_once_with("smtp.test", settings.SMTP_PORT)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("user", "pass")
        assert server.sendmail.call_args.args[:2] == (
            settings.FROM_EMAIL,
            ["dana@example.test"],
        )
        server.quit.assert_called_once()

    def test_connection_closed_when_starttls_fails(self):
        with patch.object(settings, "SMTP_HOST", "smtp.test"), patch.object(
            settings, "SMTP_USE_TLS", True
        ), patch(
            "booking_engine.services.notification_service.smtplib.SMTP"
        ) as mock_smtp:
            server = mock_smtp.return_value
            server.starttls.side_effect = smtplib.SMTPNotSupportedError("no TLS")

            with pytest.raises(smtplib.SMTPNotSupportedError):
                send_email("dana@example.test", "Hi", "Body")

        server.sendmail.assert_not_called()
        server.quit.assert_called_once()
