"""Booking notifications.

Emails are sent from celery workers. Enqueueing is best effort: a failure to
reach the broker is logged and never fails the booking change that triggered
it.
"""
import smtplib
from email.mime.text import MIMEText
from typing import Optional

import structlog

from booking_engine.core.celery import celery_app
from booking_engine.core.config import settings
from booking_engine.models.booking import Booking
from booking_engine.models.business import Business
from booking_engine.models.customer import Customer
from booking_engine.utils.dates import ensure_utc, resolve_timezone

logger = structlog.get_logger(__name__)


def send_email(to_email: str, subject: str, body: str) -> bool:
    """Send a plain-text email over SMTP. Returns False when SMTP is not
    configured.
    """
    if not settings.SMTP_HOST:
        logger.info("SMTP not configured, skipping email", to=to_email, subject=subject)
        return False

    msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = settings.FROM_EMAIL
    msg["To"] = to_email

    if settings.SMTP_USE_TLS:
        server = smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT)
    else:
        server = smtplib.SMTP_SSL(settings.SMTP_HOST, settings.SMTP_PORT)
    try:
        if settings.SMTP_USE_TLS:
            server.starttls()
        if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
            server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.sendmail(settings.FROM_EMAIL, [to_email], msg.as_string())
    finally:
        server.quit()

    logger.info("Email sent", to=to_email, subject=subject)
    return True


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def send_email_task(self, to_email: str, subject: str, body: str):
    try:
        return send_email(to_email, subject, body)
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning(
            "Email delivery failed, retrying",
            to=to_email,
            attempt=self.request.retries + 1,
            error=str(exc),
        )
        raise self.retry(exc=exc)


def _local(business: Business, value) -> str:
    tz = resolve_timezone(business.timezone)
    return ensure_utc(value).astimezone(tz).strftime("%A %d %B %Y, %H:%M")


class BookingNotifier:
    """Composes booking emails for customers and businesses and enqueues them."""

    def _dispatch(self, to_email: Optional[str], subject: str, body: str) -> None:
        if not to_email:
            return
        try:
            send_email_task.delay(to_email, subject, body)
        except Exception as e:
            logger.warning(
                "Failed to enqueue notification",
                to=to_email,
                subject=subject,
                error=str(e),
            )

    def booking_created(
        self, booking: Booking, business: Business, customer: Customer
    ) -> None:
        when = _local(business, booking.start_time)
        self._dispatch(
            customer.email,
            f"Your booking with {business.name}",
            f"Hi {customer.name},\n\nYour booking on {when} is {booking.status}."
            + (f"\n\n{business.booking_message}" if business.booking_message else ""),
        )
        self._dispatch(
            business.email,
            f"New booking from {customer.name}",
            f"{customer.name} ({customer.phone}) booked {when}.",
        )

    def booking_cancelled(
        self,
        booking: Booking,
        business: Business,
        customer: Customer,
    ) -> None:
        when = _local(business, booking.start_time)
        reason = booking.cancellation_reason or "No reason given"
        self._dispatch(
            customer.email,
            f"Booking cancelled with {business.name}",
            f"Hi {customer.name},\n\nYour booking on {when} has been cancelled.\n"
            f"Reason: {reason}",
        )
        self._dispatch(
            business.email,
            f"Booking cancelled by {booking.cancelled_by}",
            f"The booking of {customer.name} on {when} was cancelled.\n"
            f"Reason: {reason}",
        )

    def booking_rescheduled(
        self,
        original: Booking,
        booking: Booking,
        business: Business,
        customer: Customer,
    ) -> None:
        old_when = _local(business, original.start_time)
        new_when = _local(business, booking.start_time)
        self._dispatch(
            customer.email,
            f"Booking rescheduled with {business.name}",
            f"Hi {customer.name},\n\nYour booking on {old_when} "
            f"has been moved to {new_when}.",
        )
        self._dispatch(
            business.email,
            f"Booking rescheduled by {customer.name}",
            f"{customer.name} moved their booking from {old_when} to {new_when}.",
        )


booking_notifier = BookingNotifier()
