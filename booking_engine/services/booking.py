from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.clock import system_clock
from booking_engine.core.config import settings
from booking_engine.core.exceptions import (
    AlreadyCheckedInError,
    BookingValidationError,
    CheckInWindowClosedError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    SlotConflictError,
)
from booking_engine.models.booking import (
    RESCHEDULE_REASON,
    Booking,
    BookingSource,
    BookingStatus,
    CancelledBy,
    PaymentMethod,
    PaymentStatus,
)
from booking_engine.models.business import Business
from booking_engine.models.customer import Customer
from booking_engine.models.service import Service
from booking_engine.schemas.booking import (
    BookingCreate,
    CustomerDetails,
    PublicBookingCreate,
)
from booking_engine.services.availability import load_calendar
from booking_engine.services.conflicts import ConflictDetector, effective_buffer
from booking_engine.services.notification_service import booking_notifier
from booking_engine.services.payments import (
    calculate_payment_amount,
    calculate_refund_amount,
    from_minor_units,
    verify_payment_signature,
)
from booking_engine.services.policy import CancellationPolicyEngine
from booking_engine.utils.dates import ensure_utc, resolve_timezone, time_to_minutes

logger = structlog.get_logger(__name__)

CHECK_IN_METHOD = "qr_scan"


@dataclass
class CheckInOutcome:
    booking: Booking
    is_early: bool
    is_late: bool
    payment_marked_paid: bool


@dataclass
class RescheduleOutcome:
    original: Booking
    booking: Booking


class BookingService:
    """Booking creation and lifecycle mutations.

    Every mutation reads the current time from the injected clock, commits in
    a single transaction and only then hands off to the notifier.
    """

    def __init__(self, db: AsyncSession, clock=system_clock, notifier=None):
        self.db = db
        self.clock = clock
        self.notifier = notifier or booking_notifier
        self.conflicts = ConflictDetector(db)
        self.policy = CancellationPolicyEngine()

    # Creation

    async def create_public_booking(self, data: PublicBookingCreate) -> Booking:
        """Create a booking submitted from the public booking page."""
        business = await self.conflicts.lock_business(data.business_id)
        if business is None or not business.is_active:
            raise NotFoundError("Business not found")

        service = await self._get_service(business.id, data.service_id)
        customer = await self._find_or_create_customer(business.id, data.customer)

        booking = await self._insert_booking(
            business,
            service,
            customer,
            start_time=data.start_time,
            payment_method=PaymentMethod(data.payment_method.value),
            customer_notes=data.customer_notes,
            source=BookingSource.ONLINE,
            check_rules=True,
        )
        return await self._finish_creation(booking, business, customer)

    async def create_manual_booking(
        self, business: Business, data: BookingCreate
    ) -> Booking:
        """Create a booking on behalf of a customer from the owner dashboard.

        Staff may book outside the public notice and horizon rules, but never
        over another booking.
        """
        business = await self.conflicts.lock_business(business.id)
        service = await self._get_service(business.id, data.service_id)

        if data.customer_id is not None:
            customer = await self.db.get(Customer, data.customer_id)
            if customer is None or customer.business_id != business.id:
                raise NotFoundError("Customer not found")
        else:
            customer = await self._find_or_create_customer(business.id, data.customer)

        booking = await self._insert_booking(
            business,
            service,
            customer,
            start_time=data.start_time,
            payment_method=PaymentMethod(data.payment_method.value),
            customer_notes=data.customer_notes,
            source=BookingSource.MANUAL,
            check_rules=False,
        )
        return await self._finish_creation(booking, business, customer)

    async def _finish_creation(
        self, booking: Booking, business: Business, customer: Customer
    ) -> Booking:
        customer.total_bookings = (customer.total_bookings or 0) + 1
        await self.db.commit()
        await self.db.refresh(booking)

        logger.info(
            "Booking created",
            booking_id=booking.id,
            business_id=business.id,
            status=booking.status,
            source=booking.booking_source,
            start_time=booking.start_time.isoformat(),
        )
        self.notifier.booking_created(booking, business, customer)
        return booking

    async def _insert_booking(
        self,
        business: Business,
        service: Service,
        customer: Customer,
        start_time: datetime,
        payment_method: PaymentMethod,
        customer_notes: Optional[str],
        source: BookingSource,
        check_rules: bool,
    ) -> Booking:
        start = ensure_utc(start_time)
        end = start + timedelta(minutes=service.duration_minutes)
        now = self.clock.now()

        if check_rules:
            await self._check_booking_rules(business, start, end, now)

        if await self.conflicts.has_conflict(
            business.id, start, end, buffer=effective_buffer(business)
        ):
            raise SlotConflictError(
                "This time slot is no longer available",
                start_time=start,
                end_time=end,
            )

        if business.requires_online_payment and payment_method == PaymentMethod.ONLINE:
            status = BookingStatus.PENDING_PAYMENT
            amount = calculate_payment_amount(
                service.price, business.advance_payment_percent
            )
        else:
            status = BookingStatus.CONFIRMED
            amount = Decimal(str(service.price))

        booking = Booking(
            business_id=business.id,
            service_id=service.id,
            customer_id=customer.id,
            start_time=start,
            end_time=end,
            status=status.value,
            status_changed_at=now,
            booking_source=source.value,
            customer_notes=customer_notes,
            payment_method=payment_method.value,
            payment_status=PaymentStatus.PENDING.value,
            payment_amount=amount,
        )
        self.db.add(booking)
        await self.db.flush()
        return booking

    async def _check_booking_rules(
        self, business: Business, start: datetime, end: datetime, now: datetime
    ) -> None:
        """Notice floor, booking horizon and opening hours for public bookings."""
        if start < now + timedelta(hours=business.min_notice_hours):
            raise BookingValidationError(
                f"Bookings must be made at least {business.min_notice_hours} "
                "hours in advance"
            )
        if start > now + timedelta(days=business.max_advance_days):
            raise BookingValidationError(
                f"Bookings can only be made up to {business.max_advance_days} "
                "days in advance"
            )

        tz = resolve_timezone(business.timezone)
        local_start = start.astimezone(tz)
        local_end = end.astimezone(tz)
        day = local_start.date()
        calendar = await load_calendar(self.db, business, day, day)
        window = calendar.window_for(day.weekday())

        if calendar.is_blocked(day) or window is None:
            raise BookingValidationError("The business is closed on this date")

        start_minute = local_start.hour * 60 + local_start.minute
        end_minute = (
            start_minute + int((local_end - local_start).total_seconds() // 60)
        )
        if start_minute < time_to_minutes(window.start_time) or end_minute > (
            time_to_minutes(window.end_time)
        ):
            raise BookingValidationError("Selected time is outside business hours")

    # Reads

    async def get_booking(self, booking_uuid: UUID, lock: bool = False) -> Booking:
        query = select(Booking).where(Booking.uuid == booking_uuid)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        booking = (await self.db.execute(query)).scalar_one_or_none()
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    async def get_owned_booking(
        self, booking_uuid: UUID, business: Business, lock: bool = False
    ) -> Booking:
        booking = await self.get_booking(booking_uuid, lock=lock)
        if booking.business_id != business.id:
            raise ForbiddenError("Booking belongs to another business")
        return booking

    async def list_bookings(
        self,
        business: Business,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        status: Optional[BookingStatus] = None,
    ) -> Sequence[Booking]:
        query = select(Booking).where(Booking.business_id == business.id)
        if start is not None:
            query = query.where(Booking.start_time >= ensure_utc(start))
        if end is not None:
            query = query.where(Booking.start_time < ensure_utc(end))
        if status is not None:
            query = query.where(Booking.status == status.value)
        result = await self.db.execute(query.order_by(Booking.start_time))
        return result.scalars().all()

    async def check_cancellation(self, booking_uuid: UUID) -> dict:
        booking = await self.get_booking(booking_uuid)
        business = await self._get_business(booking.business_id)
        decision = self.policy.evaluate(booking, business, self.clock.now())
        return {
            "can_cancel": decision.can_cancel,
            "reason": decision.reason,
            "hours_until_booking": decision.hours_until_booking,
            "policy": business.cancellation_policy or "flexible",
            "policy_description": self.policy.describe(business),
            "cancellation_hours": self.policy.required_hours(business),
        }

    # Lifecycle mutations

    async def cancel_booking(
        self,
        booking_uuid: UUID,
        cancelled_by: str,
        reason: Optional[str] = None,
    ) -> Booking:
        try:
            cancelled_by = CancelledBy(cancelled_by)
        except ValueError:
            raise BookingValidationError("Invalid cancelledBy value")

        booking = await self.get_booking(booking_uuid, lock=True)
        business = await self._get_business(booking.business_id)
        now = self.clock.now()

        self._ensure_cancellable(booking)
        self.policy.enforce(self.policy.evaluate(booking, business, now))

        booking.transition_to(BookingStatus.CANCELLED, now)
        booking.cancelled_by = cancelled_by.value
        booking.cancellation_reason = reason or None

        await self.db.commit()
        await self.db.refresh(booking)
        logger.info(
            "Booking cancelled",
            booking_id=booking.id,
            cancelled_by=booking.cancelled_by,
            reason=booking.cancellation_reason,
        )

        customer = await self.db.get(Customer, booking.customer_id)
        self.notifier.booking_cancelled(booking, business, customer)
        return booking

    async def reschedule_booking(
        self,
        booking_uuid: UUID,
        new_start_time: datetime,
        new_end_time: Optional[datetime] = None,
    ) -> RescheduleOutcome:
        """Cancel a booking and create its replacement at a new time.

        Only confirmed bookings move. Both rows change in one transaction:
        either the original is cancelled and linked to a new confirmed booking
        that takes over its payment, or nothing changes.
        """
        original = await self.get_booking(booking_uuid)
        business = await self.conflicts.lock_business(original.business_id)
        original = await self.get_booking(booking_uuid, lock=True)
        now = self.clock.now()

        self._ensure_cancellable(original, action="reschedule")
        if original.status != BookingStatus.CONFIRMED.value:
            raise InvalidStateError(
                f"Cannot reschedule a booking that is {original.status}"
            )
        self.policy.enforce(self.policy.evaluate_reschedule(original, business, now))

        service = await self.db.get(Service, original.service_id)
        start = ensure_utc(new_start_time)
        end = start + timedelta(minutes=service.duration_minutes)
        if new_end_time is not None and ensure_utc(new_end_time) != end:
            raise BookingValidationError(
                f"New end time must be {service.duration_minutes} minutes after "
                "the new start time"
            )
        if start < now:
            raise BookingValidationError("Cannot reschedule to a time in the past")
        await self._check_booking_rules(business, start, end, now)

        if await self.conflicts.has_conflict(
            business.id,
            start,
            end,
            buffer=effective_buffer(business),
            exclude_ids=[original.id],
        ):
            raise SlotConflictError(
                "This time slot is no longer available",
                start_time=start,
                end_time=end,
            )

        replacement = Booking(
            business_id=original.business_id,
            service_id=original.service_id,
            customer_id=original.customer_id,
            start_time=start,
            end_time=end,
            status=BookingStatus.CONFIRMED.value,
            status_changed_at=now,
            booking_source=original.booking_source,
            customer_notes=original.customer_notes,
            payment_method=original.payment_method,
            payment_status=original.payment_status,
            payment_amount=original.payment_amount,
            paid_at=original.paid_at,
            payment_order_id=original.payment_order_id,
            payment_id=original.payment_id,
            payment_signature=original.payment_signature,
            rescheduled_from_id=original.id,
        )
        # Gateway ids identify one live booking
        original.payment_order_id = None
        original.payment_id = None
        original.payment_signature = None
        self.db.add(replacement)
        await self.db.flush()

        original.transition_to(BookingStatus.CANCELLED, now)
        original.cancelled_by = CancelledBy.CUSTOMER.value
        original.cancellation_reason = RESCHEDULE_REASON
        original.rescheduled_to_id = replacement.id
        original.rescheduled_at = now

        await self.db.commit()
        await self.db.refresh(original)
        await self.db.refresh(replacement)
        logger.info(
            "Booking rescheduled",
            original_id=original.id,
            new_booking_id=replacement.id,
            new_start_time=start.isoformat(),
        )

        customer = await self.db.get(Customer, original.customer_id)
        self.notifier.booking_rescheduled(original, replacement, business, customer)
        return RescheduleOutcome(original=original, booking=replacement)

    async def check_in(self, booking_uuid: UUID) -> CheckInOutcome:
        booking = await self.get_booking(booking_uuid, lock=True)
        now = self.clock.now()

        if booking.checked_in_at is not None:
            raise AlreadyCheckedInError(ensure_utc(booking.checked_in_at))
        if not booking.can_transition_to(BookingStatus.CHECKED_IN):
            raise InvalidStateError(
                f"Cannot check in a booking that is {booking.status}"
            )

        start = ensure_utc(booking.start_time)
        grace_minutes = settings.CHECK_IN_GRACE_MINUTES
        grace_end = start + timedelta(minutes=grace_minutes)
        if now > grace_end:
            raise CheckInWindowClosedError(
                start, grace_end, current_time=now, grace_minutes=grace_minutes
            )

        booking.transition_to(BookingStatus.CHECKED_IN, now)
        booking.check_in_method = CHECK_IN_METHOD

        # Cash bookings are settled at the door
        payment_marked_paid = False
        if (
            booking.payment_method == PaymentMethod.CASH.value
            and booking.payment_status == PaymentStatus.PENDING.value
        ):
            booking.payment_status = PaymentStatus.PAID.value
            booking.paid_at = now
            payment_marked_paid = True

        await self.db.commit()
        await self.db.refresh(booking)
        logger.info(
            "Booking checked in",
            booking_id=booking.id,
            payment_marked_paid=payment_marked_paid,
        )
        return CheckInOutcome(
            booking=booking,
            is_early=now < start,
            is_late=now > start,
            payment_marked_paid=payment_marked_paid,
        )

    async def mark_paid(self, booking_uuid: UUID, business: Business) -> Booking:
        booking = await self.get_owned_booking(booking_uuid, business, lock=True)

        if booking.payment_method != PaymentMethod.CASH.value:
            raise InvalidStateError("Only cash payments can be manually marked as paid")
        if booking.payment_status == PaymentStatus.PAID.value:
            raise InvalidStateError("Booking is already marked as paid")

        booking.payment_status = PaymentStatus.PAID.value
        booking.paid_at = self.clock.now()

        await self.db.commit()
        await self.db.refresh(booking)
        logger.info("Cash booking marked as paid", booking_id=booking.id)
        return booking

    async def mark_no_show(self, booking_uuid: UUID, business: Business) -> Booking:
        booking = await self.get_owned_booking(booking_uuid, business, lock=True)
        now = self.clock.now()

        if ensure_utc(booking.end_time) > now:
            raise InvalidStateError("Cannot mark future booking as no-show")
        if not booking.can_transition_to(BookingStatus.NO_SHOW):
            raise InvalidStateError(
                f"Cannot mark a booking that is {booking.status} as no-show"
            )

        booking.transition_to(BookingStatus.NO_SHOW, now)
        await self.db.execute(
            update(Customer)
            .where(Customer.id == booking.customer_id)
            .values(no_show_count=Customer.no_show_count + 1)
            .execution_options(synchronize_session=False)
        )

        await self.db.commit()
        await self.db.refresh(booking)
        logger.info(
            "Booking marked as no-show",
            booking_id=booking.id,
            customer_id=booking.customer_id,
        )
        return booking

    # Payment signals

    async def confirm_payment(
        self, booking_uuid: UUID, order_id: str, payment_id: str, signature: str
    ) -> Booking:
        booking = await self.get_booking(booking_uuid, lock=True)
        business = await self._get_business(booking.business_id)

        if not business.payment_key_secret:
            raise BookingValidationError("Payment settings not configured")
        if not verify_payment_signature(
            order_id, payment_id, signature, business.payment_key_secret
        ):
            logger.warning("Invalid payment signature", booking_id=booking.id)
            raise BookingValidationError("Invalid payment signature")

        self._record_capture(booking, order_id, payment_id, signature)
        await self.db.commit()
        await self.db.refresh(booking)
        logger.info("Payment verified", booking_id=booking.id, status=booking.status)
        return booking

    async def handle_gateway_event(self, event: dict) -> Optional[Booking]:
        """Apply a verified gateway webhook event. Unknown events and unknown
        bookings are logged and ignored.
        """
        name = event.get("event")
        payload = event.get("payload") or {}

        if name in ("payment.captured", "payment.failed"):
            payment = (payload.get("payment") or {}).get("entity") or {}
            booking = await self._find_by(Booking.payment_order_id, payment.get("order_id"))
            if booking is None:
                logger.warning("Booking not found for order", order_id=payment.get("order_id"))
                return None
            if name == "payment.captured":
                self._record_capture(booking, payment.get("order_id"), payment.get("id"))
            else:
                booking.payment_status = PaymentStatus.FAILED.value

        elif name == "refund.created":
            refund = (payload.get("refund") or {}).get("entity") or {}
            booking = await self._find_by(Booking.payment_id, refund.get("payment_id"))
            if booking is None:
                logger.warning(
                    "Booking not found for payment", payment_id=refund.get("payment_id")
                )
                return None
            booking.payment_status = PaymentStatus.REFUNDED.value
            booking.refund_id = refund.get("id")
            booking.refund_amount = from_minor_units(refund.get("amount") or 0)
            booking.refunded_at = self.clock.now()

        else:
            logger.info("Unhandled gateway event", gateway_event=name)
            return None

        await self.db.commit()
        await self.db.refresh(booking)
        logger.info(
            "Gateway event applied",
            gateway_event=name,
            booking_id=booking.id,
            payment_status=booking.payment_status,
        )
        return booking

    async def refund_booking(
        self, booking_uuid: UUID, refund_id: str, business: Business
    ) -> tuple[Booking, Decimal]:
        """Record a refund issued by the gateway for a cancelled, paid booking."""
        booking = await self.get_owned_booking(booking_uuid, business, lock=True)

        if not business.allow_refunds:
            raise BookingValidationError("Refunds are not allowed")
        if booking.status != BookingStatus.CANCELLED.value:
            raise InvalidStateError("Only cancelled bookings can be refunded")
        if booking.rescheduled_to_id is not None:
            raise InvalidStateError("Payment moved to the rescheduled booking")
        if booking.refund_id:
            raise InvalidStateError("Refund already processed")
        if booking.payment_status != PaymentStatus.PAID.value:
            raise InvalidStateError("Booking is not paid")

        amount = calculate_refund_amount(
            booking.payment_amount or 0, business.refund_percentage
        )
        if amount <= 0:
            raise BookingValidationError("No refund amount configured")

        booking.payment_status = PaymentStatus.REFUNDED.value
        booking.refund_id = refund_id
        booking.refund_amount = amount
        booking.refunded_at = self.clock.now()

        await self.db.commit()
        await self.db.refresh(booking)
        logger.info("Refund recorded", booking_id=booking.id, refund_amount=str(amount))
        return booking, amount

    # Helpers

    def _ensure_cancellable(self, booking: Booking, action: str = "cancel") -> None:
        if booking.status == BookingStatus.CANCELLED.value:
            raise InvalidStateError("This booking has already been cancelled")
        if not booking.can_transition_to(BookingStatus.CANCELLED):
            raise InvalidStateError(
                f"Cannot {action} a booking that is {booking.status}"
            )

    def _record_capture(
        self,
        booking: Booking,
        order_id: Optional[str],
        payment_id: Optional[str],
        signature: Optional[str] = None,
    ) -> None:
        now = self.clock.now()
        booking.payment_status = PaymentStatus.PAID.value
        booking.payment_method = PaymentMethod.ONLINE.value
        booking.payment_order_id = booking.payment_order_id or order_id
        booking.payment_id = payment_id
        if signature:
            booking.payment_signature = signature
        booking.paid_at = now
        if booking.status == BookingStatus.PENDING_PAYMENT.value:
            booking.transition_to(BookingStatus.CONFIRMED, now)

    async def _find_by(self, column, value) -> Optional[Booking]:
        if not value:
            return None
        result = await self.db.execute(
            select(Booking)
            .where(column == value)
            .order_by(Booking.id.desc())
            .with_for_update()
        )
        return result.scalars().first()

    async def _get_business(self, business_id: int) -> Business:
        business = await self.db.get(Business, business_id)
        if business is None:
            raise NotFoundError("Business not found")
        return business

    async def _get_service(self, business_id: int, service_id: int) -> Service:
        service = await self.db.get(Service, service_id)
        if service is None or service.business_id != business_id or not service.is_active:
            raise NotFoundError("Service not found")
        return service

    async def _find_or_create_customer(
        self, business_id: int, details: CustomerDetails
    ) -> Customer:
        result = await self.db.execute(
            select(Customer).where(
                Customer.business_id == business_id, Customer.phone == details.phone
            )
        )
        customer = result.scalar_one_or_none()
        if customer is None:
            customer = Customer(
                business_id=business_id,
                name=details.name,
                email=details.email,
                phone=details.phone,
                no_show_count=0,
                total_bookings=0,
            )
            self.db.add(customer)
            await self.db.flush()
            logger.info("Customer created", customer_id=customer.id, business_id=business_id)
        else:
            customer.name = details.name
            if details.email:
                customer.email = details.email
        return customer
