from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Text,
    ForeignKey,
    Numeric,
    CheckConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from booking_engine.core.database import Base
import enum
import uuid
from datetime import datetime


class BookingStatus(enum.Enum):
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class PaymentMethod(enum.Enum):
    CASH = "cash"
    ONLINE = "online"


class PaymentStatus(enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class CancelledBy(enum.Enum):
    CUSTOMER = "customer"
    BUSINESS = "business"


class BookingSource(enum.Enum):
    ONLINE = "online"
    MANUAL = "manual"


RESCHEDULE_REASON = "Rescheduled"

ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING_PAYMENT: [
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
    ],
    BookingStatus.CONFIRMED: [
        BookingStatus.CHECKED_IN,
        BookingStatus.CANCELLED,
        BookingStatus.NO_SHOW,
    ],
    BookingStatus.CHECKED_IN: [BookingStatus.COMPLETED],
    BookingStatus.COMPLETED: [],  # Final state
    BookingStatus.CANCELLED: [],  # Final state
    BookingStatus.NO_SHOW: [],  # Final state
}


class Booking(Base):
    """Single booking of a service by a customer, with its lifecycle state."""

    __tablename__ = "bookings"

    # Core identity
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(
        UUID(as_uuid=True), unique=True, nullable=False, default=uuid.uuid4, index=True
    )
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)

    # Scheduling details, stored in UTC
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=False)

    # Status management
    status = Column(
        String(20), nullable=False, default=BookingStatus.CONFIRMED.value, index=True
    )
    previous_status = Column(String(20), nullable=True)
    status_changed_at = Column(DateTime(timezone=True), nullable=True)

    booking_source = Column(String(20), default=BookingSource.ONLINE.value)
    customer_notes = Column(Text, nullable=True)

    # Payment
    payment_method = Column(
        String(20), nullable=False, default=PaymentMethod.CASH.value
    )
    payment_status = Column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value
    )
    payment_amount = Column(Numeric(10, 2), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_order_id = Column(String(255), nullable=True, index=True)
    payment_id = Column(String(255), nullable=True)
    payment_signature = Column(String(255), nullable=True)

    # Refunds
    refund_id = Column(String(255), nullable=True)
    refund_amount = Column(Numeric(10, 2), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    # Check-in
    checked_in_at = Column(DateTime(timezone=True), nullable=True)
    check_in_method = Column(String(20), nullable=True)

    # Cancellation management
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String(20), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Rescheduling links
    rescheduled_from_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    rescheduled_to_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    rescheduled_at = Column(DateTime(timezone=True), nullable=True)

    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="check_booking_end_after_start"),
        CheckConstraint(
            "payment_amount >= 0", name="check_booking_non_negative_amount"
        ),
        Index("ix_bookings_business_start", "business_id", "start_time"),
    )

    # Relationships
    business = relationship("Business")
    service = relationship("Service")
    customer = relationship("Customer")

    # Status transition methods
    def can_transition_to(self, new_status: BookingStatus) -> bool:
        """Check if booking can transition to the new status."""
        current = BookingStatus(self.status)
        return new_status in ALLOWED_TRANSITIONS.get(current, [])

    def transition_to(self, new_status: BookingStatus, now: datetime) -> bool:
        """Transition booking to new status, stamping the status-specific
        timestamp. Returns False without mutating when the edge is not allowed.
        """
        if not self.can_transition_to(new_status):
            return False

        self.previous_status = self.status
        self.status = new_status.value
        self.status_changed_at = now

        if new_status == BookingStatus.CANCELLED:
            self.cancelled_at = now
        elif new_status == BookingStatus.CHECKED_IN:
            self.checked_in_at = now
        elif new_status == BookingStatus.COMPLETED:
            self.completed_at = now

        return True

    @property
    def is_active(self) -> bool:
        """Active bookings occupy their interval on the calendar."""
        return self.status != BookingStatus.CANCELLED.value

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[BookingStatus(self.status)]

    def __repr__(self):
        return (
            f"<Booking(id={self.id}, status='{self.status}', "
            f"start='{self.start_time}', customer_id={self.customer_id})>"
        )
