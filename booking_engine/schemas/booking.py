from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from booking_engine.models.booking import BookingStatus, PaymentStatus
from booking_engine.utils.dates import ensure_utc


class PaymentMethodSchema(str, Enum):
    CASH = "cash"
    ONLINE = "online"


class BookingSourceSchema(str, Enum):
    ONLINE = "online"
    MANUAL = "manual"


class CustomerDetails(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=3, max_length=20)
    email: Optional[str] = Field(None, max_length=255)


# Request schemas
class BookingCreate(BaseModel):
    """Staff-initiated manual booking for an existing or new customer."""

    service_id: int
    start_time: datetime
    customer_id: Optional[int] = None
    customer: Optional[CustomerDetails] = None
    payment_method: PaymentMethodSchema = PaymentMethodSchema.CASH
    customer_notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_customer(self):
        if self.customer_id is None and self.customer is None:
            raise ValueError("Either customer_id or customer details are required")
        return self


class PublicBookingCreate(BaseModel):
    business_id: int
    service_id: int
    start_time: datetime
    customer: CustomerDetails
    payment_method: PaymentMethodSchema = PaymentMethodSchema.CASH
    customer_notes: Optional[str] = None


class BookingCancel(BaseModel):
    # Checked by the lifecycle so that bad values surface as a booking error
    cancelled_by: str
    reason: Optional[str] = None


class BookingReschedule(BaseModel):
    new_start_time: datetime
    new_end_time: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_interval(self):
        if self.new_end_time is not None and self.new_end_time <= self.new_start_time:
            raise ValueError("New end time must be after new start time")
        return self


# Response schemas
class Booking(BaseModel):
    id: int
    uuid: UUID
    business_id: int
    service_id: int
    customer_id: int

    start_time: datetime
    end_time: datetime

    status: BookingStatus
    previous_status: Optional[BookingStatus] = None
    status_changed_at: Optional[datetime] = None
    booking_source: Optional[BookingSourceSchema] = None
    customer_notes: Optional[str] = None

    # Payment
    payment_method: PaymentMethodSchema
    payment_status: PaymentStatus
    payment_amount: Optional[Decimal] = None
    paid_at: Optional[datetime] = None
    payment_order_id: Optional[str] = None
    payment_id: Optional[str] = None
    refund_id: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    refunded_at: Optional[datetime] = None

    # Check-in
    checked_in_at: Optional[datetime] = None
    check_in_method: Optional[str] = None

    # Cancellation and rescheduling
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    rescheduled_from_id: Optional[int] = None
    rescheduled_to_id: Optional[int] = None
    rescheduled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator(
        "start_time",
        "end_time",
        "status_changed_at",
        "paid_at",
        "refunded_at",
        "checked_in_at",
        "cancelled_at",
        "rescheduled_at",
        "completed_at",
        "created_at",
        "updated_at",
    )
    @classmethod
    def as_utc(cls, value):
        return ensure_utc(value)


class BookingList(BaseModel):
    bookings: List[Booking]
    total_count: int


class RescheduleResult(BaseModel):
    original: Booking
    booking: Booking


class CheckInResult(BaseModel):
    booking: Booking
    is_early: bool
    is_late: bool
    payment_marked_paid: bool


class CancellationCheck(BaseModel):
    can_cancel: bool
    reason: Optional[str] = None
    hours_until_booking: float
    policy: str
    policy_description: str
    cancellation_hours: Optional[int] = None


class SweepResult(BaseModel):
    success: bool = True
    updated: int
    timestamp: datetime
