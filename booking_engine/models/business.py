import enum
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from booking_engine.core.database import Base


class CancellationPolicy(enum.Enum):
    FLEXIBLE = "flexible"
    MODERATE = "moderate"
    STRICT = "strict"


class Business(Base):
    """Business model with booking rules, cancellation policy and payment
    settings.
    """

    __tablename__ = "businesses"

    # Core identity
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(
        UUID(as_uuid=True), unique=True, nullable=False, default=uuid.uuid4, index=True
    )
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)

    # Owner access token for dashboard operations
    api_key = Column(String(128), unique=True, nullable=True, index=True)

    # Location & timezone
    timezone = Column(String(50), nullable=False, default="UTC")
    currency = Column(String(10), nullable=False, default="USD")
    holiday_country = Column(String(2), nullable=True)  # ISO 3166 alpha-2

    # Booking rules
    buffer_minutes = Column(Integer, nullable=False, default=0)
    enforce_buffer = Column(Boolean, nullable=False, default=True)
    min_notice_hours = Column(Integer, nullable=False, default=2)
    max_advance_days = Column(Integer, nullable=False, default=30)
    booking_message = Column(Text, nullable=True)

    # Cancellation policy
    cancellation_policy = Column(
        String(20), nullable=False, default=CancellationPolicy.FLEXIBLE.value
    )
    cancellation_hours = Column(Integer, nullable=True, default=24)

    # Payment settings
    requires_online_payment = Column(Boolean, nullable=False, default=False)
    advance_payment_percent = Column(Integer, nullable=False, default=100)
    allow_refunds = Column(Boolean, nullable=False, default=False)
    refund_percentage = Column(Integer, nullable=False, default=100)
    payment_key_secret = Column(String(255), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "buffer_minutes >= 0 AND buffer_minutes <= 120",
            name="check_buffer_minutes_range",
        ),
        CheckConstraint(
            "min_notice_hours >= 0 AND min_notice_hours <= 168",
            name="check_min_notice_hours_range",
        ),
        CheckConstraint(
            "max_advance_days >= 1 AND max_advance_days <= 365",
            name="check_max_advance_days_range",
        ),
        CheckConstraint(
            "refund_percentage >= 0 AND refund_percentage <= 100",
            name="check_refund_percentage_range",
        ),
    )

    # Relationships
    services = relationship("Service", back_populates="business")
    availability_windows = relationship(
        "AvailabilityWindow", back_populates="business"
    )
    blocked_dates = relationship("BlockedDate", back_populates="business")

    def __repr__(self):
        return (
            f"<Business(id={self.id}, name='{self.name}', "
            f"policy='{self.cancellation_policy}')>"
        )
