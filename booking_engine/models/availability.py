import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from booking_engine.core.database import Base


class WeekDay(enum.Enum):
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


class AvailabilityWindow(Base):
    """Recurring weekly opening window; one row per weekday."""

    __tablename__ = "availability_windows"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False)

    # Schedule details
    day_of_week = Column(Integer, nullable=False)  # WeekDay value, Monday = 0
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("business_id", "day_of_week", name="uq_availability_day"),
        CheckConstraint(
            "day_of_week >= 0 AND day_of_week <= 6", name="check_day_of_week_range"
        ),
        CheckConstraint("end_time > start_time", name="check_window_end_after_start"),
    )

    business = relationship("Business", back_populates="availability_windows")

    def __repr__(self):
        return (
            f"<AvailabilityWindow(business_id={self.business_id}, "
            f"{WeekDay(self.day_of_week).name}: {self.start_time}-{self.end_time}, "
            f"available={self.is_available})>"
        )


class BlockedDate(Base):
    """A calendar date on which no slots are offered."""

    __tablename__ = "blocked_dates"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False)
    date = Column(Date, nullable=False)
    all_day = Column(Boolean, default=True, nullable=False)
    reason = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("ix_blocked_dates_business_date", "business_id", "date"),)

    business = relationship("Business", back_populates="blocked_dates")

    def __repr__(self):
        return f"<BlockedDate(business_id={self.business_id}, date={self.date})>"
