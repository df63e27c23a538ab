import uuid

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from booking_engine.core.database import Base


class Customer(Base):
    """Customer of a business, identified by phone within that business."""

    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(
        UUID(as_uuid=True), unique=True, nullable=False, default=uuid.uuid4, index=True
    )
    business_id = Column(
        Integer, ForeignKey("businesses.id"), nullable=False, index=True
    )

    # Contact information
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(20), nullable=False)
    notes = Column(Text, nullable=True)

    # Customer behavior counters
    no_show_count = Column(Integer, default=0, nullable=False)
    total_bookings = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("business_id", "phone", name="uq_customer_business_phone"),
    )

    def __repr__(self):
        return (
            f"<Customer(id={self.id}, name='{self.name}', "
            f"no_shows={self.no_show_count})>"
        )
