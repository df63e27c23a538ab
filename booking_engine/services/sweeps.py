from datetime import timedelta

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.clock import system_clock
from booking_engine.core.config import settings
from booking_engine.models.booking import Booking, BookingStatus
from booking_engine.models.customer import Customer

logger = structlog.get_logger(__name__)


class SweepService:
    """Periodic, idempotent status sweeps.

    Each candidate row is updated with its prior status in the WHERE clause,
    so a row already moved by an overlapping sweep matches nothing and is not
    counted twice.
    """

    def __init__(self, db: AsyncSession, clock=system_clock):
        self.db = db
        self.clock = clock

    async def auto_complete(self) -> int:
        """Checked-in bookings whose end time has passed become completed."""
        now = self.clock.now()
        candidates = await self.db.execute(
            select(Booking.id).where(
                Booking.status == BookingStatus.CHECKED_IN.value,
                Booking.end_time < now,
            )
        )

        completed = 0
        for booking_id in candidates.scalars().all():
            result = await self.db.execute(
                update(Booking)
                .where(
                    Booking.id == booking_id,
                    Booking.status == BookingStatus.CHECKED_IN.value,
                )
                .values(
                    status=BookingStatus.COMPLETED.value,
                    previous_status=BookingStatus.CHECKED_IN.value,
                    status_changed_at=now,
                    completed_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            completed += result.rowcount

        await self.db.commit()
        logger.info("Auto-complete sweep finished", completed=completed)
        return completed

    async def auto_no_show(self) -> int:
        """Confirmed bookings never checked in past the grace period become
        no-shows, and their customer's no-show counter goes up by one.
        """
        now = self.clock.now()
        cutoff = now - timedelta(minutes=settings.NO_SHOW_GRACE_MINUTES)
        candidates = await self.db.execute(
            select(Booking.id, Booking.customer_id).where(
                Booking.status == BookingStatus.CONFIRMED.value,
                Booking.checked_in_at.is_(None),
                Booking.start_time < cutoff,
            )
        )

        marked = 0
        for booking_id, customer_id in candidates.all():
            result = await self.db.execute(
                update(Booking)
                .where(
                    Booking.id == booking_id,
                    Booking.status == BookingStatus.CONFIRMED.value,
                    Booking.checked_in_at.is_(None),
                )
                .values(
                    status=BookingStatus.NO_SHOW.value,
                    previous_status=BookingStatus.CONFIRMED.value,
                    status_changed_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                continue

            await self.db.execute(
                update(Customer)
                .where(Customer.id == customer_id)
                .values(no_show_count=Customer.no_show_count + 1)
                .execution_options(synchronize_session=False)
            )
            marked += 1

        await self.db.commit()
        logger.info("Auto no-show sweep finished", marked=marked)
        return marked
