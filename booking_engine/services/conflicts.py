from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

import structlog
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.models.booking import Booking, BookingStatus
from booking_engine.models.business import Business
from booking_engine.utils.dates import ensure_utc

logger = structlog.get_logger(__name__)


def intervals_overlap(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """Half-open overlap test: [a, b) and [c, d) overlap iff a < d and c < b."""
    return start_a < end_b and start_b < end_a


def effective_buffer(business: Business) -> timedelta:
    """Gap appended after every existing booking when testing for overlap.

    Zero when the business has buffer enforcement switched off.
    """
    if not business.enforce_buffer:
        return timedelta(0)
    return timedelta(minutes=business.buffer_minutes or 0)


class ConflictDetector:
    """Authoritative overlap gate for a business's single default resource."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def lock_business(self, business_id: int) -> Optional[Business]:
        """Take a row lock on the business for the rest of the transaction.

        Concurrent create/reschedule requests for the same business queue up
        on this lock, so their overlap check and insert cannot interleave.
        """
        result = await self.db.execute(
            select(Business).where(Business.id == business_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def find_conflicts(
        self,
        business_id: int,
        start: datetime,
        end: datetime,
        buffer: timedelta = timedelta(0),
        exclude_ids: Iterable[int] = (),
    ) -> Sequence[Booking]:
        """Non-cancelled bookings whose (buffer-extended) interval overlaps
        ``[start, end)``.
        """
        start = ensure_utc(start)
        end = ensure_utc(end)

        conditions = [
            Booking.business_id == business_id,
            Booking.status != BookingStatus.CANCELLED.value,
            Booking.start_time < end,
            # existing.end + buffer > start
            Booking.end_time > start - buffer,
        ]
        exclude_ids = [i for i in exclude_ids if i is not None]
        if exclude_ids:
            conditions.append(Booking.id.notin_(exclude_ids))

        result = await self.db.execute(
            select(Booking).where(and_(*conditions)).order_by(Booking.start_time)
        )
        conflicts = result.scalars().all()
        if conflicts:
            logger.info(
                "Booking interval conflicts",
                business_id=business_id,
                start=start.isoformat(),
                end=end.isoformat(),
                conflicting_ids=[b.id for b in conflicts],
            )
        return conflicts

    async def has_conflict(
        self,
        business_id: int,
        start: datetime,
        end: datetime,
        buffer: timedelta = timedelta(0),
        exclude_ids: Iterable[int] = (),
    ) -> bool:
        conflicts = await self.find_conflicts(
            business_id, start, end, buffer=buffer, exclude_ids=exclude_ids
        )
        return bool(conflicts)

    async def intervals_between(
        self, business_id: int, start: datetime, end: datetime
    ) -> list[tuple[datetime, datetime]]:
        """``[start, end)`` pairs of non-cancelled bookings touching a range."""
        result = await self.db.execute(
            select(Booking.start_time, Booking.end_time)
            .where(
                Booking.business_id == business_id,
                Booking.status != BookingStatus.CANCELLED.value,
                Booking.start_time < ensure_utc(end),
                Booking.end_time > ensure_utc(start),
            )
            .order_by(Booking.start_time)
        )
        return [(ensure_utc(s), ensure_utc(e)) for s, e in result.all()]
