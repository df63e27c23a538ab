from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from zoneinfo import ZoneInfo

from booking_engine.core.clock import system_clock
from booking_engine.core.config import settings
from booking_engine.core.exceptions import NotFoundError
from booking_engine.models.business import Business
from booking_engine.models.service import Service
from booking_engine.schemas.scheduling import SlotStatus, TimeSlot
from booking_engine.services.availability import AvailabilityCalendar, load_calendar
from booking_engine.services.conflicts import ConflictDetector, intervals_overlap
from booking_engine.utils.dates import (
    at_local_minute,
    ensure_utc,
    local_day_bounds,
    minutes_to_time,
    resolve_timezone,
    time_to_minutes,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime
    label: str
    status: SlotStatus

    @property
    def available(self) -> bool:
        return self.status == SlotStatus.AVAILABLE

    def to_schema(self) -> TimeSlot:
        return TimeSlot(
            time=self.label,
            datetime=self.start,
            available=self.available,
            status=self.status,
        )


class SlotGenerator:
    """Turns one day's opening window and existing bookings into candidate
    slots.

    Slot starts run from the window start to ``window end - duration``
    (inclusive) on a fixed cadence that does not depend on the service
    duration, so services of different lengths share the same start times.
    """

    def __init__(
        self,
        calendar: AvailabilityCalendar,
        step_minutes: int = settings.SLOT_STEP_MINUTES,
    ):
        self.calendar = calendar
        self.step_minutes = step_minutes

    def generate(
        self,
        day: date,
        duration_minutes: int,
        existing: Iterable[tuple[datetime, datetime]],
        now: datetime,
        tz: ZoneInfo,
        buffer_minutes: int = 0,
        enforce_buffer: bool = True,
        min_notice_hours: int = 0,
        include_past: bool = False,
        display_tz: Optional[ZoneInfo] = None,
    ) -> list[Slot]:
        """Slots for ``day`` in the business zone ``tz``.

        ``display_tz`` only changes the ``HH:mm`` labels; slot instants always
        follow the business opening hours.
        """
        if self.calendar.is_blocked(day):
            return []
        window = self.calendar.window_for(day.weekday())
        if window is None:
            return []

        now = ensure_utc(now)
        notice_floor = now + timedelta(hours=min_notice_hours)
        duration = timedelta(minutes=duration_minutes)
        buffer = timedelta(minutes=buffer_minutes if enforce_buffer else 0)
        busy = [(ensure_utc(s), ensure_utc(e) + buffer) for s, e in existing]

        window_start = time_to_minutes(window.start_time)
        last_start = time_to_minutes(window.end_time) - duration_minutes

        slots = []
        for minute in range(window_start, last_start + 1, self.step_minutes):
            slot_start = at_local_minute(day, minute, tz)
            slot_end = slot_start + duration

            if slot_start < now:
                if not include_past:
                    continue
                status = SlotStatus.PAST
            elif slot_start < notice_floor:
                continue
            elif any(intervals_overlap(slot_start, slot_end, s, e) for s, e in busy):
                status = SlotStatus.BOOKED
            else:
                status = SlotStatus.AVAILABLE

            if display_tz is None:
                label = minutes_to_time(minute)
            else:
                label = slot_start.astimezone(display_tz).strftime("%H:%M")
            slots.append(Slot(slot_start, slot_end, label, status))

        return slots


class SlotService:
    """Loads what slot generation needs for a business and runs it."""

    def __init__(self, db: AsyncSession, clock=system_clock):
        self.db = db
        self.clock = clock

    async def get_time_slots(
        self,
        business_id: int,
        service_id: int,
        day: date,
        timezone_name: Optional[str] = None,
        include_past: bool = False,
    ) -> list[Slot]:
        business = await self.db.get(Business, business_id)
        if business is None or not business.is_active:
            raise NotFoundError("Business not found")

        service = (
            await self.db.execute(
                select(Service).where(
                    Service.id == service_id,
                    Service.business_id == business.id,
                    Service.is_active.is_(True),
                )
            )
        ).scalar_one_or_none()
        if service is None:
            raise NotFoundError("Service not found")

        tz = resolve_timezone(business.timezone)
        display_tz = resolve_timezone(timezone_name) if timezone_name else None
        now = self.clock.now()

        horizon = now.astimezone(tz).date() + timedelta(days=business.max_advance_days)
        if day > horizon:
            logger.info(
                "Slot date beyond booking horizon",
                business_id=business.id,
                date=day.isoformat(),
                horizon=horizon.isoformat(),
            )
            return []

        calendar = await load_calendar(self.db, business, day, day)
        day_start, day_end = local_day_bounds(day, tz)
        buffer = timedelta(minutes=business.buffer_minutes or 0)
        existing = await ConflictDetector(self.db).intervals_between(
            business.id, day_start - buffer, day_end
        )

        slots = SlotGenerator(calendar).generate(
            day,
            service.duration_minutes,
            existing,
            now=now,
            tz=tz,
            buffer_minutes=business.buffer_minutes or 0,
            enforce_buffer=business.enforce_buffer,
            min_notice_hours=business.min_notice_hours,
            include_past=include_past,
            display_tz=display_tz,
        )
        logger.info(
            "Generated time slots",
            business_id=business.id,
            service_id=service.id,
            date=day.isoformat(),
            total=len(slots),
            available=sum(1 for s in slots if s.available),
        )
        return slots
