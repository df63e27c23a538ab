from dataclasses import dataclass
from datetime import date, time
from functools import lru_cache
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

import holidays
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.models.availability import AvailabilityWindow, BlockedDate
from booking_engine.models.business import Business

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DayWindow:
    """Opening window for one weekday (Monday = 0)."""

    day_of_week: int
    start_time: time
    end_time: time
    is_available: bool = True


@lru_cache(maxsize=32)
def _country_holidays(country: str, year: int) -> holidays.HolidayBase:
    return holidays.country_holidays(country, years=year)


class AvailabilityCalendar:
    """Immutable weekly availability lookup for a single business.

    Built once per request from the stored windows and blocked dates, keyed by
    weekday. When ``holiday_country`` is set the public holidays of that
    country are treated as blocked dates as well.
    """

    def __init__(
        self,
        windows: Mapping[int, DayWindow],
        blocked_dates: Iterable[date] = (),
        holiday_country: Optional[str] = None,
    ):
        self._windows = MappingProxyType(dict(windows))
        self._blocked = frozenset(blocked_dates)
        self._holiday_country = holiday_country

    @classmethod
    def from_records(
        cls,
        windows: Iterable[AvailabilityWindow],
        blocked_dates: Iterable[BlockedDate] = (),
        holiday_country: Optional[str] = None,
    ) -> "AvailabilityCalendar":
        by_day = {}
        for window in windows:
            by_day[window.day_of_week] = DayWindow(
                day_of_week=window.day_of_week,
                start_time=window.start_time,
                end_time=window.end_time,
                is_available=bool(window.is_available),
            )
        # Every blocked row closes the whole date, partial-day rows included
        return cls(by_day, (b.date for b in blocked_dates), holiday_country)

    @property
    def windows(self) -> Mapping[int, DayWindow]:
        return self._windows

    @property
    def blocked_dates(self) -> frozenset:
        return self._blocked

    def window_for(self, day_of_week: int) -> Optional[DayWindow]:
        """Enabled window for a weekday, or None when the day is closed."""
        window = self._windows.get(day_of_week)
        if window is None or not window.is_available:
            return None
        if window.end_time <= window.start_time:
            return None
        return window

    def is_holiday(self, day: date) -> bool:
        if not self._holiday_country:
            return False
        try:
            return day in _country_holidays(self._holiday_country, day.year)
        except NotImplementedError:
            logger.warning(
                "Unsupported holiday country", country=self._holiday_country
            )
            return False

    def is_blocked(self, day: date) -> bool:
        return day in self._blocked or self.is_holiday(day)

    def has_availability(self, day: date) -> bool:
        return not self.is_blocked(day) and self.window_for(day.weekday()) is not None


async def load_calendar(
    db: AsyncSession,
    business: Business,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> AvailabilityCalendar:
    """Read a business's windows and blocked dates into a calendar.

    ``start``/``end`` narrow the blocked-date read to an inclusive range.
    """
    windows = (
        await db.execute(
            select(AvailabilityWindow).where(
                AvailabilityWindow.business_id == business.id
            )
        )
    ).scalars().all()

    blocked_query = select(BlockedDate).where(BlockedDate.business_id == business.id)
    if start is not None:
        blocked_query = blocked_query.where(BlockedDate.date >= start)
    if end is not None:
        blocked_query = blocked_query.where(BlockedDate.date <= end)
    blocked = (await db.execute(blocked_query)).scalars().all()

    return AvailabilityCalendar.from_records(
        windows, blocked, holiday_country=business.holiday_country
    )
