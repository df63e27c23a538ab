import datetime as dt
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class SlotStatus(str, Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    PAST = "past"


class TimeSlot(BaseModel):
    time: str = Field(..., description="Local start time as HH:mm")
    datetime: dt.datetime = Field(..., description="Slot start in UTC")
    available: bool
    status: SlotStatus


class WeeklyWindow(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="Monday = 0")
    start_time: str
    end_time: str
    is_available: bool


class BlockedDay(BaseModel):
    date: dt.date
    reason: Optional[str] = None


class PublicAvailability(BaseModel):
    business_id: int
    timezone: str
    min_notice_hours: int
    max_advance_days: int
    booking_message: Optional[str] = None
    windows: List[WeeklyWindow]
    blocked_dates: List[BlockedDay]
