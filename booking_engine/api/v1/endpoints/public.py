import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.api.deps.database import get_db
from booking_engine.api.deps.services import get_booking_service, get_clock
from booking_engine.core.exceptions import BookingEngineError
from booking_engine.models.business import Business
from booking_engine.schemas.booking import Booking, PublicBookingCreate
from booking_engine.schemas.scheduling import (
    BlockedDay,
    PublicAvailability,
    WeeklyWindow,
)
from booking_engine.services.availability import load_calendar
from booking_engine.services.booking import BookingService
from booking_engine.utils.dates import minutes_to_time, resolve_timezone, time_to_minutes

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/availability/{business_id}", response_model=PublicAvailability)
async def get_public_availability(
    business_id: int,
    db: AsyncSession = Depends(get_db),
    clock=Depends(get_clock),
):
    """Weekly opening windows and upcoming blocked dates of a business."""
    business = await db.get(Business, business_id)
    if business is None or not business.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Business not found"
        )

    today = clock.now().astimezone(resolve_timezone(business.timezone)).date()
    calendar = await load_calendar(db, business, start=today)

    windows = [
        WeeklyWindow(
            day_of_week=day,
            start_time=minutes_to_time(time_to_minutes(window.start_time)),
            end_time=minutes_to_time(time_to_minutes(window.end_time)),
            is_available=window.is_available,
        )
        for day, window in sorted(calendar.windows.items())
    ]
    return PublicAvailability(
        business_id=business.id,
        timezone=business.timezone,
        min_notice_hours=business.min_notice_hours,
        max_advance_days=business.max_advance_days,
        booking_message=business.booking_message,
        windows=windows,
        blocked_dates=[BlockedDay(date=d) for d in sorted(calendar.blocked_dates)],
    )


@router.post("/bookings", response_model=Booking, status_code=status.HTTP_201_CREATED)
async def create_public_booking(
    booking_data: PublicBookingCreate,
    db: AsyncSession = Depends(get_db),
    booking_service: BookingService = Depends(get_booking_service),
):
    """Book a slot from the public booking page.

    The customer is matched by phone within the business or created.
    """
    try:
        return await booking_service.create_public_booking(booking_data)
    except BookingEngineError as e:
        await db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    except Exception as e:
        await db.rollback()
        logger.error(
            "Failed to create booking", business_id=booking_data.business_id, exc_info=e
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create booking",
        )
