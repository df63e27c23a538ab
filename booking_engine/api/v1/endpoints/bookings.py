from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.api.deps.auth import get_current_business
from booking_engine.api.deps.database import get_db
from booking_engine.api.deps.services import get_booking_service
from booking_engine.core.exceptions import BookingEngineError
from booking_engine.models.booking import BookingStatus
from booking_engine.models.business import Business
from booking_engine.schemas.booking import (
    Booking,
    BookingCancel,
    BookingCreate,
    BookingList,
    BookingReschedule,
    CancellationCheck,
    CheckInResult,
    RescheduleResult,
)
from booking_engine.services.booking import BookingService

logger = structlog.get_logger(__name__)

router = APIRouter()


async def _fail(db: AsyncSession, failure: str, error: Exception, **context):
    """Roll back and translate an exception into an HTTP error."""
    await db.rollback()
    if isinstance(error, BookingEngineError):
        logger.info(
            "Booking request rejected", code=error.code, reason=error.message, **context
        )
        raise HTTPException(status_code=error.status_code, detail=error.to_detail())
    logger.error(failure, exc_info=error, **context)
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=failure,
    )


@router.post("", response_model=Booking, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    db: AsyncSession = Depends(get_db),
    current_business: Business = Depends(get_current_business),
    booking_service: BookingService = Depends(get_booking_service),
):
    """Create a manual booking from the owner dashboard."""
    try:
        return await booking_service.create_manual_booking(
            current_business, booking_data
        )
    except Exception as e:
        await _fail(db, "Failed to create booking", e, business_id=current_business.id)


@router.get("", response_model=BookingList)
async def list_bookings(
    start: Optional[datetime] = Query(None, description="Inclusive lower bound"),
    end: Optional[datetime] = Query(None, description="Exclusive upper bound"),
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    current_business: Business = Depends(get_current_business),
    booking_service: BookingService = Depends(get_booking_service),
):
    """Bookings of the authenticated business starting within a range."""
    bookings = await booking_service.list_bookings(
        current_business, start=start, end=end, status=booking_status
    )
    return BookingList(
        bookings=[Booking.model_validate(b) for b in bookings],
        total_count=len(bookings),
    )


@router.get("/{booking_uuid}", response_model=Booking)
async def get_booking(
    booking_uuid: UUID,
    booking_service: BookingService = Depends(get_booking_service),
):
    try:
        return await booking_service.get_booking(booking_uuid)
    except BookingEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get("/{booking_uuid}/check-cancellation", response_model=CancellationCheck)
async def check_cancellation(
    booking_uuid: UUID,
    booking_service: BookingService = Depends(get_booking_service),
):
    """Whether the booking may currently be cancelled or rescheduled."""
    try:
        return await booking_service.check_cancellation(booking_uuid)
    except BookingEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/{booking_uuid}/cancel", response_model=Booking)
async def cancel_booking(
    booking_uuid: UUID,
    cancel_data: BookingCancel,
    db: AsyncSession = Depends(get_db),
    booking_service: BookingService = Depends(get_booking_service),
):
    try:
        return await booking_service.cancel_booking(
            booking_uuid, cancel_data.cancelled_by, cancel_data.reason
        )
    except Exception as e:
        await _fail(db, "Failed to cancel booking", e, booking_uuid=str(booking_uuid))


@router.post("/{booking_uuid}/reschedule", response_model=RescheduleResult)
async def reschedule_booking(
    booking_uuid: UUID,
    reschedule_data: BookingReschedule,
    db: AsyncSession = Depends(get_db),
    booking_service: BookingService = Depends(get_booking_service),
):
    """Move a booking: the original is cancelled and linked to a new one."""
    try:
        outcome = await booking_service.reschedule_booking(
            booking_uuid,
            reschedule_data.new_start_time,
            reschedule_data.new_end_time,
        )
        return RescheduleResult(
            original=Booking.model_validate(outcome.original),
            booking=Booking.model_validate(outcome.booking),
        )
    except Exception as e:
        await _fail(db, "Failed to reschedule booking", e, booking_uuid=str(booking_uuid))


@router.post("/{booking_uuid}/check-in", response_model=CheckInResult)
async def check_in_booking(
    booking_uuid: UUID,
    db: AsyncSession = Depends(get_db),
    booking_service: BookingService = Depends(get_booking_service),
):
    try:
        outcome = await booking_service.check_in(booking_uuid)
        return CheckInResult(
            booking=Booking.model_validate(outcome.booking),
            is_early=outcome.is_early,
            is_late=outcome.is_late,
            payment_marked_paid=outcome.payment_marked_paid,
        )
    except Exception as e:
        await _fail(db, "Failed to check in", e, booking_uuid=str(booking_uuid))


@router.post("/{booking_uuid}/mark-paid", response_model=Booking)
async def mark_booking_paid(
    booking_uuid: UUID,
    db: AsyncSession = Depends(get_db),
    current_business: Business = Depends(get_current_business),
    booking_service: BookingService = Depends(get_booking_service),
):
    """Record payment of a cash booking."""
    try:
        return await booking_service.mark_paid(booking_uuid, current_business)
    except Exception as e:
        await _fail(db, "Failed to mark booking as paid", e, booking_uuid=str(booking_uuid))


@router.post("/{booking_uuid}/no-show", response_model=Booking)
async def mark_booking_no_show(
    booking_uuid: UUID,
    db: AsyncSession = Depends(get_db),
    current_business: Business = Depends(get_current_business),
    booking_service: BookingService = Depends(get_booking_service),
):
    try:
        return await booking_service.mark_no_show(booking_uuid, current_business)
    except Exception as e:
        await _fail(db, "Failed to mark booking as no-show", e, booking_uuid=str(booking_uuid))
