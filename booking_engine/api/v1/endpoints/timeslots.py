from datetime import date
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.api.deps.database import get_db
from booking_engine.api.deps.services import get_slot_service
from booking_engine.core.exceptions import BookingEngineError
from booking_engine.schemas.scheduling import TimeSlot
from booking_engine.services.slots import SlotService

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("", response_model=List[TimeSlot])
async def get_time_slots(
    business_id: int = Query(...),
    service_id: int = Query(...),
    date: date = Query(..., description="Local calendar date (YYYY-MM-DD)"),
    timezone: Optional[str] = Query(
        None, description="IANA timezone; defaults to the business timezone"
    ),
    include_past: bool = Query(False, description="Keep past slots, marked 'past'"),
    db: AsyncSession = Depends(get_db),
    slot_service: SlotService = Depends(get_slot_service),
):
    """Ordered candidate slots for one service on one date.

    An empty list means the date is blocked, closed or beyond the booking
    horizon.
    """
    try:
        slots = await slot_service.get_time_slots(
            business_id, service_id, date, timezone, include_past=include_past
        )
        return [slot.to_schema() for slot in slots]
    except BookingEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    except Exception as e:
        await db.rollback()
        logger.error(
            "Failed to generate time slots",
            business_id=business_id,
            service_id=service_id,
            exc_info=e,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate time slots",
        )
