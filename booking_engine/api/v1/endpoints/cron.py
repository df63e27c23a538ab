import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.api.deps.auth import verify_cron_token
from booking_engine.api.deps.database import get_db
from booking_engine.api.deps.services import get_sweep_service
from booking_engine.schemas.booking import SweepResult
from booking_engine.services.sweeps import SweepService

logger = structlog.get_logger(__name__)

router = APIRouter(dependencies=[Depends(verify_cron_token)])


@router.get("/auto-complete", response_model=SweepResult)
async def auto_complete(
    db: AsyncSession = Depends(get_db),
    sweep_service: SweepService = Depends(get_sweep_service),
):
    """Complete checked-in bookings that have ended."""
    try:
        updated = await sweep_service.auto_complete()
        return SweepResult(updated=updated, timestamp=sweep_service.clock.now())
    except Exception as e:
        await db.rollback()
        logger.error("Auto-complete sweep failed", exc_info=e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to auto-complete bookings",
        )


@router.get("/auto-no-show", response_model=SweepResult)
async def auto_no_show(
    db: AsyncSession = Depends(get_db),
    sweep_service: SweepService = Depends(get_sweep_service),
):
    """Mark confirmed bookings nobody checked in for as no-shows."""
    try:
        updated = await sweep_service.auto_no_show()
        return SweepResult(updated=updated, timestamp=sweep_service.clock.now())
    except Exception as e:
        await db.rollback()
        logger.error("Auto no-show sweep failed", exc_info=e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to mark no-show bookings",
        )
