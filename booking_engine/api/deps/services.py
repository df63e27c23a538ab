from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.api.deps.database import get_db
from booking_engine.core.clock import system_clock
from booking_engine.services.booking import BookingService
from booking_engine.services.notification_service import booking_notifier
from booking_engine.services.slots import SlotService
from booking_engine.services.sweeps import SweepService


def get_clock():
    return system_clock


def get_notifier():
    return booking_notifier


def get_booking_service(
    db: AsyncSession = Depends(get_db),
    clock=Depends(get_clock),
    notifier=Depends(get_notifier),
) -> BookingService:
    return BookingService(db, clock=clock, notifier=notifier)


def get_slot_service(
    db: AsyncSession = Depends(get_db), clock=Depends(get_clock)
) -> SlotService:
    return SlotService(db, clock=clock)


def get_sweep_service(
    db: AsyncSession = Depends(get_db), clock=Depends(get_clock)
) -> SweepService:
    return SweepService(db, clock=clock)
