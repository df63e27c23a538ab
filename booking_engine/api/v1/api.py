from fastapi import APIRouter

from booking_engine.api.v1.endpoints import (
    bookings,
    cron,
    payments,
    public,
    timeslots,
)

api_router = APIRouter()

# Slot queries
api_router.include_router(timeslots.router, prefix="/timeslots", tags=["timeslots"])

# Public booking endpoints (customer-facing)
api_router.include_router(public.router, prefix="/public", tags=["public"])

# Booking lifecycle endpoints
api_router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])

# Payment gateway signals
api_router.include_router(payments.router, prefix="/payments", tags=["payments"])

# Scheduled sweeps
api_router.include_router(cron.router, prefix="/cron", tags=["cron"])
