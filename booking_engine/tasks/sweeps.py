import asyncio

import structlog

from booking_engine.core.celery import celery_app
from booking_engine.core.database import AsyncSessionLocal, engine
from booking_engine.services.sweeps import SweepService

logger = structlog.get_logger(__name__)


async def _run_sweep(name: str) -> int:
    try:
        async with AsyncSessionLocal() as session:
            try:
                return await getattr(SweepService(session), name)()
            except Exception:
                await session.rollback()
                raise
    finally:
        # Pooled connections are bound to this task's event loop
        await engine.dispose()


@celery_app.task
def auto_complete_bookings() -> int:
    count = asyncio.run(_run_sweep("auto_complete"))
    logger.info("Scheduled auto-complete ran", completed=count)
    return count


@celery_app.task
def auto_no_show_bookings() -> int:
    count = asyncio.run(_run_sweep("auto_no_show"))
    logger.info("Scheduled auto no-show ran", marked=count)
    return count
