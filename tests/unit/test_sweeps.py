from datetime import datetime, timedelta, timezone

import pytest

from booking_engine.models.booking import BookingStatus
from booking_engine.services.sweeps import SweepService
from booking_engine.utils.dates import ensure_utc

NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def sweep_service(db, clock):
    return SweepService(db, clock=clock)


class TestAutoComplete:
    async def test_completes_ended_checked_in_bookings(self, db, sweep_service, make_booking):
        ended = await make_booking(
            NOW - timedelta(hours=2), status=BookingStatus.CHECKED_IN
        )
        ongoing = await make_booking(
            NOW - timedelta(minutes=30), status=BookingStatus.CHECKED_IN
        )

        assert await sweep_service.auto_complete() == 1

        await db.refresh(ended)
        await db.refresh(ongoing)
        assert ended.status == BookingStatus.COMPLETED.value
        assert ended.previous_status == BookingStatus.CHECKED_IN.value
        assert ensure_utc(ended.completed_at) == NOW
        assert ongoing.status == BookingStatus.CHECKED_IN.value

    async def test_ignores_other_statuses(self, sweep_service, make_booking):
        await make_booking(NOW - timedelta(hours=2), status=BookingStatus.CONFIRMED)
        await make_booking(NOW - timedelta(hours=4), status=BookingStatus.CANCELLED)

        assert await sweep_service.auto_complete() == 0

    async def test_idempotent(self, sweep_service, make_booking):
        await make_booking(NOW - timedelta(hours=2), status=BookingStatus.CHECKED_IN)

        assert await sweep_service.auto_complete() == 1
        assert await sweep_service.auto_complete() == 0


class TestAutoNoShow:
    async def test_marks_confirmed_past_grace(self, db, sweep_service, customer, make_booking):
        missed = await make_booking(NOW - timedelta(minutes=45))
        within_grace = await make_booking(NOW - timedelta(minutes=20))

        assert await sweep_service.auto_no_show() == 1

        await db.refresh(missed)
        await db.refresh(within_grace)
        await db.refresh(customer)
        assert missed.status == BookingStatus.NO_SHOW.value
        assert missed.previous_status == BookingStatus.CONFIRMED.value
        assert within_grace.status == BookingStatus.CONFIRMED.value
        assert customer.no_show_count == 1

    async def test_ignores_checked_in_and_cancelled(self, sweep_service, make_booking):
        await make_booking(NOW - timedelta(hours=3), status=BookingStatus.CHECKED_IN)
        await make_booking(NOW - timedelta(hours=3), status=BookingStatus.CANCELLED)
        await make_booking(NOW - timedelta(hours=3), status=BookingStatus.PENDING_PAYMENT)

        assert await sweep_service.auto_no_show() == 0

    async def test_second_run_does_not_double_count(self, db, sweep_service, customer, make_booking):
        await make_booking(NOW - timedelta(hours=3))
        await make_booking(NOW - timedelta(hours=2))

        assert await sweep_service.auto_no_show() == 2
        assert await sweep_service.auto_no_show() == 0

        await db.refresh(customer)
        assert customer.no_show_count == 2

    async def test_grace_follows_clock(self, sweep_service, clock, make_booking):
        await make_booking(NOW - timedelta(minutes=20))
        assert await sweep_service.auto_no_show() == 0

        clock.advance(minutes=15)
        assert await sweep_service.auto_no_show() == 1
