from datetime import date, datetime, timezone

import pytest

from booking_engine.core.exceptions import NotFoundError
from booking_engine.models.booking import BookingStatus
from booking_engine.schemas.booking import CustomerDetails, PublicBookingCreate
from booking_engine.schemas.scheduling import SlotStatus
from booking_engine.services.slots import SlotService
from booking_engine.utils.dates import ensure_utc

MONDAY = date(2026, 3, 2)


def utc(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def slot_service(db, clock):
    return SlotService(db, clock=clock)


class TestGetTimeSlots:
    async def test_open_day(self, slot_service, business, service):
        slots = await slot_service.get_time_slots(business.id, service.id, MONDAY)

        assert slots[0].label == "10:00"
        assert slots[-1].label == "16:00"
        assert len(slots) == 25

    async def test_existing_booking_is_booked(self, slot_service, business, service, make_booking):
        await make_booking(utc(MONDAY, 12))
        await make_booking(utc(MONDAY, 14), status=BookingStatus.CANCELLED)

        slots = {
            s.label: s
            for s in await slot_service.get_time_slots(business.id, service.id, MONDAY)
        }

        assert slots["11:15"].status == SlotStatus.BOOKED
        assert slots["12:45"].status == SlotStatus.BOOKED
        assert slots["13:00"].status == SlotStatus.AVAILABLE
        assert slots["14:00"].status == SlotStatus.AVAILABLE

    async def test_buffer_from_business(self, db, slot_service, business, service, make_booking):
        business.buffer_minutes = 15
        await db.commit()
        await make_booking(utc(MONDAY, 12))

        slots = {
            s.label: s
            for s in await slot_service.get_time_slots(business.id, service.id, MONDAY)
        }

        assert slots["13:00"].status == SlotStatus.BOOKED
        assert slots["13:15"].status == SlotStatus.AVAILABLE

    async def test_booking_ending_in_previous_day_buffer(
        self, db, slot_service, business, service, make_booking
    ):
        # The previous day's last booking plus buffer ends well before opening
        business.buffer_minutes = 30
        await db.commit()
        await make_booking(utc(date(2026, 3, 3), 16))

        slots = await slot_service.get_time_slots(business.id, service.id, date(2026, 3, 4))

        assert slots[0].label == "09:00"
        assert slots[0].available

    async def test_blocked_date(self, slot_service, business, service, blocked_date):
        assert await slot_service.get_time_slots(
            business.id, service.id, blocked_date.date
        ) == []

    async def test_closed_weekday(self, slot_service, business, service):
        assert await slot_service.get_time_slots(
            business.id, service.id, date(2026, 3, 8)
        ) == []

    async def test_horizon(self, slot_service, business, service):
        assert await slot_service.get_time_slots(business.id, service.id, date(2026, 4, 1))
        assert await slot_service.get_time_slots(
            business.id, service.id, date(2026, 4, 2)
        ) == []

    async def test_timezone_only_changes_labels(self, slot_service, business, service):
        slots = await slot_service.get_time_slots(
            business.id, service.id, date(2026, 3, 3), timezone_name="America/New_York"
        )

        # Business hours are 09:00-17:00 UTC, which is 04:00-12:00 in New York
        assert slots[0].label == "04:00"
        assert slots[0].start == utc(date(2026, 3, 3), 9)
        assert slots[-1].label == "11:00"
        assert slots[-1].start == utc(date(2026, 3, 3), 16)

    async def test_offered_slot_in_other_timezone_can_be_booked(
        self, slot_service, booking_service, business, service
    ):
        slots = await slot_service.get_time_slots(
            business.id, service.id, date(2026, 3, 3), timezone_name="America/New_York"
        )
        last = [s for s in slots if s.available][-1]

        booking = await booking_service.create_public_booking(
            PublicBookingCreate(
                business_id=business.id,
                service_id=service.id,
                start_time=last.start,
                customer=CustomerDetails(name="Dana Client", phone="555-0123"),
            )
        )

        assert booking.status == BookingStatus.CONFIRMED.value
        assert ensure_utc(booking.start_time) == last.start

    async def test_unknown_service(self, slot_service, business):
        with pytest.raises(NotFoundError):
            await slot_service.get_time_slots(business.id, 424242, MONDAY)

    async def test_inactive_service(self, db, slot_service, business, service):
        service.is_active = False
        await db.commit()

        with pytest.raises(NotFoundError):
            await slot_service.get_time_slots(business.id, service.id, MONDAY)

    async def test_unknown_business(self, slot_service, service):
        with pytest.raises(NotFoundError):
            await slot_service.get_time_slots(424242, service.id, MONDAY)
