from datetime import datetime, timezone

from booking_engine.models.booking import Booking, BookingStatus

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


class TestBookingStatusTransitions:
    """Test booking status transition logic."""

    def test_can_transition_to_valid_transitions(self):
        booking = Booking(status=BookingStatus.PENDING_PAYMENT.value)

        # From PENDING_PAYMENT
        assert booking.can_transition_to(BookingStatus.CONFIRMED)
        assert booking.can_transition_to(BookingStatus.CANCELLED)

        booking.status = BookingStatus.CONFIRMED.value
        # From CONFIRMED
        assert booking.can_transition_to(BookingStatus.CHECKED_IN)
        assert booking.can_transition_to(BookingStatus.CANCELLED)
        assert booking.can_transition_to(BookingStatus.NO_SHOW)

        booking.status = BookingStatus.CHECKED_IN.value
        # From CHECKED_IN
        assert booking.can_transition_to(BookingStatus.COMPLETED)

    def test_can_transition_to_invalid_transitions(self):
        booking = Booking(status=BookingStatus.PENDING_PAYMENT.value)
        assert not booking.can_transition_to(BookingStatus.CHECKED_IN)
        assert not booking.can_transition_to(BookingStatus.NO_SHOW)

        booking.status = BookingStatus.CHECKED_IN.value
        assert not booking.can_transition_to(BookingStatus.CANCELLED)
        assert not booking.can_transition_to(BookingStatus.NO_SHOW)

        for final in (
            BookingStatus.COMPLETED,
            BookingStatus.CANCELLED,
            BookingStatus.NO_SHOW,
        ):
            booking.status = final.value
            for target in BookingStatus:
                assert not booking.can_transition_to(target)

    def test_transition_to_success(self):
        booking = Booking(status=BookingStatus.CONFIRMED.value)

        assert booking.transition_to(BookingStatus.CHECKED_IN, NOW)

        assert booking.status == BookingStatus.CHECKED_IN.value
        assert booking.previous_status == BookingStatus.CONFIRMED.value
        assert booking.status_changed_at == NOW
        assert booking.checked_in_at == NOW

    def test_transition_to_stamps_status_timestamps(self):
        cancelled = Booking(status=BookingStatus.CONFIRMED.value)
        cancelled.transition_to(BookingStatus.CANCELLED, NOW)
        assert cancelled.cancelled_at == NOW

        completed = Booking(status=BookingStatus.CHECKED_IN.value)
        completed.transition_to(BookingStatus.COMPLETED, NOW)
        assert completed.completed_at == NOW

    def test_transition_to_invalid(self):
        booking = Booking(status=BookingStatus.COMPLETED.value)

        assert not booking.transition_to(BookingStatus.CONFIRMED, NOW)

        assert booking.status == BookingStatus.COMPLETED.value
        assert booking.previous_status is None
        assert booking.status_changed_at is None


class TestBookingProperties:
    def test_is_active(self):
        assert Booking(status=BookingStatus.CONFIRMED.value).is_active
        assert Booking(status=BookingStatus.NO_SHOW.value).is_active
        assert not Booking(status=BookingStatus.CANCELLED.value).is_active

    def test_is_terminal(self):
        assert Booking(status=BookingStatus.COMPLETED.value).is_terminal
        assert Booking(status=BookingStatus.CANCELLED.value).is_terminal
        assert Booking(status=BookingStatus.NO_SHOW.value).is_terminal
        assert not Booking(status=BookingStatus.CONFIRMED.value).is_terminal
        assert not Booking(status=BookingStatus.PENDING_PAYMENT.value).is_terminal
