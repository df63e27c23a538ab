from datetime import datetime
from typing import Any, Optional

from fastapi import status


class BookingEngineError(Exception):
    """Base class for errors reported to the caller with a structured detail."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "booking_error"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_detail(self) -> dict[str, Any]:
        detail = {"error": self.message, "code": self.code}
        for key, value in self.extra.items():
            detail[key] = value.isoformat() if isinstance(value, datetime) else value
        return detail


class NotFoundError(BookingEngineError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class UnauthorizedError(BookingEngineError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"


class ForbiddenError(BookingEngineError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class BookingValidationError(BookingEngineError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class SlotConflictError(BookingEngineError):
    status_code = status.HTTP_409_CONFLICT
    code = "slot_conflict"


class PolicyViolationError(BookingEngineError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "policy_violation"

    def __init__(self, reason: str, hours_until_booking: float):
        super().__init__(reason, hours_until_booking=hours_until_booking)
        self.reason = reason
        self.hours_until_booking = hours_until_booking


class AlreadyCheckedInError(BookingEngineError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "already_checked_in"

    def __init__(self, checked_in_at: datetime):
        super().__init__("Already checked in", checked_in_at=checked_in_at)
        self.checked_in_at = checked_in_at


class CheckInWindowClosedError(BookingEngineError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "check_in_window_closed"

    def __init__(
        self,
        start_time: datetime,
        grace_period_end: datetime,
        current_time: Optional[datetime] = None,
        grace_minutes: int = 30,
    ):
        super().__init__(
            f"Check-in window has closed ({grace_minutes} minutes past booking time)",
            start_time=start_time,
            grace_period_end=grace_period_end,
            current_time=current_time,
        )


class InvalidStateError(BookingEngineError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_state"
