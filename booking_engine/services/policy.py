from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from booking_engine.core.config import settings
from booking_engine.core.exceptions import PolicyViolationError
from booking_engine.models.booking import Booking, BookingStatus
from booking_engine.models.business import Business, CancellationPolicy
from booking_engine.utils.dates import ensure_utc, hours_between


@dataclass(frozen=True)
class PolicyDecision:
    can_cancel: bool
    hours_until_booking: float
    reason: Optional[str] = None


class CancellationPolicyEngine:
    """Decides whether a booking may be cancelled or rescheduled.

    Rules are applied in order: a booking that already started is rejected,
    then an already cancelled one, then the business policy decides. An
    unknown or unset policy behaves as flexible.
    """

    def __init__(self, default_hours: int = settings.DEFAULT_CANCELLATION_HOURS):
        self.default_hours = default_hours

    def required_hours(self, business: Business) -> int:
        if business.cancellation_hours is None:
            return self.default_hours
        return business.cancellation_hours

    @staticmethod
    def policy_of(business: Business) -> Optional[CancellationPolicy]:
        try:
            return CancellationPolicy(business.cancellation_policy or "flexible")
        except ValueError:
            return None

    def evaluate(self, booking: Booking, business: Business, now: datetime) -> PolicyDecision:
        hours_until = hours_between(ensure_utc(now), ensure_utc(booking.start_time))

        if hours_until < 0:
            return PolicyDecision(False, 0, "This booking has already passed")

        if booking.status == BookingStatus.CANCELLED.value:
            return PolicyDecision(
                False, hours_until, "This booking has already been cancelled"
            )

        policy = self.policy_of(business)
        if policy == CancellationPolicy.STRICT:
            return PolicyDecision(
                False,
                hours_until,
                "This booking cannot be cancelled due to strict cancellation policy",
            )
        if policy == CancellationPolicy.MODERATE:
            required = self.required_hours(business)
            if hours_until >= required:
                return PolicyDecision(True, hours_until)
            return PolicyDecision(
                False,
                hours_until,
                f"Cancellations must be made at least {required} hours in advance",
            )
        return PolicyDecision(True, hours_until)

    def evaluate_reschedule(
        self, booking: Booking, business: Business, now: datetime
    ) -> PolicyDecision:
        # Rescheduling has no policy of its own
        return self.evaluate(booking, business, now)

    def enforce(self, decision: PolicyDecision) -> None:
        if not decision.can_cancel:
            raise PolicyViolationError(decision.reason, decision.hours_until_booking)

    def describe(self, business: Business) -> str:
        """Customer-facing description of the business's policy."""
        policy = self.policy_of(business)
        if policy == CancellationPolicy.FLEXIBLE:
            return (
                "You can cancel or reschedule your booking anytime before your "
                "appointment."
            )
        if policy == CancellationPolicy.STRICT:
            return "This booking cannot be cancelled or rescheduled."
        if policy == CancellationPolicy.MODERATE:
            return (
                f"You can cancel or reschedule up to {self.required_hours(business)} "
                "hours before your appointment."
            )
        return "Please contact us regarding cancellations or rescheduling."
