"""Subscription plan limits and premium (splash) allowances."""

import logging
from dataclasses import dataclass
from datetime import datetime

from linkdrip.config import Settings
from linkdrip.database import as_utc, utcnow
from linkdrip.models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanLimits:
    daily_drips: int
    monthly_splashes: int
    max_websites: int


PLANS: dict[str, PlanLimits] = {
    "starter": PlanLimits(daily_drips=5, monthly_splashes=1, max_websites=1),
    "grow": PlanLimits(daily_drips=10, monthly_splashes=3, max_websites=2),
    "pro": PlanLimits(daily_drips=15, monthly_splashes=7, max_websites=5),
}


class PlanService:
    """Per-user drip limits and splash accounting."""

    def __init__(self, settings: Settings):
        self.free_plan = PlanLimits(
            daily_drips=settings.free_daily_drips,
            monthly_splashes=settings.free_monthly_splashes,
            max_websites=1,
        )

    def get_limits(self, user: User) -> PlanLimits:
        if user.subscription_status != "active":
            return self.free_plan
        return PLANS.get((user.subscription_plan or "").lower(), self.free_plan)

    def _roll_period(self, user: User, now: datetime) -> None:
        """Reset the monthly splash counter when a new calendar month starts."""
        start = as_utc(user.splash_period_start)
        if start is None or (start.year, start.month) != (now.year, now.month):
            user.splashes_used_this_month = 0
            user.splash_period_start = now

    def premium_allowance(self, user: User, now: datetime | None = None) -> int:
        """Splashes the user can still receive: monthly remainder plus purchased credits."""
        now = now or utcnow()
        self._roll_period(user, now)
        monthly_left = max(0, self.get_limits(user).monthly_splashes - (user.splashes_used_this_month or 0))
        return monthly_left + max(0, user.splash_credits or 0)

    def consume_splashes(self, user: User, count: int, now: datetime | None = None) -> None:
        """Spend the monthly allowance first, then purchased credits."""
        if count <= 0:
            return
        now = now or utcnow()
        self._roll_period(user, now)

        monthly_left = max(0, self.get_limits(user).monthly_splashes - (user.splashes_used_this_month or 0))
        from_monthly = min(count, monthly_left)
        user.splashes_used_this_month = (user.splashes_used_this_month or 0) + from_monthly

        from_credits = count - from_monthly
        if from_credits:
            user.splash_credits = max(0, (user.splash_credits or 0) - from_credits)

        logger.debug(f"User {user.id} used {from_monthly} monthly splashes and {from_credits} credits")
