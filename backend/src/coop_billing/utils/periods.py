"""Calendar helpers for billing periods and renewals."""
import calendar
from datetime import datetime

from coop_billing.models.subscription import BillingCycle


def add_months(moment: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day to the target month's length."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def next_renewal(moment: datetime, billing_cycle: BillingCycle | str | None) -> datetime:
    """Renewal date one billing cycle after ``moment``."""
    if billing_cycle == BillingCycle.ANNUAL:
        return add_months(moment, 12)
    return add_months(moment, 1)


def month_bounds(moment: datetime) -> tuple[datetime, datetime]:
    """First and last day (midnight) of the calendar month containing ``moment``."""
    start = moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    last_day = calendar.monthrange(moment.year, moment.month)[1]
    return start, start.replace(day=last_day)
