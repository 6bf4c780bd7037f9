"""Unit tests for billing period helpers."""
from datetime import datetime

from coop_billing.models.subscription import BillingCycle
from coop_billing.utils.periods import add_months, month_bounds, next_renewal


def test_add_months_keeps_day_and_time() -> None:
    assert add_months(datetime(2024, 3, 15, 9, 30), 1) == datetime(2024, 4, 15, 9, 30)


def test_add_months_clamps_to_month_end() -> None:
    """Jan 31 plus one month lands on the last day of February."""
    assert add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)
    assert add_months(datetime(2023, 1, 31), 1) == datetime(2023, 2, 28)


def test_add_months_rolls_over_the_year() -> None:
    assert add_months(datetime(2024, 12, 10), 1) == datetime(2025, 1, 10)
    assert add_months(datetime(2024, 2, 29), 12) == datetime(2025, 2, 28)


def test_next_renewal_monthly_and_annual() -> None:
    moment = datetime(2024, 5, 20, 12, 0)

    assert next_renewal(moment, BillingCycle.MONTHLY) == datetime(2024, 6, 20, 12, 0)
    assert next_renewal(moment, BillingCycle.ANNUAL) == datetime(2025, 5, 20, 12, 0)
    assert next_renewal(moment, None) == datetime(2024, 6, 20, 12, 0)


def test_month_bounds_cover_the_calendar_month() -> None:
    start, end = month_bounds(datetime(2024, 2, 14, 16, 45, 10))

    assert start == datetime(2024, 2, 1)
    assert end == datetime(2024, 2, 29)


def test_month_bounds_december() -> None:
    start, end = month_bounds(datetime(2023, 12, 31, 23, 59))

    assert start == datetime(2023, 12, 1)
    assert end == datetime(2023, 12, 31)
