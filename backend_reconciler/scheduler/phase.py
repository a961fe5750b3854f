"""
Phase window arithmetic.

A phase starts at a fixed UTC instant and lasts a whole number of months.
Registration is open until the start; scheduled reconciliation stops once the
configured active window after the start has elapsed.
"""

from __future__ import annotations

import calendar
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

SECONDS_PER_DAY = 86_400


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def add_months(moment: datetime, months: int) -> datetime:
    """Same day-of-month `months` later, clamped to the last day of a shorter month."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


@dataclass(frozen=True)
class PhaseStatus:
    is_registration_active: bool
    days_until_start: int
    start_date: datetime
    end_date: datetime
    duration_months: int


def calculate_phase_status(
    start: datetime,
    duration_months: int,
    now: datetime | None = None,
) -> PhaseStatus:
    now = now or utcnow()
    seconds_until_start = (start - now).total_seconds()
    return PhaseStatus(
        is_registration_active=now < start,
        days_until_start=max(0, math.ceil(seconds_until_start / SECONDS_PER_DAY)),
        start_date=start,
        end_date=add_months(start, duration_months),
        duration_months=duration_months,
    )


def is_phase_ended(
    start: datetime,
    end_after: timedelta,
    now: datetime | None = None,
) -> bool:
    """True once strictly more than end_after has elapsed since start."""
    return ((now or utcnow()) - start) > end_after
