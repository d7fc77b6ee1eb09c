# Overview: Seat time billing; converts elapsed occupancy into a yen charge. Pure, no DB access.

"""
Seat Time Billing

Pricing rules (DEFAULT_RATE_TABLE):
- Base rate: ¥500 per hour
- Each started hour is billed in units: the first 10 minutes are grace
  (free), 11-45 minutes is a half hour, 46+ minutes is a full hour
- From 171 minutes (2h 51m) the whole stay is billed at ¥450/hour, but never
  below what the stay had already reached at the standard rate
- ¥2100 ceiling (5 hours at ¥420); every stay from 291 minutes (4h 51m) on
  is billed exactly the ceiling

The resulting charge is non-decreasing in elapsed minutes, so a live timer
re-quoted every second never moves backwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional

from ..validation import ValidationError
from boardcafe.time_utils import utcnow, normalize_utc, parse_iso_datetime


RATE_STANDARD = "standard"
RATE_THREE_HOUR = "3hour"
RATE_FIVE_HOUR = "5hour"


@dataclass(frozen=True)
class RateTable:
    base_rate_per_hour: int = 500
    grace_minutes: int = 10
    half_hour_max_minutes: int = 45
    discount_threshold_minutes: int = 171
    discount_rate_per_hour: int = 450
    cap_threshold_minutes: int = 291
    cap_rate_per_hour: int = 420
    cap_hours: int = 5

    @property
    def cap_charge(self) -> int:
        return self.cap_rate_per_hour * self.cap_hours


DEFAULT_RATE_TABLE = RateTable()


@dataclass
class TimeBillingBreakdown:
    hours: int = 0
    half_hours: int = 0
    grace_applied: bool = False
    rate_per_hour: int = 0


@dataclass
class TimeBilling:
    minutes: int
    total_charge: int  # yen
    rate_applied: str = RATE_STANDARD
    breakdown: TimeBillingBreakdown = field(default_factory=TimeBillingBreakdown)

    @property
    def total_charge_minor(self) -> int:
        return self.total_charge * 100

    def to_dict(self) -> dict:
        data = asdict(self)
        data["total_charge_minor"] = self.total_charge_minor
        return data


def _billable_units(minutes: int, rates: RateTable) -> tuple[int, int, bool]:
    full_hours, remainder = divmod(minutes, 60)
    hours = full_hours
    half_hours = 0
    grace_applied = False

    if remainder > 0:
        if remainder <= rates.grace_minutes:
            grace_applied = True
        elif remainder <= rates.half_hour_max_minutes:
            half_hours = 1
        else:
            hours += 1

    return hours, half_hours, grace_applied


def _units_charge(hours: int, half_hours: int, rate_per_hour: int) -> int:
    return hours * rate_per_hour + (half_hours * rate_per_hour) // 2


def _standard_charge(minutes: int, rates: RateTable) -> int:
    hours, half_hours, _ = _billable_units(minutes, rates)
    return _units_charge(hours, half_hours, rates.base_rate_per_hour)


def calculate_time_charge(minutes: int, rates: RateTable = DEFAULT_RATE_TABLE) -> TimeBilling:
    """
    Charge for a stay of `minutes` whole minutes.

    Raises ValidationError for non-integer or negative minutes.
    """
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        raise ValidationError("minutes must be an integer")
    if minutes < 0:
        raise ValidationError("minutes must be >= 0")

    if minutes == 0:
        return TimeBilling(minutes=0, total_charge=0)

    if minutes >= rates.cap_threshold_minutes:
        return TimeBilling(
            minutes=minutes,
            total_charge=rates.cap_charge,
            rate_applied=RATE_FIVE_HOUR,
            breakdown=TimeBillingBreakdown(
                hours=rates.cap_hours,
                rate_per_hour=rates.cap_rate_per_hour,
            ),
        )

    hours, half_hours, grace_applied = _billable_units(minutes, rates)

    if minutes >= rates.discount_threshold_minutes:
        rate_per_hour = rates.discount_rate_per_hour
        rate_applied = RATE_THREE_HOUR
        # Discount tier is floored at the standard charge for the minute before the threshold
        floor = _standard_charge(rates.discount_threshold_minutes - 1, rates)
        total = max(_units_charge(hours, half_hours, rate_per_hour), floor)
    else:
        rate_per_hour = rates.base_rate_per_hour
        rate_applied = RATE_STANDARD
        total = _units_charge(hours, half_hours, rate_per_hour)

    if total >= rates.cap_charge:
        total = rates.cap_charge
        rate_applied = RATE_FIVE_HOUR
        rate_per_hour = rates.cap_rate_per_hour

    return TimeBilling(
        minutes=minutes,
        total_charge=total,
        rate_applied=rate_applied,
        breakdown=TimeBillingBreakdown(
            hours=hours,
            half_hours=half_hours,
            grace_applied=grace_applied,
            rate_per_hour=rate_per_hour,
        ),
    )


def _coerce_instant(value, name: str) -> datetime:
    if isinstance(value, datetime):
        return normalize_utc(value)
    if isinstance(value, str):
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{name} must be an ISO-8601 datetime")
        if parsed is None:
            raise ValidationError(f"{name} must be an ISO-8601 datetime")
        return parsed
    raise ValidationError(f"{name} must be a datetime")


def elapsed_minutes(started_at, now: Optional[datetime] = None, ended_at=None) -> int:
    """
    Whole minutes from started_at until ended_at (stopped timer) or now.

    A start instant later than the end instant is rejected rather than
    billed as zero.
    """
    start = _coerce_instant(started_at, "started_at")
    if ended_at is not None:
        end = _coerce_instant(ended_at, "ended_at")
    elif now is not None:
        end = _coerce_instant(now, "now")
    else:
        end = utcnow()

    if start > end:
        raise ValidationError("started_at is in the future")

    return int((end - start).total_seconds() // 60)


def get_estimated_charge(started_at, now: Optional[datetime] = None,
                         rates: RateTable = DEFAULT_RATE_TABLE) -> TimeBilling:
    """Live charge for a running timer."""
    return calculate_time_charge(elapsed_minutes(started_at, now=now), rates)


def minutes_to_hours(minutes: int) -> float:
    return round(minutes / 60, 2)


def format_time_charge(charge: int) -> str:
    return f"¥{charge:,}"


def get_time_charge_description(billing: TimeBilling) -> str:
    if billing.total_charge == 0:
        return "No time charge"

    hours, mins = divmod(billing.minutes, 60)
    time_str = f"{hours}h {mins}m" if hours > 0 else f"{mins}m"

    if billing.rate_applied == RATE_FIVE_HOUR:
        return f"Time: {time_str} (5+ hour flat rate)"
    if billing.rate_applied == RATE_THREE_HOUR:
        return f"Time: {time_str} (3+ hour discount rate)"
    if billing.breakdown.grace_applied:
        return f"Time: {time_str} (within grace period)"
    return f"Time: {time_str}"
