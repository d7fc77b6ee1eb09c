# Overview: Pytest coverage for seat time billing.

"""
Seat Time Billing Tests

Covers the unit rules (grace, half hour, full hour), the discount and cap
tiers, monotonicity of the charge across tier boundaries, and elapsed time
calculation for running and stopped timers.
"""

from datetime import datetime, timedelta

import pytest

from boardcafe.services.time_billing_service import (
    RATE_FIVE_HOUR,
    RATE_STANDARD,
    RATE_THREE_HOUR,
    RateTable,
    calculate_time_charge,
    elapsed_minutes,
    format_time_charge,
    get_estimated_charge,
    get_time_charge_description,
    minutes_to_hours,
)
from boardcafe.validation import ValidationError


class TestUnitRules:

    def test_zero_minutes_is_free(self):
        billing = calculate_time_charge(0)
        assert billing.total_charge == 0
        assert billing.rate_applied == RATE_STANDARD

    @pytest.mark.parametrize("minutes,expected", [
        (5, 0),
        (10, 0),
        (11, 250),
        (45, 250),
        (46, 500),
        (60, 500),
        (70, 500),
        (71, 750),
        (106, 1000),
        (170, 1500),
    ])
    def test_standard_rate(self, minutes, expected):
        billing = calculate_time_charge(minutes)
        assert billing.total_charge == expected
        assert billing.rate_applied == RATE_STANDARD

    def test_grace_period_flagged(self):
        billing = calculate_time_charge(65)
        assert billing.breakdown.grace_applied is True
        assert billing.breakdown.hours == 1
        assert billing.breakdown.half_hours == 0

    def test_half_hour_breakdown(self):
        billing = calculate_time_charge(90)
        assert billing.breakdown.hours == 1
        assert billing.breakdown.half_hours == 1
        assert billing.total_charge == 750

    def test_minor_units(self):
        billing = calculate_time_charge(60)
        assert billing.total_charge_minor == 50000
        assert billing.to_dict()["total_charge_minor"] == 50000


class TestTiers:

    def test_discount_tier_never_drops_below_standard(self):
        assert calculate_time_charge(170).total_charge == 1500
        billing = calculate_time_charge(171)
        assert billing.rate_applied == RATE_THREE_HOUR
        assert billing.total_charge == 1500

    def test_discount_tier_half_hour(self):
        # 3h at ¥450 + half hour at ¥225
        billing = calculate_time_charge(200)
        assert billing.rate_applied == RATE_THREE_HOUR
        assert billing.total_charge == 1575

    def test_179_not_more_than_181(self):
        assert calculate_time_charge(179).total_charge <= calculate_time_charge(181).total_charge

    def test_cap_threshold(self):
        billing = calculate_time_charge(291)
        assert billing.total_charge == 2100
        assert billing.rate_applied == RATE_FIVE_HOUR

    def test_cap_is_a_ceiling(self):
        # 4h50m at the discount rate would be 5 x 450 = 2250
        billing = calculate_time_charge(290)
        assert billing.total_charge == 2100
        assert billing.rate_applied == RATE_FIVE_HOUR

    def test_long_stays_billed_at_cap(self):
        assert calculate_time_charge(301).total_charge == calculate_time_charge(600).total_charge == 2100

    def test_charge_is_monotonic(self):
        previous = 0
        for minutes in range(0, 720):
            charge = calculate_time_charge(minutes).total_charge
            assert charge >= previous, f"charge dropped at {minutes} minutes"
            previous = charge

    def test_custom_rate_table(self):
        rates = RateTable(base_rate_per_hour=600, cap_rate_per_hour=500)
        assert calculate_time_charge(60, rates).total_charge == 600
        assert calculate_time_charge(400, rates).total_charge == 2500


class TestInputValidation:

    @pytest.mark.parametrize("value", [-1, 1.5, "30", True, None])
    def test_rejects_bad_minutes(self, value):
        with pytest.raises(ValidationError):
            calculate_time_charge(value)


class TestElapsedTime:

    def test_stopped_timer_uses_end_instant(self):
        start = datetime(2026, 3, 1, 12, 0, 0)
        assert elapsed_minutes(start, ended_at=start + timedelta(minutes=95, seconds=30)) == 95

    def test_running_timer_uses_now(self):
        start = datetime(2026, 3, 1, 12, 0, 0)
        assert elapsed_minutes(start, now=start + timedelta(minutes=61)) == 61

    def test_iso_string_with_offset(self):
        # 21:00 +09:00 is 12:00 UTC
        now = datetime(2026, 3, 1, 12, 30, 0)
        assert elapsed_minutes("2026-03-01T21:00:00+09:00", now=now) == 30

    def test_iso_string_with_z(self):
        now = datetime(2026, 3, 1, 12, 30, 0)
        assert elapsed_minutes("2026-03-01T12:00:00Z", now=now) == 30

    def test_future_start_rejected(self):
        now = datetime(2026, 3, 1, 12, 0, 0)
        with pytest.raises(ValidationError):
            elapsed_minutes(now + timedelta(minutes=5), now=now)

    @pytest.mark.parametrize("value", ["not-a-date", "", 12345])
    def test_malformed_start_rejected(self, value):
        with pytest.raises(ValidationError):
            elapsed_minutes(value, now=datetime(2026, 3, 1, 12, 0, 0))

    def test_estimated_charge(self):
        start = datetime(2026, 3, 1, 12, 0, 0)
        billing = get_estimated_charge(start, now=start + timedelta(minutes=120))
        assert billing.minutes == 120
        assert billing.total_charge == 1000


class TestFormatting:

    def test_format_time_charge(self):
        assert format_time_charge(2100) == "¥2,100"
        assert format_time_charge(0) == "¥0"

    def test_minutes_to_hours(self):
        assert minutes_to_hours(90) == 1.5
        assert minutes_to_hours(100) == 1.67

    def test_descriptions(self):
        assert get_time_charge_description(calculate_time_charge(5)) == "No time charge"
        assert get_time_charge_description(calculate_time_charge(65)) == "Time: 1h 5m (within grace period)"
        assert get_time_charge_description(calculate_time_charge(30)) == "Time: 30m"
        assert "3+ hour discount rate" in get_time_charge_description(calculate_time_charge(200))
        assert "5+ hour flat rate" in get_time_charge_description(calculate_time_charge(300))
