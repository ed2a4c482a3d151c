"""
Tests for the Hours Classifier.

Covers:
- Daily rules (weekday, Saturday, Sunday/holiday, compressed schedule)
- Weekly reallocation in both orders
- Multi-week periods
- Quarter-hour rounding that keeps day totals and the weekly cap
- Rejection of malformed records
"""

from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest

from payroll_engines.hours import (
    HoursRules,
    classify_day,
    classify_hours,
    reallocate_weekly_overtime,
    round_breakdown,
    week_start_for,
)
from payroll_kernel.domain.dtos import HourBreakdown
from payroll_kernel.domain.values import ReallocationOrder, ScheduleType
from payroll_kernel.exceptions import MalformedInputError
from tests.conftest import MONDAY, make_record, make_week

SATURDAY = MONDAY + timedelta(days=5)
SUNDAY = MONDAY + timedelta(days=6)


def _breakdown(day) -> tuple[Decimal, Decimal, Decimal]:
    return (day.hours.regular, day.hours.overtime, day.hours.double_time)


class TestDailyRules:
    """Daily classification by day type and schedule."""

    def setup_method(self):
        self.rules = HoursRules()

    def _classify(self, *records, schedule=ScheduleType.STANDARD):
        return classify_hours(records=records, schedule=schedule, rules=self.rules)

    def test_standard_week_is_all_regular(self):
        result = self._classify(*make_week(["8", "8", "8", "8", "8"]))

        totals = result.totals
        assert totals.regular == Decimal("40")
        assert totals.overtime == Decimal("0")
        assert totals.double_time == Decimal("0")

    def test_long_weekday_splits_into_three_bands(self):
        result = self._classify(make_record(MONDAY, "12"))

        assert _breakdown(result.days[0]) == (Decimal("8"), Decimal("2"), Decimal("2"))

    def test_saturday_first_eight_overtime_then_double_time(self):
        result = self._classify(make_record(SATURDAY, "10"))

        assert _breakdown(result.days[0]) == (Decimal("0"), Decimal("8"), Decimal("2"))

    def test_sunday_is_all_double_time(self):
        result = self._classify(make_record(SUNDAY, "6"))

        assert _breakdown(result.days[0]) == (Decimal("0"), Decimal("0"), Decimal("6"))

    def test_holiday_overrides_weekday_rule(self):
        result = self._classify(make_record(MONDAY, "8", holiday=True))

        assert _breakdown(result.days[0]) == (Decimal("0"), Decimal("0"), Decimal("8"))

    def test_holiday_on_saturday_is_double_time(self):
        result = self._classify(make_record(SATURDAY, "4", holiday=True))

        assert _breakdown(result.days[0]) == (Decimal("0"), Decimal("0"), Decimal("4"))

    def test_compressed_day_regular_limit_is_ten(self):
        result = self._classify(
            make_record(MONDAY, "11"), schedule=ScheduleType.COMPRESSED,
        )

        assert _breakdown(result.days[0]) == (Decimal("10"), Decimal("1"), Decimal("0"))

    def test_compressed_day_past_twelve_is_double_time(self):
        result = self._classify(
            make_record(MONDAY, "13"), schedule=ScheduleType.COMPRESSED,
        )

        assert _breakdown(result.days[0]) == (Decimal("10"), Decimal("2"), Decimal("1"))

    def test_zero_hour_day_is_kept(self):
        result = self._classify(make_record(MONDAY, "0.00"))

        assert len(result.days) == 1
        assert result.days[0].hours.total == Decimal("0")

    def test_days_returned_in_date_order(self):
        records = tuple(reversed(make_week(["8", "8", "8"])))

        result = self._classify(*records)

        assert [d.work_date for d in result.days] == [
            MONDAY, MONDAY + timedelta(days=1), MONDAY + timedelta(days=2),
        ]


class TestWeeklyReallocation:
    """Regular hours above the weekly threshold become overtime."""

    def test_compressed_five_by_ten_reallocates_friday(self):
        records = make_week(["10", "10", "10", "10", "10"])

        result = classify_hours(
            records=records, schedule=ScheduleType.COMPRESSED, rules=HoursRules(),
        )

        friday = result.for_date(MONDAY + timedelta(days=4))
        assert _breakdown(friday) == (Decimal("0"), Decimal("10"), Decimal("0"))
        assert friday.reallocated_to_overtime == Decimal("10")
        assert result.totals.regular == Decimal("40")
        assert result.totals.overtime == Decimal("10")
        assert result.weeks[0].regular_before == Decimal("50")
        assert result.weeks[0].reallocated == Decimal("10")
        assert result.weeks[0].regular_after == Decimal("40")

    def test_reverse_chronological_takes_latest_days_first(self):
        rules = HoursRules(weekly_regular_threshold=Decimal("30"))

        result = classify_hours(
            records=make_week(["8", "8", "8", "8", "8"]),
            schedule=ScheduleType.STANDARD,
            rules=rules,
        )

        thursday = result.for_date(MONDAY + timedelta(days=3))
        friday = result.for_date(MONDAY + timedelta(days=4))
        assert _breakdown(friday) == (Decimal("0"), Decimal("8"), Decimal("0"))
        assert _breakdown(thursday) == (Decimal("6"), Decimal("2"), Decimal("0"))
        assert result.for_date(MONDAY).hours.regular == Decimal("8")

    def test_chronological_takes_earliest_days_first(self):
        rules = HoursRules(
            weekly_regular_threshold=Decimal("30"),
            reallocation_order=ReallocationOrder.CHRONOLOGICAL,
        )

        result = classify_hours(
            records=make_week(["8", "8", "8", "8", "8"]),
            schedule=ScheduleType.STANDARD,
            rules=rules,
        )

        assert _breakdown(result.for_date(MONDAY)) == (Decimal("0"), Decimal("8"), Decimal("0"))
        tuesday = result.for_date(MONDAY + timedelta(days=1))
        assert _breakdown(tuesday) == (Decimal("6"), Decimal("2"), Decimal("0"))

    def test_sunday_hours_do_not_count_toward_weekly_regular(self):
        records = make_week(["8", "8", "8", "8", "8", "0", "8"])

        result = classify_hours(
            records=records, schedule=ScheduleType.STANDARD, rules=HoursRules(),
        )

        assert result.totals.regular == Decimal("40")
        assert result.totals.double_time == Decimal("8")
        assert result.weeks[0].reallocated == Decimal("0")

    def test_biweekly_period_applies_threshold_per_week(self):
        records = (
            make_week(["10", "10", "10", "10", "10"])
            + make_week(["10", "10", "10", "10", "10"], start=MONDAY + timedelta(days=7))
        )

        result = classify_hours(
            records=records, schedule=ScheduleType.COMPRESSED, rules=HoursRules(),
        )

        assert len(result.weeks) == 2
        assert result.totals.regular == Decimal("80")
        assert result.totals.overtime == Decimal("20")

    def test_work_week_start_changes_week_grouping(self):
        # Sunday-start weeks: Monday to Friday plus the next Sunday span two weeks
        rules = HoursRules(work_week_start=6)
        records = make_week(["8", "8", "8", "8", "8", "0", "8"])

        result = classify_hours(records=records, schedule=ScheduleType.STANDARD, rules=rules)

        assert [w.week_start for w in result.weeks] == [MONDAY - timedelta(days=1), SUNDAY]

    def test_reallocate_helper_leaves_week_under_threshold_alone(self):
        week = [(MONDAY, HourBreakdown(regular=Decimal("8")))]

        adjusted, moved = reallocate_weekly_overtime(week, HoursRules())

        assert adjusted == week
        assert moved == Decimal("0")


class TestRounding:
    """Hours are rounded to the configured increment when they leave the classifier."""

    def test_overtime_rounds_up_past_the_midpoint(self):
        result = classify_hours(
            records=(make_record(MONDAY, "8.13"),),
            schedule=ScheduleType.STANDARD,
            rules=HoursRules(),
        )

        assert result.days[0].hours.overtime == Decimal("0.25")
        assert result.days[0].hours.regular == Decimal("8")

    def test_overtime_rounds_down_below_the_midpoint(self):
        result = classify_hours(
            records=(make_record(MONDAY, "8.12"),),
            schedule=ScheduleType.STANDARD,
            rules=HoursRules(),
        )

        assert result.days[0].hours.overtime == Decimal("0")

    def test_tenth_hour_increment(self):
        rules = HoursRules(rounding_increment=Decimal("0.1"))

        result = classify_hours(
            records=(make_record(MONDAY, "8.26"),),
            schedule=ScheduleType.STANDARD,
            rules=rules,
        )

        assert result.days[0].hours.overtime == Decimal("0.3")

    def test_classify_day_is_unrounded(self):
        breakdown = classify_day(
            make_record(MONDAY, "8.13"), ScheduleType.STANDARD, HoursRules(),
        )

        assert breakdown.overtime == Decimal("0.13")

    def test_off_grid_week_keeps_weekly_cap_and_day_totals(self):
        records = make_week(["9.625", "10", "10", "10", "10"])

        result = classify_hours(
            records=records, schedule=ScheduleType.COMPRESSED, rules=HoursRules(),
        )

        assert result.totals.regular == Decimal("40")
        assert result.totals.overtime == Decimal("9.75")
        assert result.weeks[0].regular_after == Decimal("40")
        friday = result.for_date(MONDAY + timedelta(days=4))
        assert _breakdown(friday) == (Decimal("0.25"), Decimal("9.75"), Decimal("0"))
        for day in result.days:
            assert day.hours.total == day.reported_hours
        assert result.for_date(MONDAY).reported_hours == Decimal("9.75")

    def test_bands_add_up_to_rounded_day(self):
        # Each band boundary is rounded, not each band
        result = classify_hours(
            records=(make_record(MONDAY, "10.375"),),
            schedule=ScheduleType.STANDARD,
            rules=HoursRules(),
        )

        day = result.days[0]
        assert day.reported_hours == Decimal("10.5")
        assert _breakdown(day) == (Decimal("8"), Decimal("2"), Decimal("0.5"))
        assert day.hours.total == Decimal("10.5")

    def test_round_breakdown_uses_cumulative_boundaries(self):
        breakdown = HourBreakdown(
            regular=Decimal("0.375"), overtime=Decimal("9.625"), double_time=Decimal("0"),
        )

        rounded = round_breakdown(breakdown, Decimal("0.25"))

        assert rounded == HourBreakdown(
            regular=Decimal("0.5"), overtime=Decimal("9.5"), double_time=Decimal("0"),
        )


class TestMalformedInput:
    """Bad records are rejected, never clamped."""

    def _classify(self, *records):
        return classify_hours(
            records=records, schedule=ScheduleType.STANDARD, rules=HoursRules(),
        )

    @pytest.mark.parametrize("hours", ["-1", "NaN", "Infinity"])
    def test_invalid_hours_rejected(self, hours):
        with pytest.raises(MalformedInputError) as exc_info:
            self._classify(make_record(MONDAY, hours))

        assert exc_info.value.code == "MALFORMED_INPUT"

    def test_float_hours_rejected(self):
        record = replace(make_record(MONDAY, "8"), hours=8.0)

        with pytest.raises(MalformedInputError, match="must be a Decimal"):
            self._classify(record)

    def test_shift_out_of_range_rejected(self):
        with pytest.raises(MalformedInputError, match="shift"):
            self._classify(make_record(MONDAY, "8", shift=4))

    def test_duplicate_date_rejected(self):
        with pytest.raises(MalformedInputError, match="more than once"):
            self._classify(make_record(MONDAY, "4"), make_record(MONDAY, "4"))

    def test_rejection_is_logged(self, captured_logs):
        with pytest.raises(MalformedInputError):
            self._classify(make_record(MONDAY, "-2"))

        rejected = [r for r in captured_logs() if r["message"] == "hours_input_rejected"]
        assert len(rejected) == 1
        assert rejected[0]["level"] == "ERROR"


class TestHelpers:
    def test_week_start_for_monday_weeks(self):
        assert week_start_for(SUNDAY, 0) == MONDAY
        assert week_start_for(MONDAY, 0) == MONDAY

    def test_rules_reject_non_positive_threshold(self):
        with pytest.raises(ValueError):
            HoursRules(weekly_regular_threshold=Decimal("0"))

    def test_rules_reject_bad_week_start(self):
        with pytest.raises(ValueError):
            HoursRules(work_week_start=7)

    def test_rules_reject_threshold_off_the_rounding_grid(self):
        with pytest.raises(ValueError, match="multiple of rounding_increment"):
            HoursRules(weekly_regular_threshold=Decimal("37.3"))
