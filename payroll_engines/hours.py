"""
Hours Classifier (``payroll_engines.hours``).

Responsibility
--------------
Turns a period's approved daily records into regular / overtime /
double-time hours:

* Daily rules, in precedence order:
    (a) Sunday or holiday      -> all hours double-time
    (b) Saturday               -> first 8 overtime, remainder double-time
    (c) compressed 4/10 day    -> first 10 regular, next 2 overtime, rest DT
    (d) standard weekday       -> first 8 regular, next 2 overtime, rest DT
* Weekly rule: regular hours above 40 in a work week become overtime,
  taken from days in reverse chronological order (configurable).

Architecture position
---------------------
**Engines layer** -- pure functional core.  ZERO I/O, ZERO clock reads.
Imports only from ``payroll_kernel``.

Invariants enforced
-------------------
* Conservation: for every day, regular + overtime + double-time equals the
  day's reported hours rounded to the increment (quarter hour by default).
* The weekly pass runs only after every day of the week is classified, on
  the rounded daily breakdowns, so a week's regular hours never exceed the
  threshold after rounding.
* Daily limits and the weekly threshold are multiples of the increment.

Failure modes
-------------
* ``MalformedInputError`` for negative or non-finite hours, a shift outside
  1-3, or the same work date appearing twice.  Bad data is never clamped.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from payroll_kernel.domain.dtos import DailyRecord, HourBreakdown
from payroll_kernel.domain.values import (
    QUARTER_HOUR,
    ZERO,
    ReallocationOrder,
    ScheduleType,
    require_finite_non_negative,
    round_hours,
)
from payroll_kernel.exceptions import MalformedInputError
from payroll_kernel.logging_config import get_logger
from payroll_engines.tracer import traced_engine

logger = get_logger("engines.hours")

SATURDAY = 5
SUNDAY = 6
VALID_SHIFTS = (1, 2, 3)


@dataclass(frozen=True)
class HoursRules:
    """Daily and weekly thresholds used by the classifier."""

    standard_regular_limit: Decimal = Decimal("8")
    compressed_regular_limit: Decimal = Decimal("10")
    weekday_overtime_band: Decimal = Decimal("2")
    saturday_overtime_limit: Decimal = Decimal("8")
    weekly_regular_threshold: Decimal = Decimal("40")
    work_week_start: int = 0  # date.weekday(): Monday = 0
    reallocation_order: ReallocationOrder = ReallocationOrder.REVERSE_CHRONOLOGICAL
    rounding_increment: Decimal = QUARTER_HOUR

    def __post_init__(self) -> None:
        if not 0 <= self.work_week_start <= 6:
            raise ValueError("work_week_start must be a weekday number 0-6")
        for name in (
            "standard_regular_limit",
            "compressed_regular_limit",
            "weekday_overtime_band",
            "saturday_overtime_limit",
            "weekly_regular_threshold",
            "rounding_increment",
        ):
            if getattr(self, name) <= ZERO:
                raise ValueError(f"{name} must be positive")
        for name in (
            "standard_regular_limit",
            "compressed_regular_limit",
            "weekday_overtime_band",
            "saturday_overtime_limit",
            "weekly_regular_threshold",
        ):
            if getattr(self, name) % self.rounding_increment != ZERO:
                raise ValueError(
                    f"{name} must be a multiple of rounding_increment "
                    f"({self.rounding_increment})"
                )


@dataclass(frozen=True)
class DayClassification:
    """Rounded classification of one work date."""

    work_date: date
    reported_hours: Decimal
    hours: HourBreakdown
    reallocated_to_overtime: Decimal = ZERO


@dataclass(frozen=True)
class WeekSummary:
    """Weekly overtime pass outcome for one work week."""

    week_start: date
    regular_before: Decimal
    reallocated: Decimal

    @property
    def regular_after(self) -> Decimal:
        return self.regular_before - self.reallocated


@dataclass(frozen=True)
class HoursClassification:
    """Classifier output for one worker and one period."""

    days: tuple[DayClassification, ...]
    weeks: tuple[WeekSummary, ...]
    schedule: ScheduleType

    @property
    def totals(self) -> HourBreakdown:
        total = HourBreakdown()
        for day in self.days:
            total = total + day.hours
        return total

    def for_date(self, work_date: date) -> DayClassification:
        for day in self.days:
            if day.work_date == work_date:
                return day
        raise KeyError(work_date)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_records(records: Sequence[DailyRecord]) -> None:
    """Reject records this classifier cannot interpret."""
    seen: set[date] = set()
    for record in records:
        require_finite_non_negative(f"hours[{record.work_date}]", record.hours)
        if record.shift not in VALID_SHIFTS:
            raise MalformedInputError(
                f"shift[{record.work_date}]", record.shift, "must be 1, 2 or 3",
            )
        if record.work_date in seen:
            raise MalformedInputError(
                "work_date", record.work_date, "appears more than once in the period",
            )
        seen.add(record.work_date)


# ---------------------------------------------------------------------------
# Daily classification
# ---------------------------------------------------------------------------


def _split(hours: Decimal, *limits: Decimal) -> tuple[Decimal, ...]:
    """Split ``hours`` into consecutive bands; the last band is unbounded."""
    parts: list[Decimal] = []
    remaining = hours
    for limit in limits:
        taken = min(remaining, limit)
        parts.append(taken)
        remaining -= taken
    parts.append(remaining)
    return tuple(parts)


def classify_day(
    record: DailyRecord,
    schedule: ScheduleType,
    rules: HoursRules,
) -> HourBreakdown:
    """Classify one day's hours (unrounded)."""
    weekday = record.work_date.weekday()
    hours = record.hours

    if weekday == SUNDAY or record.holiday:
        return HourBreakdown(double_time=hours)

    if weekday == SATURDAY:
        overtime, double_time = _split(hours, rules.saturday_overtime_limit)
        return HourBreakdown(overtime=overtime, double_time=double_time)

    if schedule == ScheduleType.COMPRESSED:
        regular_limit = rules.compressed_regular_limit
    else:
        regular_limit = rules.standard_regular_limit

    regular, overtime, double_time = _split(
        hours, regular_limit, rules.weekday_overtime_band,
    )
    return HourBreakdown(regular=regular, overtime=overtime, double_time=double_time)


def round_breakdown(breakdown: HourBreakdown, increment: Decimal) -> HourBreakdown:
    """
    Round a day's breakdown so its bands still add up to the rounded total.

    Band boundaries are rounded cumulatively (regular, then regular plus
    overtime, then the whole day); double-time takes the remainder.
    """
    regular = round_hours(breakdown.regular, increment)
    through_overtime = round_hours(breakdown.regular + breakdown.overtime, increment)
    total = round_hours(breakdown.total, increment)
    return HourBreakdown(
        regular=regular,
        overtime=through_overtime - regular,
        double_time=total - through_overtime,
    )


# ---------------------------------------------------------------------------
# Weekly reallocation
# ---------------------------------------------------------------------------


def week_start_for(work_date: date, work_week_start: int) -> date:
    offset = (work_date.weekday() - work_week_start) % 7
    return work_date - timedelta(days=offset)


def reallocate_weekly_overtime(
    week: Sequence[tuple[date, HourBreakdown]],
    rules: HoursRules,
) -> tuple[list[tuple[date, HourBreakdown]], Decimal]:
    """
    Move regular hours above the weekly threshold to overtime.

    ``week`` must be one work week's fully classified days in chronological
    order.  Days are visited in ``rules.reallocation_order``; each gives up
    regular hours until the excess is exhausted or its regular hours reach
    zero.

    Returns:
        (days with adjusted breakdowns, total hours reallocated)
    """
    total_regular = sum((b.regular for _, b in week), ZERO)
    excess = total_regular - rules.weekly_regular_threshold
    adjusted = list(week)
    if excess <= ZERO:
        return adjusted, ZERO

    indices = range(len(adjusted))
    if rules.reallocation_order == ReallocationOrder.REVERSE_CHRONOLOGICAL:
        indices = reversed(indices)

    reallocated = ZERO
    for index in indices:
        if excess <= ZERO:
            break
        work_date, breakdown = adjusted[index]
        moved = min(excess, breakdown.regular)
        if moved <= ZERO:
            continue
        adjusted[index] = (
            work_date,
            HourBreakdown(
                regular=breakdown.regular - moved,
                overtime=breakdown.overtime + moved,
                double_time=breakdown.double_time,
            ),
        )
        excess -= moved
        reallocated += moved

    return adjusted, reallocated


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


@traced_engine("hours", "1.0", fingerprint_fields=("records", "schedule"))
def classify_hours(
    *,
    records: Sequence[DailyRecord],
    schedule: ScheduleType,
    rules: HoursRules,
) -> HoursClassification:
    """
    Classify a period's daily records.

    Preconditions:
        - ``records`` are approved and belong to one worker and one period.
    Postconditions:
        - One ``DayClassification`` per record, chronological.
        - Per-work-week regular hours never exceed the weekly threshold.
        - Hours in the result are rounded to ``rules.rounding_increment``.
    Raises:
        MalformedInputError: on invalid hours, shift or duplicate dates.
    """
    logger.info("hours_classification_started", extra={
        "record_count": len(records),
        "schedule": schedule.value,
    })

    try:
        validate_records(records)
    except MalformedInputError as exc:
        logger.error("hours_input_rejected", extra={
            "field_name": exc.field_name,
            "value": str(exc.value),
            "reason": exc.reason,
        })
        raise

    ordered = sorted(records, key=lambda r: r.work_date)
    increment = rules.rounding_increment

    weeks: dict[date, list[tuple[date, HourBreakdown]]] = defaultdict(list)
    for record in ordered:
        week_start = week_start_for(record.work_date, rules.work_week_start)
        weeks[week_start].append((
            record.work_date,
            round_breakdown(classify_day(record, schedule, rules), increment),
        ))

    # Weekly pass only after every day has its daily classification
    final: dict[date, HourBreakdown] = {}
    moved_by_date: dict[date, Decimal] = {}
    summaries: list[WeekSummary] = []
    for week_start in sorted(weeks):
        daily = weeks[week_start]
        regular_before = sum((b.regular for _, b in daily), ZERO)
        adjusted, reallocated = reallocate_weekly_overtime(daily, rules)
        for (work_date, before), (_, after) in zip(daily, adjusted):
            final[work_date] = after
            moved_by_date[work_date] = after.overtime - before.overtime
        summaries.append(WeekSummary(
            week_start=week_start,
            regular_before=regular_before,
            reallocated=reallocated,
        ))
        if reallocated > ZERO:
            logger.debug("weekly_overtime_reallocated", extra={
                "week_start": week_start.isoformat(),
                "regular_before": str(regular_before),
                "reallocated": str(reallocated),
                "order": rules.reallocation_order.value,
            })

    days = tuple(
        DayClassification(
            work_date=record.work_date,
            reported_hours=round_hours(record.hours, increment),
            hours=final[record.work_date],
            reallocated_to_overtime=moved_by_date[record.work_date],
        )
        for record in ordered
    )

    result = HoursClassification(
        days=days,
        weeks=tuple(summaries),
        schedule=schedule,
    )

    totals = result.totals
    logger.info("hours_classification_completed", extra={
        "day_count": len(days),
        "week_count": len(summaries),
        "regular": str(totals.regular),
        "overtime": str(totals.overtime),
        "double_time": str(totals.double_time),
    })
    return result
