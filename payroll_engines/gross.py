"""
Gross Pay Assembler (``payroll_engines.gross``).

Responsibility
--------------
Prices classified hours at the resolved hourly rate (regular 1x,
overtime 1.5x, double-time 2x) and adds situational pay, per day:

* Minimum-pay guarantee -- shortfall up to a flat minimum or a
  guaranteed number of hours at rate, both scaled by the day premium.
* Missed-meal penalty -- hours past a threshold re-priced at 1.5x.
* Travel / subsistence -- flat amount from distance bands.
* Installation premium -- flat per-hour premium on installation days.

Each adjustment is independently toggleable and independently rounded to
the cent.  Each floors at zero, so gross pay is never negative.

Architecture position
---------------------
**Engines layer** -- pure functional core.  Consumes the hours
classifier's output and the wage resolver's per-day rates.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from payroll_kernel.domain.dtos import DailyRecord
from payroll_kernel.domain.values import (
    DOUBLE_TIME_MULTIPLIER,
    OVERTIME_MULTIPLIER,
    ZERO,
    MonetaryQuantity,
    floor_zero,
    round_money,
)
from payroll_kernel.exceptions import MalformedInputError
from payroll_kernel.logging_config import get_logger
from payroll_engines.hours import SATURDAY, SUNDAY, DayClassification, HoursClassification
from payroll_engines.tracer import traced_engine
from payroll_engines.wages import ResolvedWage

logger = get_logger("engines.gross")


# =============================================================================
# Rules
# =============================================================================


@dataclass(frozen=True)
class MinimumPayRule:
    """
    Minimum-pay guarantee for a worker who reports for work.

    The guarantee is the larger of ``flat_minimum`` and guaranteed hours at
    rate, both multiplied by the day premium (1.5 Saturday, 2 Sunday or
    holiday).  Guaranteed hours are ``lower_guarantee_hours`` until hours
    worked exceed ``escalation_threshold_hours``, then
    ``upper_guarantee_hours``.
    """

    enabled: bool = True
    flat_minimum: Decimal = ZERO
    lower_guarantee_hours: Decimal = Decimal("2")
    upper_guarantee_hours: Decimal = Decimal("4")
    escalation_threshold_hours: Decimal = Decimal("2")
    saturday_multiplier: Decimal = OVERTIME_MULTIPLIER
    sunday_holiday_multiplier: Decimal = DOUBLE_TIME_MULTIPLIER

    def __post_init__(self) -> None:
        if self.flat_minimum < ZERO:
            raise ValueError("flat_minimum cannot be negative")
        if self.lower_guarantee_hours < ZERO:
            raise ValueError("lower_guarantee_hours cannot be negative")
        if self.upper_guarantee_hours < self.lower_guarantee_hours:
            raise ValueError("upper_guarantee_hours must be >= lower_guarantee_hours")


@dataclass(frozen=True)
class MealPenaltyRule:
    """Hours past ``threshold_hours`` without a meal are re-priced."""

    enabled: bool = True
    threshold_hours: Decimal = Decimal("5")
    multiplier: Decimal = OVERTIME_MULTIPLIER

    def __post_init__(self) -> None:
        if self.threshold_hours <= ZERO:
            raise ValueError("threshold_hours must be positive")
        if self.multiplier < Decimal("1"):
            raise ValueError("multiplier must be at least 1")


@dataclass(frozen=True)
class TravelBand:
    """Flat daily amount paid at or above ``min_miles``."""

    min_miles: Decimal
    amount: Decimal


@dataclass(frozen=True)
class TravelRule:
    """Distance bands, strictly increasing in distance and amount."""

    enabled: bool = True
    bands: tuple[TravelBand, ...] = ()

    def __post_init__(self) -> None:
        for band in self.bands:
            if band.min_miles < ZERO or band.amount < ZERO:
                raise ValueError("travel bands cannot be negative")
        for lower, upper in zip(self.bands, self.bands[1:]):
            if upper.min_miles <= lower.min_miles or upper.amount <= lower.amount:
                raise ValueError(
                    "travel bands must increase monotonically in distance and amount"
                )

    def amount_for(self, distance: Decimal) -> Decimal:
        amount = ZERO
        for band in self.bands:
            if distance >= band.min_miles:
                amount = band.amount
            else:
                break
        return amount


@dataclass(frozen=True)
class InstallationPremiumRule:
    """Per-hour premium on installation work."""

    enabled: bool = True
    per_hour: Decimal = ZERO

    def __post_init__(self) -> None:
        if self.per_hour < ZERO:
            raise ValueError("per_hour cannot be negative")


@dataclass(frozen=True)
class GrossPayRules:
    """All situational-pay rules applied by the assembler."""

    minimum_pay: MinimumPayRule = field(default_factory=MinimumPayRule)
    meal_penalty: MealPenaltyRule = field(default_factory=MealPenaltyRule)
    travel: TravelRule = field(default_factory=TravelRule)
    installation_premium: InstallationPremiumRule = field(
        default_factory=InstallationPremiumRule
    )


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class DayPay:
    """Gross pay lines for one work date."""

    work_date: date
    hourly_rate: Decimal
    straight_pay: Decimal
    minimum_pay: Decimal = ZERO
    meal_penalty: Decimal = ZERO
    travel: Decimal = ZERO
    installation_premium: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return (
            self.straight_pay
            + self.minimum_pay
            + self.meal_penalty
            + self.travel
            + self.installation_premium
        )


@dataclass(frozen=True)
class GrossPay:
    """Gross pay for one worker and one period."""

    days: tuple[DayPay, ...]

    @property
    def straight_pay(self) -> Decimal:
        return sum((d.straight_pay for d in self.days), ZERO)

    @property
    def minimum_pay(self) -> Decimal:
        return sum((d.minimum_pay for d in self.days), ZERO)

    @property
    def meal_penalty(self) -> Decimal:
        return sum((d.meal_penalty for d in self.days), ZERO)

    @property
    def travel(self) -> Decimal:
        return sum((d.travel for d in self.days), ZERO)

    @property
    def installation_premium(self) -> Decimal:
        return sum((d.installation_premium for d in self.days), ZERO)

    @property
    def total(self) -> Decimal:
        return sum((d.total for d in self.days), ZERO)


# =============================================================================
# Calculations
# =============================================================================


def day_premium_multiplier(record: DailyRecord, rule: MinimumPayRule) -> Decimal:
    weekday = record.work_date.weekday()
    if weekday == SUNDAY or record.holiday:
        return rule.sunday_holiday_multiplier
    if weekday == SATURDAY:
        return rule.saturday_multiplier
    return Decimal("1")


def straight_pay(day: DayClassification, rate: Decimal) -> Decimal:
    hours = day.hours
    amount = (
        hours.regular * rate
        + hours.overtime * rate * OVERTIME_MULTIPLIER
        + hours.double_time * rate * DOUBLE_TIME_MULTIPLIER
    )
    return round_money(floor_zero(amount), MonetaryQuantity.STRAIGHT_PAY)


def minimum_pay_shortfall(
    record: DailyRecord,
    worked_hours: Decimal,
    earned: Decimal,
    rate: Decimal,
    rule: MinimumPayRule,
) -> Decimal:
    if not rule.enabled or not record.reported:
        return ZERO
    multiplier = day_premium_multiplier(record, rule)
    if worked_hours > rule.escalation_threshold_hours:
        guaranteed_hours = rule.upper_guarantee_hours
    else:
        guaranteed_hours = rule.lower_guarantee_hours
    guarantee = max(
        rule.flat_minimum * multiplier,
        guaranteed_hours * rate * multiplier,
    )
    return round_money(floor_zero(guarantee - earned), MonetaryQuantity.MINIMUM_PAY)


def meal_penalty(
    record: DailyRecord,
    worked_hours: Decimal,
    rate: Decimal,
    rule: MealPenaltyRule,
) -> Decimal:
    if not rule.enabled or record.meal_taken:
        return ZERO
    excess = worked_hours - rule.threshold_hours
    if excess <= ZERO:
        return ZERO
    delta = excess * rate * (rule.multiplier - 1)
    return round_money(floor_zero(delta), MonetaryQuantity.MEAL_PENALTY)


def travel_pay(record: DailyRecord, rule: TravelRule) -> Decimal:
    if not rule.enabled:
        return ZERO
    return round_money(rule.amount_for(record.distance_miles), MonetaryQuantity.TRAVEL)


def installation_premium(
    record: DailyRecord,
    worked_hours: Decimal,
    rule: InstallationPremiumRule,
) -> Decimal:
    if not rule.enabled or not record.installation:
        return ZERO
    return round_money(
        floor_zero(worked_hours * rule.per_hour),
        MonetaryQuantity.INSTALLATION_PREMIUM,
    )


@traced_engine("gross", "1.0", fingerprint_fields=("classification",))
def assemble_gross(
    *,
    classification: HoursClassification,
    records: Sequence[DailyRecord],
    wages: Mapping[date, ResolvedWage],
    rules: GrossPayRules,
) -> GrossPay:
    """
    Assemble gross pay for a classified period.

    Preconditions:
        - ``records`` and ``wages`` cover every classified work date.
    Postconditions:
        - Every line is rounded to the cent and non-negative.
    Raises:
        MalformedInputError: a classified day has no record or rate.
    """
    records_by_date = {r.work_date: r for r in records}

    days: list[DayPay] = []
    for day in classification.days:
        record = records_by_date.get(day.work_date)
        wage = wages.get(day.work_date)
        if record is None or wage is None:
            raise MalformedInputError(
                "work_date", day.work_date, "classified day has no record or resolved rate",
            )

        rate = wage.hourly_rate
        worked = day.hours.total
        base = straight_pay(day, rate)
        days.append(DayPay(
            work_date=day.work_date,
            hourly_rate=rate,
            straight_pay=base,
            minimum_pay=minimum_pay_shortfall(record, worked, base, rate, rules.minimum_pay),
            meal_penalty=meal_penalty(record, worked, rate, rules.meal_penalty),
            travel=travel_pay(record, rules.travel),
            installation_premium=installation_premium(
                record, worked, rules.installation_premium,
            ),
        ))

    gross = GrossPay(days=tuple(days))
    logger.info("gross_pay_assembled", extra={
        "day_count": len(days),
        "straight_pay": str(gross.straight_pay),
        "minimum_pay": str(gross.minimum_pay),
        "meal_penalty": str(gross.meal_penalty),
        "travel": str(gross.travel),
        "installation_premium": str(gross.installation_premium),
        "gross_total": str(gross.total),
    })
    return gross
