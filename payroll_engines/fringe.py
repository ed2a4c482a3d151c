"""
Fringe Benefit Assembler (``payroll_engines.fringe``).

Total classified hours (regular + overtime + double-time) times each of
the four employer-paid per-hour rates carried by the day's ``WageRate``.
Purely additive: day amounts are summed at full precision, and rounding
happens only on each line item and on the grand total (the total is the
rounded sum of the unrounded lines, so it can differ from the sum of the
rounded lines by a cent).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from payroll_kernel.domain.values import ZERO, MonetaryQuantity, round_money
from payroll_kernel.exceptions import MalformedInputError
from payroll_kernel.logging_config import get_logger
from payroll_engines.hours import HoursClassification
from payroll_engines.tracer import traced_engine
from payroll_engines.wages import ResolvedWage

logger = get_logger("engines.fringe")

FRINGE_LINES = ("health_welfare", "pension", "vacation", "training")


@dataclass(frozen=True)
class FringeContributions:
    """Employer-paid contributions for one worker and one period."""

    hours: Decimal
    health_welfare: Decimal
    pension: Decimal
    vacation: Decimal
    training: Decimal
    total: Decimal

    def as_dict(self) -> dict[str, Decimal]:
        return {name: getattr(self, name) for name in FRINGE_LINES}


@traced_engine("fringe", "1.0", fingerprint_fields=("classification",))
def assemble_fringe(
    *,
    classification: HoursClassification,
    wages: Mapping[date, ResolvedWage],
) -> FringeContributions:
    """
    Price classified hours at each day's fringe rates.

    Raises:
        MalformedInputError: a classified day has no resolved rate.
    """
    unrounded = dict.fromkeys(FRINGE_LINES, ZERO)
    hours_total = ZERO

    for day in classification.days:
        wage = wages.get(day.work_date)
        if wage is None:
            raise MalformedInputError(
                "work_date", day.work_date, "classified day has no resolved rate",
            )
        hours = day.hours.total
        hours_total += hours
        rates = wage.wage_rate.fringe
        for name in FRINGE_LINES:
            unrounded[name] += hours * getattr(rates, name)

    lines = {
        name: round_money(amount, MonetaryQuantity.FRINGE_LINE)
        for name, amount in unrounded.items()
    }
    total = round_money(sum(unrounded.values(), ZERO), MonetaryQuantity.FRINGE_LINE)

    contributions = FringeContributions(hours=hours_total, total=total, **lines)
    logger.info("fringe_assembled", extra={
        "hours": str(hours_total),
        **{name: str(value) for name, value in lines.items()},
        "total": str(total),
    })
    return contributions
