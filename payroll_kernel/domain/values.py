"""
Values -- Enumerations and Decimal numeric utilities shared by all engines.

Responsibility:
    Provides the discriminating enums of the payroll domain (filing status,
    pay frequency, election era, jurisdiction, schedule type) and the one
    place where rounding happens.  Every monetary quantity the engine
    produces is rounded through ``round_money`` with the mode recorded in
    ``ROUNDING_POLICY``; hour quantities go through ``round_hours``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Decimal-only arithmetic: ``require_finite_non_negative`` rejects
      anything that is not a Decimal; floats are refused earlier, where
      ``payroll_config`` parses YAML.
    - One rounding function per monetary quantity (``ROUNDING_POLICY``).
    - Intermediate values are never rounded; callers round on exit only.

Failure modes:
    - MalformedInputError from ``require_finite_non_negative`` for NaN,
      infinite or negative inputs.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from payroll_kernel.exceptions import MalformedInputError

ZERO = Decimal("0")
CENT = Decimal("0.01")
QUARTER_HOUR = Decimal("0.25")

OVERTIME_MULTIPLIER = Decimal("1.5")
DOUBLE_TIME_MULTIPLIER = Decimal("2")


# =============================================================================
# Enumerations
# =============================================================================


class FilingStatus(str, Enum):
    """Withholding filing status."""

    SINGLE = "single"
    MARRIED = "married"  # Married filing jointly
    HEAD_OF_HOUSEHOLD = "head_of_household"


class PayFrequency(str, Enum):
    """Pay-period length."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    SEMIMONTHLY = "semimonthly"
    MONTHLY = "monthly"

    @property
    def periods_per_year(self) -> int:
        return _PERIODS_PER_YEAR[self]


_PERIODS_PER_YEAR = {
    PayFrequency.WEEKLY: 52,
    PayFrequency.BIWEEKLY: 26,
    PayFrequency.SEMIMONTHLY: 24,
    PayFrequency.MONTHLY: 12,
}


class ElectionEra(str, Enum):
    """Generation of the withholding-election form."""

    ALLOWANCE = "allowance"  # Older form: number of allowances
    ADJUSTMENT = "adjustment"  # Newer form: other income / deductions / credits


class Jurisdiction(str, Enum):
    """Income-tax jurisdictions modelled by the engine."""

    FEDERAL = "federal"
    STATE = "state"


class ScheduleType(str, Enum):
    """Work schedule used by the hours classifier."""

    STANDARD = "standard"  # 5 x 8
    COMPRESSED = "compressed"  # 4 x 10


class ReallocationOrder(str, Enum):
    """Order in which days give up regular hours to weekly overtime."""

    REVERSE_CHRONOLOGICAL = "reverse_chronological"
    CHRONOLOGICAL = "chronological"


class CalculationStatus(str, Enum):
    """Lifecycle of a payroll calculation record."""

    ACTIVE = "active"
    VOIDED = "voided"  # Superseded by a correction; never deleted


class MonetaryQuantity(str, Enum):
    """Every monetary quantity the engine rounds."""

    RESOLVED_RATE = "resolved_rate"
    STRAIGHT_PAY = "straight_pay"
    MINIMUM_PAY = "minimum_pay"
    MEAL_PENALTY = "meal_penalty"
    TRAVEL = "travel"
    INSTALLATION_PREMIUM = "installation_premium"
    INCOME_TAX_WITHHOLDING = "income_tax_withholding"
    FLAT_TAX = "flat_tax"
    FRINGE_LINE = "fringe_line"


# Rounding mode per monetary quantity.  Tax withholding uses half-up to the
# cent like every other quantity; changing one mode here is the only change
# needed to adopt a different convention for that quantity.
ROUNDING_POLICY: dict[MonetaryQuantity, str] = {
    MonetaryQuantity.RESOLVED_RATE: ROUND_HALF_UP,
    MonetaryQuantity.STRAIGHT_PAY: ROUND_HALF_UP,
    MonetaryQuantity.MINIMUM_PAY: ROUND_HALF_UP,
    MonetaryQuantity.MEAL_PENALTY: ROUND_HALF_UP,
    MonetaryQuantity.TRAVEL: ROUND_HALF_UP,
    MonetaryQuantity.INSTALLATION_PREMIUM: ROUND_HALF_UP,
    MonetaryQuantity.INCOME_TAX_WITHHOLDING: ROUND_HALF_UP,
    MonetaryQuantity.FLAT_TAX: ROUND_HALF_UP,
    MonetaryQuantity.FRINGE_LINE: ROUND_HALF_UP,
}


# =============================================================================
# Numeric utilities
# =============================================================================


def round_money(amount: Decimal, quantity: MonetaryQuantity) -> Decimal:
    """Round a monetary amount to the cent using the policy for ``quantity``."""
    return amount.quantize(CENT, rounding=ROUNDING_POLICY[quantity])


def round_hours(hours: Decimal, increment: Decimal = QUARTER_HOUR) -> Decimal:
    """Round hours to the nearest ``increment`` (half-up)."""
    units = (hours / increment).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return (units * increment).quantize(increment)


def floor_zero(amount: Decimal) -> Decimal:
    """Clamp a computed amount at zero."""
    return amount if amount > ZERO else ZERO


def require_finite_non_negative(field_name: str, value: Decimal) -> Decimal:
    """Reject NaN, infinite and negative values with MalformedInputError."""
    if not isinstance(value, Decimal):
        raise MalformedInputError(field_name, value, "must be a Decimal")
    if not value.is_finite():
        raise MalformedInputError(field_name, value, "must be finite")
    if value < ZERO:
        raise MalformedInputError(field_name, value, "must not be negative")
    return value
