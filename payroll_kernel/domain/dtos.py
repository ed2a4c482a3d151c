"""
DTOs -- Immutable inputs and reference tables consumed by the payroll engines.

Responsibility:
    Defines the data that flows into a calculation: approved daily work
    records, wage-rate definitions, withholding elections, year-to-date
    snapshots, bracket tables and flat-tax constants.  Also the
    HourBreakdown value produced by the hours classifier and shared by
    every later stage.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Constructed by the
    config loader (tables) or by callers (records, elections, snapshots).

Invariants enforced:
    - All DTOs are frozen dataclasses; collections are tuples.
    - HourBreakdown categories are never negative.
    - BracketTable rows start at zero, are contiguous and increasing, and
      the top row is unbounded (TaxTableCorruptError otherwise).
    - FlatTaxDefinition wage bases are never negative
      (TaxTableCorruptError otherwise).

Failure modes:
    - ValueError on structurally invalid configuration values.
    - TaxTableCorruptError on bracket / wage-base integrity violations.

Audit relevance:
    Bracket tables are validated once when built, so a corrupt table is
    rejected before any worker's withholding is computed from it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from payroll_kernel.domain.values import (
    ZERO,
    ElectionEra,
    FilingStatus,
    Jurisdiction,
    PayFrequency,
)
from payroll_kernel.exceptions import MissingRateDataError, TaxTableCorruptError


# =============================================================================
# Time entry
# =============================================================================


@dataclass(frozen=True)
class DailyRecord:
    """One approved day of work for one worker.

    Created by the time-entry subsystem; consumed read-only here.  Sanity
    checks (finite, non-negative hours; shift 1-3) are performed by the
    hours classifier, which rejects rather than clamps.
    """

    work_date: date
    project_ref: str
    zone: str
    hours: Decimal
    shift: int = 1
    meal_taken: bool = True
    holiday: bool = False
    reported: bool = True  # Worker reported for work (minimum-pay guarantee)
    distance_miles: Decimal = ZERO  # Site to home local (travel/subsistence)
    installation: bool = False  # Installation-premium work


@dataclass(frozen=True)
class HourBreakdown:
    """Regular / overtime / double-time hours for one day or one period."""

    regular: Decimal = ZERO
    overtime: Decimal = ZERO
    double_time: Decimal = ZERO

    def __post_init__(self) -> None:
        for name in ("regular", "overtime", "double_time"):
            if getattr(self, name) < ZERO:
                raise ValueError(f"HourBreakdown.{name} cannot be negative")

    @property
    def total(self) -> Decimal:
        return self.regular + self.overtime + self.double_time

    def __add__(self, other: HourBreakdown) -> HourBreakdown:
        if not isinstance(other, HourBreakdown):
            return NotImplemented
        return HourBreakdown(
            regular=self.regular + other.regular,
            overtime=self.overtime + other.overtime,
            double_time=self.double_time + other.double_time,
        )


@dataclass(frozen=True)
class PayPeriod:
    """The pay period a calculation covers."""

    period_id: str
    start_date: date
    end_date: date
    frequency: PayFrequency

    def __post_init__(self) -> None:
        if self.end_date < self.start_date:
            raise ValueError(
                f"Pay period {self.period_id} ends before it starts"
            )

    def contains(self, on_date: date) -> bool:
        return self.start_date <= on_date <= self.end_date


# =============================================================================
# Wage rates
# =============================================================================


@dataclass(frozen=True)
class FringeRates:
    """Employer-paid benefit contributions per classified hour."""

    health_welfare: Decimal = ZERO
    pension: Decimal = ZERO
    vacation: Decimal = ZERO
    training: Decimal = ZERO

    def __post_init__(self) -> None:
        for name in ("health_welfare", "pension", "vacation", "training"):
            if getattr(self, name) < ZERO:
                raise ValueError(f"Fringe rate {name} cannot be negative")


@dataclass(frozen=True)
class WageRate:
    """
    Wage-rate definition for one (local, classification, zone) over a date range.

    ``shift_differentials`` and ``apprentice_percentages`` are stored as
    tuples of pairs so the rate stays hashable; percentages are decimals
    (``Decimal("0.10")`` is a 10% uplift, ``Decimal("0.60")`` pays 60%).
    ``effective_to`` is inclusive; None means open-ended.
    """

    local: str
    classification: str
    zone: str
    base_rate: Decimal
    effective_from: date
    effective_to: date | None = None
    shift_differentials: tuple[tuple[int, Decimal], ...] = ()
    apprentice_percentages: tuple[tuple[int, Decimal], ...] = ()
    fringe: FringeRates = field(default_factory=FringeRates)

    def __post_init__(self) -> None:
        if self.base_rate < ZERO:
            raise ValueError("base_rate cannot be negative")
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise ValueError(
                f"effective_to {self.effective_to} precedes "
                f"effective_from {self.effective_from}"
            )
        for shift, pct in self.shift_differentials:
            if shift not in (2, 3):
                raise ValueError(f"Shift differential defined for shift {shift}")
            if pct < ZERO:
                raise ValueError("Shift differential cannot be negative")
        for level, pct in self.apprentice_percentages:
            if pct <= ZERO or pct > Decimal("1"):
                raise ValueError(
                    f"Apprentice level {level} percentage must be in (0, 1]"
                )

    @property
    def lookup_key(self) -> tuple[str, str, str]:
        return (self.local, self.classification, self.zone)

    def is_effective(self, on_date: date) -> bool:
        if on_date < self.effective_from:
            return False
        if self.effective_to is not None and on_date > self.effective_to:
            return False
        return True

    def overlaps(self, other: WageRate) -> bool:
        """True if both ranges share at least one day."""
        self_end = self.effective_to or date.max
        other_end = other.effective_to or date.max
        return self.effective_from <= other_end and other.effective_from <= self_end

    def shift_differential(self, shift: int) -> Decimal:
        return dict(self.shift_differentials).get(shift, ZERO)

    def apprentice_percentage(self, level: int) -> Decimal | None:
        return dict(self.apprentice_percentages).get(level)


# =============================================================================
# Withholding elections and year-to-date state
# =============================================================================


@dataclass(frozen=True)
class WithholdingElection:
    """
    A worker's withholding election for one jurisdiction.

    ALLOWANCE-era elections use ``allowances``; ADJUSTMENT-era elections use
    ``other_income``, ``deductions``, ``credits`` (all annual) and the
    ``extra_withholding_checkbox``.  ``additional_withholding`` is a flat
    per-period amount for both eras.
    """

    era: ElectionEra
    filing_status: FilingStatus
    allowances: int = 0
    other_income: Decimal = ZERO
    deductions: Decimal = ZERO
    credits: Decimal = ZERO
    extra_withholding_checkbox: bool = False
    additional_withholding: Decimal = ZERO

    def __post_init__(self) -> None:
        if self.allowances < 0:
            raise ValueError("allowances cannot be negative")
        for name in ("other_income", "deductions", "credits", "additional_withholding"):
            if getattr(self, name) < ZERO:
                raise ValueError(f"{name} cannot be negative")


@dataclass(frozen=True)
class YearToDateAccumulator:
    """
    Cumulative wages subject to each wage-capped tax, as of period start.

    The engine reads this snapshot and never writes it.  ``advance``
    returns the next snapshot for the caller to persist once a
    calculation has been accepted.
    """

    tax_year: int
    oasdi_wages: Decimal = ZERO
    hospital_wages: Decimal = ZERO
    disability_wages: Decimal = ZERO

    def __post_init__(self) -> None:
        for name in ("oasdi_wages", "hospital_wages", "disability_wages"):
            if getattr(self, name) < ZERO:
                raise ValueError(f"{name} cannot be negative")

    def advance(self, period_wages: Decimal) -> YearToDateAccumulator:
        return YearToDateAccumulator(
            tax_year=self.tax_year,
            oasdi_wages=self.oasdi_wages + period_wages,
            hospital_wages=self.hospital_wages + period_wages,
            disability_wages=self.disability_wages + period_wages,
        )


@dataclass(frozen=True)
class ExternalDeduction:
    """A deduction opaque to the engine (union dues etc.)."""

    code: str
    amount: Decimal
    description: str = ""

    def __post_init__(self) -> None:
        if self.amount < ZERO:
            raise ValueError(f"Deduction {self.code} cannot be negative")


# =============================================================================
# Bracket tables
# =============================================================================


@dataclass(frozen=True)
class BracketTableKey:
    """One table per (jurisdiction, filing status, pay frequency, era)."""

    jurisdiction: Jurisdiction
    filing_status: FilingStatus
    pay_frequency: PayFrequency
    era: ElectionEra

    def __str__(self) -> str:
        return (
            f"{self.jurisdiction.value}/{self.filing_status.value}/"
            f"{self.pay_frequency.value}/{self.era.value}"
        )


@dataclass(frozen=True)
class BracketRow:
    """[lower, upper) income range with base tax and marginal rate."""

    lower: Decimal
    upper: Decimal | None
    base_tax: Decimal
    rate: Decimal

    def contains(self, amount: Decimal) -> bool:
        if amount < self.lower:
            return False
        return self.upper is None or amount < self.upper


@dataclass(frozen=True)
class BracketTable:
    """Ordered, contiguous, non-overlapping annual bracket rows."""

    key: BracketTableKey
    rows: tuple[BracketRow, ...]

    def __post_init__(self) -> None:
        table_key = str(self.key)
        if not self.rows:
            raise TaxTableCorruptError(table_key, "table has no rows")
        if self.rows[0].lower != ZERO:
            raise TaxTableCorruptError(
                table_key, f"first row starts at {self.rows[0].lower}, not 0"
            )
        for index, row in enumerate(self.rows):
            if row.rate < ZERO or row.base_tax < ZERO:
                raise TaxTableCorruptError(
                    table_key, f"row {index} has a negative rate or base tax"
                )
            is_last = index == len(self.rows) - 1
            if is_last:
                if row.upper is not None:
                    raise TaxTableCorruptError(
                        table_key, "top row must have an unbounded upper limit"
                    )
                continue
            if row.upper is None:
                raise TaxTableCorruptError(
                    table_key, f"row {index} is unbounded but is not the top row"
                )
            if row.upper <= row.lower:
                raise TaxTableCorruptError(
                    table_key, f"row {index} upper {row.upper} <= lower {row.lower}"
                )
            following = self.rows[index + 1]
            if following.lower != row.upper:
                kind = "gap" if following.lower > row.upper else "overlap"
                raise TaxTableCorruptError(
                    table_key,
                    f"{kind} between row {index} and row {index + 1} "
                    f"({row.upper} vs {following.lower})",
                )

    def lookup(self, amount: Decimal) -> BracketRow:
        """Return the row whose [lower, upper) contains ``amount``."""
        for row in self.rows:
            if row.contains(amount):
                return row
        raise TaxTableCorruptError(
            str(self.key), f"no bracket row contains {amount}"
        )


# =============================================================================
# Flat-rate payroll taxes
# =============================================================================


class FlatTaxCode(str, Enum):
    """Flat-rate payroll taxes."""

    OASDI = "oasdi"  # Old-age, survivors and disability insurance
    HOSPITAL = "hospital"  # Hospital insurance, with additional surtax
    DISABILITY = "disability"  # State disability insurance


@dataclass(frozen=True)
class FlatTaxDefinition:
    """
    Rate, wage base and optional surtax for one flat-rate tax.

    ``wage_base`` None means uncapped.  ``surtax_rate`` applies, uncapped,
    to wages above ``surtax_threshold`` measured against YTD + period wages.
    """

    code: FlatTaxCode
    rate: Decimal
    wage_base: Decimal | None = None
    surtax_rate: Decimal = ZERO
    surtax_threshold: Decimal | None = None

    def __post_init__(self) -> None:
        if self.wage_base is not None and self.wage_base < ZERO:
            raise TaxTableCorruptError(
                self.code.value, f"wage base {self.wage_base} is negative"
            )
        if self.rate < ZERO or self.surtax_rate < ZERO:
            raise TaxTableCorruptError(self.code.value, "negative tax rate")
        if self.surtax_rate > ZERO and self.surtax_threshold is None:
            raise TaxTableCorruptError(
                self.code.value, "surtax rate defined without a threshold"
            )


# =============================================================================
# Jurisdiction rules and the reference-table bundle
# =============================================================================


@dataclass(frozen=True)
class JurisdictionRules:
    """
    Annualization constants for one income-tax jurisdiction.

    ``allowance_amount`` is the annual amount per allowance (ALLOWANCE era).
    ``standard_amounts`` is the annual standard amount per filing status
    (ADJUSTMENT era; not applied when the extra-withholding box is
    checked).  ``low_income_exemptions`` holds period-wage thresholds at or
    below which no withholding applies; only the state uses them.
    """

    jurisdiction: Jurisdiction
    allowance_amount: Decimal = ZERO
    standard_amounts: tuple[tuple[FilingStatus, Decimal], ...] = ()
    low_income_exemptions: tuple[tuple[FilingStatus, PayFrequency, Decimal], ...] = ()

    def __post_init__(self) -> None:
        if self.allowance_amount < ZERO:
            raise ValueError("allowance_amount cannot be negative")
        for status, amount in self.standard_amounts:
            if amount < ZERO:
                raise ValueError(f"standard amount for {status.value} is negative")
        for status, frequency, amount in self.low_income_exemptions:
            if amount < ZERO:
                raise ValueError(
                    f"exemption threshold for {status.value}/{frequency.value} is negative"
                )

    def standard_amount(self, status: FilingStatus) -> Decimal | None:
        return dict(self.standard_amounts).get(status)

    def low_income_exemption(
        self, status: FilingStatus, frequency: PayFrequency,
    ) -> Decimal | None:
        for s, f, amount in self.low_income_exemptions:
            if s == status and f == frequency:
                return amount
        return None


@dataclass(frozen=True)
class PayrollTables:
    """
    Read-only reference data for one tax year.

    Supplied whole by the rate/configuration store (or the YAML loader in
    ``payroll_config``).  ``checksum`` identifies the exact table content a
    calculation used.
    """

    tax_year: int
    wage_rates: tuple[WageRate, ...] = ()
    bracket_tables: tuple[BracketTable, ...] = ()
    jurisdictions: tuple[JurisdictionRules, ...] = ()
    flat_taxes: tuple[FlatTaxDefinition, ...] = ()
    checksum: str = ""

    def __post_init__(self) -> None:
        keys = [t.key for t in self.bracket_tables]
        if len(keys) != len(set(keys)):
            raise TaxTableCorruptError(
                str(self.tax_year), "duplicate bracket table keys"
            )
        codes = [d.code for d in self.flat_taxes]
        if len(codes) != len(set(codes)):
            raise TaxTableCorruptError(
                str(self.tax_year), "duplicate flat tax definitions"
            )

    def bracket_table(self, key: BracketTableKey) -> BracketTable:
        for table in self.bracket_tables:
            if table.key == key:
                return table
        raise MissingRateDataError("bracket table", str(key))

    def jurisdiction_rules(self, jurisdiction: Jurisdiction) -> JurisdictionRules:
        for rules in self.jurisdictions:
            if rules.jurisdiction == jurisdiction:
                return rules
        raise MissingRateDataError("jurisdiction rules", jurisdiction.value)

    def flat_tax(self, code: FlatTaxCode) -> FlatTaxDefinition:
        for definition in self.flat_taxes:
            if definition.code == code:
                return definition
        raise MissingRateDataError("flat tax definition", code.value)
