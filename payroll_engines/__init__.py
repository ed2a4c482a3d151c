"""
Module: payroll_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    payroll calculation engines.  This is the canonical import surface for
    callers (``payroll_batch`` and anything outside this repository).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import payroll_kernel (and sibling engine modules).
    MUST NOT import payroll_config or payroll_batch.

Invariants enforced:
    - Purity: engines never read the clock; every date is passed in.
    - Decimal-only arithmetic: floats are never used for amounts or hours.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine entry point is wrapped by ``@traced_engine`` (see
    ``payroll_engines.tracer``), emitting PAYROLL_ENGINE_TRACE log records
    with engine name, version, input fingerprint and duration.

Usage:
    from payroll_engines import PayrollInput, calculate_payroll
    from payroll_engines.hours import classify_hours, HoursRules
    from payroll_engines.withholding import calculate_income_tax_withholding
"""

from payroll_engines.composer import (
    CalculationTrace,
    EngineRules,
    PayrollCalculation,
    PayrollInput,
    calculate_payroll,
    compose_calculation,
)
from payroll_engines.flat_tax import (
    FlatTaxLine,
    FlatTaxResult,
    calculate_flat_taxes,
)
from payroll_engines.fringe import FringeContributions, assemble_fringe
from payroll_engines.gross import (
    DayPay,
    GrossPay,
    GrossPayRules,
    InstallationPremiumRule,
    MealPenaltyRule,
    MinimumPayRule,
    TravelBand,
    TravelRule,
    assemble_gross,
)
from payroll_engines.hours import (
    DayClassification,
    HoursClassification,
    HoursRules,
    WeekSummary,
    classify_hours,
)
from payroll_engines.tracer import traced_engine
from payroll_engines.wages import ResolvedWage, WageRateTable, resolve_wage
from payroll_engines.withholding import (
    WithholdingComputation,
    WithholdingStep,
    calculate_income_tax_withholding,
)

__all__ = [
    # Hours
    "DayClassification",
    "HoursClassification",
    "HoursRules",
    "WeekSummary",
    "classify_hours",
    # Wages
    "ResolvedWage",
    "WageRateTable",
    "resolve_wage",
    # Gross
    "DayPay",
    "GrossPay",
    "GrossPayRules",
    "InstallationPremiumRule",
    "MealPenaltyRule",
    "MinimumPayRule",
    "TravelBand",
    "TravelRule",
    "assemble_gross",
    # Withholding
    "WithholdingComputation",
    "WithholdingStep",
    "calculate_income_tax_withholding",
    "FlatTaxLine",
    "FlatTaxResult",
    "calculate_flat_taxes",
    # Fringe
    "FringeContributions",
    "assemble_fringe",
    # Composer
    "CalculationTrace",
    "EngineRules",
    "PayrollCalculation",
    "PayrollInput",
    "calculate_payroll",
    "compose_calculation",
    # Tracing
    "traced_engine",
]
